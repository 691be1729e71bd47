"""Generic resource pipeline shared by the listing, user, sale, review and
interest endpoints.

A ``Resource`` describes one model and the rules that belong to it; the
``get_all``/``get_one``/``create_one``/``update_one``/``delete_one``
functions run the same steps for every resource and call the hooks along
the way.
"""
import json
import logging
import math
import re
from datetime import datetime

from flask import jsonify, request
from sqlalchemy import Boolean, Date, DateTime, Float, Integer, JSON, Numeric

from ethio_home import db
from ethio_home.errors import AppError
from ethio_home.utils.uploads import discard_uploads, save_uploads

logger = logging.getLogger(__name__)

RESERVED_PARAMS = ('page', 'sort', 'limit', 'fields')
DEFAULT_LIMIT = 20
FILTER_KEY = re.compile(r'^(\w+)\[(gte|gt|lte|lt|ne)\]$')


class Resource:
    model = None
    name = None
    policy = None
    # Evaluate the policy on reads too (documents only their author may see)
    guard_reads = False
    writable_fields = ()
    required_fields = ()
    hidden_fields = ()
    default_sort = '-created_at'
    upload = None
    upload_target = 'images'

    @property
    def label(self):
        return self.name or self.model.__name__

    def list_default_filter(self, query):
        return query

    def scope_query(self, query, **route_kwargs):
        return query

    def before_create(self, data, actor, **route_kwargs):
        return data

    def before_update(self, document, data, actor):
        return data

    def after_read(self, document, data):
        return data

    def serialize(self, document):
        return document.to_dict()

    def build(self, data):
        return self.model(**data)

    def persist(self, document, actor):
        db.session.add(document)
        db.session.commit()

    def find(self, id, **route_kwargs):
        query = self.scope_query(self.model.query, **route_kwargs)
        return query.filter(self.model.id == id).first()

    def can(self, actor, document, action):
        if self.policy is None:
            return True
        return self.policy.can_act_on_resource(actor, document, action)


def request_data():
    """Request body from JSON or a multipart/urlencoded form"""
    if request.is_json:
        return dict(request.get_json(silent=True) or {})
    return request.form.to_dict()


def _columns(model):
    return model.__table__.columns


def coerce_value(column, value):
    """Convert a query-string or form value to the column's Python type"""
    if value is None or not isinstance(value, str):
        return value

    column_type = column.type
    try:
        if isinstance(column_type, Boolean):
            if value.lower() in ('true', '1'):
                return True
            if value.lower() in ('false', '0'):
                return False
            raise ValueError(value)
        if isinstance(column_type, Integer):
            return int(value)
        if isinstance(column_type, (Numeric, Float)):
            return float(value)
        if isinstance(column_type, (DateTime, Date)):
            return datetime.fromisoformat(value)
        if isinstance(column_type, JSON):
            return json.loads(value)
    except ValueError:
        raise AppError(f'Invalid value for {column.name}: {value}', 400)

    return value


def coerce_payload(model, data):
    columns = _columns(model)
    return {key: coerce_value(columns[key], value) if key in columns else value
            for key, value in data.items()}


def apply_filters(query, model, args, hidden=()):
    """Equality filters plus `field[gte|gt|lte|lt|ne]=value`; unknown keys are ignored"""
    columns = _columns(model)
    pairs = args.items(multi=True) if hasattr(args, 'getlist') else args.items()

    for key, value in pairs:
        if key in RESERVED_PARAMS:
            continue

        op = None
        match = FILTER_KEY.match(key)
        if match:
            key, op = match.groups()

        if key not in columns or key in hidden:
            continue

        column = columns[key]
        if isinstance(column.type, JSON):
            continue

        attr = getattr(model, key)
        value = coerce_value(column, value)

        if op == 'gte':
            query = query.filter(attr >= value)
        elif op == 'gt':
            query = query.filter(attr > value)
        elif op == 'lte':
            query = query.filter(attr <= value)
        elif op == 'lt':
            query = query.filter(attr < value)
        elif op == 'ne':
            query = query.filter(attr != value)
        else:
            query = query.filter(attr == value)

    return query


def apply_sort(query, model, sort, default_sort='-created_at', hidden=()):
    columns = _columns(model)
    order = []

    for field in (sort or default_sort or '').split(','):
        field = field.strip()
        descending = field.startswith('-')
        name = field.lstrip('-+')
        if name not in columns or name in hidden:
            continue
        attr = getattr(model, name)
        order.append(attr.desc() if descending else attr.asc())

    # Stable pages when the sort key ties
    order.append(model.id.asc())
    return query.order_by(*order)


def project(data, fields):
    """Keep only the requested keys (and always `id`)"""
    if not fields:
        return data
    wanted = {f.strip() for f in fields.split(',') if f.strip()}
    wanted.add('id')
    return {key: value for key, value in data.items() if key in wanted}


def _positive_int(args, key, default):
    raw = args.get(key)
    if raw is None or raw == '':
        return default, False
    try:
        return int(raw), True
    except (TypeError, ValueError):
        raise AppError(f'{key} must be an integer', 400)


def paginate(query, args):
    """Return (items, pagination) for a query and the request's page/limit"""
    page, explicit = _positive_int(args, 'page', 1)
    limit, _ = _positive_int(args, 'limit', DEFAULT_LIMIT)

    if page < 1:
        raise AppError('Page number must be greater than 0', 404)
    if limit < 1:
        raise AppError('limit must be greater than 0', 400)

    skip = (page - 1) * limit
    total = query.order_by(None).count()

    if explicit and skip >= total:
        raise AppError('This page does not exist.', 404)

    items = query.offset(skip).limit(limit).all()
    pagination = {
        'page': page,
        'limit': limit,
        'total': total,
        'pages': math.ceil(total / limit) if total else 0,
    }
    return items, pagination


def list_response(data, pagination):
    return jsonify({
        'status': 'success',
        'results': len(data),
        'data': {'data': data},
        'pagination': pagination
    }), 200


def document_response(data, status_code=200):
    return jsonify({'status': 'success', 'data': {'data': data}}), status_code


def get_all(resource, args=None, **route_kwargs):
    args = request.args if args is None else args
    model = resource.model

    query = resource.list_default_filter(model.query)
    query = resource.scope_query(query, **route_kwargs)
    query = apply_filters(query, model, args, resource.hidden_fields)
    query = apply_sort(query, model, args.get('sort'), resource.default_sort, resource.hidden_fields)

    documents, pagination = paginate(query, args)
    fields = args.get('fields')
    data = [project(resource.after_read(doc, resource.serialize(doc)), fields) for doc in documents]
    return list_response(data, pagination)


def _load(resource, id, actor, action, **route_kwargs):
    document = resource.find(id, **route_kwargs)
    if not document:
        raise AppError(f'No {resource.label} found with that ID', 404)
    if not resource.can(actor, document, action):
        raise AppError('You are not allowed to perform this action', 403)
    return document


def get_one(resource, id, actor=None, **route_kwargs):
    if resource.guard_reads:
        document = _load(resource, id, actor, 'read', **route_kwargs)
    else:
        document = resource.find(id, **route_kwargs)
        if not document:
            raise AppError(f'No {resource.label} found with that ID', 404)

    return document_response(resource.after_read(document, resource.serialize(document)))


def _writable(resource, data):
    return {key: value for key, value in data.items() if key in resource.writable_fields}


def _attach_uploads(resource, data, actor):
    """Store the request's files and reference them in `data`; returns the stored names"""
    if not resource.upload:
        return []
    files = request.files.getlist(resource.upload.field) if request.files else []
    saved = save_uploads(files, resource.upload, prefix=f"{resource.label.lower()}-{actor.id}")
    if saved:
        data[resource.upload_target] = saved if resource.upload.max_files > 1 else saved[0]
    return saved


def create_one(resource, actor, data=None, **route_kwargs):
    data = request_data() if data is None else data
    data = coerce_payload(resource.model, _writable(resource, data))

    missing = [f for f in resource.required_fields if data.get(f) in (None, '')]
    if missing:
        raise AppError(f"Please provide: {', '.join(missing)}", 400)

    data = resource.before_create(data, actor, **route_kwargs)

    if 'is_verified' in _columns(resource.model):
        data['is_verified'] = False

    saved = _attach_uploads(resource, data, actor)

    try:
        document = resource.build(data)
        resource.persist(document, actor)
    except Exception:
        db.session.rollback()
        discard_uploads(saved, resource.upload)
        raise
    logger.info('%s %s created by user %s', resource.label, document.id, actor.id if actor else None)

    return document_response(resource.after_read(document, resource.serialize(document)), 201)


def update_one(resource, id, actor, data=None, **route_kwargs):
    document = _load(resource, id, actor, 'update', **route_kwargs)

    data = request_data() if data is None else data
    data = coerce_payload(resource.model, _writable(resource, data))
    data = resource.before_update(document, data, actor)
    saved = _attach_uploads(resource, data, actor)

    try:
        for key, value in data.items():
            setattr(document, key, value)
        db.session.commit()
    except Exception:
        db.session.rollback()
        discard_uploads(saved, resource.upload)
        raise

    return document_response(resource.after_read(document, resource.serialize(document)))


def delete_one(resource, id, actor, **route_kwargs):
    document = _load(resource, id, actor, 'delete', **route_kwargs)

    db.session.delete(document)
    db.session.commit()
    logger.info('%s %s deleted by user %s', resource.label, id, actor.id if actor else None)

    return '', 204
