from flask import Blueprint, jsonify
from sqlalchemy import func

from ethio_home import db
from ethio_home.errors import AppError
from ethio_home.models.property import Property
from ethio_home.models.user import User
from ethio_home.services import crud
from ethio_home.services.policy import PROPERTY_POLICY
from ethio_home.utils.decorators import protect, restrict_to, permit, current_user
from ethio_home.utils.sanitizers import sanitize_payload
from ethio_home.utils.uploads import UploadConfig

properties_bp = Blueprint('properties', __name__)

PROPERTY_IMAGES = UploadConfig('img/properties', field='images', max_files=6, max_bytes=5 * 1024 * 1024)

MANAGING_ROLES = ('admin', 'employee', 'seller', 'agent')


class PropertyResource(crud.Resource):
    model = Property
    name = 'Property'
    policy = PROPERTY_POLICY
    writable_fields = ('title', 'description', 'price', 'currency', 'price_discount',
                       'location', 'type', 'status', 'features', 'owner_id')
    required_fields = ('title', 'description', 'price', 'location', 'type', 'status')
    upload = PROPERTY_IMAGES

    @staticmethod
    def _discount_last(data):
        # the discount validator reads the price already set on the instance
        if 'price_discount' in data:
            data['price_discount'] = data.pop('price_discount')
        return data

    def list_default_filter(self, query):
        return query.filter(Property.sold.is_(False))

    def before_create(self, data, actor, **route_kwargs):
        sanitize_payload(data, ('title', 'description', 'location'))

        if actor.is_staff():
            if not data.get('owner_id'):
                raise AppError('Please provide the owner of the property', 400)
            owner = db.session.get(User, data['owner_id'])
            if not owner or not owner.active:
                raise AppError('User not found', 404)
        else:
            data['owner_id'] = actor.id

        return self._discount_last(data)

    def before_update(self, document, data, actor):
        sanitize_payload(data, ('title', 'description', 'location'))

        if 'owner_id' in data:
            if not actor.is_staff():
                data.pop('owner_id')
            else:
                owner = db.session.get(User, data['owner_id'])
                if not owner or not owner.active:
                    raise AppError('User not found', 404)

        return self._discount_last(data)

    def after_read(self, document, data):
        data['images_url'] = [PROPERTY_IMAGES.url_for(name) for name in (document.images or [])]
        return data

    def serialize(self, document):
        return document.to_dict(include_owner=True)


property_resource = PropertyResource()


@properties_bp.route('/', methods=['GET'], strict_slashes=False)
def get_properties():
    return crud.get_all(property_resource)


@properties_bp.route('/property-stats', methods=['GET'])
@protect
@restrict_to('admin', 'employee')
def get_property_stats():
    """Per-location price statistics, split by verification"""
    def stats_for(verified):
        location = func.upper(Property.location)
        avg_price = func.avg(Property.price)
        rows = db.session.query(
            location.label('location'),
            func.count(Property.id),
            avg_price.label('avg_price'),
            func.min(Property.price),
            func.max(Property.price)
        ).filter(Property.is_verified.is_(verified)).group_by(location).order_by(avg_price.asc()).all()

        return [{
            'location': row[0],
            'num_property': row[1],
            'avg_price': round(float(row[2]), 2) if row[2] is not None else None,
            'min_price': float(row[3]) if row[3] is not None else None,
            'max_price': float(row[4]) if row[4] is not None else None,
        } for row in rows]

    return jsonify({
        'status': 'success',
        'data': {
            'stats_of_verified': stats_for(True),
            'stats_of_unverified': stats_for(False)
        }
    }), 200


@properties_bp.route('/<int:property_id>', methods=['GET'])
def get_property(property_id):
    return crud.get_one(property_resource, property_id)


@properties_bp.route('/', methods=['POST'], strict_slashes=False)
@protect
@restrict_to(*MANAGING_ROLES)
@permit
def create_property():
    return crud.create_one(property_resource, current_user())


@properties_bp.route('/<int:property_id>', methods=['PATCH'])
@protect
@restrict_to(*MANAGING_ROLES)
@permit
def update_property(property_id):
    return crud.update_one(property_resource, property_id, current_user())


@properties_bp.route('/<int:property_id>', methods=['DELETE'])
@protect
@restrict_to(*MANAGING_ROLES)
@permit
def delete_property(property_id):
    return crud.delete_one(property_resource, property_id, current_user())


@properties_bp.route('/<int:property_id>', methods=['PUT'])
@protect
@restrict_to('admin', 'employee')
def verify_property(property_id):
    """Mark a listing as verified"""
    property = db.session.get(Property, property_id)
    if not property:
        raise AppError('Property not found', 404)

    property.verify(current_user().id)
    db.session.commit()

    return crud.document_response(property_resource.after_read(property, property_resource.serialize(property)))
