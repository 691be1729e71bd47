from datetime import datetime, timezone

from flask import Blueprint, jsonify, request
from sqlalchemy.exc import IntegrityError

from ethio_home import db
from ethio_home.errors import AppError
from ethio_home.models.interest_form import InterestForm, INTEREST_STATUSES
from ethio_home.models.property import Property
from ethio_home.services import crud
from ethio_home.services.policy import AUTHOR_POLICY
from ethio_home.utils.decorators import protect, restrict_to, current_user
from ethio_home.utils.sanitizers import sanitize_payload

interest_bp = Blueprint('interest', __name__)

DUPLICATE_INTEREST = 'Interest is already submitted. Please update it instead of submitting a new one.'


class InterestResource(crud.Resource):
    model = InterestForm
    name = 'InterestForm'
    policy = AUTHOR_POLICY
    guard_reads = True
    writable_fields = ('message',)
    required_fields = ('message',)

    def scope_query(self, query, property_id=None, buyer_id=None, owner_id=None):
        if property_id is not None:
            query = query.filter(InterestForm.property_id == property_id)
        if buyer_id is not None:
            query = query.filter(InterestForm.buyer_id == buyer_id)
        if owner_id is not None:
            query = query.join(Property, InterestForm.property_id == Property.id).filter(Property.owner_id == owner_id)
        return query

    def before_create(self, data, actor, property_id=None, **route_kwargs):
        sanitize_payload(data, ('message',))

        property = db.session.get(Property, property_id) if property_id else None
        if not property:
            raise AppError('There is no property with this id', 404)

        existing = InterestForm.query.filter_by(buyer_id=actor.id, property_id=property.id).first()
        if existing:
            raise AppError(DUPLICATE_INTEREST, 409)

        data.update(
            buyer_id=actor.id,
            property_id=property.id,
            contact_name=actor.name,
            contact_phone=actor.phone,
            contact_email=actor.email
        )
        return data

    def before_update(self, document, data, actor):
        return sanitize_payload(data, ('message',))

    def persist(self, document, actor):
        db.session.add(document)
        try:
            db.session.commit()
        except IntegrityError:
            # A concurrent submission for the same pair won
            db.session.rollback()
            raise AppError(DUPLICATE_INTEREST, 409)


class PropertyInterestResource(InterestResource):
    """Staff view with buyer and property summaries"""

    def serialize(self, document):
        return document.to_dict(include_relations=True)


interest_resource = InterestResource()
property_interest_resource = PropertyInterestResource()


def parse_visit_date(value):
    """ISO 8601 string to a naive UTC datetime"""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


@interest_bp.route('/buyer', methods=['POST'])
@protect
def submit_interest(property_id=None):
    data = crud.request_data()
    property_id = property_id or data.get('property_id')
    return crud.create_one(interest_resource, current_user(), data, property_id=property_id)


@interest_bp.route('/buyer', methods=['GET'])
@protect
def get_my_interests(property_id=None):
    return crud.get_all(interest_resource, property_id=property_id, buyer_id=current_user().id)


@interest_bp.route('/buyer/<int:interest_id>', methods=['GET'])
@protect
def get_interest(interest_id, property_id=None):
    return crud.get_one(interest_resource, interest_id, current_user(), property_id=property_id)


@interest_bp.route('/buyer/<int:interest_id>', methods=['PATCH'])
@protect
def update_interest(interest_id, property_id=None):
    return crud.update_one(interest_resource, interest_id, current_user(), property_id=property_id)


@interest_bp.route('/buyer/<int:interest_id>', methods=['DELETE'])
@protect
def delete_interest(interest_id, property_id=None):
    return crud.delete_one(interest_resource, interest_id, current_user(), property_id=property_id)


@interest_bp.route('/owner/<int:owner_id>', methods=['GET'])
@protect
@restrict_to('admin', 'seller', 'employee')
def get_owner_interests(owner_id, property_id=None):
    """Interests on every listing of one owner"""
    user = current_user()
    if user.role == 'seller' and user.id != owner_id:
        raise AppError('You are not allowed to perform this action', 403)

    return crud.get_all(interest_resource, property_id=property_id, owner_id=owner_id)


@interest_bp.route('/', methods=['GET'], strict_slashes=False)
@protect
@restrict_to('admin', 'employee')
def get_property_interests(property_id=None):
    if property_id is not None and not db.session.get(Property, property_id):
        raise AppError('Property not found.', 404)

    return crud.get_all(property_interest_resource, property_id=property_id)


@interest_bp.route('/status/<int:interest_id>', methods=['PATCH'])
@protect
@restrict_to('admin', 'employee')
def update_interest_status(interest_id, property_id=None):
    interest = interest_resource.find(interest_id, property_id=property_id)
    if not interest:
        raise AppError('Interest form not found', 404)

    data = request.get_json(silent=True) or {}
    status = data.get('status')
    if status not in INTEREST_STATUSES:
        raise AppError(f"Status must be one of: {', '.join(INTEREST_STATUSES)}", 400)

    if status == 'schedule':
        interest.schedule_visit(parse_visit_date(data.get('visit_date')))
    else:
        interest.status = status

    db.session.commit()

    return jsonify({
        'status': 'success',
        'message': 'Interest form status updated successfully',
        'data': {'data': interest.to_dict()}
    }), 200
