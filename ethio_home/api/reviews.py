from flask import Blueprint

from ethio_home import db
from ethio_home.errors import AppError
from ethio_home.models.property import Property
from ethio_home.models.review import Review
from ethio_home.services import crud
from ethio_home.services.policy import AUTHOR_POLICY
from ethio_home.utils.decorators import protect, restrict_to, purchase_required, current_user
from ethio_home.utils.sanitizers import sanitize_payload

reviews_bp = Blueprint('reviews', __name__)


class ReviewResource(crud.Resource):
    model = Review
    name = 'Review'
    policy = AUTHOR_POLICY
    writable_fields = ('review', 'rating', 'property_id')
    required_fields = ('review',)

    def scope_query(self, query, property_id=None):
        if property_id is not None:
            query = query.filter(Review.property_id == property_id)
        return query

    def before_create(self, data, actor, property_id=None, **route_kwargs):
        sanitize_payload(data, ('review',))

        data['property_id'] = property_id or data.get('property_id')
        if not data['property_id'] or not db.session.get(Property, data['property_id']):
            raise AppError('There is no property with this id', 404)

        data['buyer_id'] = actor.id
        return data

    def before_update(self, document, data, actor):
        # A review stays on the property it was written for
        data.pop('property_id', None)
        return sanitize_payload(data, ('review',))


review_resource = ReviewResource()


@reviews_bp.route('/', methods=['GET'], strict_slashes=False)
def get_reviews(property_id=None):
    return crud.get_all(review_resource, property_id=property_id)


@reviews_bp.route('/<int:review_id>', methods=['GET'])
def get_review(review_id, property_id=None):
    return crud.get_one(review_resource, review_id, property_id=property_id)


@reviews_bp.route('/', methods=['POST'], strict_slashes=False)
@protect
@restrict_to('buyer')
@purchase_required
def create_review(property_id=None):
    return crud.create_one(review_resource, current_user(), property_id=property_id)


@reviews_bp.route('/<int:review_id>', methods=['PATCH'])
@protect
def update_review(review_id, property_id=None):
    return crud.update_one(review_resource, review_id, current_user(), property_id=property_id)


@reviews_bp.route('/<int:review_id>', methods=['DELETE'])
@protect
def delete_review(review_id, property_id=None):
    return crud.delete_one(review_resource, review_id, current_user(), property_id=property_id)
