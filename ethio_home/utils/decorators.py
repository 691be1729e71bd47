from functools import wraps

from flask import g, jsonify, request
from flask_jwt_extended import get_jwt, get_jwt_identity, verify_jwt_in_request

from ethio_home import db
from ethio_home.errors import AppError
from ethio_home.models.user import User


def current_user():
    return g.get('current_user')


def protect(fn):
    """Require a valid token belonging to an active user whose password is unchanged since issue"""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        verify_jwt_in_request()

        try:
            user_id = int(get_jwt_identity())
        except (TypeError, ValueError):
            raise AppError('Invalid token. Please log in again!', 401)

        user = db.session.get(User, user_id)
        if not user or not user.active:
            raise AppError('The user belonging to this token does no longer exist.', 401)

        if user.changed_password_after(get_jwt()['iat']):
            raise AppError('User recently changed password! Please log in again.', 401)

        g.current_user = user
        return fn(*args, **kwargs)
    return wrapper


def restrict_to(*roles):
    """Require one of `roles`; use after @protect"""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = current_user()
            if not user or user.role not in roles:
                raise AppError('You do not have permission to perform this action', 403)
            return fn(*args, **kwargs)
        return wrapper
    return decorator


def permit(fn):
    """Sellers and agents need an active subscription plan to manage listings"""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        from ethio_home.models.subscription_plan import SubscriptionPlan

        user = current_user()
        if user and user.is_lister():
            plan = SubscriptionPlan.query.filter_by(seller_id=user.id, active=True).first()
            if not plan:
                raise AppError('No active subscription found. Please subscribe to a plan before managing properties.', 403)
        return fn(*args, **kwargs)
    return wrapper


def purchase_required(fn):
    """Only buyers who paid for the property may review it"""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        from ethio_home.models.selling import Selling

        user = current_user()
        data = request.get_json(silent=True) or {}
        property_id = kwargs.get('property_id') or data.get('property_id')
        if not property_id:
            raise AppError('A review must belong to a property', 400)

        purchase = Selling.query.filter_by(property_id=property_id, buyer_id=user.id, paid=True).first()
        if not purchase:
            raise AppError('You can only review properties you have purchased', 403)
        return fn(*args, **kwargs)
    return wrapper


def register_jwt_callbacks(jwt):
    @jwt.unauthorized_loader
    def missing_token_callback(reason):
        return jsonify({'status': 'fail', 'message': 'You are not logged in! Please log in to get access.'}), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(reason):
        return jsonify({'status': 'fail', 'message': 'Invalid token. Please log in again!'}), 401

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({'status': 'fail', 'message': 'Your token has expired! Please log in again.'}), 401
