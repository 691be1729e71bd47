import logging
from datetime import datetime

from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import create_access_token, set_access_cookies, unset_jwt_cookies
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired

from ethio_home import db, limiter
from ethio_home.errors import AppError
from ethio_home.models.user import User, hash_token
from ethio_home.utils.decorators import protect, current_user
from ethio_home.utils.email import send_verification_email, send_password_reset_email, send_password_changed_email
from ethio_home.utils.sanitizers import sanitize_string
from ethio_home.utils.validators import validate_signup, validate_password, format_phone_number

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__)

SIGNUP_ROLES = ('buyer', 'seller', 'agent')
EMAIL_TOKEN_MAX_AGE = 24 * 3600


def get_token_serializer():
    """Return URLSafeTimedSerializer using the app's config secret."""
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'])


def send_token(user, status_code, message=None):
    """Issue a JWT in the body and as the httpOnly `jwt` cookie"""
    token = create_access_token(identity=str(user.id))

    body = {'status': 'success', 'token': token, 'data': {'user': user.to_dict()}}
    if message:
        body['message'] = message

    response = jsonify(body)
    set_access_cookies(response, token)
    return response, status_code


def _dispatch_verification(user):
    token = get_token_serializer().dumps(user.email, salt='email-verification')
    if not send_verification_email(user.email, user.name, token):
        logger.warning('Verification email to user %s was not delivered', user.id)


@auth_bp.route('/signup', methods=['POST'])
def signup():
    """Register a new, unverified user"""
    data = request.get_json(silent=True) or {}

    data['email'] = sanitize_string(data.get('email', '')).lower()
    data['name'] = sanitize_string(data.get('name', ''))
    data['phone'] = sanitize_string(data.get('phone', ''))
    role = data.get('role') or 'buyer'

    errors = validate_signup(data)
    if errors:
        raise AppError(f"Invalid input data. {' '.join(errors)}", 400)

    if role not in SIGNUP_ROLES:
        raise AppError(f"Role must be one of: {', '.join(SIGNUP_ROLES)}", 400)

    if User.query.filter_by(email=data['email']).first():
        raise AppError('Email already registered', 409)

    user = User(
        name=data['name'],
        email=data['email'],
        phone=format_phone_number(data['phone']),
        role=role,
        is_verified=False
    )
    user.set_password(data['password'])

    db.session.add(user)
    db.session.commit()

    _dispatch_verification(user)
    logger.info('User %s signed up as %s', user.id, user.role)

    return jsonify({
        'status': 'success',
        'message': 'Signed up successfully. Please verify your email.',
        'data': {'user': user.to_dict()}
    }), 201


@auth_bp.route('/resend-verification/<int:user_id>', methods=['PATCH'])
def resend_verification(user_id):
    user = db.session.get(User, user_id)
    if not user or not user.active:
        raise AppError('User not found', 404)

    if user.is_verified:
        raise AppError('This account is already verified.', 400)

    _dispatch_verification(user)

    return jsonify({'status': 'success', 'message': 'Verification email sent.'}), 200


@auth_bp.route('/verify-email/<token>', methods=['PATCH'])
def verify_email(token):
    """Verify email via the signed link token, then log the user in"""
    try:
        email = get_token_serializer().loads(token, salt='email-verification', max_age=EMAIL_TOKEN_MAX_AGE)
    except (BadSignature, SignatureExpired):
        raise AppError('The verification link is invalid or has expired.', 400)

    user = User.query.filter_by(email=email, active=True).first()
    if not user:
        raise AppError('User not found', 404)

    if user.is_verified:
        raise AppError('This link has already been used.', 400)

    user.is_verified = True
    db.session.commit()

    return send_token(user, 201, 'Email verified successfully.')


@auth_bp.route('/login', methods=['POST'])
@limiter.limit("10 per 10 minutes", error_message="Too many login attempts. Please try again after a few minutes!")
def login():
    data = request.get_json(silent=True) or {}

    email = sanitize_string(data.get('email', '')).lower()
    password = data.get('password', '')

    if not email or not password:
        raise AppError('Please provide email and password!', 400)

    user = User.query.filter_by(email=email, active=True).first()

    if not user or not user.check_password(password):
        raise AppError('Incorrect email or password', 401)

    if not user.is_verified:
        raise AppError('Please verify your email', 400)

    return send_token(user, 200)


@auth_bp.route('/logout', methods=['GET'])
def logout():
    response = jsonify({'status': 'success'})
    unset_jwt_cookies(response)
    return response, 200


@auth_bp.route('/forgot-password', methods=['POST'])
def forgot_password():
    data = request.get_json(silent=True) or {}
    email = sanitize_string(data.get('email', '')).lower()

    user = User.query.filter_by(email=email, active=True).first()
    if not user:
        raise AppError('There is no user with that email address.', 404)

    reset_token = user.create_password_reset_token()
    db.session.commit()

    if not send_password_reset_email(user.email, user.name, reset_token):
        user.clear_password_reset()
        db.session.commit()
        raise AppError('There was an error sending the email. Try again later!', 500)

    return jsonify({'status': 'success', 'message': 'Token sent to email!'}), 200


@auth_bp.route('/reset-password/<token>', methods=['PATCH'])
def reset_password(token):
    data = request.get_json(silent=True) or {}

    user = User.query.filter(
        User.password_reset_token == hash_token(token),
        User.password_reset_expires > datetime.utcnow(),
        User.active.is_(True)
    ).first()
    if not user:
        raise AppError('Token is invalid or has expired', 400)

    password = data.get('password')
    if not validate_password(password):
        raise AppError('Password must be at least 8 characters long', 400)
    if password != data.get('password_confirm'):
        raise AppError('Passwords are not the same!', 400)

    user.set_password(password)
    user.clear_password_reset()
    db.session.commit()

    return send_token(user, 200)


@auth_bp.route('/update-my-password', methods=['PATCH'])
@protect
def update_my_password():
    user = current_user()
    data = request.get_json(silent=True) or {}

    if not user.check_password(data.get('password_current')):
        raise AppError('Your current password is wrong.', 401)

    password = data.get('password')
    if not validate_password(password):
        raise AppError('Password must be at least 8 characters long', 400)
    if password != data.get('password_confirm'):
        raise AppError('Passwords are not the same!', 400)

    user.set_password(password)
    db.session.commit()

    send_password_changed_email(user.email, user.name)

    return send_token(user, 200)
