from flask import Blueprint

from ethio_home import db
from ethio_home.errors import AppError
from ethio_home.models.user import User, ROLES
from ethio_home.services import crud
from ethio_home.utils.decorators import protect, restrict_to, current_user
from ethio_home.utils.sanitizers import sanitize_payload
from ethio_home.utils.uploads import UploadConfig
from ethio_home.utils.validators import validate_email, validate_password

users_bp = Blueprint('users', __name__)

USER_PHOTO = UploadConfig('img/users', field='photo', max_files=1, max_bytes=2 * 1024 * 1024)


class UserResource(crud.Resource):
    model = User
    name = 'User'
    writable_fields = ('name', 'email', 'phone', 'role', 'photo', 'password')
    required_fields = ('name', 'email', 'phone', 'password')
    hidden_fields = ('password_hash', 'password_reset_token', 'password_reset_expires')
    upload = USER_PHOTO
    upload_target = 'photo'

    def list_default_filter(self, query):
        return query.filter(User.active.is_(True))

    def _check(self, data):
        sanitize_payload(data, ('name', 'phone'))
        if 'email' in data:
            data['email'] = (data['email'] or '').strip().lower()
            if not validate_email(data['email']):
                raise AppError('Please provide a valid email', 400)
        if 'role' in data and data['role'] not in ROLES:
            raise AppError(f"Role must be one of: {', '.join(ROLES)}", 400)
        return data

    def before_create(self, data, actor, **route_kwargs):
        if not validate_password(data.get('password')):
            raise AppError('Password must be at least 8 characters long', 400)
        return self._check(data)

    def before_update(self, document, data, actor):
        if 'password' in data:
            raise AppError('This route is not for password updates. Please use /update-my-password.', 400)
        return self._check(data)

    def build(self, data):
        password = data.pop('password')
        user = User(**data)
        user.set_password(password)
        return user

    def after_read(self, document, data):
        data['images_url'] = USER_PHOTO.url_for(document.photo) if document.photo else None
        return data


user_resource = UserResource()


class SelfResource(UserResource):
    """The signed-in user editing their own profile"""
    writable_fields = ('name', 'email', 'photo')


self_resource = SelfResource()

PASSWORD_KEYS = ('password', 'password_confirm', 'password_current')


@users_bp.route('/me', methods=['GET'])
@protect
def get_me():
    return crud.get_one(user_resource, current_user().id, current_user())


@users_bp.route('/update-me', methods=['PATCH'])
@protect
def update_me():
    data = crud.request_data()
    if any(key in data for key in PASSWORD_KEYS):
        raise AppError('This route is not for password updates. Please use /update-my-password.', 400)
    return crud.update_one(self_resource, current_user().id, current_user(), data)


@users_bp.route('/delete-me', methods=['DELETE'])
@protect
def delete_me():
    user = current_user()
    user.active = False
    db.session.commit()
    return '', 204


@users_bp.route('/', methods=['GET'], strict_slashes=False)
@protect
@restrict_to('admin', 'employee')
def get_users():
    return crud.get_all(user_resource)


@users_bp.route('/', methods=['POST'], strict_slashes=False)
@protect
@restrict_to('admin')
def create_user():
    return crud.create_one(user_resource, current_user())


@users_bp.route('/<int:user_id>', methods=['GET'])
@protect
@restrict_to('admin', 'employee')
def get_user(user_id):
    return crud.get_one(user_resource, user_id, current_user())


@users_bp.route('/<int:user_id>', methods=['PATCH'])
@protect
@restrict_to('admin', 'employee')
def update_user(user_id):
    return crud.update_one(user_resource, user_id, current_user())


@users_bp.route('/<int:user_id>', methods=['DELETE'])
@protect
@restrict_to('admin')
def delete_user(user_id):
    return crud.delete_one(user_resource, user_id, current_user())
