import hashlib
import secrets
from datetime import datetime, timedelta, timezone

import bcrypt
from flask import current_app

from ethio_home import db

ROLES = ('admin', 'buyer', 'seller', 'agent', 'employee')
STAFF_ROLES = ('admin', 'employee')
LISTING_ROLES = ('seller', 'agent')


def hash_token(token):
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    phone = db.Column(db.String(30), nullable=False)
    photo = db.Column(db.String(255), default='default.jpg')
    role = db.Column(db.String(20), nullable=False, default='buyer')  # admin, buyer, seller, agent, employee
    password_hash = db.Column(db.String(255), nullable=False)

    password_changed_at = db.Column(db.DateTime, nullable=True)
    password_reset_token = db.Column(db.String(64), nullable=True, index=True)
    password_reset_expires = db.Column(db.DateTime, nullable=True)

    is_verified = db.Column(db.Boolean, default=False)
    active = db.Column(db.Boolean, default=True, index=True)  # soft delete

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # Relationships
    properties = db.relationship('Property', backref='owner', lazy='dynamic',
                                 foreign_keys='Property.owner_id')

    def set_password(self, password):
        """Hash and set user password"""
        rounds = current_app.config.get('BCRYPT_ROUNDS', 12)
        replacing = self.password_hash is not None
        self.password_hash = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds)).decode('utf-8')
        if replacing:
            self.password_changed_at = datetime.utcnow()

    def check_password(self, password):
        """Check if provided password matches hash"""
        if not self.password_hash or not password:
            return False
        return bcrypt.checkpw(password.encode('utf-8'), self.password_hash.encode('utf-8'))

    def changed_password_after(self, jwt_timestamp):
        """True when the password changed after a token issued at `jwt_timestamp`.

        `iat` has whole-second resolution, so the change time is floored too:
        a token issued earlier in the same second as the change still passes,
        one from any earlier second is rejected.
        """
        if self.password_changed_at:
            changed = int(self.password_changed_at.replace(tzinfo=timezone.utc).timestamp())
            return jwt_timestamp < changed
        return False

    def create_password_reset_token(self):
        """Store a hashed reset token valid for one hour and return the raw token"""
        reset_token = secrets.token_hex(32)
        self.password_reset_token = hash_token(reset_token)
        self.password_reset_expires = datetime.utcnow() + timedelta(hours=1)
        return reset_token

    def clear_password_reset(self):
        self.password_reset_token = None
        self.password_reset_expires = None

    def is_staff(self):
        return self.role in STAFF_ROLES

    def is_lister(self):
        return self.role in LISTING_ROLES

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'photo': self.photo,
            'role': self.role,
            'is_verified': self.is_verified,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<User {self.email}>'
