from datetime import datetime

from sqlalchemy.orm import validates

from ethio_home import db
from ethio_home.errors import AppError

PROPERTY_TYPES = ('house', 'apartment', 'villa', 'land', 'commercial')
LISTING_STATUSES = ('for-sale', 'for-rent')
CURRENCIES = ('ETB', 'USD')


class Property(db.Model):
    __tablename__ = 'properties'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False)

    # Pricing
    price = db.Column(db.Numeric(14, 2), nullable=False)
    currency = db.Column(db.String(3), default='ETB')
    price_discount = db.Column(db.Numeric(14, 2), nullable=True)

    # Type & Location
    location = db.Column(db.String(255), nullable=False, index=True)
    type = db.Column(db.String(20), nullable=False)  # house, apartment, villa, land, commercial
    status = db.Column(db.String(20), nullable=False)  # for-sale, for-rent

    # bedrooms, bathrooms, area, parking, furnished, yearBuilt
    features = db.Column(db.JSON, default=dict)

    # Stored filenames; URLs are composed on read
    images = db.Column(db.JSON, default=list)

    owner_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)

    # Verification (admin/employee only)
    is_verified = db.Column(db.Boolean, default=False)
    verification_date = db.Column(db.DateTime, nullable=True)
    verified_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    sold = db.Column(db.Boolean, default=False, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    @validates('type')
    def validate_type(self, key, value):
        if value not in PROPERTY_TYPES:
            raise AppError(f"Property type must be one of: {', '.join(PROPERTY_TYPES)}", 400)
        return value

    @validates('status')
    def validate_status(self, key, value):
        if value not in LISTING_STATUSES:
            raise AppError(f"Property status must be one of: {', '.join(LISTING_STATUSES)}", 400)
        return value

    @validates('currency')
    def validate_currency(self, key, value):
        if value is not None and value not in CURRENCIES:
            raise AppError('Currency must be ETB or USD', 400)
        return value

    @validates('price')
    def validate_price(self, key, value):
        if value is None or float(value) <= 0:
            raise AppError('Property price must be greater than 0', 400)
        return value

    @validates('price_discount')
    def validate_price_discount(self, key, value):
        if value is not None and self.price is not None and float(value) >= float(self.price) * 0.1:
            raise AppError('Discount price should be below 10% of the regular price', 400)
        return value

    def verify(self, user_id):
        """Mark the listing as verified by staff"""
        self.is_verified = True
        self.verification_date = datetime.utcnow()
        self.verified_by = user_id

    def to_dict(self, include_owner=False):
        data = {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'price': float(self.price) if self.price is not None else None,
            'currency': self.currency,
            'price_discount': float(self.price_discount) if self.price_discount is not None else None,
            'location': self.location,
            'type': self.type,
            'status': self.status,
            'features': self.features or {},
            'images': self.images or [],
            'owner_id': self.owner_id,
            'is_verified': self.is_verified,
            'verification_date': self.verification_date.isoformat() if self.verification_date else None,
            'verified_by': self.verified_by,
            'sold': self.sold,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

        if include_owner and self.owner:
            data['owner'] = {
                'id': self.owner.id,
                'name': self.owner.name,
                'email': self.owner.email,
                'phone': self.owner.phone,
            }

        return data

    def __repr__(self):
        return f'<Property {self.title}>'
