from datetime import datetime

from sqlalchemy.orm import validates

from ethio_home import db
from ethio_home.errors import AppError


class Review(db.Model):
    __tablename__ = 'reviews'

    id = db.Column(db.Integer, primary_key=True)
    review = db.Column(db.Text, nullable=False)
    rating = db.Column(db.Integer, nullable=True)

    property_id = db.Column(db.Integer, db.ForeignKey('properties.id'), nullable=False, index=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    buyer = db.relationship('User', foreign_keys=[buyer_id])
    property = db.relationship('Property', backref=db.backref('reviews', lazy='dynamic',
                                                              cascade='all, delete-orphan'))

    @validates('review')
    def validate_review(self, key, value):
        if not value or len(value) < 10:
            raise AppError('A review must have more than or equal to 10 characters', 400)
        if len(value) > 1000:
            raise AppError('A review must have less than or equal to 1000 characters', 400)
        return value

    @validates('rating')
    def validate_rating(self, key, value):
        if value is not None and not 1 <= int(value) <= 5:
            raise AppError('Rating must be between 1 and 5', 400)
        return value

    def to_dict(self):
        data = {
            'id': self.id,
            'review': self.review,
            'rating': self.rating,
            'property_id': self.property_id,
            'buyer_id': self.buyer_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
        if self.buyer:
            data['buyer'] = {'id': self.buyer.id, 'name': self.buyer.name, 'photo': self.buyer.photo}
        return data

    def __repr__(self):
        return f'<Review {self.id}>'
