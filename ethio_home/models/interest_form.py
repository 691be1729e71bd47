from datetime import datetime

from sqlalchemy.orm import validates

from ethio_home import db
from ethio_home.errors import AppError

INTEREST_STATUSES = ('pending', 'contacted', 'schedule', 'visited', 'rejected')


class InterestForm(db.Model):
    __tablename__ = 'interest_forms'
    __table_args__ = (
        db.UniqueConstraint('buyer_id', 'property_id', name='uq_interest_buyer_property'),
    )

    id = db.Column(db.Integer, primary_key=True)

    buyer_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    property_id = db.Column(db.Integer, db.ForeignKey('properties.id'), nullable=False, index=True)

    # Contact snapshot taken from the buyer at submission
    contact_name = db.Column(db.String(255), nullable=False)
    contact_phone = db.Column(db.String(30), nullable=False)
    contact_email = db.Column(db.String(255), nullable=False)

    message = db.Column(db.Text, nullable=False)

    # Status: pending, contacted, schedule, visited, rejected
    status = db.Column(db.String(20), default='pending', index=True)
    visit_scheduled = db.Column(db.Boolean, default=False)
    visit_date = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    buyer = db.relationship('User', foreign_keys=[buyer_id])
    listing = db.relationship('Property', backref=db.backref('interests', lazy='dynamic',
                                                             cascade='all, delete-orphan'))

    @validates('message')
    def validate_message(self, key, value):
        if not value or not str(value).strip():
            raise AppError('Message is required', 400)
        if len(value) > 1000:
            raise AppError('Message cannot be more than 1000 characters', 400)
        return value

    @validates('status')
    def validate_status(self, key, value):
        if value not in INTEREST_STATUSES:
            raise AppError(f"Status must be one of: {', '.join(INTEREST_STATUSES)}", 400)
        return value

    def schedule_visit(self, visit_date):
        """Schedule a visit; the date must still be in the future"""
        if visit_date is None or visit_date <= datetime.utcnow():
            raise AppError('Please correct the date and time.', 400)
        self.status = 'schedule'
        self.visit_scheduled = True
        self.visit_date = visit_date

    @property
    def visit_overdue(self):
        return bool(self.status == 'schedule' and self.visit_date and self.visit_date < datetime.utcnow())

    def to_dict(self, include_relations=False):
        data = {
            'id': self.id,
            'buyer_id': self.buyer_id,
            'property_id': self.property_id,
            'contact_info': {
                'name': self.contact_name,
                'phone': self.contact_phone,
                'email': self.contact_email,
            },
            'message': self.message,
            'status': self.status,
            'visit_scheduled': self.visit_scheduled,
            'visit_date': self.visit_date.isoformat() if self.visit_date else None,
            'visit_overdue': self.visit_overdue,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

        if include_relations:
            if self.buyer:
                data['buyer'] = {
                    'id': self.buyer.id,
                    'name': self.buyer.name,
                    'email': self.buyer.email,
                    'phone': self.buyer.phone,
                }
            if self.listing:
                data['property'] = {
                    'id': self.listing.id,
                    'title': self.listing.title,
                    'location': self.listing.location,
                    'price': float(self.listing.price) if self.listing.price is not None else None,
                }

        return data

    def __repr__(self):
        return f'<InterestForm {self.id}>'
