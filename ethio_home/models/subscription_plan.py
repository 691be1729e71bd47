from datetime import datetime

from sqlalchemy.orm import validates

from ethio_home import db
from ethio_home.errors import AppError

INTERVALS = ('weekly', 'monthly', 'quarterly', 'annually')


class SubscriptionPlan(db.Model):
    """A seller's (or agent's) recurring listing plan.

    One row per seller; each renewal is a successful ``Payment`` attached to
    the plan, so the payment history is kept as separate immutable rows.
    """
    __tablename__ = 'subscription_plans'
    __table_args__ = (
        db.Index('uq_active_plan_per_seller', 'seller_id', unique=True,
                 postgresql_where=db.text('active'), sqlite_where=db.text('active')),
    )

    id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)

    interval = db.Column(db.String(20), nullable=False)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default='ETB')
    frequency = db.Column(db.Integer, default=1)

    active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    seller = db.relationship('User', backref=db.backref('subscription_plans', lazy='dynamic'))
    payments = db.relationship('Payment', backref='plan', lazy='dynamic', order_by='Payment.completed_at')

    @validates('interval')
    def validate_interval(self, key, value):
        if value not in INTERVALS:
            raise AppError('Invalid interval. Use weekly, monthly, quarterly, or annually', 400)
        return value

    @validates('amount')
    def validate_amount(self, key, value):
        if value is None or float(value) < 0:
            raise AppError('Amount must be positive', 400)
        return value

    @validates('currency')
    def validate_currency(self, key, value):
        if value not in ('ETB', 'USD'):
            raise AppError('Currency must be ETB or USD', 400)
        return value

    def successful_payments(self):
        return [p for p in self.payments if p.status == 'success']

    def to_dict(self):
        paid = self.successful_payments()
        data = {
            'id': self.id,
            'seller_id': self.seller_id,
            'interval': self.interval,
            'amount': float(self.amount) if self.amount is not None else None,
            'currency': self.currency,
            'frequency': self.frequency,
            'tx_ref': [p.tx_ref for p in paid],
            'payment_date': [p.completed_at.isoformat() for p in paid if p.completed_at],
            'active': self.active,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

        if self.seller:
            data['seller'] = {
                'id': self.seller.id,
                'name': self.seller.name,
                'email': self.seller.email,
                'role': self.seller.role,
            }

        return data

    def __repr__(self):
        return f'<SubscriptionPlan {self.id} seller={self.seller_id}>'
