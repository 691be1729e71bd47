from datetime import datetime
from ethio_home import db

PAYMENT_PURPOSES = ('property_sale', 'subscription')


class Payment(db.Model):
    __tablename__ = 'payments'

    id = db.Column(db.Integer, primary_key=True)

    # Gateway transaction reference, unique per payment
    tx_ref = db.Column(db.String(150), nullable=False, unique=True, index=True)

    # Purpose: property_sale, subscription
    purpose = db.Column(db.String(30), nullable=False)

    # User who made the payment
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)

    # Related property (sales) or plan (subscriptions, set on confirmation)
    property_id = db.Column(db.Integer, db.ForeignKey('properties.id'), nullable=True)
    plan_id = db.Column(db.Integer, db.ForeignKey('subscription_plans.id'), nullable=True, index=True)

    # Payment Details
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    currency = db.Column(db.String(3), default='ETB')
    payment_method = db.Column(db.String(50), nullable=True)
    charge = db.Column(db.Numeric(14, 2), nullable=True)

    # Status: initiated, pending, success, failed, cancelled, refunding
    status = db.Column(db.String(20), default='initiated', index=True)

    # Subscription terms, last gateway payload
    extra_data = db.Column(db.JSON, default=dict)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)
    failed_at = db.Column(db.DateTime, nullable=True)
    failure_reason = db.Column(db.Text, nullable=True)

    user = db.relationship('User', backref=db.backref('payments', lazy='dynamic'))

    def is_final(self):
        return self.status in ('success', 'refunding')

    def complete(self, payment_method=None, charge=None):
        """Mark payment as completed"""
        self.status = 'success'
        self.payment_method = payment_method or self.payment_method
        if charge is not None:
            self.charge = charge
        self.completed_at = datetime.utcnow()
        self.failure_reason = None

    def fail(self, reason):
        """Mark payment as failed"""
        self.status = 'failed'
        self.failure_reason = reason
        self.failed_at = datetime.utcnow()

    def mark(self, status):
        self.status = status

    def to_dict(self):
        data = {
            'id': self.id,
            'tx_ref': self.tx_ref,
            'purpose': self.purpose,
            'user_id': self.user_id,
            'amount': float(self.amount) if self.amount is not None else None,
            'currency': self.currency,
            'payment_method': self.payment_method,
            'charge': float(self.charge) if self.charge is not None else None,
            'status': self.status,
            'failure_reason': self.failure_reason,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
        }

        if self.property_id:
            data['property_id'] = self.property_id
        if self.plan_id:
            data['plan_id'] = self.plan_id

        return data

    def __repr__(self):
        return f'<Payment {self.tx_ref}>'
