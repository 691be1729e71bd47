from datetime import datetime
from ethio_home import db


class Selling(db.Model):
    """A completed property sale"""
    __tablename__ = 'sellings'

    id = db.Column(db.Integer, primary_key=True)

    property_id = db.Column(db.Integer, db.ForeignKey('properties.id'), nullable=False, index=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)

    amount = db.Column(db.Numeric(14, 2), nullable=False)
    currency = db.Column(db.String(3), default='ETB')
    chapa_charge = db.Column(db.Numeric(14, 2), nullable=True)

    # Null for sales entered by staff
    tx_ref = db.Column(db.String(150), nullable=True, unique=True, index=True)
    payment_method = db.Column(db.String(50), nullable=True)

    paid = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    property = db.relationship('Property', backref=db.backref('sellings', lazy='dynamic'))
    buyer = db.relationship('User', foreign_keys=[buyer_id])

    def to_dict(self):
        data = {
            'id': self.id,
            'property_id': self.property_id,
            'buyer_id': self.buyer_id,
            'amount': float(self.amount) if self.amount is not None else None,
            'currency': self.currency,
            'chapa_charge': float(self.chapa_charge) if self.chapa_charge is not None else None,
            'tx_ref': self.tx_ref,
            'payment_method': self.payment_method,
            'paid': self.paid,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

        if self.property:
            data['property'] = {'id': self.property.id, 'title': self.property.title}
        if self.buyer:
            data['buyer'] = {'id': self.buyer.id, 'name': self.buyer.name, 'email': self.buyer.email}

        return data

    def __repr__(self):
        return f'<Selling {self.id}>'
