import logging

from flask import Blueprint, jsonify, request
from sqlalchemy import func, update

from ethio_home import db
from ethio_home.errors import AppError, PaymentGatewayError
from ethio_home.models.payment import Payment
from ethio_home.models.property import Property
from ethio_home.models.selling import Selling
from ethio_home.models.user import User
from ethio_home.services import crud
from ethio_home.services.chapa import ChapaService
from ethio_home.services.payments import (
    confirm_payment, format_price, process_webhook, sale_tx_ref, split_name
)
from ethio_home.utils.decorators import protect, restrict_to, current_user

logger = logging.getLogger(__name__)

selling_bp = Blueprint('selling', __name__)


class SellingResource(crud.Resource):
    model = Selling
    name = 'Selling'
    writable_fields = ('property_id', 'buyer_id', 'amount', 'currency', 'chapa_charge',
                       'tx_ref', 'payment_method', 'paid')
    required_fields = ('buyer_id', 'amount')

    def scope_query(self, query, property_id=None):
        if property_id is not None:
            query = query.filter(Selling.property_id == property_id)
        return query

    def before_create(self, data, actor, property_id=None, **route_kwargs):
        data['property_id'] = property_id or data.get('property_id')
        if not data['property_id'] or not db.session.get(Property, data['property_id']):
            raise AppError('No Property found with that ID', 404)
        if not db.session.get(User, data['buyer_id']):
            raise AppError('User not found', 404)
        return data

    def before_update(self, document, data, actor):
        # Moving a sale to another listing would leave the sold flags wrong
        data.pop('property_id', None)
        return data

    def persist(self, document, actor):
        """Flip the sold flag and insert the sale in one transaction"""
        result = db.session.execute(
            update(Property)
            .where(Property.id == document.property_id, Property.sold.is_(False))
            .values(sold=True)
        )
        if result.rowcount == 0:
            db.session.rollback()
            raise AppError('This property is already sold.', 404)

        db.session.add(document)
        db.session.commit()


selling_resource = SellingResource()


@selling_bp.route('/initialize', methods=['POST'])
@protect
def initialize_payment(property_id=None):
    """Start a Chapa checkout for a listing"""
    data = request.get_json(silent=True) or {}
    property_id = property_id or data.get('property_id')

    property = db.session.get(Property, property_id) if property_id else None
    if not property:
        raise AppError('This property is not found', 404)
    if property.sold:
        raise AppError('This property is already sold', 403)

    user = current_user()
    tx_ref = sale_tx_ref(property, user)
    first_name, last_name = split_name(user.name)

    payment = Payment(
        tx_ref=tx_ref,
        purpose='property_sale',
        user_id=user.id,
        property_id=property.id,
        amount=property.price,
        currency=property.currency or 'ETB',
        status='pending'
    )
    db.session.add(payment)
    db.session.commit()

    base_url = request.host_url.rstrip('/')
    payload = {
        'amount': format_price(property.price),
        'currency': payment.currency,
        'email': user.email,
        'first_name': first_name,
        'last_name': last_name,
        'phone_number': user.phone,
        'tx_ref': tx_ref,
        'callback_url': f'{base_url}/api/v1/properties',
        'return_url': f'{base_url}/api/v1/selling/verify-payment/{tx_ref}',
        'meta': {'property_id': property.id, 'user_id': user.id}
    }

    try:
        body = ChapaService().initialize(payload)
    except PaymentGatewayError as e:
        payment.fail(e.message)
        db.session.commit()
        raise

    logger.info('Sale payment %s initialized by user %s', tx_ref, user.id)
    return jsonify({**body, 'tx_ref': tx_ref}), 200


@selling_bp.route('/verify-payment/<tx_ref>', methods=['GET'])
@protect
def verify_payment(tx_ref, property_id=None):
    user = current_user()
    payment = Payment.query.filter_by(tx_ref=tx_ref, purpose='property_sale').first()
    if not payment:
        raise AppError('No payment found with that reference', 404)
    if payment.user_id != user.id and not user.is_staff():
        raise AppError('You are not allowed to perform this action', 403)

    existing = Selling.query.filter_by(tx_ref=tx_ref).first()
    if existing:
        return jsonify({
            'status': 'success',
            'message': 'Payment already processed',
            'data': {'data': existing.to_dict()}
        }), 200

    try:
        body = ChapaService().verify(tx_ref)
    except PaymentGatewayError as e:
        raise PaymentGatewayError('Error verifying payment', e.payload)

    details = body.get('data') or {}
    outcome = details.get('status')
    selling = confirm_payment(tx_ref, outcome, details, purpose='property_sale')

    if outcome != 'success':
        raise AppError(f'Payment was not successful (status: {outcome})', 400)
    if selling is None:
        raise AppError(f'Payment was not successful (status: {payment.status})', 400)

    return jsonify({
        'status': 'success',
        'message': 'Payment verified',
        'data': {'data': selling.to_dict(), 'gateway': details}
    }), 200


@selling_bp.route('/webhook', methods=['POST'])
def payment_webhook(property_id=None):
    signature = request.headers.get('Chapa-Signature') or request.headers.get('x-chapa-signature')
    process_webhook(request.get_data(), signature, purpose='property_sale')
    return jsonify({'status': 'success'}), 200


@selling_bp.route('/selling-stats', methods=['GET'])
@protect
@restrict_to('admin', 'employee')
def get_selling_stats(property_id=None):
    """Sales grouped by paid flag, then payment method and currency"""
    rows = db.session.query(
        Selling.paid,
        Selling.payment_method,
        Selling.currency,
        func.count(Selling.id),
        func.sum(Selling.amount),
        func.avg(Selling.amount),
        func.sum(Selling.chapa_charge)
    ).group_by(Selling.paid, Selling.payment_method, Selling.currency).all()

    groups = {}
    for paid, method, currency, count, total, average, charge in rows:
        group = groups.setdefault(bool(paid), {
            'paid_status': bool(paid),
            'total_sales': 0,
            'total_amount': 0.0,
            'total_chapa_charge': 0.0,
            'payment_methods': []
        })
        group['payment_methods'].append({
            'payment_method': method,
            'currency': currency,
            'total_sales': count,
            'total_amount': float(total or 0),
            'avg_amount': round(float(average or 0), 2),
            'total_chapa_charge': float(charge or 0)
        })
        group['total_sales'] += count
        group['total_amount'] += float(total or 0)
        group['total_chapa_charge'] += float(charge or 0)

    stats = []
    for group in sorted(groups.values(), key=lambda g: g['paid_status'], reverse=True):
        methods = group['payment_methods']
        group['avg_amount'] = round(sum(m['avg_amount'] for m in methods) / len(methods), 2)
        group['total_amount'] = round(group['total_amount'], 2)
        group['total_chapa_charge'] = round(group['total_chapa_charge'], 2)
        stats.append(group)

    return jsonify({'status': 'success', 'data': {'stats': stats}}), 200


@selling_bp.route('/', methods=['GET'], strict_slashes=False)
@protect
@restrict_to('admin', 'employee')
def get_sellings(property_id=None):
    return crud.get_all(selling_resource, property_id=property_id)


@selling_bp.route('/', methods=['POST'], strict_slashes=False)
@protect
@restrict_to('admin', 'employee')
def create_selling(property_id=None):
    return crud.create_one(selling_resource, current_user(), property_id=property_id)


@selling_bp.route('/<int:selling_id>', methods=['GET'])
@protect
@restrict_to('admin', 'employee')
def get_selling(selling_id, property_id=None):
    return crud.get_one(selling_resource, selling_id, current_user(), property_id=property_id)


@selling_bp.route('/<int:selling_id>', methods=['PATCH'])
@protect
@restrict_to('admin', 'employee')
def update_selling(selling_id, property_id=None):
    return crud.update_one(selling_resource, selling_id, current_user(), property_id=property_id)


@selling_bp.route('/<int:selling_id>', methods=['DELETE'])
@protect
@restrict_to('admin')
def delete_selling(selling_id, property_id=None):
    return crud.delete_one(selling_resource, selling_id, current_user(), property_id=property_id)
