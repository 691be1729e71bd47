import logging

from flask import Blueprint, jsonify, request

from ethio_home import db
from ethio_home.errors import AppError, PaymentGatewayError
from ethio_home.models.payment import Payment
from ethio_home.models.subscription_plan import SubscriptionPlan, INTERVALS
from ethio_home.services import crud
from ethio_home.services.chapa import ChapaService
from ethio_home.services.payments import confirm_payment, process_webhook, split_name, subscription_tx_ref
from ethio_home.utils.decorators import protect, restrict_to, current_user

logger = logging.getLogger(__name__)

subscription_bp = Blueprint('subscription', __name__)


def _validated_terms(data):
    """interval/amount/frequency from a request body, validated"""
    interval = data.get('interval')
    amount = data.get('amount')
    if not interval or amount in (None, ''):
        raise AppError('Please provide interval and amount', 400)
    if interval not in INTERVALS:
        raise AppError('Invalid interval. Use weekly, monthly, quarterly, or annually', 400)

    try:
        amount = float(amount)
        frequency = int(data.get('frequency') or 1)
    except (TypeError, ValueError):
        raise AppError('Amount and frequency must be numbers', 400)
    if amount < 0:
        raise AppError('Amount must be positive', 400)
    if frequency < 1:
        raise AppError('Frequency must be at least 1', 400)

    return {'interval': interval, 'amount': amount, 'frequency': frequency}


def _start_checkout(user, terms, failure_message, plan=None):
    """Record a pending subscription payment and open a Chapa checkout for it"""
    tx_ref = subscription_tx_ref(user)
    first_name, last_name = split_name(user.name)

    payment = Payment(
        tx_ref=tx_ref,
        purpose='subscription',
        user_id=user.id,
        amount=terms['amount'],
        currency=terms['currency'],
        status='pending',
        extra_data=terms
    )
    db.session.add(payment)
    db.session.commit()

    base_url = request.host_url.rstrip('/')
    meta = {'user_id': user.id, 'interval': terms['interval'], 'frequency': terms['frequency']}
    if plan is not None:
        meta['plan_id'] = plan.id

    payload = {
        'amount': str(terms['amount']),
        'currency': terms['currency'],
        'email': user.email,
        'first_name': first_name,
        'last_name': last_name,
        'phone_number': user.phone,
        'tx_ref': tx_ref,
        'callback_url': f'{base_url}/api/v1/properties',
        'return_url': f'{base_url}/api/v1/subscription/verify-payment/{tx_ref}',
        'meta': meta
    }

    try:
        body = ChapaService().initialize(payload)
    except PaymentGatewayError as e:
        payment.fail(e.message)
        db.session.commit()
        raise PaymentGatewayError(failure_message, e.payload)

    logger.info('Subscription payment %s initialized by user %s', tx_ref, user.id)
    return jsonify({'status': 'success', 'tx_ref': tx_ref, 'data': body}), 201


@subscription_bp.route('/', methods=['POST'], strict_slashes=False)
@protect
@restrict_to('seller', 'agent')
def create_subscription_plan():
    """Start the first payment of a subscription plan"""
    user = current_user()
    if SubscriptionPlan.query.filter_by(seller_id=user.id, active=True).first():
        raise AppError('This seller or agent already has an active subscription plan', 400)

    data = request.get_json(silent=True) or {}
    terms = _validated_terms(data)
    terms['currency'] = data.get('currency') or 'ETB'
    if terms['currency'] not in ('ETB', 'USD'):
        raise AppError('Currency must be ETB or USD', 400)

    return _start_checkout(user, terms, 'Failed to create subscription plan')


@subscription_bp.route('/renew', methods=['POST'])
@protect
@restrict_to('seller', 'agent')
def renew_subscription_plan():
    """Pay the next period of the active plan on its current terms"""
    user = current_user()
    plan = SubscriptionPlan.query.filter_by(seller_id=user.id, active=True).first()
    if not plan:
        raise AppError('No active subscription found to renew', 404)

    terms = {
        'interval': plan.interval,
        'amount': float(plan.amount),
        'frequency': plan.frequency or 1,
        'currency': plan.currency,
    }
    return _start_checkout(user, terms, 'Failed to renew subscription plan', plan=plan)


@subscription_bp.route('/verify-payment/<tx_ref>', methods=['GET'])
@protect
@restrict_to('seller', 'agent')
def verify_payment(tx_ref):
    user = current_user()
    payment = Payment.query.filter_by(tx_ref=tx_ref, purpose='subscription').first()
    if not payment:
        raise AppError('No payment found with that reference', 404)
    if payment.user_id != user.id:
        raise AppError('You are not allowed to perform this action', 403)

    if payment.status == 'success' and payment.plan:
        return crud.document_response(payment.plan.to_dict())
    if payment.status == 'refunding':
        raise AppError('Payment verification failed', 400)

    try:
        body = ChapaService().verify(tx_ref)
    except PaymentGatewayError as e:
        raise PaymentGatewayError('Error verifying payment', e.payload)

    details = body.get('data') or {}
    outcome = details.get('status')
    plan = confirm_payment(tx_ref, outcome, details, purpose='subscription')

    if outcome != 'success' or plan is None:
        raise AppError('Payment verification failed', 400)

    return crud.document_response(plan.to_dict())


@subscription_bp.route('/webhook', methods=['POST'])
def subscription_webhook():
    signature = request.headers.get('Chapa-Signature') or request.headers.get('x-chapa-signature')
    process_webhook(request.get_data(), signature, purpose='subscription')
    return jsonify({'status': 'success'}), 200


@subscription_bp.route('/', methods=['GET'], strict_slashes=False)
@protect
@restrict_to('seller', 'agent', 'admin', 'employee')
def get_subscription_plans():
    user = current_user()
    query = SubscriptionPlan.query
    if not user.is_staff():
        query = query.filter_by(seller_id=user.id, active=True)

    query = crud.apply_sort(query, SubscriptionPlan, request.args.get('sort'))
    plans, pagination = crud.paginate(query, request.args)
    return crud.list_response([plan.to_dict() for plan in plans], pagination)


def _get_plan(plan_id):
    plan = db.session.get(SubscriptionPlan, plan_id)
    if not plan:
        raise AppError('No subscription plan found with that ID', 404)
    return plan


@subscription_bp.route('/<int:plan_id>', methods=['PATCH'])
@protect
@restrict_to('admin', 'employee')
def update_subscription_plan(plan_id):
    plan = _get_plan(plan_id)
    terms = _validated_terms(request.get_json(silent=True) or {})

    plan.interval = terms['interval']
    plan.amount = terms['amount']
    plan.frequency = terms['frequency']
    db.session.commit()

    return crud.document_response(plan.to_dict())


@subscription_bp.route('/<int:plan_id>/status', methods=['PATCH'])
@protect
@restrict_to('admin', 'employee')
def update_subscription_status(plan_id):
    plan = _get_plan(plan_id)
    data = request.get_json(silent=True) or {}

    active = data.get('active')
    if not isinstance(active, bool):
        raise AppError('Active status must be a boolean', 400)

    if active and not plan.active:
        other = SubscriptionPlan.query.filter(
            SubscriptionPlan.seller_id == plan.seller_id,
            SubscriptionPlan.active.is_(True),
            SubscriptionPlan.id != plan.id
        ).first()
        if other:
            raise AppError('This seller already has an active subscription plan', 400)

    plan.active = active
    db.session.commit()

    return crud.document_response(plan.to_dict())


@subscription_bp.route('/<int:plan_id>', methods=['DELETE'])
@protect
@restrict_to('admin')
def delete_subscription_plan(plan_id):
    plan = _get_plan(plan_id)

    # Payments keep their history without the plan
    Payment.query.filter_by(plan_id=plan.id).update({'plan_id': None})
    db.session.delete(plan)
    db.session.commit()

    return '', 204
