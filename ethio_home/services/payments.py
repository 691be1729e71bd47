"""Payment state transitions shared by pull verification and gateway webhooks.

Every path that learns the outcome of a Chapa transaction ends up in
``confirm_payment``. A payment that reached ``success`` stays there; only a
``refunding`` notification may follow it.
"""
import json
import logging
import time
from decimal import Decimal, InvalidOperation

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ethio_home import db
from ethio_home.errors import AppError
from ethio_home.models.payment import Payment
from ethio_home.models.property import Property
from ethio_home.models.selling import Selling
from ethio_home.models.subscription_plan import SubscriptionPlan
from ethio_home.services.chapa import ChapaService

logger = logging.getLogger(__name__)

OUTCOMES = ('success', 'failed', 'pending', 'cancelled', 'refunding')


def _timestamp_ms():
    return int(time.time() * 1000)


def _decimal(value):
    if value is None or value == '':
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def format_price(price):
    price = Decimal(str(price)).normalize()
    return format(price, 'f')


def sale_tx_ref(property, user):
    return f"{property.id}-{user.id}-{format_price(property.price)}-{_timestamp_ms()}"


def subscription_tx_ref(user):
    return f"{user.id}-{_timestamp_ms()}"


def split_name(name):
    parts = (name or '').split(' ', 1)
    return parts[0], parts[1] if len(parts) > 1 else ''


def confirm_payment(tx_ref, outcome, details=None, purpose=None):
    """Apply a gateway outcome to the payment identified by ``tx_ref``.

    Returns the resulting ``Selling`` or ``SubscriptionPlan`` when there is
    one, otherwise ``None``. Raises 404 for an unknown reference (or one of
    another ``purpose``) and 409 when the property of a sale was sold to
    someone else first.
    """
    details = details or {}
    query = Payment.query.filter_by(tx_ref=tx_ref)
    if purpose:
        query = query.filter_by(purpose=purpose)
    payment = query.first()
    if not payment:
        raise AppError('No payment found with that reference', 404)

    if outcome == 'success':
        if payment.status == 'refunding':
            logger.info('Ignoring success notification for refunded payment %s', tx_ref)
            return _record_for(payment)
        if payment.purpose == 'property_sale':
            return _confirm_sale(payment, details)
        return _confirm_subscription(payment, details)

    if outcome == 'refunding':
        return _refund(payment)

    if outcome in ('failed', 'pending', 'cancelled'):
        if payment.is_final():
            logger.info('Ignoring %s notification for completed payment %s', outcome, tx_ref)
            return _record_for(payment)
        if outcome == 'failed':
            payment.fail(details.get('message') or 'Payment failed at gateway')
        else:
            payment.mark(outcome)
        db.session.commit()
        logger.info('Payment %s is now %s', tx_ref, outcome)
        return None

    logger.warning('Unknown payment status %r for %s', outcome, tx_ref)
    return None


def _record_for(payment):
    if payment.purpose == 'property_sale':
        return Selling.query.filter_by(tx_ref=payment.tx_ref).first()
    return payment.plan


def _confirm_sale(payment, details):
    existing = Selling.query.filter_by(tx_ref=payment.tx_ref).first()
    if existing:
        return existing

    # Compare-and-swap on the sold flag; the Selling insert rides the same transaction
    result = db.session.execute(
        update(Property)
        .where(Property.id == payment.property_id, Property.sold.is_(False))
        .values(sold=True)
    )
    if result.rowcount == 0:
        db.session.rollback()
        payment.fail('Property already sold')
        db.session.commit()
        logger.warning('Payment %s succeeded but property %s is already sold', payment.tx_ref, payment.property_id)
        raise AppError('This property is already sold.', 409)

    method = details.get('method') or details.get('payment_method')
    charge = _decimal(details.get('charge'))

    selling = Selling(
        property_id=payment.property_id,
        buyer_id=payment.user_id,
        amount=_decimal(details.get('amount')) or payment.amount,
        currency=details.get('currency') or payment.currency,
        chapa_charge=charge,
        tx_ref=payment.tx_ref,
        payment_method=method,
        paid=True
    )
    payment.complete(payment_method=method, charge=charge)
    db.session.add(selling)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        existing = Selling.query.filter_by(tx_ref=payment.tx_ref).first()
        if existing:
            return existing
        raise

    logger.info('Property %s sold to user %s (%s)', selling.property_id, selling.buyer_id, selling.tx_ref)
    return selling


def _attach_to_plan(payment, details):
    terms = payment.extra_data or {}
    plan = SubscriptionPlan.query.filter_by(seller_id=payment.user_id, active=True).first()
    if not plan:
        plan = SubscriptionPlan(
            seller_id=payment.user_id,
            interval=terms.get('interval', 'monthly'),
            amount=_decimal(terms.get('amount')) or payment.amount,
            currency=terms.get('currency') or payment.currency,
            frequency=terms.get('frequency', 1),
            active=True
        )
        db.session.add(plan)
        db.session.flush()

    payment.plan_id = plan.id
    payment.complete(
        payment_method=details.get('method') or details.get('payment_method'),
        charge=_decimal(details.get('charge'))
    )
    return plan


def _confirm_subscription(payment, details):
    if payment.status == 'success' and payment.plan_id:
        return payment.plan

    try:
        plan = _attach_to_plan(payment, details)
        db.session.commit()
    except IntegrityError:
        # Another confirmation created the active plan first
        db.session.rollback()
        payment = Payment.query.filter_by(tx_ref=payment.tx_ref).first()
        if payment.status == 'success' and payment.plan_id:
            return payment.plan
        plan = _attach_to_plan(payment, details)
        db.session.commit()

    logger.info('Subscription payment %s attached to plan %s', payment.tx_ref, plan.id)
    return plan


def _refund(payment):
    if payment.status == 'refunding':
        return _record_for(payment)

    payment.mark('refunding')
    record = None

    if payment.purpose == 'property_sale':
        record = Selling.query.filter_by(tx_ref=payment.tx_ref).first()
        if record:
            record.paid = False
    elif payment.plan:
        record = payment.plan
        if not record.successful_payments():
            record.active = False

    db.session.commit()
    logger.info('Payment %s marked as refunding', payment.tx_ref)
    return record


def process_webhook(raw_body, signature, purpose=None):
    """Validate a Chapa webhook and route its status through ``confirm_payment``"""
    if not ChapaService().verify_signature(raw_body, signature):
        raise AppError('Invalid webhook signature', 401)

    try:
        event = json.loads(raw_body)
    except (TypeError, ValueError):
        raise AppError('Invalid webhook payload', 400)
    if not isinstance(event, dict):
        raise AppError('Invalid webhook payload', 400)

    tx_ref = event.get('tx_ref')
    status = event.get('status')
    if not tx_ref:
        raise AppError('Invalid webhook payload', 400)

    if status not in OUTCOMES:
        logger.warning('Unknown event status %r for %s', status, tx_ref)
        return None

    logger.info('Webhook %s for %s', status, tx_ref)
    return confirm_payment(tx_ref, status, event, purpose=purpose)
