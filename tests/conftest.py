import hashlib
import hmac
import json

import pytest
from flask_jwt_extended import create_access_token

from ethio_home import create_app, db as _db
from ethio_home.api import auth as auth_api
from ethio_home.models import User, Property, SubscriptionPlan
from ethio_home.services.chapa import ChapaService

WEBHOOK_SECRET = 'webhook-secret'


@pytest.fixture
def app(tmp_path):
    app = create_app('testing')
    app.config['UPLOAD_FOLDER'] = str(tmp_path / 'uploads')

    with app.app_context():
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def outbox(monkeypatch):
    """Capture outgoing emails instead of calling Resend"""
    sent = []

    def recorder(kind):
        def send(to_email, *args):
            sent.append({'kind': kind, 'to': to_email, 'args': args})
            return True
        return send

    monkeypatch.setattr(auth_api, 'send_verification_email', recorder('verification'))
    monkeypatch.setattr(auth_api, 'send_password_reset_email', recorder('reset'))
    monkeypatch.setattr(auth_api, 'send_password_changed_email', recorder('changed'))
    return sent


class FakeGateway:
    """Stands in for the Chapa HTTP API"""

    def __init__(self):
        self.initialized = []
        self.verify_calls = []
        self.outcome = 'success'
        self.method = 'telebirr'
        self.charge = '35.00'

    def initialize(self, payload):
        self.initialized.append(payload)
        return {
            'message': 'Hosted Link',
            'status': 'success',
            'data': {'checkout_url': f"https://checkout.chapa.co/checkout/payment/{payload['tx_ref']}"}
        }

    def verify(self, tx_ref):
        self.verify_calls.append(tx_ref)
        payload = next(p for p in self.initialized if p['tx_ref'] == tx_ref)
        return {
            'message': 'Payment details',
            'status': 'success',
            'data': {
                'status': self.outcome,
                'tx_ref': tx_ref,
                'amount': payload['amount'],
                'currency': payload['currency'],
                'charge': self.charge,
                'method': self.method,
            }
        }


@pytest.fixture
def chapa(monkeypatch):
    gateway = FakeGateway()
    monkeypatch.setattr(ChapaService, 'initialize', lambda self, payload: gateway.initialize(payload))
    monkeypatch.setattr(ChapaService, 'verify', lambda self, tx_ref: gateway.verify(tx_ref))
    return gateway


def make_user(role='buyer', email=None, name='Abebe Kebede', password='password123',
              phone='0911223344', verified=True, active=True):
    user = User(
        name=name,
        email=email or f'{role}-{User.query.count() + 1}@ethiohome.com',
        phone=phone,
        role=role,
        is_verified=verified,
        active=active
    )
    user.set_password(password)
    _db.session.add(user)
    _db.session.commit()
    return user


def make_property(owner, **overrides):
    data = {
        'title': 'Family house in Bole',
        'description': 'Three bedroom house close to the airport',
        'price': 2500000,
        'currency': 'ETB',
        'location': 'Bole',
        'type': 'house',
        'status': 'for-sale',
        'features': {'bedrooms': 3, 'bathrooms': 2},
        'owner_id': owner.id,
    }
    data.update(overrides)
    property = Property(**data)
    _db.session.add(property)
    _db.session.commit()
    return property


def give_plan(user, active=True):
    plan = SubscriptionPlan(seller_id=user.id, interval='monthly', amount=500, currency='ETB', active=active)
    _db.session.add(plan)
    _db.session.commit()
    return plan


def auth_header(user, **claims):
    token = create_access_token(identity=str(user.id), additional_claims=claims or None)
    return {'Authorization': f'Bearer {token}'}


def sign(body):
    raw = json.dumps(body).encode('utf-8')
    signature = hmac.new(WEBHOOK_SECRET.encode('utf-8'), raw, hashlib.sha256).hexdigest()
    return raw, signature
