import hashlib
import hmac

import pytest
import requests

from ethio_home.errors import PaymentGatewayError
from ethio_home.services.chapa import ChapaService
from ethio_home.services.payments import format_price, split_name


class FakeResponse:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self._body = body
        self.text = str(body)

    def json(self):
        if self._body is None:
            raise ValueError('no json')
        return self._body


def test_initialize_posts_with_bearer_key(app, monkeypatch):
    app.config['CHAPA_SECRET_KEY'] = 'CHASECK_TEST'
    calls = []

    def fake_post(url, json=None, headers=None, timeout=None):
        calls.append((url, json, headers))
        return FakeResponse(200, {'status': 'success', 'data': {'checkout_url': 'https://checkout'}})

    monkeypatch.setattr(requests, 'post', fake_post)
    body = ChapaService().initialize({'tx_ref': 'abc', 'amount': '10'})

    assert body['data']['checkout_url'] == 'https://checkout'
    url, payload, headers = calls[0]
    assert url.endswith('/transaction/initialize')
    assert headers['Authorization'] == 'Bearer CHASECK_TEST'


def test_initialize_rejection_carries_body(app, monkeypatch):
    monkeypatch.setattr(requests, 'post', lambda *a, **kw: FakeResponse(400, {'message': 'Invalid currency'}))
    with pytest.raises(PaymentGatewayError) as exc:
        ChapaService().initialize({'tx_ref': 'abc'})
    assert exc.value.status_code == 500
    assert exc.value.payload == {'message': 'Invalid currency'}


def test_network_failure(app, monkeypatch):
    def boom(*args, **kwargs):
        raise requests.ConnectionError('refused')

    monkeypatch.setattr(requests, 'get', boom)
    with pytest.raises(PaymentGatewayError, match='Error verifying payment'):
        ChapaService().verify('abc')


def test_verify_returns_body(app, monkeypatch):
    monkeypatch.setattr(requests, 'get', lambda url, **kw: FakeResponse(200, {'data': {'status': 'success'}}))
    assert ChapaService().verify('abc')['data']['status'] == 'success'


def test_signature(app):
    service = ChapaService()
    raw = b'{"tx_ref": "abc"}'
    good = hmac.new(b'webhook-secret', raw, hashlib.sha256).hexdigest()

    assert service.verify_signature(raw, good)
    assert service.verify_signature(raw.decode(), good)
    assert not service.verify_signature(raw + b' ', good)
    assert not service.verify_signature(raw, None)


def test_signature_without_configured_secret(app):
    app.config['CHAPA_WEBHOOK_SECRET'] = ''
    assert not ChapaService().verify_signature(b'{}', 'anything')


def test_format_price():
    assert format_price('2500000.00') == '2500000'
    assert format_price(1234.5) == '1234.5'


def test_split_name():
    assert split_name('Abebe Kebede Tadesse') == ('Abebe', 'Kebede Tadesse')
    assert split_name('Abebe') == ('Abebe', '')
