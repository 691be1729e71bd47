import hashlib
import hmac
import logging

import requests
from flask import current_app

from ethio_home.errors import PaymentGatewayError

logger = logging.getLogger(__name__)


class ChapaService:
    """Chapa payment gateway client"""

    def __init__(self):
        self.secret_key = current_app.config.get('CHAPA_SECRET_KEY', '')
        self.webhook_secret = current_app.config.get('CHAPA_WEBHOOK_SECRET', '')
        self.base_url = current_app.config.get('CHAPA_BASE_URL', 'https://api.chapa.co/v1').rstrip('/')
        self.timeout = current_app.config.get('CHAPA_TIMEOUT', 30)

    def _headers(self):
        return {
            'Authorization': f'Bearer {self.secret_key}',
            'Content-Type': 'application/json'
        }

    @staticmethod
    def _body(response):
        try:
            return response.json()
        except ValueError:
            return {'message': response.text}

    def initialize(self, payload):
        """Start a hosted checkout; returns Chapa's body (checkout_url under `data`)"""
        url = f'{self.base_url}/transaction/initialize'
        try:
            response = requests.post(url, json=payload, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            logger.error('Chapa initialize exception for %s: %s', payload.get('tx_ref'), e)
            raise PaymentGatewayError('Payment gateway is unreachable', {'message': str(e)})

        body = self._body(response)
        if response.status_code != 200 or body.get('status') != 'success':
            logger.error('Chapa initialize error for %s: %s - %s', payload.get('tx_ref'), response.status_code, body)
            raise PaymentGatewayError('Payment initialization failed', body)

        return body

    def verify(self, tx_ref):
        """Fetch the transaction; the payment outcome is `body['data']['status']`"""
        url = f'{self.base_url}/transaction/verify/{tx_ref}'
        try:
            response = requests.get(url, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            logger.error('Chapa verify exception for %s: %s', tx_ref, e)
            raise PaymentGatewayError('Error verifying payment', {'message': str(e)})

        body = self._body(response)
        if response.status_code != 200:
            logger.error('Chapa verify error for %s: %s - %s', tx_ref, response.status_code, body)
            raise PaymentGatewayError('Error verifying payment', body)

        return body

    def verify_signature(self, raw_body, signature):
        """Check the webhook HMAC-SHA256 of the raw request body"""
        if not signature or not self.webhook_secret:
            return False

        if isinstance(raw_body, str):
            raw_body = raw_body.encode('utf-8')

        expected = hmac.new(self.webhook_secret.encode('utf-8'), raw_body, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature)
