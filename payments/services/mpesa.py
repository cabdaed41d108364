import base64
import datetime as dt
import logging
import time
from dataclasses import dataclass

import requests
from django.conf import settings

from ..exceptions import GatewayUnavailable
from .base import PaymentProvider

logger = logging.getLogger(__name__)

SANDBOX_URL = 'https://sandbox.safaricom.co.ke'
PRODUCTION_URL = 'https://api.safaricom.co.ke'

# Refresh the token a little before Daraja expires it
TOKEN_EXPIRY_MARGIN = 60


@dataclass(frozen=True)
class MpesaConfig:
    consumer_key: str
    consumer_secret: str
    shortcode: str
    passkey: str
    callback_url: str
    env: str = 'sandbox'
    timeout: int = 30

    @property
    def base_url(self):
        return PRODUCTION_URL if self.env == 'production' else SANDBOX_URL

    @classmethod
    def from_settings(cls):
        return cls(
            consumer_key=getattr(settings, 'MPESA_CONSUMER_KEY', ''),
            consumer_secret=getattr(settings, 'MPESA_CONSUMER_SECRET', ''),
            shortcode=str(getattr(settings, 'MPESA_SHORTCODE', '')),
            passkey=getattr(settings, 'MPESA_PASSKEY', ''),
            callback_url=getattr(settings, 'MPESA_CALLBACK_URL', ''),
            env=getattr(settings, 'MPESA_ENV', 'sandbox'),
            timeout=getattr(settings, 'MPESA_TIMEOUT', 30),
        )


class MpesaDarajaClient(PaymentProvider):
    def __init__(self, config, session=None):
        self.config = config
        self.session = session or requests.Session()
        self._token = None
        self._token_expires_at = 0.0

    @property
    def base_url(self):
        return self.config.base_url

    def _access_token(self):
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        url = f"{self.base_url}/oauth/v1/generate?grant_type=client_credentials"
        try:
            resp = self.session.get(
                url,
                auth=(self.config.consumer_key, self.config.consumer_secret),
                headers={"Accept": "application/json"},
                timeout=self.config.timeout,
            )
        except requests.RequestException as e:
            raise GatewayUnavailable(details=f"MPESA OAuth request failed: {e}") from e

        if resp.status_code != 200:
            raise GatewayUnavailable(details=f"MPESA OAuth error: status={resp.status_code}, body={resp.text}")
        try:
            data = resp.json()
        except ValueError:
            raise GatewayUnavailable(details=f"MPESA OAuth returned non-JSON body: {resp.text}")
        if "access_token" not in data:
            raise GatewayUnavailable(details=f"MPESA OAuth JSON missing access_token: {data}")

        try:
            expires_in = int(data.get('expires_in', 3599))
        except (TypeError, ValueError):
            expires_in = 3599
        self._token = data['access_token']
        self._token_expires_at = time.monotonic() + max(expires_in - TOKEN_EXPIRY_MARGIN, 0)
        return self._token

    def clear_token(self):
        self._token = None
        self._token_expires_at = 0.0

    def _timestamp(self):
        return dt.datetime.now().strftime('%Y%m%d%H%M%S')

    def _password(self, timestamp):
        raw = f"{self.config.shortcode}{self.config.passkey}{timestamp}".encode('utf-8')
        return base64.b64encode(raw).decode('utf-8')

    def _signed(self, **fields):
        timestamp = self._timestamp()
        payload = {
            "BusinessShortCode": self.config.shortcode,
            "Password": self._password(timestamp),
            "Timestamp": timestamp,
        }
        payload.update(fields)
        return payload

    def _post(self, path, payload):
        token = self._access_token()
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        try:
            resp = self.session.post(
                f"{self.base_url}{path}", json=payload, headers=headers, timeout=self.config.timeout,
            )
        except requests.RequestException as e:
            raise GatewayUnavailable(details=f"Failed to reach MPESA {path}: {e}") from e

        # Daraja reports rejections as JSON error bodies with 4xx/5xx, keep those
        try:
            data = resp.json()
        except ValueError:
            raise GatewayUnavailable(details=f"MPESA {path} returned status={resp.status_code}, body={resp.text}")
        if not isinstance(data, dict):
            raise GatewayUnavailable(details=f"MPESA {path} returned unexpected body: {data}")
        if resp.status_code in (401, 403):
            self.clear_token()
            raise GatewayUnavailable(details=f"MPESA {path} rejected credentials: {data}")
        logger.debug("MPESA %s responded %s: %s", path, resp.status_code, data)
        return data

    def stk_push(self, phone, amount, account_reference, transaction_desc):
        payload = self._signed(
            TransactionType="CustomerPayBillOnline",
            Amount=amount,
            PartyA=phone,
            PartyB=self.config.shortcode,
            PhoneNumber=phone,
            CallBackURL=self.config.callback_url,
            AccountReference=account_reference,
            TransactionDesc=transaction_desc,
        )
        return self._post('/mpesa/stkpush/v1/processrequest', payload)

    def stk_query(self, checkout_request_id):
        payload = self._signed(CheckoutRequestID=checkout_request_id)
        return self._post('/mpesa/stkpushquery/v1/query', payload)

    initiate = stk_push
    query = stk_query
