"""STK push payment flow: initiate, callback and status query."""
import functools
import logging

from django.conf import settings
from django.db import DatabaseError

from ..exceptions import GatewayRejected, NotFound, StorageError
from ..models import Transaction
from ..reconciliation import STILL_PROCESSING_CODE, apply_result
from ..schemas import decode_callback, load_payload
from ..validators import gateway_amount, normalize_phone, parse_amount
from .mpesa import MpesaConfig, MpesaDarajaClient

logger = logging.getLogger(__name__)

ACCEPTED_CODE = '0'
CALLBACK_ACK = {"ResultCode": 0, "ResultDesc": "Accepted"}
# Query API answers with an error body while the payer has not responded yet
QUERY_IN_PROGRESS_ERROR = '500.001.1001'


@functools.lru_cache(maxsize=4)
def _client_for(config):
    return MpesaDarajaClient(config)


def default_gateway():
    """One client per distinct config, so the OAuth token is reused."""
    return _client_for(MpesaConfig.from_settings())


def _save(txn, *fields):
    try:
        txn.save(update_fields=[*fields, 'updated_at'])
    except DatabaseError as e:
        logger.error("Failed to save transaction %s: %s", txn.pk, e)
        raise StorageError() from e


def initiate_payment(phone_number, amount, gateway=None):
    phone = normalize_phone(phone_number)
    value = parse_amount(amount)
    gateway = gateway or default_gateway()

    reference = settings.MPESA_ACCOUNT_REFERENCE
    description = getattr(settings, 'MPESA_TRANSACTION_DESC', '') or f"Payment for {reference}"

    try:
        txn = Transaction.objects.create(
            phone_number=phone,
            amount=value,
            reference=reference,
            description=description,
            status=Transaction.Status.PENDING,
        )
    except DatabaseError as e:
        logger.error("Failed to create transaction record: %s", e)
        raise StorageError("Failed to create transaction record") from e

    logger.info("Initiating STK push for transaction %s (%s, KES %s)", txn.pk, phone, value)
    # GatewayUnavailable propagates; the record stays pending with no correlation ids
    body = gateway.initiate(phone, gateway_amount(value), reference, description)

    response_code = body.get('ResponseCode')
    if response_code is not None and str(response_code) == ACCEPTED_CODE:
        txn.merchant_request_id = body.get('MerchantRequestID')
        txn.checkout_request_id = body.get('CheckoutRequestID')
        _save(txn, 'merchant_request_id', 'checkout_request_id')
        logger.info("STK push accepted for transaction %s: %s", txn.pk, txn.checkout_request_id)
        return {
            'message': body.get('CustomerMessage') or "Success. Request accepted for processing",
            'checkoutRequestId': txn.checkout_request_id,
            'transactionId': str(txn.pk),
        }

    code = response_code if response_code is not None else body.get('errorCode')
    desc = body.get('ResponseDescription') or body.get('errorMessage')
    txn.status = Transaction.Status.FAILED
    txn.result_code = None if code is None else str(code)
    txn.result_desc = desc
    _save(txn, 'status', 'result_code', 'result_desc')
    logger.warning("STK push rejected for transaction %s: %s %s", txn.pk, code, desc)
    raise GatewayRejected(
        body.get('CustomerMessage') or desc or "Failed to initiate payment",
        result_code=code,
        result_desc=desc,
        details=body,
    )


def _find(checkout_request_id):
    try:
        return Transaction.objects.get(checkout_request_id=checkout_request_id)
    except Transaction.DoesNotExist:
        raise NotFound()
    except DatabaseError as e:
        raise StorageError() from e


def handle_callback(raw):
    """Reconcile a provider callback and return the acknowledgement body."""
    payload = load_payload(raw)
    callback = decode_callback(payload)
    logger.info(
        "M-Pesa callback received for %s: %s %s",
        callback.checkout_request_id, callback.result_code, callback.result_desc,
    )
    try:
        txn = _find(callback.checkout_request_id)
    except NotFound:
        logger.error("Transaction not found for CheckoutRequestID: %s", callback.checkout_request_id)
        raise

    apply_result(
        txn,
        callback.result_code,
        callback.result_desc,
        receipt=callback.receipt_number,
        raw_callback=payload,
    )
    return dict(CALLBACK_ACK)


def _query_result(body):
    if body.get('errorCode') == QUERY_IN_PROGRESS_ERROR:
        return STILL_PROCESSING_CODE, body.get('errorMessage')
    if 'ResultCode' in body:
        return body.get('ResultCode'), body.get('ResultDesc')
    if body.get('errorCode'):
        raise GatewayRejected(
            body.get('errorMessage') or "Status query was rejected",
            result_code=body.get('errorCode'),
            result_desc=body.get('errorMessage'),
            details=body,
        )
    return None, body.get('ResponseDescription')


def query_status(checkout_request_id, gateway=None):
    txn = _find(checkout_request_id)
    gateway = gateway or default_gateway()

    body = gateway.query(checkout_request_id)
    result_code, result_desc = _query_result(body)
    # The query response carries no receipt; only the callback fills it in
    txn, _ = apply_result(txn, result_code, result_desc)

    return {
        'status': txn.status,
        'resultCode': None if result_code is None else str(result_code),
        'resultDesc': result_desc,
        'mpesaReceiptNumber': txn.mpesa_receipt_number,
        'transaction': txn,
    }
