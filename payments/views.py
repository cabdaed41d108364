import json
import logging

from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from .exceptions import GatewayRejected, GatewayUnavailable, PaymentError
from .models import Transaction
from .services import stk

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Internal server error"


def _request_data(request):
    """JSON bodies from the web client, form posts from plain HTML."""
    if request.content_type == 'application/json':
        try:
            data = json.loads(request.body.decode('utf-8') or '{}')
        except (UnicodeDecodeError, json.JSONDecodeError):
            return None
        return data if isinstance(data, dict) else None
    return request.POST


def _error(exc, status=None):
    return JsonResponse({"error": exc.message}, status=status or exc.status_code)


@csrf_exempt
@require_POST
def mpesa_initiate(request):
    data = _request_data(request)
    if data is None:
        return JsonResponse({"error": "Invalid JSON"}, status=400)

    phone = data.get('phoneNumber') or data.get('phone_number') or data.get('phone')
    amount = data.get('amount')
    try:
        result = stk.initiate_payment(phone, amount)
    except GatewayUnavailable as e:
        logger.error("STK push error: %s", e.details)
        return JsonResponse({"error": GENERIC_ERROR}, status=500)
    except PaymentError as e:
        if e.status_code >= 500:
            logger.error("STK push error: %s", e.message)
        return _error(e)
    except Exception:
        logger.exception("STK push error")
        return JsonResponse({"error": GENERIC_ERROR}, status=500)

    return JsonResponse({
        "success": True,
        "message": result['message'],
        "checkoutRequestId": result['checkoutRequestId'],
        "transactionId": result['transactionId'],
    })


@csrf_exempt
@require_POST
def mpesa_callback(request):
    # Acknowledged whenever the envelope is valid and the transaction is known;
    # a non-zero ResultCode here would make Daraja redeliver.
    try:
        ack = stk.handle_callback(request.body)
    except PaymentError as e:
        return _error(e)
    except Exception:
        logger.exception("Callback processing error")
        return JsonResponse({"error": GENERIC_ERROR}, status=500)
    return JsonResponse(ack)


@csrf_exempt
@require_POST
def mpesa_query(request):
    data = _request_data(request)
    if data is None:
        return JsonResponse({"error": "Invalid JSON"}, status=400)

    checkout_request_id = data.get('checkoutRequestId') or data.get('checkout_request_id')
    if not checkout_request_id:
        return JsonResponse({"error": "Checkout request ID is required"}, status=400)

    try:
        result = stk.query_status(checkout_request_id)
    except (GatewayRejected, GatewayUnavailable) as e:
        logger.error("STK query error for %s: %s", checkout_request_id, e.details or e.message)
        return JsonResponse({"error": GENERIC_ERROR}, status=500)
    except PaymentError as e:
        return _error(e)
    except Exception:
        logger.exception("STK query error")
        return JsonResponse({"error": GENERIC_ERROR}, status=500)

    return JsonResponse({
        "success": True,
        "status": result['status'],
        "resultCode": result['resultCode'],
        "resultDesc": result['resultDesc'],
        "mpesaReceiptNumber": result['mpesaReceiptNumber'],
        "transaction": result['transaction'].as_dict(),
    })


@require_GET
def transactions_list(request):
    transactions = Transaction.objects.order_by('-created_at')[:50]
    return JsonResponse({"transactions": [t.as_dict() for t in transactions]})


@require_GET
def payment_status(request, transaction_id):
    txn = get_object_or_404(Transaction, id=transaction_id)
    return JsonResponse({"transaction": txn.as_dict()})
