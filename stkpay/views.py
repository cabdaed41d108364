from django.http import JsonResponse


def index(request):
    return JsonResponse({
        "message": "M-Pesa STK Push Payments API",
        "endpoints": {
            "admin": "/admin/",
            "mpesa_initiate": "/payments/mpesa/initiate/",
            "mpesa_callback": "/payments/mpesa/callback/",
            "mpesa_query": "/payments/mpesa/query/",
            "transactions": "/payments/transactions/",
            "payment_status": "/payments/<transaction_id>/status/",
        }
    })
