from django.contrib import admin
from .models import Transaction


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = ('id', 'phone_number', 'amount', 'status', 'result_code', 'mpesa_receipt_number', 'created_at')
    search_fields = ('id', 'phone_number', 'merchant_request_id', 'checkout_request_id', 'mpesa_receipt_number')
    list_filter = ('status',)
    readonly_fields = ('id', 'raw_callback', 'created_at', 'updated_at')
