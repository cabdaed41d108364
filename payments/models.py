import uuid
from django.db import models


class Transaction(models.Model):
    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        SUCCESS = 'success', 'Success'
        FAILED = 'failed', 'Failed'

    TERMINAL_STATUSES = (Status.SUCCESS, Status.FAILED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    phone_number = models.CharField(max_length=13)  # e.g. 2547XXXXXXXX
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    reference = models.CharField(max_length=64)
    description = models.CharField(max_length=128, blank=True)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING)

    # Provider correlation pair, set once the push is accepted
    merchant_request_id = models.CharField(max_length=128, blank=True, null=True)
    checkout_request_id = models.CharField(max_length=128, blank=True, null=True, unique=True)

    result_code = models.CharField(max_length=16, blank=True, null=True)
    result_desc = models.CharField(max_length=256, blank=True, null=True)
    mpesa_receipt_number = models.CharField(max_length=100, blank=True, null=True)  # callback only
    raw_callback = models.JSONField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.phone_number} - {self.amount} - {self.status}"

    def as_dict(self):
        return {
            'id': str(self.id),
            'phone_number': self.phone_number,
            'amount': str(self.amount),
            'reference': self.reference,
            'description': self.description,
            'status': self.status,
            'merchant_request_id': self.merchant_request_id,
            'checkout_request_id': self.checkout_request_id,
            'result_code': self.result_code,
            'result_desc': self.result_desc,
            'mpesa_receipt_number': self.mpesa_receipt_number,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
