"""Decide and apply the final status of a transaction.

Both the provider callback and the client status poll feed results through
here. The first terminal result for a transaction wins; anything arriving
after that is a no-op.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from django.db import DatabaseError
from django.utils import timezone

from .exceptions import StorageError
from .models import Transaction

logger = logging.getLogger(__name__)

SUCCESS_CODE = 0
# "Request is still being processed": keep waiting, not a failure
STILL_PROCESSING_CODE = 1032


@dataclass(frozen=True)
class Reconciliation:
    status: str
    result_code: Optional[int]
    result_desc: Optional[str]
    receipt: Optional[str]
    changed: bool


def coerce_result_code(result_code):
    if result_code is None or isinstance(result_code, bool):
        return None
    try:
        return int(str(result_code).strip())
    except ValueError:
        return None


def reconcile(current_status, result_code, result_desc, receipt=None):
    code = coerce_result_code(result_code)
    if current_status in Transaction.TERMINAL_STATUSES or code is None or code == STILL_PROCESSING_CODE:
        return Reconciliation(current_status, code, result_desc, None, False)
    if code == SUCCESS_CODE:
        return Reconciliation(Transaction.Status.SUCCESS, code, result_desc, receipt or None, True)
    return Reconciliation(Transaction.Status.FAILED, code, result_desc, None, True)


def apply_result(transaction, result_code, result_desc, receipt=None, raw_callback=None):
    """Reconcile a provider result into ``transaction``.

    Returns ``(transaction, applied)``. The write is conditional on the row
    still being pending so a concurrent writer that got there first is never
    overwritten.
    """
    outcome = reconcile(transaction.status, result_code, result_desc, receipt)
    if not outcome.changed:
        return transaction, False

    fields = {
        'status': outcome.status,
        'result_code': str(outcome.result_code),
        'result_desc': outcome.result_desc,
        'mpesa_receipt_number': outcome.receipt,
        'updated_at': timezone.now(),
    }
    if raw_callback is not None:
        fields['raw_callback'] = raw_callback

    try:
        updated = Transaction.objects.filter(
            pk=transaction.pk, status=Transaction.Status.PENDING,
        ).update(**fields)
        transaction.refresh_from_db()
    except DatabaseError as e:
        logger.error("Failed to update transaction %s: %s", transaction.pk, e)
        raise StorageError() from e

    if updated:
        logger.info("Transaction %s updated to status: %s", transaction.pk, outcome.status)
    else:
        logger.info(
            "Transaction %s already %s, ignoring result code %s",
            transaction.pk, transaction.status, outcome.result_code,
        )
    return transaction, bool(updated)
