import math
import re
from decimal import Decimal, InvalidOperation

from .exceptions import ValidationError

MIN_AMOUNT = Decimal('1')
MAX_AMOUNT = Decimal('70000')
CENTS = Decimal('0.01')

# Safaricom subscriber numbers start with 7 or 1 after the country/trunk prefix
_PHONE_PATTERNS = (
    re.compile(r'^254([17]\d{8})$'),
    re.compile(r'^0([17]\d{8})$'),
    re.compile(r'^([17]\d{8})$'),
)
_SEPARATORS = re.compile(r'[\s\-()]')


def normalize_phone(phone_number):
    """Return ``phone_number`` in 2547XXXXXXXX form or raise ValidationError.

    Accepts 07XXXXXXXX, 01XXXXXXXX, 7XXXXXXXX, 1XXXXXXXX and 254XXXXXXXXX,
    optionally with a leading '+' and spaces or dashes.
    """
    if phone_number is None:
        raise ValidationError("Phone number and amount are required")
    cleaned = _SEPARATORS.sub('', str(phone_number).strip())
    if cleaned.startswith('+'):
        cleaned = cleaned[1:]
    if not cleaned:
        raise ValidationError("Phone number and amount are required")
    for pattern in _PHONE_PATTERNS:
        match = pattern.match(cleaned)
        if match:
            return '254' + match.group(1)
    raise ValidationError("Enter a valid Safaricom number e.g. 0712345678.")


def parse_amount(amount):
    """Parse ``amount`` into a Decimal within [MIN_AMOUNT, MAX_AMOUNT]."""
    if amount is None or (isinstance(amount, str) and not amount.strip()):
        raise ValidationError("Phone number and amount are required")
    if isinstance(amount, bool):
        raise ValidationError("Amount must be a number.")
    if isinstance(amount, float) and not math.isfinite(amount):
        raise ValidationError("Amount must be a number.")
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError("Amount must be a number.")
    if not value.is_finite():
        raise ValidationError("Amount must be a number.")
    if value < MIN_AMOUNT or value > MAX_AMOUNT:
        raise ValidationError(f"Amount must be between KES {MIN_AMOUNT} and KES {MAX_AMOUNT:,}")
    if value != value.quantize(CENTS):
        raise ValidationError("Amount can have at most 2 decimal places.")
    return value


def gateway_amount(amount):
    """M-Pesa takes whole shillings only."""
    return int(math.floor(amount))
