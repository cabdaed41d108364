"""Strict decoding of the Daraja STK callback envelope.

    {"Body": {"stkCallback": {"MerchantRequestID": ..., "CheckoutRequestID": ...,
        "ResultCode": 0, "ResultDesc": ...,
        "CallbackMetadata": {"Item": [{"Name": "MpesaReceiptNumber", "Value": ...}]}}}}
"""
import json
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from .exceptions import MalformedCallback

RECEIPT_ITEM = 'MpesaReceiptNumber'


class CallbackItem(BaseModel):
    name: str = Field(alias='Name')
    value: Optional[Union[int, float, str]] = Field(default=None, alias='Value')


class CallbackMetadata(BaseModel):
    items: List[CallbackItem] = Field(default_factory=list, alias='Item')


class StkCallback(BaseModel):
    merchant_request_id: str = Field(alias='MerchantRequestID')
    checkout_request_id: str = Field(alias='CheckoutRequestID', min_length=1)
    result_code: int = Field(alias='ResultCode')
    result_desc: str = Field(alias='ResultDesc')
    metadata: Optional[CallbackMetadata] = Field(default=None, alias='CallbackMetadata')

    @property
    def receipt_number(self):
        if self.metadata is None:
            return None
        for item in self.metadata.items:
            if item.name == RECEIPT_ITEM:
                return None if item.value is None else str(item.value)
        return None


class CallbackBody(BaseModel):
    stk_callback: StkCallback = Field(alias='stkCallback')


class CallbackEnvelope(BaseModel):
    model_config = ConfigDict(extra='ignore')

    body: CallbackBody = Field(alias='Body')


def load_payload(raw: Any) -> Any:
    """Parse a request body (bytes or str) as JSON; dicts pass through."""
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode('utf-8')
        except UnicodeDecodeError:
            raise MalformedCallback("Invalid JSON")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            raise MalformedCallback("Invalid JSON")
    return raw


def decode_callback(payload: Any) -> StkCallback:
    payload = load_payload(payload)
    if not isinstance(payload, dict):
        raise MalformedCallback()
    try:
        envelope = CallbackEnvelope.model_validate(payload)
    except PydanticValidationError as e:
        raise MalformedCallback(details=e.errors(include_url=False))
    return envelope.body.stk_callback
