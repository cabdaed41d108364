import json

import pytest

from payments.exceptions import MalformedCallback
from payments.schemas import decode_callback

from .fakes import callback_body


def test_decodes_successful_callback_and_extracts_receipt():
    cb = decode_callback(callback_body(0, "The service request is processed successfully.", receipt="NLJ7RT61SV"))
    assert cb.result_code == 0
    assert cb.checkout_request_id == "ws_CO_191220191020363925"
    assert cb.receipt_number == "NLJ7RT61SV"


def test_failed_callback_has_no_receipt():
    cb = decode_callback(callback_body(1, "The balance is insufficient for the transaction."))
    assert cb.result_code == 1
    assert cb.receipt_number is None


def test_metadata_without_receipt_item_gives_none():
    body = callback_body(0, "ok")
    body["Body"]["stkCallback"]["CallbackMetadata"] = {"Item": [{"Name": "Amount", "Value": 1}]}
    assert decode_callback(body).receipt_number is None


def test_accepts_raw_json_bytes():
    raw = json.dumps(callback_body(1032, "Request cancelled by user")).encode()
    assert decode_callback(raw).result_code == 1032


@pytest.mark.parametrize("payload", [
    b"not json",
    b"[]",
    {},
    {"Body": {}},
    {"Body": {"stkCallback": {"CheckoutRequestID": "x"}}},
    {"Body": {"stkCallback": {
        "MerchantRequestID": "m", "CheckoutRequestID": "c", "ResultCode": "zero", "ResultDesc": "d",
    }}},
    {"Body": {"stkCallback": {
        "MerchantRequestID": "m", "CheckoutRequestID": "c", "ResultCode": 0, "ResultDesc": "d",
        "CallbackMetadata": {"Item": "MpesaReceiptNumber"},
    }}},
])
def test_shape_violations_raise_malformed_callback(payload):
    with pytest.raises(MalformedCallback):
        decode_callback(payload)
