import base64
from unittest import mock

import pytest
import requests

from payments.exceptions import GatewayUnavailable
from payments.services.mpesa import MpesaConfig, MpesaDarajaClient, PRODUCTION_URL, SANDBOX_URL

CONFIG = MpesaConfig(
    consumer_key="key",
    consumer_secret="secret",
    shortcode="174379",
    passkey="passkey",
    callback_url="https://example.com/payments/mpesa/callback/",
)


def _response(status_code=200, json_data=None, text=""):
    resp = mock.Mock()
    resp.status_code = status_code
    resp.text = text
    if json_data is None:
        resp.json.side_effect = ValueError("No JSON")
    else:
        resp.json.return_value = json_data
    return resp


@pytest.fixture
def session():
    s = mock.Mock()
    s.get.return_value = _response(json_data={"access_token": "tok", "expires_in": "3599"})
    return s


@pytest.fixture
def client(session):
    c = MpesaDarajaClient(CONFIG, session=session)
    c._timestamp = lambda: "20240101120000"
    return c


def test_base_url_follows_environment():
    assert CONFIG.base_url == SANDBOX_URL
    assert MpesaConfig(**{**CONFIG.__dict__, "env": "production"}).base_url == PRODUCTION_URL


def test_from_settings_reads_django_settings(settings):
    settings.MPESA_CONSUMER_KEY = "ck"
    settings.MPESA_SHORTCODE = 600000
    settings.MPESA_ENV = "production"
    config = MpesaConfig.from_settings()
    assert config.consumer_key == "ck"
    assert config.shortcode == "600000"
    assert config.env == "production"


def test_stk_push_signs_payload(client, session):
    session.post.return_value = _response(json_data={"ResponseCode": "0"})
    body = client.stk_push("254712345678", 500, "Ref", "Payment for Ref")

    assert body == {"ResponseCode": "0"}
    url = session.post.call_args.args[0]
    kwargs = session.post.call_args.kwargs
    assert url == f"{SANDBOX_URL}/mpesa/stkpush/v1/processrequest"
    assert kwargs["headers"]["Authorization"] == "Bearer tok"
    payload = kwargs["json"]
    assert payload["Password"] == base64.b64encode(b"174379passkey20240101120000").decode()
    assert payload["Timestamp"] == "20240101120000"
    assert payload["Amount"] == 500
    assert payload["PartyA"] == payload["PhoneNumber"] == "254712345678"
    assert payload["PartyB"] == payload["BusinessShortCode"] == "174379"
    assert payload["CallBackURL"] == CONFIG.callback_url
    assert payload["TransactionType"] == "CustomerPayBillOnline"


def test_stk_query_uses_same_signing_scheme(client, session):
    session.post.return_value = _response(json_data={"ResultCode": "1032"})
    client.stk_query("ws_CO_1")
    url = session.post.call_args.args[0]
    payload = session.post.call_args.kwargs["json"]
    assert url == f"{SANDBOX_URL}/mpesa/stkpushquery/v1/query"
    assert payload == {
        "BusinessShortCode": "174379",
        "Password": base64.b64encode(b"174379passkey20240101120000").decode(),
        "Timestamp": "20240101120000",
        "CheckoutRequestID": "ws_CO_1",
    }


def test_access_token_is_cached(client, session):
    session.post.return_value = _response(json_data={"ResponseCode": "0"})
    client.stk_push("254712345678", 1, "Ref", "Desc")
    client.stk_query("ws_CO_1")
    assert session.get.call_count == 1
    assert session.get.call_args.kwargs["auth"] == ("key", "secret")


def test_expired_token_is_refreshed(client, session):
    session.get.return_value = _response(json_data={"access_token": "tok", "expires_in": "0"})
    session.post.return_value = _response(json_data={"ResponseCode": "0"})
    client.stk_query("ws_CO_1")
    client.stk_query("ws_CO_1")
    assert session.get.call_count == 2


def test_rejected_credentials_on_post_clear_token(client, session):
    session.post.return_value = _response(401, json_data={"errorCode": "404.001.03", "errorMessage": "Invalid Access Token"})
    with pytest.raises(GatewayUnavailable):
        client.stk_query("ws_CO_1")
    assert client._token is None


@pytest.mark.parametrize("oauth", [
    _response(400, text="Bad Request"),
    _response(200, text="<html>"),
    _response(200, json_data={"error": "nope"}),
])
def test_oauth_failures_are_gateway_unavailable(client, session, oauth):
    session.get.return_value = oauth
    with pytest.raises(GatewayUnavailable):
        client.stk_push("254712345678", 1, "Ref", "Desc")
    session.post.assert_not_called()


def test_transport_error_is_gateway_unavailable(client, session):
    session.post.side_effect = requests.ConnectionError("refused")
    with pytest.raises(GatewayUnavailable):
        client.stk_push("254712345678", 1, "Ref", "Desc")


def test_non_json_response_is_gateway_unavailable(client, session):
    session.post.return_value = _response(502, text="Bad Gateway")
    with pytest.raises(GatewayUnavailable):
        client.stk_query("ws_CO_1")


def test_error_payload_is_returned_for_caller_to_interpret(client, session):
    error = {"requestId": "r", "errorCode": "400.002.02", "errorMessage": "Bad Request - Invalid Amount"}
    session.post.return_value = _response(400, json_data=error)
    assert client.stk_push("254712345678", 1, "Ref", "Desc") == error
