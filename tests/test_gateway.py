import pytest
from requests import ConnectionError as RequestsConnectionError

from finsight_billing.errors import GatewayBusinessError, GatewayTransportError
from finsight_billing.gateway import GatewayClient


@pytest.fixture
def session(mocker):
    return mocker.Mock()


@pytest.fixture
def client(session):
    return GatewayClient("https://api-test.example.com/", "licence-123", "finsight", timeout=5, session=session)


def respond(session, mocker, status_code=200, body=None):
    resp = mocker.Mock()
    resp.status_code = status_code
    if isinstance(body, Exception):
        resp.json.side_effect = body
    else:
        resp.json.return_value = body
    session.post.return_value = resp
    return resp


def test_send_posts_form_with_credentials(client, session, mocker):
    respond(session, mocker, body={"result": {"status": 1, "message": "Active"}})

    result = client.send("/v1/subscription/status/", {"TransactionNumber": "TX1", "amount": 99, "note": None})

    assert result.is_ok
    assert result.unwrap() == {"status": 1, "message": "Active"}
    session.post.assert_called_once()
    args, kwargs = session.post.call_args
    assert args[0] == "https://api-test.example.com/v1/subscription/status/"
    assert kwargs["data"] == {"TransactionNumber": "TX1", "amount": "99"}
    assert kwargs["headers"]["licence_key"] == "licence-123"
    assert kwargs["headers"]["site"] == "finsight"
    assert kwargs["headers"]["Content-Type"] == "application/x-www-form-urlencoded"
    assert kwargs["timeout"] == 5


def test_non_success_status_is_transport_error(client, session, mocker):
    respond(session, mocker, status_code=500, body={"error": "oops"})

    result = client.subscription_status("TX1")

    assert result.kind == "transport"
    assert result.status_code == 500
    with pytest.raises(GatewayTransportError) as exc:
        result.unwrap()
    assert exc.value.gateway_status == 500
    assert exc.value.message == "eZeePayments API error: 500"


def test_network_failure_is_transport_error(client, session):
    session.post.side_effect = RequestsConnectionError("refused")

    result = client.cancel_subscription("TX1")

    assert result.kind == "transport"
    assert result.status_code is None


def test_invalid_json_is_transport_error(client, session, mocker):
    respond(session, mocker, body=ValueError("no json"))

    assert client.subscription_status("TX1").kind == "transport"


def test_business_failure_carries_provider_message(client, session, mocker):
    respond(session, mocker, body={"result": {"status": 0, "message": "Invalid transaction"}})

    result = client.cancel_subscription("TX1")

    assert result.kind == "business"
    assert result.message == "Invalid transaction"
    with pytest.raises(GatewayBusinessError) as exc:
        result.unwrap()
    assert exc.value.message == "Invalid transaction"


def test_structured_business_message_is_serialized(client, session, mocker):
    respond(session, mocker, body={"result": {"status": 0, "message": {"amount": ["required"]}}})

    result = client.create_subscription(amount=None, currency="USD", frequency="monthly", description="Plan")

    assert result.message == '{"amount": ["required"]}'
    assert "amount" not in session.post.call_args.kwargs["data"]


def test_missing_envelope_is_business_error(client, session, mocker):
    respond(session, mocker, body={"unexpected": True})

    assert client.subscription_status("TX1").kind == "business"


def test_custom_token_fields(client, session, mocker):
    respond(session, mocker, body={"result": {"status": 1, "token": "tok"}})

    result = client.custom_token(
        amount=99,
        currency="USD",
        order_id="SUB-1",
        post_back_url="https://app/api/payments/webhook",
        return_url="https://app/ok",
        cancel_url="https://app/cancel",
    )

    assert result.unwrap()["token"] == "tok"
    assert session.post.call_args.args[0].endswith("/v1/custom_token/")
    assert session.post.call_args.kwargs["data"]["post_back_url"] == "https://app/api/payments/webhook"
