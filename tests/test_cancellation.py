import pytest

from conftest import USER_ID, make_subscription
from finsight_billing.gateway import GatewayResult
from finsight_billing.models import Subscription, User

CANCEL_URL = "/api/payments/cancel-subscription"


def test_cancel_without_transaction_is_local_only(client, seed, user_row, gateway, fetch):
    seed(make_subscription(status="pending", ezee_transaction_number=None))

    response = client.post(CANCEL_URL, json={"subscriptionId": "SUB1"})

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["message"] == "Subscription cancelled successfully"
    gateway.cancel_subscription.assert_not_called()

    assert fetch(Subscription, "SUB1").status == "canceled"
    user = fetch(User, USER_ID)
    assert user.tier == "free"
    assert user.subscription_status == "canceled"


def test_cancel_with_gateway(client, seed, user_row, gateway, fetch):
    seed(make_subscription())
    gateway.cancel_subscription.return_value = GatewayResult.ok({"status": 1, "message": "Cancelled"})

    response = client.post(CANCEL_URL, json={"subscriptionId": "SUB1"})

    assert response.status_code == 200
    assert response.json()["success"] is True
    gateway.cancel_subscription.assert_called_once_with("TX1")
    assert fetch(Subscription, "SUB1").status == "canceled"
    assert fetch(User, USER_ID).tier == "free"


@pytest.mark.parametrize("status", ["canceled", "ended"])
def test_cancel_is_idempotent(client, seed, user_row, gateway, store, fetch, mocker, status):
    seed(make_subscription(status=status))
    write = mocker.spy(store, "cancel_subscription")

    response = client.post(CANCEL_URL, json={"subscriptionId": "SUB1"})

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "message": "Subscription is already cancelled or ended",
        "status": status,
    }
    write.assert_not_called()
    gateway.cancel_subscription.assert_not_called()
    assert fetch(User, USER_ID).tier == "professional"


def test_gateway_refusal_leaves_rows_untouched(client, seed, user_row, gateway, store, fetch, mocker):
    seed(make_subscription())
    gateway.cancel_subscription.return_value = GatewayResult.business_error("Subscription cannot be cancelled")
    write = mocker.spy(store, "cancel_subscription")

    response = client.post(CANCEL_URL, json={"subscriptionId": "SUB1"})

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Subscription cannot be cancelled"}
    write.assert_not_called()
    assert fetch(Subscription, "SUB1").status == "active"
    user = fetch(User, USER_ID)
    assert user.tier == "professional"
    assert user.subscription_status == "active"


def test_gateway_outage_leaves_rows_untouched(client, seed, user_row, gateway, fetch):
    seed(make_subscription())
    gateway.cancel_subscription.return_value = GatewayResult.transport_error(None)

    response = client.post(CANCEL_URL, json={"subscriptionId": "SUB1"})

    assert response.status_code == 502
    assert response.json()["success"] is False
    assert fetch(Subscription, "SUB1").status == "active"


def test_cancel_requires_authentication(anonymous_client, seed, user_row, gateway, store, mocker):
    seed(make_subscription())
    read = mocker.spy(store, "get_subscription_for_user")

    response = anonymous_client.post(CANCEL_URL, json={"subscriptionId": "SUB1"})

    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "Missing or invalid authorization header"}
    read.assert_not_called()
    gateway.cancel_subscription.assert_not_called()
