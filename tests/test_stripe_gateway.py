"""
Tests for the Stripe SDK wrapper
"""
import hashlib
import hmac
import json
import time
from unittest.mock import MagicMock, patch

import pytest
import stripe

from backend.utils.errors import UpstreamCallError
from services.stripe_gateway import StripeGateway, configure_stripe, subscription_price_id


def sign(payload: bytes, secret: str, timestamp=None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.".encode() + payload
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def test_verify_webhook_accepts_valid_signature():
    payload = json.dumps({"id": "evt_1", "object": "event", "type": "invoice.created"}).encode()
    event = StripeGateway().verify_webhook(payload, sign(payload, "whsec_test"), "whsec_test")
    assert event["id"] == "evt_1"


def test_verify_webhook_rejects_wrong_secret():
    payload = json.dumps({"id": "evt_1", "object": "event"}).encode()
    with pytest.raises(stripe.SignatureVerificationError):
        StripeGateway().verify_webhook(payload, sign(payload, "whsec_other"), "whsec_test")


def test_create_customer():
    with patch("stripe.Customer.create", return_value={"id": "cus_9"}) as create:
        assert StripeGateway().create_customer("a@x.com") == "cus_9"
    create.assert_called_once_with(email="a@x.com")


def test_stripe_errors_become_upstream_errors():
    with patch("stripe.Customer.create", side_effect=stripe.APIConnectionError("connection reset")):
        with pytest.raises(UpstreamCallError) as exc_info:
            StripeGateway().create_customer("a@x.com")
    assert exc_info.value.code == "upstream_error"
    assert isinstance(exc_info.value.__cause__, stripe.APIConnectionError)


def test_latest_subscription():
    sub = {"id": "sub_1"}
    with patch("stripe.Subscription.list", return_value={"data": [sub]}) as listing:
        assert StripeGateway().latest_subscription("cus_1") == sub
    listing.assert_called_once_with(customer="cus_1", limit=1)

    with patch("stripe.Subscription.list", return_value={"data": []}):
        assert StripeGateway().latest_subscription("cus_1") is None


def test_change_plan_prorates_and_keeps_subscription():
    old_sub = {"id": "sub_1", "items": {"data": [{"id": "si_1"}]}}
    with patch("stripe.Subscription.retrieve", return_value=old_sub), \
            patch("stripe.Subscription.modify") as modify:
        StripeGateway().change_plan("sub_1", "price_pro")
    modify.assert_called_once_with(
        "sub_1",
        items=[{"id": "si_1", "price": "price_pro"}],
        proration_behavior="always_invoice",
        cancel_at_period_end=False,
    )


def test_cancel_at_period_end():
    with patch("stripe.Subscription.modify") as modify:
        StripeGateway().cancel_at_period_end("sub_1")
    modify.assert_called_once_with("sub_1", cancel_at_period_end=True)


def test_checkout_session_uses_subscription_mode():
    with patch("stripe.checkout.Session.create", return_value={"url": "https://checkout.test/s"}) as create:
        assert StripeGateway().create_checkout_session("cus_1", "price_pro") == "https://checkout.test/s"
    kwargs = create.call_args.kwargs
    assert kwargs["mode"] == "subscription"
    assert kwargs["customer"] == "cus_1"
    assert kwargs["line_items"] == [{"price": "price_pro", "quantity": 1}]


def test_portal_session_disables_cancellation():
    with patch("stripe.billing_portal.Configuration.create", return_value={"id": "bpc_1"}) as configure, \
            patch("stripe.billing_portal.Session.create", return_value={"url": "https://portal.test/s"}) as create:
        assert StripeGateway().create_portal_session("cus_1") == "https://portal.test/s"
    assert configure.call_args.kwargs["features"]["subscription_cancel"] == {"enabled": False}
    assert create.call_args.kwargs["configuration"] == "bpc_1"
    assert create.call_args.kwargs["customer"] == "cus_1"


def test_cancel_all_subscriptions():
    listing = MagicMock()
    listing.auto_paging_iter.return_value = iter([{"id": "sub_1"}, {"id": "sub_2"}])
    with patch("stripe.Subscription.list", return_value=listing), \
            patch("stripe.Subscription.cancel") as cancel:
        assert StripeGateway().cancel_all_subscriptions() == 2
    assert [c.args[0] for c in cancel.call_args_list] == ["sub_1", "sub_2"]


def test_subscription_price_id():
    assert subscription_price_id({"id": "sub_1", "plan": {"id": "price_a"}}) == "price_a"
    assert subscription_price_id({"id": "sub_1", "items": {"data": [{"price": {"id": "price_b"}}]}}) == "price_b"
    assert subscription_price_id({"id": "sub_1", "plan": None, "items": {"data": []}}) is None


def test_configure_stripe(monkeypatch):
    monkeypatch.setattr(stripe, "api_key", None)
    monkeypatch.setattr(stripe, "max_network_retries", 0)
    monkeypatch.setattr(stripe, "default_http_client", None)

    assert configure_stripe("sk_test_123") is True
    assert stripe.api_key == "sk_test_123"
    assert stripe.max_network_retries == 1
    assert isinstance(stripe.default_http_client, stripe.RequestsClient)
