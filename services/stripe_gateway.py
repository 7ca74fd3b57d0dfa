"""
Stripe Gateway - thin wrapper around the Stripe SDK calls used by billing

Every SDK failure is re-raised as UpstreamCallError so callers never have to
know about stripe exception types (webhook signature checks excepted).
"""

import functools
import logging
from typing import Any, Optional

import stripe

from backend.utils.errors import UpstreamCallError
from config.settings import settings

logger = logging.getLogger(__name__)


def configure_stripe(api_key: Optional[str] = None) -> bool:
    """
    Set the Stripe API key plus a bounded timeout and a single SDK-managed
    retry (exponential backoff) for every request.

    Returns:
        True if an API key is configured
    """
    api_key = api_key or settings.stripe_secret_key
    stripe.max_network_retries = settings.stripe_max_network_retries
    stripe.default_http_client = stripe.RequestsClient(timeout=settings.stripe_timeout_seconds)
    if not api_key:
        logger.warning("STRIPE_SECRET_KEY is not set. Stripe functionality will be unavailable.")
        return False
    stripe.api_key = api_key
    return True


def _upstream(action: str):
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except stripe.StripeError as e:
                logger.error(f"Stripe call failed ({action}): {e}")
                raise UpstreamCallError(f"Failed to {action}: {e.user_message or e}") from e
        return wrapper
    return decorator


def subscription_price_id(subscription: Any) -> Optional[str]:
    """Price ID of the subscription's first item (the plan)."""
    try:
        plan = subscription["plan"]
    except KeyError:
        plan = None
    if plan:
        return plan["id"]
    items = subscription["items"]["data"]
    return items[0]["price"]["id"] if items else None


class StripeGateway:
    """Payment processor calls needed by the billing service."""

    def verify_webhook(self, payload: bytes, signature: str, secret: str) -> stripe.Event:
        """
        Verify the Stripe-Signature header against the shared secret.

        Raises:
            stripe.SignatureVerificationError: signature mismatch
            ValueError: payload is not valid JSON
        """
        return stripe.Webhook.construct_event(payload, signature, secret)

    @_upstream("create customer")
    def create_customer(self, email: str) -> str:
        customer = stripe.Customer.create(email=email)
        return customer["id"]

    @_upstream("list subscriptions")
    def latest_subscription(self, customer_id: str) -> Optional[Any]:
        subscriptions = stripe.Subscription.list(customer=customer_id, limit=1)
        return subscriptions["data"][0] if subscriptions["data"] else None

    @_upstream("change subscription plan")
    def change_plan(self, subscription_id: str, price_id: str) -> Any:
        old_sub = stripe.Subscription.retrieve(subscription_id)
        return stripe.Subscription.modify(
            subscription_id,
            items=[{
                "id": old_sub["items"]["data"][0]["id"],
                "price": price_id,
            }],
            proration_behavior="always_invoice",
            cancel_at_period_end=False,
        )

    @_upstream("cancel subscription")
    def cancel_at_period_end(self, subscription_id: str) -> Any:
        return stripe.Subscription.modify(subscription_id, cancel_at_period_end=True)

    @_upstream("create checkout session")
    def create_checkout_session(self, customer_id: str, price_id: str) -> str:
        session = stripe.checkout.Session.create(
            mode="subscription",
            customer=customer_id,
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=settings.url("api/billing/checkout/success"),
            cancel_url=settings.url("api/billing/checkout/cancel"),
        )
        return session["url"]

    @_upstream("create billing portal session")
    def create_portal_session(self, customer_id: str) -> str:
        # Customers manage their details here; cancellation goes through /cancel
        configuration = stripe.billing_portal.Configuration.create(
            business_profile={
                "privacy_policy_url": settings.url(),
                "terms_of_service_url": settings.url(),
            },
            features={
                "customer_update": {
                    "allowed_updates": ["tax_id", "address", "phone"],
                    "enabled": True,
                },
                "payment_method_update": {"enabled": True},
                "invoice_history": {"enabled": False},
                "subscription_cancel": {"enabled": False},
                "subscription_pause": {"enabled": False},
            },
        )
        session = stripe.billing_portal.Session.create(
            configuration=configuration["id"],
            customer=customer_id,
            return_url=settings.url(),
        )
        return session["url"]

    @_upstream("cancel all subscriptions")
    def cancel_all_subscriptions(self) -> int:
        count = 0
        for sub in stripe.Subscription.list().auto_paging_iter():
            stripe.Subscription.cancel(sub["id"])
            count += 1
        return count

    @_upstream("delete all customers")
    def delete_all_customers(self) -> int:
        count = 0
        for customer in stripe.Customer.list().auto_paging_iter():
            stripe.Customer.delete(customer["id"])
            count += 1
        return count
