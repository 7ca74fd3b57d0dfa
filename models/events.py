"""
Webhook event variants.

Stripe payloads are decoded into one of the recognized event classes, or
``UnknownEvent`` for every other type, before the reconciler sees them.
"""
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from backend.utils.errors import ValidationError

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"

PAYMENT_EVENTS = (PAYMENT_SUCCEEDED, INVOICE_PAYMENT_SUCCEEDED)


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: str
    created: Optional[int] = None


class PaymentSucceeded(_Event):
    customer_id: str


class SubscriptionUpdated(_Event):
    customer_id: str
    status: str
    cancel_at_period_end: bool = False
    current_period_end: Optional[int] = None

    @property
    def cancel_at(self) -> Optional[int]:
        return self.current_period_end if self.cancel_at_period_end else None


class SubscriptionDeleted(_Event):
    customer_id: str


class UnknownEvent(_Event):
    pass


WebhookEvent = Union[PaymentSucceeded, SubscriptionUpdated, SubscriptionDeleted, UnknownEvent]


def _period_end(obj: Mapping[str, Any]) -> Optional[int]:
    # Newer API versions only report the billing period on subscription items
    if obj.get("current_period_end") is not None:
        return obj["current_period_end"]
    items = (obj.get("items") or {}).get("data") or []
    if items:
        return items[0].get("current_period_end")
    return None


def decode_event(payload: Mapping[str, Any]) -> WebhookEvent:
    """
    Decode a verified Stripe event payload.

    Payments without a customer (one-off guest payments) have no subscription
    to attach and decode as ``UnknownEvent``.

    Raises:
        ValidationError: the payload is missing fields required by its type
    """
    try:
        event_type = payload["type"]
        base = {"id": payload["id"], "type": event_type, "created": payload.get("created")}
        if event_type not in PAYMENT_EVENTS + (SUBSCRIPTION_UPDATED, SUBSCRIPTION_DELETED):
            return UnknownEvent(**base)

        obj = payload["data"]["object"]
        if event_type in PAYMENT_EVENTS:
            if obj.get("customer") is None:
                return UnknownEvent(**base)
            return PaymentSucceeded(**base, customer_id=obj["customer"])
        if event_type == SUBSCRIPTION_UPDATED:
            return SubscriptionUpdated(
                **base,
                customer_id=obj.get("customer"),
                status=obj.get("status"),
                cancel_at_period_end=bool(obj.get("cancel_at_period_end")),
                current_period_end=_period_end(obj),
            )
        return SubscriptionDeleted(**base, customer_id=obj.get("customer"))
    except (KeyError, TypeError, AttributeError, PydanticValidationError) as e:
        raise ValidationError(f"Malformed webhook payload: {e}") from e
