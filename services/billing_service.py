"""
Billing Service - registration, checkout, cancellation and webhook handling
"""

import logging
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

from backend.utils.errors import BillingError, NotFoundError, ValidationError
from crud.user import UserRepository
from models.billing import CancellationOutcome, CheckoutIntent, CheckoutResolution
from models.events import decode_event
from services.reconciler import SubscriptionReconciler
from services.stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)


def _error(e: BillingError) -> dict:
    return {"error": e.code, "message": e.message, "status": e.status, "is_error": True}


def format_timestamp(unix_timestamp: Optional[int]) -> Optional[str]:
    if not unix_timestamp:
        return None
    return datetime.fromtimestamp(unix_timestamp, tz=timezone.utc).strftime("%d/%m/%Y")


class BillingService:
    """
    Service class for handling billing-related business logic.

    Public endpoint methods return the normalized response shape
    ``{"data": ..., "is_error": False}`` or
    ``{"error": code, "message": str, "status": int, "is_error": True}``.
    """

    def __init__(
        self,
        users: UserRepository,
        reconciler: SubscriptionReconciler,
        gateway: StripeGateway,
        price_ids: List[str],
    ):
        self.users = users
        self.reconciler = reconciler
        self.gateway = gateway
        self.price_ids = list(price_ids)

    def price_for_choice(self, plan_choice: int) -> str:
        """Map a 1-based plan choice to its Stripe price ID."""
        if not 1 <= plan_choice <= len(self.price_ids):
            raise ValidationError(f"Unknown subscription choice {plan_choice}")
        return self.price_ids[plan_choice - 1]

    async def resolve_checkout_intent(self, identifier: str, price_id: str) -> CheckoutResolution:
        """
        Decide between an in-place plan change and a new checkout.

        A user with an active subscription gets it switched to ``price_id``
        right away (prorated, invoiced immediately). Upstream failures raise
        UpstreamCallError and are not retried here.
        """
        user = await self.users.find_user(identifier)
        if user is None:
            return CheckoutResolution(intent=CheckoutIntent.UNKNOWN_USER)
        if user.active_subscription_id is None:
            return CheckoutResolution(intent=CheckoutIntent.NEEDS_NEW_CHECKOUT, user=user)

        self.gateway.change_plan(user.active_subscription_id, price_id)
        logger.info(f"Changed plan of {user.email} to {price_id}")
        return CheckoutResolution(intent=CheckoutIntent.CHANGE_PLAN, user=user)

    async def request_cancellation(self, identifier: str) -> CancellationOutcome:
        """Soft cancel: the subscription runs until the end of the billing period."""
        user = await self.users.find_user(identifier)
        if user is None:
            return CancellationOutcome.UNKNOWN_USER
        if user.subscription_status != "active" or user.active_subscription_id is None:
            return CancellationOutcome.ALREADY_CANCELLED

        self.gateway.cancel_at_period_end(user.active_subscription_id)
        logger.info(f"Scheduled cancellation of {user.active_subscription_id} for {user.email}")
        return CancellationOutcome.CANCEL_SCHEDULED

    async def register(self, email: str) -> dict:
        try:
            user = await self.users.register_user(email, self.gateway.create_customer)
        except BillingError as e:
            logger.warning(f"Registration of {email} failed: {e.message}")
            return _error(e)
        return {"data": user.model_dump(), "is_error": False}

    async def checkout(self, identifier: str, plan_choice: int) -> dict:
        """
        Start a checkout for ``plan_choice``.

        Returns:
            data: {"intent": ..., "url": checkout URL or None}
        """
        try:
            price_id = self.price_for_choice(plan_choice)
            resolution = await self.resolve_checkout_intent(identifier, price_id)
            if resolution.intent == CheckoutIntent.UNKNOWN_USER:
                raise NotFoundError(f"No user matches {identifier}")

            url = None
            if resolution.intent == CheckoutIntent.NEEDS_NEW_CHECKOUT:
                url = self.gateway.create_checkout_session(resolution.user.customer_id, price_id)
        except BillingError as e:
            logger.warning(f"Checkout for {identifier} failed: {e.message}")
            return _error(e)
        return {"data": {"intent": resolution.intent.value, "url": url}, "is_error": False}

    async def cancel(self, identifier: str) -> dict:
        try:
            outcome = await self.request_cancellation(identifier)
        except BillingError as e:
            logger.warning(f"Cancellation for {identifier} failed: {e.message}")
            return _error(e)
        return {"data": {"outcome": outcome.value}, "is_error": False}

    async def create_billing_portal_session(self, identifier: str) -> dict:
        try:
            user = await self.users.find_user(identifier)
            if user is None:
                raise NotFoundError(f"No user matches {identifier}")
            url = self.gateway.create_portal_session(user.customer_id)
        except BillingError as e:
            logger.warning(f"Billing portal for {identifier} failed: {e.message}")
            return _error(e)
        return {"data": {"url": url}, "is_error": False}

    async def dashboard(self) -> dict:
        try:
            users = await self.users.list_users()
        except BillingError as e:
            return _error(e)
        rows = []
        for user in users:
            row = user.model_dump()
            row["cancel_date"] = format_timestamp(user.cancel_at)
            rows.append(row)
        return {"data": rows, "is_error": False}

    async def process_webhook(self, payload: Mapping[str, Any]) -> dict:
        """
        Decode and apply a verified Stripe event payload.

        Returns:
            data: {"event_type": ..., "outcome": ...}
        """
        try:
            event = decode_event(payload)
            logger.info(f"Processing Stripe webhook event: {event.type} ({event.id})")
            outcome = await self.reconciler.apply(event)
        except BillingError as e:
            logger.error(f"Error processing webhook: {e.message}")
            return _error(e)
        return {"data": {"event_type": event.type, "outcome": outcome.value}, "is_error": False}
