"""
Subscription Reconciler - applies Stripe lifecycle events to local user records
"""

import asyncio
import logging
from typing import Iterable

from backend.utils.errors import BillingError, NotFoundError, StorageIOError
from crud.user import UserRepository
from models.billing import ReconcileOutcome
from models.events import (
    PaymentSucceeded,
    SubscriptionDeleted,
    SubscriptionUpdated,
    WebhookEvent,
)
from models.user import StatusChange
from services.stripe_gateway import StripeGateway, subscription_price_id
from storage.json_store import EventLog

logger = logging.getLogger(__name__)


class SubscriptionReconciler:
    """
    Applies each webhook event to the user directory at most once.

    Only payment-succeeded events are deduplicated through the event log: they
    are the ones that attach a newly created subscription. Updated and deleted
    events overwrite fields and are safe to replay. Events are not resequenced,
    the last one applied wins for every field it touches.
    """

    def __init__(
        self,
        users: UserRepository,
        event_log: EventLog,
        gateway: StripeGateway,
        allowed_price_ids: Iterable[str],
    ):
        self.users = users
        self.event_log = event_log
        self.gateway = gateway
        self.allowed_price_ids = frozenset(allowed_price_ids)
        self.lock = asyncio.Lock()

    async def apply(self, event: WebhookEvent) -> ReconcileOutcome:
        """
        Apply one decoded event.

        Raises:
            StorageIOError: user collection or event log unavailable
            UpstreamCallError: Stripe lookup failed
        """
        try:
            if isinstance(event, PaymentSucceeded):
                return await self._payment_succeeded(event)
            if isinstance(event, SubscriptionUpdated):
                await self.users.set_subscription_status(
                    event.customer_id,
                    StatusChange(status=event.status, cancel_at=event.cancel_at),
                )
                logger.info(f"Subscription of {event.customer_id} is now {event.status} (cancel_at={event.cancel_at})")
                return ReconcileOutcome.APPLIED
            if isinstance(event, SubscriptionDeleted):
                await self.users.mark_canceled(event.customer_id)
                logger.info(f"Subscription of {event.customer_id} was deleted")
                return ReconcileOutcome.APPLIED
        except NotFoundError as e:
            # Retrying will not make the customer appear
            logger.warning(f"Ignoring {event.type} ({event.id}): {e}")
            return ReconcileOutcome.IGNORED

        logger.info(f"Unhandled event type {event.type}")
        return ReconcileOutcome.IGNORED

    async def _payment_succeeded(self, event: PaymentSucceeded) -> ReconcileOutcome:
        async with self.lock:
            seen = self.event_log.contains(event.id)
            if seen is None:
                raise StorageIOError("Event log unavailable")
            if seen:
                logger.info(f"Event {event.id} already processed, skipping")
                return ReconcileOutcome.DUPLICATE

            subscription = self.gateway.latest_subscription(event.customer_id)
            price_id = subscription_price_id(subscription) if subscription else None
            if price_id not in self.allowed_price_ids:
                logger.error(f"[ERROR_SUBSCRIBING] No compatible price for {event.customer_id}: {price_id}")
                self._record(event.id)
                return ReconcileOutcome.REJECTED

            # Log first; if the user cannot be updated the entry is rolled
            # back so a redelivery applies the event again.
            self._record(event.id)
            try:
                await self.users.set_active_subscription(event.customer_id, subscription["id"])
            except BillingError:
                if not self.event_log.discard(event.id):
                    logger.error(f"[DB_WRITE_ERROR] Could not roll back event {event.id}")
                raise
            logger.info(f"Activated subscription {subscription['id']} for {event.customer_id}")
            return ReconcileOutcome.APPLIED

    def _record(self, event_id: str) -> None:
        if not self.event_log.append(event_id):
            raise StorageIOError("Event log unavailable")
