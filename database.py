"""
Process-wide billing state: JSON stores, repository and services.

There is exactly one UserRepository/EventLog pair per process so every write
goes through the same lock.
"""
import logging
from functools import lru_cache

from config.settings import settings, IS_PRODUCTION
from crud.user import UserRepository
from services.billing_service import BillingService
from services.reconciler import SubscriptionReconciler
from services.stripe_gateway import StripeGateway, configure_stripe
from storage.json_store import EventLog, JsonCollectionStore

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_user_repository() -> UserRepository:
    return UserRepository(JsonCollectionStore(settings.users_file))


@lru_cache(maxsize=1)
def get_event_log() -> EventLog:
    return EventLog(JsonCollectionStore(settings.events_file))


@lru_cache(maxsize=1)
def get_gateway() -> StripeGateway:
    return StripeGateway()


@lru_cache(maxsize=1)
def get_billing_service() -> BillingService:
    """
    Dependency function that returns the billing service.

    Example:
        @router.post("/cancel")
        async def cancel(billing: BillingService = Depends(get_billing_service)):
            ...
    """
    reconciler = SubscriptionReconciler(
        get_user_repository(),
        get_event_log(),
        get_gateway(),
        settings.plan_price_ids,
    )
    return BillingService(get_user_repository(), reconciler, get_gateway(), settings.plan_price_ids)


def init_db():
    """
    Create the data directory and configure the Stripe SDK.
    This should be called on application startup.
    """
    if IS_PRODUCTION and not settings.stripe_webhook_secret:
        raise RuntimeError("STRIPE_WEBHOOK_SECRET must be set in production.")
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    configure_stripe()
    if not settings.plan_price_ids:
        logger.warning("SUBSCRIPTION_PRICE_IDS is empty; every payment will be rejected.")
