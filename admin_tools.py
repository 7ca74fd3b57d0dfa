"""
Admin Tools - bulk reset of billing state
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from backend.utils.errors import BillingError
from backend.utils.responses import error_response, success_response
from config.settings import settings
from crud.user import UserRepository
from database import get_event_log, get_gateway, get_user_repository
from services.stripe_gateway import StripeGateway
from storage.json_store import EventLog

logger = logging.getLogger(__name__)

# Create router with /internal prefix
admin_router = APIRouter(prefix="/internal", tags=["admin"])


async def reset_billing_state(gateway: StripeGateway, users: UserRepository, event_log: EventLog) -> dict:
    """
    Cancel every Stripe subscription, delete every Stripe customer and wipe
    the local user collection and event log.
    """
    subscriptions = gateway.cancel_all_subscriptions()
    customers = gateway.delete_all_customers()
    await users.delete_all()
    if not event_log.clear():
        logger.error("[DB_WRITE_ERROR] Could not clear the event log")
    logger.warning(f"Billing reset: canceled {subscriptions} subscriptions, deleted {customers} customers")
    return {"subscriptions_canceled": subscriptions, "customers_deleted": customers}


def require_admin_token(x_admin_token: Optional[str] = Header(default=None)):
    if not settings.admin_token:
        raise HTTPException(status_code=503, detail="ADMIN_TOKEN is not configured")
    if x_admin_token != settings.admin_token:
        raise HTTPException(status_code=403, detail="Invalid admin token")


@admin_router.post("/reset-billing", dependencies=[Depends(require_admin_token)])
async def reset_billing(
    gateway: StripeGateway = Depends(get_gateway),
    users: UserRepository = Depends(get_user_repository),
    event_log: EventLog = Depends(get_event_log),
):
    """
    Remove all customers and subscriptions, upstream and local.
    Admin-only endpoint for test environments.
    """
    try:
        result = await reset_billing_state(gateway, users, event_log)
    except BillingError as e:
        return error_response(e.code, status=e.status, message=e.message)
    return success_response(result, message="Billing state reset")
