"""
Billing Router - API endpoints for Stripe billing integration
Webhook is defined FIRST to avoid middleware conflicts
"""

import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
import stripe

from backend.utils.responses import error_response, service_error_response, success_response
from config.settings import settings
from database import get_billing_service, get_gateway
from services.billing_service import BillingService
from services.stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)

# Create billing router
billing_router = APIRouter(prefix="/api/billing", tags=["billing"])


class EmailRequest(BaseModel):
    email: str


class CheckoutRequest(BaseModel):
    email: str
    subscription_choice: int


# WEBHOOK ENDPOINT - MUST BE DEFINED FIRST TO AVOID MIDDLEWARE CONFLICTS
@billing_router.post("/webhook")
async def stripe_webhook(
    request: Request,
    billing: BillingService = Depends(get_billing_service),
    gateway: StripeGateway = Depends(get_gateway),
):
    """
    Handle Stripe webhook events with signature verification.

    Unsigned or malformed deliveries are rejected with 400 and never processed.
    Storage and upstream failures answer non-2xx so Stripe retries the delivery;
    duplicates and ignored events answer 200.
    """
    webhook_secret = settings.stripe_webhook_secret
    if not webhook_secret:
        logger.error("STRIPE_WEBHOOK_SECRET environment variable is not set")
        return error_response("webhook_secret_missing", status=500, message="Webhook secret not configured")

    # Raw body is required for signature verification
    payload = await request.body()

    stripe_signature = request.headers.get("stripe-signature")
    if not stripe_signature:
        logger.error("Missing Stripe-Signature header")
        return error_response("missing_signature", status=400, message="Missing signature header")

    try:
        gateway.verify_webhook(payload, stripe_signature, webhook_secret)
        event_payload = json.loads(payload)
    except stripe.SignatureVerificationError as e:
        logger.error(f"Stripe webhook signature verification failed: {e}")
        return error_response("invalid_signature", status=400, message="Invalid webhook signature")
    except ValueError as e:
        logger.error(f"Invalid webhook payload: {e}")
        return error_response("invalid_payload", status=400, message="Invalid payload format")

    result = await billing.process_webhook(event_payload)
    if result.get("is_error"):
        return service_error_response(result)

    return JSONResponse(
        status_code=200,
        content={"ok": True, "received": True, **result["data"]},
    )


@billing_router.post("/register")
async def register(body: EmailRequest, billing: BillingService = Depends(get_billing_service)):
    """Register a user and create its Stripe customer."""
    result = await billing.register(body.email)
    if result.get("is_error"):
        return service_error_response(result)
    return success_response(result["data"], message="User register succeeded")


@billing_router.post("/checkout")
async def checkout(body: CheckoutRequest, billing: BillingService = Depends(get_billing_service)):
    """
    Change the plan of an active subscription, or return a Checkout URL
    for users without one.
    """
    result = await billing.checkout(body.email, body.subscription_choice)
    if result.get("is_error"):
        return service_error_response(result)
    message = (
        "Your subscription plan was successfully changed"
        if result["data"]["url"] is None
        else "Redirect to checkout"
    )
    return success_response(result["data"], message=message)


@billing_router.get("/checkout/success")
async def checkout_success():
    return success_response(message="Your order will be processed soon")


@billing_router.get("/checkout/cancel")
async def checkout_cancel():
    return error_response("checkout_canceled", message="There is an error with your order, please try again")


@billing_router.post("/cancel")
async def cancel_subscription(body: EmailRequest, billing: BillingService = Depends(get_billing_service)):
    """Cancel the user's subscription at the end of the current period."""
    result = await billing.cancel(body.email)
    if result.get("is_error"):
        return service_error_response(result)

    outcome = result["data"]["outcome"]
    if outcome == "unknown_user":
        return error_response("user_not_found", status=404, message="Please insert a valid email")
    if outcome == "already_cancelled":
        return error_response("already_cancelled", status=409, message="Your subscription has already been cancelled")
    return success_response(result["data"], message="Your subscription was successfully cancelled")


@billing_router.post("/portal")
async def create_billing_portal_session(body: EmailRequest, billing: BillingService = Depends(get_billing_service)):
    """Create a Stripe Billing Portal session for the user."""
    result = await billing.create_billing_portal_session(body.email)
    if result.get("is_error"):
        return service_error_response(result)
    return success_response(result["data"])


@billing_router.get("/dashboard")
async def dashboard(billing: BillingService = Depends(get_billing_service)):
    """All users with their subscription state."""
    result = await billing.dashboard()
    if result.get("is_error"):
        return service_error_response(result)
    return success_response(result["data"])
