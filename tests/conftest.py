"""
Pytest configuration and fixtures for testing
"""
import pytest
import stripe

from backend.utils.errors import UpstreamCallError
from crud.user import UserRepository
from services.billing_service import BillingService
from services.reconciler import SubscriptionReconciler
from storage.json_store import EventLog, JsonCollectionStore

PRICE_BASIC = "price_basic"
PRICE_PRO = "price_pro"
PRICE_IDS = [PRICE_BASIC, PRICE_PRO]


class FakeGateway:
    """In-memory stand-in for StripeGateway."""

    def __init__(self):
        self.customers = []
        self.subscriptions = {}  # customer_id -> subscription dict
        self.plan_changes = []
        self.cancellations = []
        self.checkout_sessions = []
        self.fail = False

    def _check(self, action):
        if self.fail:
            raise UpstreamCallError(f"Failed to {action}: network down")

    def verify_webhook(self, payload, signature, secret):
        if signature != "valid":
            raise stripe.SignatureVerificationError("No signatures found", signature)
        return payload

    def create_customer(self, email):
        self._check("create customer")
        customer_id = f"cus_{len(self.customers) + 1}"
        self.customers.append((customer_id, email))
        return customer_id

    def latest_subscription(self, customer_id):
        self._check("list subscriptions")
        return self.subscriptions.get(customer_id)

    def change_plan(self, subscription_id, price_id):
        self._check("change subscription plan")
        self.plan_changes.append((subscription_id, price_id))

    def cancel_at_period_end(self, subscription_id):
        self._check("cancel subscription")
        self.cancellations.append(subscription_id)

    def create_checkout_session(self, customer_id, price_id):
        self._check("create checkout session")
        self.checkout_sessions.append((customer_id, price_id))
        return f"https://checkout.stripe.test/{customer_id}"

    def create_portal_session(self, customer_id):
        self._check("create billing portal session")
        return f"https://billing.stripe.test/{customer_id}"

    def cancel_all_subscriptions(self):
        count = len(self.subscriptions)
        self.subscriptions.clear()
        return count

    def delete_all_customers(self):
        count = len(self.customers)
        self.customers.clear()
        return count


def subscription(sub_id, price_id):
    return {"id": sub_id, "plan": {"id": price_id}, "items": {"data": [{"id": "si_1", "price": {"id": price_id}}]}}


def stripe_event(event_id, event_type, **obj):
    return {"id": event_id, "type": event_type, "created": 1700000000, "data": {"object": obj}}


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def user_store(tmp_path):
    return JsonCollectionStore(tmp_path / "users.json")


@pytest.fixture
def event_log(tmp_path):
    return EventLog(JsonCollectionStore(tmp_path / "processed_events.json"))


@pytest.fixture
def users(user_store):
    return UserRepository(user_store)


@pytest.fixture
def reconciler(users, event_log, gateway):
    return SubscriptionReconciler(users, event_log, gateway, PRICE_IDS)


@pytest.fixture
def billing(users, reconciler, gateway):
    return BillingService(users, reconciler, gateway, PRICE_IDS)
