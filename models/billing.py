from enum import Enum
from typing import Optional

from pydantic import BaseModel

from models.user import UserRecord


class CheckoutIntent(str, Enum):
    CHANGE_PLAN = "change_plan"
    NEEDS_NEW_CHECKOUT = "needs_new_checkout"
    UNKNOWN_USER = "unknown_user"


class CheckoutResolution(BaseModel):
    intent: CheckoutIntent
    user: Optional[UserRecord] = None


class CancellationOutcome(str, Enum):
    CANCEL_SCHEDULED = "cancel_scheduled"
    ALREADY_CANCELLED = "already_cancelled"
    UNKNOWN_USER = "unknown_user"


class ReconcileOutcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    REJECTED = "rejected"
    IGNORED = "ignored"
