from typing import Optional

from pydantic import BaseModel


class UserRecord(BaseModel):
    email: str
    customer_id: str
    active_subscription_id: Optional[str] = None
    subscription_status: Optional[str] = None
    cancel_at: Optional[int] = None  # unix timestamp

    def matches(self, identifier: str) -> bool:
        return self.customer_id == identifier or self.email == identifier


class StatusChange(BaseModel):
    """
    New subscription status for a user.

    ``cancel_at`` is only applied when it was passed explicitly:
    ``StatusChange(status="active")`` keeps the stored value, while
    ``StatusChange(status="canceled", cancel_at=None)`` clears it.
    """
    status: str
    cancel_at: Optional[int] = None

    @property
    def touches_cancel_at(self) -> bool:
        return "cancel_at" in self.model_fields_set
