"""
UserRepository for operations on the flat JSON user collection
"""

import asyncio
import logging
from typing import Callable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from backend.utils.errors import DuplicateError, NotFoundError, StorageIOError
from models.user import StatusChange, UserRecord
from storage.json_store import JsonCollectionStore

logger = logging.getLogger(__name__)


class UserRepository:
    """
    Repository class for user records.

    Users are looked up interchangeably by email or by Stripe customer ID.
    Every read-modify-write cycle runs under one lock, so this object must be
    the only writer of its store.
    """

    def __init__(self, store: JsonCollectionStore):
        """
        Initialize the repository with a JSON store.

        Args:
            store: JsonCollectionStore holding the user records
        """
        self.store = store
        self.lock = asyncio.Lock()

    def _load(self) -> List[UserRecord]:
        data = self.store.load()
        if data is None:
            raise StorageIOError(f"Could not read {self.store.path}")
        try:
            return [UserRecord.model_validate(item) for item in data]
        except PydanticValidationError as e:
            logger.error(f"[DB_READ_ERROR] Invalid user record in {self.store.path}: {e}")
            raise StorageIOError(f"Invalid user record in {self.store.path}") from e

    def _save(self, users: List[UserRecord]) -> None:
        if not self.store.save([user.model_dump() for user in users]):
            raise StorageIOError(f"Could not write {self.store.path}")

    @staticmethod
    def _find(users: List[UserRecord], identifier: str) -> Optional[UserRecord]:
        for user in users:
            if user.matches(identifier):
                return user
        return None

    async def find_user(self, identifier: str) -> Optional[UserRecord]:
        """
        Retrieve a user by customer ID or email.

        Args:
            identifier: Stripe customer ID or email address (case-sensitive)

        Returns:
            UserRecord if found, None otherwise
        """
        return self._find(self._load(), identifier)

    async def list_users(self) -> List[UserRecord]:
        return self._load()

    async def register_user(self, email: str, create_customer: Callable[[str], str]) -> UserRecord:
        """
        Create a new user and its Stripe customer.

        Args:
            email: Email address of the new user
            create_customer: Callable creating the upstream customer, returns its ID

        Returns:
            Created UserRecord

        Raises:
            DuplicateError: a user with this email already exists
            UpstreamCallError: customer creation failed
            StorageIOError: the collection could not be read or written
        """
        async with self.lock:
            users = self._load()
            if any(user.email == email for user in users):
                raise DuplicateError(f"User {email} is already registered")

            customer_id = create_customer(email)
            user = UserRecord(email=email, customer_id=customer_id)
            users.append(user)
            self._save(users)
            logger.info(f"Registered user {email} as customer {customer_id}")
            return user

    async def _mutate(self, identifier: str, apply: Callable[[UserRecord], None]) -> UserRecord:
        async with self.lock:
            users = self._load()
            user = self._find(users, identifier)
            if user is None:
                raise NotFoundError(f"No user matches {identifier}")
            apply(user)
            self._save(users)
            return user

    async def set_active_subscription(self, identifier: str, subscription_id: Optional[str]) -> UserRecord:
        """Overwrite the user's active subscription ID (None clears it)."""
        def apply(user: UserRecord) -> None:
            user.active_subscription_id = subscription_id

        return await self._mutate(identifier, apply)

    async def set_subscription_status(self, identifier: str, change: StatusChange) -> UserRecord:
        """
        Overwrite the user's subscription status.

        ``cancel_at`` is only overwritten when ``change`` carries it explicitly.
        """
        def apply(user: UserRecord) -> None:
            user.subscription_status = change.status
            if change.touches_cancel_at:
                user.cancel_at = change.cancel_at

        return await self._mutate(identifier, apply)

    async def mark_canceled(self, identifier: str) -> UserRecord:
        """Set status to canceled and drop the active subscription in one write."""
        def apply(user: UserRecord) -> None:
            user.subscription_status = "canceled"
            user.active_subscription_id = None

        return await self._mutate(identifier, apply)

    async def delete_all(self) -> None:
        async with self.lock:
            if not self.store.clear():
                raise StorageIOError(f"Could not write {self.store.path}")
