from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, Optional

from ..models.ledger import LedgerEntry
from ..models.transaction import CreditTransaction
from ..models.user import SubscriptionStatus, UserCreditRecord


class BaseDBManager(ABC):
    """
    DB-agnostic async manager interface.

    Every counter mutation is a single conditional update executed by the
    backend, so two requests for the same user can never both pass a balance
    check and both debit. Methods that take a condition return None when the
    record is missing or the condition does not hold; callers re-read to
    tell the two apart.
    """

    async def close(self) -> None:
        """Release backend resources. No-op by default."""
        return None

    # User operations
    @abstractmethod
    async def add_user(self, user: UserCreditRecord) -> UserCreditRecord:
        """Insert a new record. Raises DuplicateUserError if the id exists."""

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[UserCreditRecord]: ...

    @abstractmethod
    async def consume_credits(
        self, user_id: str, amount: int
    ) -> Optional[UserCreditRecord]:
        """
        Atomically `credits_used += amount` only if
        `credits_total - credits_used + bonus_credits >= amount`.
        """

    @abstractmethod
    async def add_bonus_credits(
        self,
        user_id: str,
        amount: int,
        max_available: Optional[int] = None,
    ) -> Optional[UserCreditRecord]:
        """
        Atomically `bonus_credits += amount`. With `max_available` set, the
        grant only applies while the raw balance is at most that value.
        """

    @abstractmethod
    async def add_total_credits(
        self, user_id: str, amount: int
    ) -> Optional[UserCreditRecord]: ...

    @abstractmethod
    async def start_subscription_period(
        self,
        user_id: str,
        plan_id: str,
        credits: int,
        valid_until: datetime,
    ) -> Optional[UserCreditRecord]:
        """Set `credits_total = credits`, reset `credits_used` and mark active."""

    @abstractmethod
    async def set_subscription_status(
        self, user_id: str, status: SubscriptionStatus
    ) -> Optional[UserCreditRecord]: ...

    # Transaction history
    @abstractmethod
    async def add_transaction(self, tx: CreditTransaction) -> CreditTransaction: ...

    @abstractmethod
    async def get_transactions(
        self, user_id: str, limit: Optional[int] = None
    ) -> Iterable[CreditTransaction]:
        """Most recent first."""

    # Ledger
    @abstractmethod
    async def add_ledger_entry(self, entry: LedgerEntry) -> LedgerEntry: ...
