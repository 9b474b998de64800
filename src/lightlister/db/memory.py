from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .base import BaseDBManager
from ..errors import DuplicateUserError
from ..models.base import utcnow
from ..models.ledger import LedgerEntry
from ..models.transaction import CreditTransaction
from ..models.user import SubscriptionStatus, UserCreditRecord


class InMemoryDBManager(BaseDBManager):
    """
    Simple in-memory implementation used for tests and local development.

    Conditional updates contain no await, so each one runs to completion on
    the event loop before any other coroutine can observe the record.
    """

    def __init__(self) -> None:
        self._users: Dict[str, UserCreditRecord] = {}
        self._transactions: List[CreditTransaction] = []
        self._ledger: List[LedgerEntry] = []
        self._id_counter: int = 0

    def _next_id(self) -> str:
        self._id_counter += 1
        return str(self._id_counter)

    def _touch(self, user: UserCreditRecord) -> UserCreditRecord:
        user.updated_at = utcnow()
        return user.model_copy()

    # User operations
    async def add_user(self, user: UserCreditRecord) -> UserCreditRecord:
        if user.id in self._users:
            raise DuplicateUserError(f"user {user.id} already exists")
        self._users[user.id] = user.model_copy()
        return user

    async def get_user(self, user_id: str) -> Optional[UserCreditRecord]:
        user = self._users.get(user_id)
        return user.model_copy() if user is not None else None

    async def consume_credits(
        self, user_id: str, amount: int
    ) -> Optional[UserCreditRecord]:
        user = self._users.get(user_id)
        if user is None or user.available < amount:
            return None
        user.credits_used += amount
        return self._touch(user)

    async def add_bonus_credits(
        self,
        user_id: str,
        amount: int,
        max_available: Optional[int] = None,
    ) -> Optional[UserCreditRecord]:
        user = self._users.get(user_id)
        if user is None:
            return None
        if max_available is not None and user.available > max_available:
            return None
        user.bonus_credits += amount
        return self._touch(user)

    async def add_total_credits(
        self, user_id: str, amount: int
    ) -> Optional[UserCreditRecord]:
        user = self._users.get(user_id)
        if user is None:
            return None
        user.credits_total += amount
        return self._touch(user)

    async def start_subscription_period(
        self,
        user_id: str,
        plan_id: str,
        credits: int,
        valid_until: datetime,
    ) -> Optional[UserCreditRecord]:
        user = self._users.get(user_id)
        if user is None:
            return None
        user.credits_total = credits
        user.credits_used = 0
        user.subscription_status = SubscriptionStatus.ACTIVE
        user.subscription_plan = plan_id
        user.subscription_valid_until = valid_until
        return self._touch(user)

    async def set_subscription_status(
        self, user_id: str, status: SubscriptionStatus
    ) -> Optional[UserCreditRecord]:
        user = self._users.get(user_id)
        if user is None:
            return None
        user.subscription_status = status
        return self._touch(user)

    # Transaction history
    async def add_transaction(self, tx: CreditTransaction) -> CreditTransaction:
        if tx.id is None:
            tx.id = self._next_id()
        self._transactions.append(tx)
        return tx

    async def get_transactions(
        self, user_id: str, limit: Optional[int] = None
    ) -> Iterable[CreditTransaction]:
        # Appended in time order, so reversing gives newest first
        txs = [t for t in reversed(self._transactions) if t.user_id == user_id]
        return txs[:limit] if limit is not None else txs

    # Ledger
    async def add_ledger_entry(self, entry: LedgerEntry) -> LedgerEntry:
        if entry.id is None:
            entry.id = self._next_id()
        self._ledger.append(entry)
        return entry

    @property
    def ledger_entries(self) -> List[LedgerEntry]:
        return list(self._ledger)
