from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..db.base import BaseDBManager
from ..errors import (
    DuplicateUserError,
    InsufficientCreditsError,
    LightlisterError,
    UserNotFoundError,
)
from ..logging.ledger_logger import LedgerLogger
from ..models.api_models import GrantOutcome
from ..models.transaction import CreditTransaction, TransactionType
from ..models.user import CreditDisplay, UserCreditRecord


logger = logging.getLogger(__name__)

STARTER_GRANT = 10
GOODWILL_GRANT = 5
LOW_CREDIT_THRESHOLD = 20

# Flat pricing: one analysis costs one credit whatever the image count.
CREDITS_PER_ANALYSIS = 1


class CreditLedger:
    """
    Credit accounting over a user's stored counters.

    Available credits are always derived as
    `credits_total - credits_used + bonus_credits`. Debits and grants are
    delegated to the store as single conditional updates; this class never
    reads a balance and writes it back.
    """

    def __init__(
        self,
        db: BaseDBManager,
        ledger: LedgerLogger,
        starter_grant: int = STARTER_GRANT,
        goodwill_grant: int = GOODWILL_GRANT,
        low_credit_threshold: int = LOW_CREDIT_THRESHOLD,
    ) -> None:
        self._db = db
        self._ledger = ledger
        self._starter_grant = starter_grant
        self._goodwill_grant = goodwill_grant
        self._low_credit_threshold = low_credit_threshold

    @staticmethod
    def get_available_credits(record: UserCreditRecord) -> int:
        return record.credits_total - record.credits_used + record.bonus_credits

    @staticmethod
    def credits_needed_for(image_count: int) -> int:
        return CREDITS_PER_ANALYSIS

    def can_consume(
        self, record: UserCreditRecord, credits_needed: int = CREDITS_PER_ANALYSIS
    ) -> bool:
        return self.get_available_credits(record) >= credits_needed

    def display_credits(self, record: UserCreditRecord) -> CreditDisplay:
        raw = self.get_available_credits(record)
        if raw < 0:
            logger.error(
                "Negative credit balance for user %s",
                record.id,
                extra={
                    "credits_total": record.credits_total,
                    "credits_used": record.credits_used,
                    "bonus_credits": record.bonus_credits,
                },
            )
        available = max(0, raw)
        return CreditDisplay(
            available=available,
            total=record.credits_total + record.bonus_credits,
            used=record.credits_used,
            bonus=record.bonus_credits,
            low_credits=0 < available < self._low_credit_threshold,
            out_of_credits=available == 0,
        )

    async def get_user(self, identity: str) -> UserCreditRecord:
        record = await self._db.get_user(identity)
        if record is None:
            raise UserNotFoundError(f"no credit record for {identity}")
        return record

    async def ensure_user_exists(
        self,
        identity: str,
        email: str | None = None,
        correlation_id: str | None = None,
    ) -> UserCreditRecord:
        """
        Return the user's record, creating it with the starter grant on first
        access. A concurrent creation for the same identity surfaces as a
        duplicate insert; the winner's record is re-read and returned.
        """
        existing = await self._db.get_user(identity)
        if existing is not None:
            return existing

        record = UserCreditRecord(
            id=identity,
            email=email,
            credits_total=self._starter_grant,
            credits_used=0,
            bonus_credits=0,
        )
        try:
            record = await self._db.add_user(record)
        except DuplicateUserError:
            logger.info("Concurrent creation for user %s, re-reading", identity)
            return await self.get_user(identity)

        await self._record(
            record,
            TransactionType.STARTER_GRANT,
            credits=self._starter_grant,
            message="User created with starter credits",
            description="Starter credits",
            correlation_id=correlation_id,
        )
        return record

    async def consume(
        self,
        identity: str,
        image_count: int = 1,
        description: str | None = None,
        correlation_id: str | None = None,
    ) -> UserCreditRecord:
        """
        Debit one analysis. Raises InsufficientCreditsError if the balance
        does not cover it at the moment of the write. Callers must invoke
        this at most once per completed analysis; there is no idempotency key.
        """
        amount = self.credits_needed_for(image_count)
        updated = await self._db.consume_credits(identity, amount)
        if updated is None:
            current = await self.get_user(identity)
            await self._ledger.log_error(
                message="Insufficient credits for analysis",
                details={
                    "requested": amount,
                    "available": self.get_available_credits(current),
                    "image_count": image_count,
                },
                user_id=identity,
                correlation_id=correlation_id,
            )
            raise InsufficientCreditsError(
                "insufficient credits",
                details={"available": max(0, self.get_available_credits(current))},
            )

        # Debit is committed; audit write failures are logged, not raised.
        try:
            await self._record(
                updated,
                TransactionType.CONSUME,
                credits=amount,
                message="Credit consumed",
                description=description or f"Analysis - {image_count} photos",
                metadata={"image_count": image_count},
                correlation_id=correlation_id,
            )
        except LightlisterError:
            logger.exception(
                "Credit consumed for %s but the transaction record failed", identity
            )
        return updated

    async def grant_bonus(
        self,
        identity: str,
        amount: int,
        description: str | None = None,
        correlation_id: str | None = None,
    ) -> UserCreditRecord:
        if amount <= 0:
            raise ValueError("amount must be positive")

        updated = await self._db.add_bonus_credits(identity, amount)
        if updated is None:
            raise UserNotFoundError(f"no credit record for {identity}")

        await self._record(
            updated,
            TransactionType.BONUS_GRANT,
            credits=amount,
            message="Bonus credits granted",
            description=description,
            correlation_id=correlation_id,
        )
        return updated

    async def grant_goodwill(
        self, identity: str, correlation_id: str | None = None
    ) -> GrantOutcome:
        """
        First call creates the user with the starter grant. After that, top
        up a user who has run dry; users with credits left get nothing.
        """
        if await self._db.get_user(identity) is None:
            record = await self.ensure_user_exists(identity, correlation_id=correlation_id)
            return GrantOutcome(
                success=True,
                message=f"Welcome! You've been granted {self._starter_grant} starter credits.",
                credits_granted=self._starter_grant,
                total_credits=max(0, self.get_available_credits(record)),
            )

        amount = self._goodwill_grant
        updated = await self._db.add_bonus_credits(identity, amount, max_available=0)
        if updated is None:
            current = await self.get_user(identity)
            available = self.get_available_credits(current)
            return GrantOutcome(
                success=False,
                message=f"You already have {available} credits available.",
                credits_granted=0,
                total_credits=available,
            )

        await self._record(
            updated,
            TransactionType.BONUS_GRANT,
            credits=amount,
            message="Goodwill credits granted",
            description="Zero balance top-up",
            correlation_id=correlation_id,
        )
        return GrantOutcome(
            success=True,
            message=f"You've been granted {amount} bonus credits!",
            credits_granted=amount,
            total_credits=max(0, self.get_available_credits(updated)),
        )

    async def add_purchased_credits(
        self,
        identity: str,
        amount: int,
        description: str | None = None,
        metadata: Dict[str, Any] | None = None,
        correlation_id: str | None = None,
    ) -> UserCreditRecord:
        if amount <= 0:
            raise ValueError("amount must be positive")

        updated = await self._db.add_total_credits(identity, amount)
        if updated is None:
            raise UserNotFoundError(f"no credit record for {identity}")

        await self._record(
            updated,
            TransactionType.PURCHASE,
            credits=amount,
            message="Credits purchased",
            description=description,
            metadata=metadata,
            correlation_id=correlation_id,
        )
        return updated

    async def get_history(
        self, identity: str, limit: Optional[int] = 20
    ) -> List[CreditTransaction]:
        return list(await self._db.get_transactions(identity, limit=limit))

    async def _record(
        self,
        record: UserCreditRecord,
        transaction_type: TransactionType,
        credits: int,
        message: str,
        description: str | None = None,
        metadata: Dict[str, Any] | None = None,
        correlation_id: str | None = None,
    ) -> CreditTransaction:
        available = self.get_available_credits(record)
        tx = CreditTransaction(
            user_id=record.id,
            transaction_type=transaction_type,
            credits=credits,
            available_after=available,
            description=description,
            metadata=metadata or {},
        )
        tx = await self._db.add_transaction(tx)

        await self._ledger.log_transaction(
            user_id=record.id,
            message=message,
            details={
                "type": tx.transaction_type,
                "credits": credits,
                "available": available,
                "description": description or "",
            },
            correlation_id=correlation_id,
        )
        return tx
