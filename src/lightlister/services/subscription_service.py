from __future__ import annotations

from datetime import timedelta
from typing import Dict, List

from ..db.base import BaseDBManager
from ..errors import UnknownProductError, UserNotFoundError
from ..logging.ledger_logger import LedgerLogger
from ..models.base import utcnow
from ..models.products import CATALOG, SUBSCRIPTION_PERIOD_DAYS, CreditProduct
from ..models.transaction import CreditTransaction, TransactionType
from ..models.user import SubscriptionStatus, UserCreditRecord
from .credit_service import CreditLedger


class SubscriptionService:
    """
    Applies completed purchases to the ledger.

    Checkout and payment-event verification happen upstream; this service
    only maps a verified product onto the user's counters.
    """

    def __init__(
        self,
        db: BaseDBManager,
        ledger: LedgerLogger,
        credit_ledger: CreditLedger,
        catalog: Dict[str, CreditProduct] | None = None,
    ) -> None:
        self._db = db
        self._ledger = ledger
        self._credit_ledger = credit_ledger
        self._catalog = catalog if catalog is not None else CATALOG

    def list_products(self) -> List[CreditProduct]:
        return list(self._catalog.values())

    def get_product(self, product_id: str) -> CreditProduct:
        product = self._catalog.get(product_id)
        if product is None:
            raise UnknownProductError(f"unknown product {product_id}")
        return product

    async def apply_purchase(
        self,
        identity: str,
        product_id: str,
        correlation_id: str | None = None,
    ) -> UserCreditRecord:
        product = self.get_product(product_id)
        if not product.recurring:
            return await self._credit_ledger.add_purchased_credits(
                identity,
                product.credits,
                description=product.name,
                metadata={"product_id": product.id, "price": product.price},
                correlation_id=correlation_id,
            )
        return await self._start_subscription(identity, product, correlation_id)

    async def cancel_subscription(
        self, identity: str, correlation_id: str | None = None
    ) -> UserCreditRecord:
        updated = await self._db.set_subscription_status(
            identity, SubscriptionStatus.CANCELLED
        )
        if updated is None:
            raise UserNotFoundError(f"no credit record for {identity}")

        await self._ledger.log_transaction(
            user_id=identity,
            message="Subscription cancelled",
            details={"subscription_plan": updated.subscription_plan},
            correlation_id=correlation_id,
        )
        return updated

    async def _start_subscription(
        self,
        identity: str,
        plan: CreditProduct,
        correlation_id: str | None,
    ) -> UserCreditRecord:
        # A new period replaces the allotment and resets usage; bonus
        # credits carry over.
        valid_until = utcnow() + timedelta(days=SUBSCRIPTION_PERIOD_DAYS)
        updated = await self._db.start_subscription_period(
            identity, plan.id, plan.credits, valid_until
        )
        if updated is None:
            raise UserNotFoundError(f"no credit record for {identity}")

        available = CreditLedger.get_available_credits(updated)
        await self._db.add_transaction(
            CreditTransaction(
                user_id=identity,
                transaction_type=TransactionType.SUBSCRIPTION,
                credits=plan.credits,
                available_after=available,
                description=f"Subscription allocation for plan {plan.name}",
                metadata={"product_id": plan.id, "price": plan.price},
            )
        )
        await self._ledger.log_transaction(
            user_id=identity,
            message="Subscription credits allocated",
            details={
                "subscription_plan": plan.id,
                "credits": plan.credits,
                "valid_until": valid_until.isoformat(),
            },
            correlation_id=correlation_id,
        )
        return updated
