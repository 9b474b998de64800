from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Iterable, Mapping, Optional, Type, TypeVar
from uuid import uuid4

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from .base import BaseDBManager
from ..errors import DuplicateUserError, PersistenceUnavailableError
from ..models.base import DBSerializableModel, utcnow
from ..models.ledger import LedgerEntry
from ..models.transaction import CreditTransaction
from ..models.user import SubscriptionStatus, UserCreditRecord


TModel = TypeVar("TModel", bound=DBSerializableModel)

# credits_total - credits_used + bonus_credits, evaluated server side
_AVAILABLE_EXPR: Dict[str, Any] = {
    "$subtract": [{"$add": ["$credits_total", "$bonus_credits"]}, "$credits_used"]
}


class MongoDBManager(BaseDBManager):
    """
    MongoDB implementation of BaseDBManager using motor (async driver).

    User records are keyed by identity in `_id`, which gives the uniqueness
    constraint for free. Every counter change is one `find_one_and_update`
    whose filter carries the balance condition, so the check and the write
    are a single atomic document operation.
    """

    def __init__(self, database: AsyncIOMotorDatabase) -> None:
        self._db = database

    @classmethod
    def from_client_uri(cls, uri: str, db_name: str) -> "MongoDBManager":
        client = AsyncIOMotorClient(uri, tz_aware=True)
        return cls(client[db_name])

    async def close(self) -> None:
        self._db.client.close()

    async def ensure_indexes(self) -> None:
        async with self._guard():
            await self._db[CreditTransaction.collection_name].create_index(
                [("user_id", ASCENDING), ("timestamp", DESCENDING)]
            )
            await self._db[LedgerEntry.collection_name].create_index(
                [("user_id", ASCENDING), ("created_at", DESCENDING)]
            )

    @asynccontextmanager
    async def _guard(self) -> AsyncIterator[None]:
        try:
            yield
        except PyMongoError as exc:
            raise PersistenceUnavailableError(
                "credit store unavailable", details={"error": str(exc)}
            ) from exc

    # Helper utilities
    @staticmethod
    def _prepare_insert(model: TModel) -> Dict[str, Any]:
        data = model.serialize_for_db()
        model_id = getattr(model, "id", None)
        if not model_id:
            model_id = uuid4().hex
            setattr(model, "id", model_id)
            data["id"] = model_id
        data["_id"] = model_id
        return data

    @staticmethod
    def _decode(model_cls: Type[TModel], doc: Optional[Mapping[str, Any]]) -> Optional[TModel]:
        if doc is None:
            return None
        data = dict(doc)
        if "_id" in data and "id" not in data:
            data["id"] = str(data["_id"])
        data.pop("_id", None)
        return model_cls.model_validate(data)

    async def _update_user(
        self, query: Dict[str, Any], update: Dict[str, Any]
    ) -> Optional[UserCreditRecord]:
        update.setdefault("$set", {})["updated_at"] = utcnow()
        col = self._db[UserCreditRecord.collection_name]
        async with self._guard():
            doc = await col.find_one_and_update(
                query, update, return_document=ReturnDocument.AFTER
            )
        return self._decode(UserCreditRecord, doc)

    # User operations
    async def add_user(self, user: UserCreditRecord) -> UserCreditRecord:
        col = self._db[UserCreditRecord.collection_name]
        data = self._prepare_insert(user)
        async with self._guard():
            try:
                await col.insert_one(data)
            except DuplicateKeyError as exc:
                raise DuplicateUserError(f"user {user.id} already exists") from exc
        return user

    async def get_user(self, user_id: str) -> Optional[UserCreditRecord]:
        col = self._db[UserCreditRecord.collection_name]
        async with self._guard():
            doc = await col.find_one({"_id": user_id})
        return self._decode(UserCreditRecord, doc)

    async def consume_credits(
        self, user_id: str, amount: int
    ) -> Optional[UserCreditRecord]:
        return await self._update_user(
            {"_id": user_id, "$expr": {"$gte": [_AVAILABLE_EXPR, amount]}},
            {"$inc": {"credits_used": amount}},
        )

    async def add_bonus_credits(
        self,
        user_id: str,
        amount: int,
        max_available: Optional[int] = None,
    ) -> Optional[UserCreditRecord]:
        query: Dict[str, Any] = {"_id": user_id}
        if max_available is not None:
            query["$expr"] = {"$lte": [_AVAILABLE_EXPR, max_available]}
        return await self._update_user(query, {"$inc": {"bonus_credits": amount}})

    async def add_total_credits(
        self, user_id: str, amount: int
    ) -> Optional[UserCreditRecord]:
        return await self._update_user(
            {"_id": user_id}, {"$inc": {"credits_total": amount}}
        )

    async def start_subscription_period(
        self,
        user_id: str,
        plan_id: str,
        credits: int,
        valid_until: datetime,
    ) -> Optional[UserCreditRecord]:
        return await self._update_user(
            {"_id": user_id},
            {
                "$set": {
                    "credits_total": credits,
                    "credits_used": 0,
                    "subscription_status": SubscriptionStatus.ACTIVE.value,
                    "subscription_plan": plan_id,
                    "subscription_valid_until": valid_until,
                }
            },
        )

    async def set_subscription_status(
        self, user_id: str, status: SubscriptionStatus
    ) -> Optional[UserCreditRecord]:
        return await self._update_user(
            {"_id": user_id},
            {"$set": {"subscription_status": SubscriptionStatus(status).value}},
        )

    # Transaction history
    async def add_transaction(self, tx: CreditTransaction) -> CreditTransaction:
        col = self._db[CreditTransaction.collection_name]
        data = self._prepare_insert(tx)
        async with self._guard():
            await col.insert_one(data)
        return tx

    async def get_transactions(
        self, user_id: str, limit: Optional[int] = None
    ) -> Iterable[CreditTransaction]:
        col = self._db[CreditTransaction.collection_name]
        cursor = col.find({"user_id": user_id}).sort("timestamp", DESCENDING)
        if limit is not None:
            cursor = cursor.limit(limit)
        async with self._guard():
            docs = await cursor.to_list(length=limit)
        return [self._decode(CreditTransaction, d) for d in docs if d is not None]  # type: ignore[misc]

    # Ledger
    async def add_ledger_entry(self, entry: LedgerEntry) -> LedgerEntry:
        col = self._db[LedgerEntry.collection_name]
        data = self._prepare_insert(entry)
        async with self._guard():
            await col.insert_one(data)
        return entry
