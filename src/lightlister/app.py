"""
Application factory.

Wires the store, ledger logger and services once per app and stores them on
`app.state`; route handlers receive them through FastAPI dependencies.

Run locally:
  uvicorn lightlister.app:create_app --factory --reload
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import anthropic
from fastapi import FastAPI

from .ai.grouping_client import AnthropicImageGrouper, ImageGrouper
from .api.batch import router as batch_router
from .api.errors import register_exception_handlers
from .api.router import router as credits_router
from .config import Settings, get_settings
from .db.base import BaseDBManager
from .db.memory import InMemoryDBManager
from .db.mongo import MongoDBManager
from .logging.ledger_logger import LedgerLogger
from .logging.setup import configure_logging
from .services.credit_service import CreditLedger
from .services.grouping_service import GroupingService
from .services.subscription_service import SubscriptionService


logger = logging.getLogger(__name__)


def create_db_manager(settings: Settings) -> BaseDBManager:
    if settings.mongo_uri:
        return MongoDBManager.from_client_uri(settings.mongo_uri, settings.mongo_db)
    logger.warning("No Mongo URI configured, using the in-memory credit store")
    return InMemoryDBManager()


def create_image_grouper(settings: Settings) -> Optional[ImageGrouper]:
    if not settings.ai_grouping_enabled or settings.anthropic_api_key is None:
        return None
    client = anthropic.AsyncAnthropic(
        api_key=settings.anthropic_api_key.get_secret_value()
    )
    return AnthropicImageGrouper(
        client,
        model=settings.anthropic_model,
        max_tokens=settings.anthropic_max_tokens,
    )


def create_app(
    settings: Optional[Settings] = None,
    db: Optional[BaseDBManager] = None,
    grouper: Optional[ImageGrouper] = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    db = db or create_db_manager(settings)
    ledger = LedgerLogger(db=db, file_path=settings.ledger_log_path)
    credit_ledger = CreditLedger(
        db=db,
        ledger=ledger,
        starter_grant=settings.starter_grant,
        goodwill_grant=settings.goodwill_grant,
        low_credit_threshold=settings.low_credit_threshold,
    )
    subscription_service = SubscriptionService(
        db=db, ledger=ledger, credit_ledger=credit_ledger
    )
    grouping_service = GroupingService(
        grouper=grouper or create_image_grouper(settings),
        ai_max_images=settings.ai_max_images,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if isinstance(db, MongoDBManager):
            await db.ensure_indexes()
        await ledger.log_system("Service started", {"store": type(db).__name__})
        yield
        await db.close()

    app = FastAPI(title="Lightlister credits and grouping API", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = db
    app.state.credit_ledger = credit_ledger
    app.state.subscription_service = subscription_service
    app.state.grouping_service = grouping_service

    register_exception_handlers(app)
    app.include_router(credits_router)
    app.include_router(batch_router)

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return app
