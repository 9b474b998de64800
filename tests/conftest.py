from __future__ import annotations

from typing import AsyncIterator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from lightlister.app import create_app
from lightlister.config import Settings
from lightlister.db.memory import InMemoryDBManager
from lightlister.logging.ledger_logger import LedgerLogger
from lightlister.services.credit_service import CreditLedger


@pytest.fixture
def db() -> InMemoryDBManager:
    return InMemoryDBManager()


@pytest.fixture
def ledger_path(tmp_path):
    return tmp_path / "ledger.log"


@pytest.fixture
def credit_ledger(db, ledger_path) -> CreditLedger:
    return CreditLedger(db=db, ledger=LedgerLogger(db=db, file_path=ledger_path))


@pytest.fixture
def settings(ledger_path) -> Settings:
    return Settings(
        ledger_log_path=ledger_path,
        mongo_uri="",
        ai_grouping_enabled=False,
        anthropic_api_key=None,
    )


@pytest_asyncio.fixture
async def client(settings, db) -> AsyncIterator[AsyncClient]:
    app = create_app(settings=settings, db=db)
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as http:
        yield http
