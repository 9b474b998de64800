from __future__ import annotations

from typing import Optional

from fastapi import Header, Request

from ..errors import UnauthorizedError
from ..services.credit_service import CreditLedger
from ..services.grouping_service import GroupingService
from ..services.subscription_service import SubscriptionService


USER_ID_HEADER = "X-User-Id"
REQUEST_ID_HEADER = "X-Request-Id"


async def get_identity(
    x_user_id: Optional[str] = Header(default=None, alias=USER_ID_HEADER),
) -> str:
    """Identity set by the upstream identity provider; absent means no user."""
    if not x_user_id or not x_user_id.strip():
        raise UnauthorizedError("missing user identification")
    return x_user_id.strip()


async def get_correlation_id(
    x_request_id: Optional[str] = Header(default=None, alias=REQUEST_ID_HEADER),
) -> Optional[str]:
    return x_request_id


def get_credit_ledger(request: Request) -> CreditLedger:
    return request.app.state.credit_ledger


def get_subscription_service(request: Request) -> SubscriptionService:
    return request.app.state.subscription_service


def get_grouping_service(request: Request) -> GroupingService:
    return request.app.state.grouping_service
