"""Admin endpoints for coin grants and AI feature prices."""

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from studio_ledger.api.deps import OptionalUserDep, SessionDep
from studio_ledger.api.routes.pricing import FeaturePriceResponse
from studio_ledger.api.routes.tokens import BalanceResponse
from studio_ledger.config import settings
from studio_ledger.domain.enums import TransactionType
from studio_ledger.logging import get_logger
from studio_ledger.services import features, ledger

router = APIRouter(prefix="/admin", tags=["Admin"])
logger = get_logger(__name__)


class GrantRequest(BaseModel):
    """Request to grant bonus coins to a user."""

    amount: int = Field(..., ge=1, description="Coins to grant")
    reason: str | None = Field(None, max_length=500)


class FeaturePriceRequest(BaseModel):
    """Request to override the price of an AI feature."""

    cost_coins: int = Field(..., ge=0)
    label: str | None = Field(None, max_length=255)
    description: str | None = None
    enabled: bool = True


@router.post(
    "/users/{user_id}/grant",
    response_model=BalanceResponse,
    summary="Grant coins",
    description="Credit bonus coins to a user.",
)
async def grant_coins(
    user_id: str,
    request: GrantRequest,
    session: SessionDep,
    admin_id: OptionalUserDep,
) -> BalanceResponse:
    """Grant bonus coins to a user."""
    if request.amount > settings.max_grant_amount:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Amount must be between 1 and {settings.max_grant_amount}",
        )

    snapshot = ledger.add_coins(
        session,
        user_id,
        request.amount,
        TransactionType.BONUS,
        metadata={"type": "admin_grant", "granted_by": admin_id, "reason": request.reason},
    )
    logger.info("admin_grant", user_id=user_id, amount=request.amount, granted_by=admin_id)
    return BalanceResponse.from_snapshot(snapshot)


@router.put(
    "/features/{feature_key}",
    response_model=FeaturePriceResponse | None,
    summary="Set feature price",
    description="Override the coin price of an AI feature, or disable the override.",
)
async def set_feature_price(
    feature_key: str,
    request: FeaturePriceRequest,
    session: SessionDep,
) -> FeaturePriceResponse | None:
    """Store a feature price override."""
    price = features.set_feature_price(
        session,
        feature_key,
        request.cost_coins,
        label=request.label,
        description=request.description,
        enabled=request.enabled,
    )
    if price is None:
        return None
    return FeaturePriceResponse.from_price(price)
