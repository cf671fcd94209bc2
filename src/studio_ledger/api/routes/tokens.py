"""Coin balance endpoints."""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from studio_ledger.api.deps import CurrentUserDep, SessionDep, http_error
from studio_ledger.config import settings
from studio_ledger.domain.enums import TransactionType
from studio_ledger.domain.errors import LedgerError
from studio_ledger.domain.models import BalanceSnapshot
from studio_ledger.logging import get_logger
from studio_ledger.services import features, ledger

router = APIRouter(prefix="/tokens", tags=["Tokens"])
logger = get_logger(__name__)


class BalanceResponse(BaseModel):
    """A user's coin balance."""

    user_id: str
    balance: int
    reserved: int
    available: int
    total_purchased: int
    total_consumed: int

    @classmethod
    def from_snapshot(cls, snapshot: BalanceSnapshot) -> "BalanceResponse":
        return cls(
            user_id=snapshot.user_id,
            balance=snapshot.balance,
            reserved=snapshot.reserved,
            available=snapshot.available,
            total_purchased=snapshot.total_purchased,
            total_consumed=snapshot.total_consumed,
        )


class PurchaseRequest(BaseModel):
    """Request to credit purchased coins."""

    amount: int = Field(..., ge=1, description="Coins purchased")
    payment_reference: str | None = Field(None, max_length=255)


class TransactionResponse(BaseModel):
    """One audit entry of the coin ledger."""

    id: str
    type: str
    amount: int
    balance_after: int
    description: str | None = None
    job_kind: str | None = None
    job_id: str | None = None
    metadata: dict[str, Any] | None = None
    created_at: datetime | None = None


class FeatureChargeResponse(BaseModel):
    """Result of charging for an AI feature."""

    feature: str
    coins_charged: int
    balance: BalanceResponse


@router.get(
    "/balance",
    response_model=BalanceResponse,
    summary="Get balance",
    description="Current balance, reserved and available coins of the caller.",
)
async def get_balance(session: SessionDep, user_id: CurrentUserDep) -> BalanceResponse:
    """Get the caller's balance."""
    return BalanceResponse.from_snapshot(ledger.get_balance(session, user_id))


@router.post(
    "/purchase",
    response_model=BalanceResponse,
    summary="Record purchase",
    description="Credit coins bought by the caller.",
)
async def purchase(
    request: PurchaseRequest,
    session: SessionDep,
    user_id: CurrentUserDep,
) -> BalanceResponse:
    """Credit purchased coins to the caller."""
    if request.amount > settings.max_grant_amount:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Amount must be at most {settings.max_grant_amount}",
        )

    metadata = {"payment_reference": request.payment_reference} if request.payment_reference else None
    snapshot = ledger.add_coins(
        session, user_id, request.amount, TransactionType.PURCHASE, metadata=metadata
    )
    return BalanceResponse.from_snapshot(snapshot)


@router.get(
    "/transactions",
    response_model=list[TransactionResponse],
    summary="List transactions",
    description="Most recent coin movements of the caller.",
)
async def list_transactions(
    session: SessionDep,
    user_id: CurrentUserDep,
    limit: int = Query(default=50, ge=1, le=500),
) -> list[TransactionResponse]:
    """List the caller's ledger entries, newest first."""
    return [
        TransactionResponse(
            id=str(tx.id),
            type=tx.type,
            amount=tx.amount,
            balance_after=tx.balance_after,
            description=tx.description,
            job_kind=tx.job_kind,
            job_id=str(tx.job_id) if tx.job_id else None,
            metadata=tx.metadata_,
            created_at=tx.created_at,
        )
        for tx in ledger.list_transactions(session, user_id, limit=limit)
    ]


@router.post(
    "/features/{feature_key}",
    response_model=FeatureChargeResponse,
    summary="Charge AI feature",
    description="Charge the caller for one use of an AI feature.",
)
async def charge_feature(
    feature_key: str,
    session: SessionDep,
    user_id: CurrentUserDep,
) -> FeatureChargeResponse:
    """Deduct the price of an AI feature from the caller's balance."""
    try:
        cost = features.charge_feature(session, user_id, feature_key)
    except LedgerError as e:
        raise http_error(e) from e

    return FeatureChargeResponse(
        feature=feature_key,
        coins_charged=cost,
        balance=BalanceResponse.from_snapshot(ledger.get_balance(session, user_id)),
    )
