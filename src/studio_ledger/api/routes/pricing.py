"""Pricing endpoints."""

from fastapi import APIRouter
from pydantic import BaseModel, Field

from studio_ledger.api.deps import SessionDep
from studio_ledger.config import settings
from studio_ledger.services import features
from studio_ledger.services.features import FeaturePrice
from studio_ledger.services.pricing import (
    MODEL_PRICING,
    allocate_costs,
    estimate_cost,
    is_purchasable,
    resolve_duration,
)

router = APIRouter(prefix="/pricing", tags=["Pricing"])


class ModelPriceResponse(BaseModel):
    """Per-second price of a model at one resolution."""

    model: str
    resolution: str
    cents_per_second: int


class PricingResponse(BaseModel):
    """Full generation price list."""

    markup: int
    default_segment_duration: int
    models: list[ModelPriceResponse]


class EstimateSegment(BaseModel):
    """Segment to price."""

    duration_sec: int | None = Field(None, ge=1, le=600)


class EstimateRequest(BaseModel):
    """Request to estimate the cost of a batch of segments."""

    model: str
    resolution: str
    segments: list[EstimateSegment] = Field(default_factory=list, max_length=500)


class EstimateResponse(BaseModel):
    """Coin cost estimate."""

    model: str
    resolution: str
    purchasable: bool
    total_seconds: int
    coins: int
    per_segment: list[int]


class FeaturePriceResponse(BaseModel):
    """Coin price of an AI feature."""

    key: str
    label: str
    cost_coins: int
    description: str

    @classmethod
    def from_price(cls, price: FeaturePrice) -> "FeaturePriceResponse":
        return cls(
            key=price.key,
            label=price.label,
            cost_coins=price.cost_coins,
            description=price.description,
        )


@router.get(
    "",
    response_model=PricingResponse,
    summary="Get pricing",
    description="Per-second cost of every model/resolution pair.",
)
async def get_pricing() -> PricingResponse:
    """List generation prices."""
    return PricingResponse(
        markup=settings.price_markup,
        default_segment_duration=settings.default_segment_duration,
        models=[
            ModelPriceResponse(model=model, resolution=resolution, cents_per_second=cents)
            for model, prices in MODEL_PRICING.items()
            for resolution, cents in prices.items()
        ],
    )


@router.post(
    "/estimate",
    response_model=EstimateResponse,
    summary="Estimate cost",
    description="Coin cost of generating a batch of segments.",
)
async def estimate(request: EstimateRequest) -> EstimateResponse:
    """Estimate the coin cost of a batch."""
    durations = [segment.duration_sec for segment in request.segments]
    return EstimateResponse(
        model=request.model,
        resolution=request.resolution,
        purchasable=is_purchasable(request.model, request.resolution),
        total_seconds=sum(resolve_duration(d) for d in durations),
        coins=estimate_cost(durations, request.model, request.resolution),
        per_segment=allocate_costs(durations, request.model, request.resolution),
    )


@router.get(
    "/features",
    response_model=list[FeaturePriceResponse],
    summary="AI feature prices",
    description="Coin price of every one-shot AI feature.",
)
async def get_feature_prices(session: SessionDep) -> list[FeaturePriceResponse]:
    """List AI feature prices."""
    return [FeaturePriceResponse.from_price(p) for p in features.list_feature_prices(session)]
