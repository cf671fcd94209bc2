"""Coin prices of one-shot AI features (script tools, character art, ...).

Prices come from the ``feature_prices`` table when an enabled row exists,
otherwise from ``DEFAULT_FEATURE_PRICES``.
"""

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from studio_ledger.db.models import FeaturePriceModel
from studio_ledger.domain.errors import UnknownFeatureError
from studio_ledger.logging import get_logger
from studio_ledger.services import ledger

logger = get_logger(__name__)


@dataclass(frozen=True)
class FeaturePrice:
    """Coin price of an AI feature."""

    key: str
    label: str
    cost_coins: int
    description: str


DEFAULT_FEATURE_PRICES: dict[str, FeaturePrice] = {
    price.key: price
    for price in (
        FeaturePrice("extract_props", "Props AI Extract", 2, "AI extracts all props from screenplay"),
        FeaturePrice(
            "extract_locations",
            "Location AI Extract",
            2,
            "AI extracts filming locations with time slots",
        ),
        FeaturePrice("describe_location", "Location AI Describe", 1, "AI generates location scout notes"),
        FeaturePrice("generate_script", "Script AI Generate", 5, "AI generates scene content"),
        FeaturePrice("import_pdf", "PDF Import", 5, "AI parses full screenplay PDF (per episode)"),
        FeaturePrice("adapt_prompt", "Prompt Adapt", 1, "AI adapts video generation prompt"),
        FeaturePrice("generate_character", "Character Generate", 3, "AI generates character portrait"),
        FeaturePrice("generate_costume", "Costume Generate", 2, "AI generates costume reference image"),
        FeaturePrice("generate_prop_photo", "Prop Photo Generate", 2, "AI generates prop reference photo"),
        FeaturePrice(
            "generate_location_photo", "Location Photo", 2, "AI generates location reference photo"
        ),
        FeaturePrice("generate_cover", "Cover Generate", 2, "AI generates episode cover image"),
        FeaturePrice(
            "fill_character_specs", "Character Specs Fill", 1, "AI auto-fills character casting specs"
        ),
        FeaturePrice("ai_suggest", "Scene Suggestions", 1, "AI suggests scene improvements"),
        FeaturePrice("ai_stitch", "Script Stitch", 1, "AI stitches script sections"),
        FeaturePrice("ai_split", "Script Split", 1, "AI splits script into episodes"),
        FeaturePrice("ai_polish", "Script Polish", 2, "AI polishes script language"),
    )
}


def get_feature_price(session: Session, key: str) -> FeaturePrice:
    """Effective price of a feature.

    Raises:
        UnknownFeatureError: ``key`` has neither a default nor a stored row.
    """
    row = session.execute(
        select(FeaturePriceModel).where(FeaturePriceModel.feature_key == key)
    ).scalar_one_or_none()
    if row is not None and row.enabled:
        return FeaturePrice(row.feature_key, row.label, row.cost_coins, row.description or "")

    default = DEFAULT_FEATURE_PRICES.get(key)
    if default is None:
        raise UnknownFeatureError(f"Unknown AI feature: {key}")
    return default


def list_feature_prices(session: Session) -> list[FeaturePrice]:
    """Effective prices of all known features, sorted by key."""
    stored = {
        row.feature_key: row for row in session.execute(select(FeaturePriceModel)).scalars()
    }
    keys = sorted(set(DEFAULT_FEATURE_PRICES) | set(stored))
    prices = []
    for key in keys:
        try:
            prices.append(get_feature_price(session, key))
        except UnknownFeatureError:
            # Disabled override with no default
            continue
    return prices


def set_feature_price(
    session: Session,
    key: str,
    cost_coins: int,
    label: str | None = None,
    description: str | None = None,
    enabled: bool = True,
) -> FeaturePrice | None:
    """Create or replace the stored price of a feature.

    Returns:
        The new effective price, or None when the feature ends up disabled
        with no default to fall back on.
    """
    if cost_coins < 0:
        raise ValueError(f"Feature price must not be negative, got {cost_coins}")

    default = DEFAULT_FEATURE_PRICES.get(key)
    row = session.get(FeaturePriceModel, key)
    if row is None:
        row = FeaturePriceModel(feature_key=key)
        session.add(row)
    row.label = label or row.label or (default.label if default else key)
    row.cost_coins = cost_coins
    if description is not None:
        row.description = description
    elif row.description is None and default is not None:
        row.description = default.description
    row.enabled = enabled
    session.commit()

    logger.info("feature_price_set", feature=key, cost=cost_coins, enabled=enabled)
    try:
        return get_feature_price(session, key)
    except UnknownFeatureError:
        return None


def charge_feature(session: Session, user_id: str, key: str) -> int:
    """Charge a user for one use of an AI feature.

    Returns:
        The number of coins charged.

    Raises:
        InsufficientFundsError: Available balance is below the price.
        UnknownFeatureError: ``key`` is not a known feature.
    """
    price = get_feature_price(session, key)
    ledger.direct_deduction(
        session,
        user_id,
        price.cost_coins,
        description=f"AI feature: {price.label}",
        metadata={"type": "ai_feature", "feature": key},
    )
    logger.info("feature_charged", user_id=user_id, feature=key, cost=price.cost_coins)
    return price.cost_coins
