"""SQLAlchemy ORM models."""

from datetime import datetime
from typing import Any
from uuid import UUID as PyUUID
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# =============================================================================
# Coin balances
# =============================================================================


class UserBalanceModel(Base):
    """Per-user coin balance and outstanding reservations."""

    __tablename__ = "user_balances"

    id: Mapped[PyUUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    reserved: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_purchased: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    total_consumed: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_user_balances_balance_non_negative"),
        CheckConstraint("reserved >= 0", name="ck_user_balances_reserved_non_negative"),
        CheckConstraint("reserved <= balance", name="ck_user_balances_reserved_within_balance"),
    )


class TokenTransactionModel(Base):
    """Append-only audit log of every balance movement."""

    __tablename__ = "token_transactions"

    id: Mapped[PyUUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)  # signed
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    job_kind: Mapped[str | None] = mapped_column(String(20), nullable=True)
    job_id: Mapped[PyUUID | None] = mapped_column(Uuid, nullable=True, index=True)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column("metadata_", JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


# =============================================================================
# Metered generation jobs
# =============================================================================


class GenerationJobMixin:
    """Columns shared by every job that holds coin reservations."""

    model: Mapped[str] = mapped_column(String(100), nullable=False)
    resolution: Mapped[str] = mapped_column(String(20), nullable=False)
    duration_sec: Mapped[int] = mapped_column(Integer, nullable=False)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    # Coins held while status is reserved/submitted/generating
    reserved_cost: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Coins charged; set only when status is done
    token_cost: Mapped[int | None] = mapped_column(Integer, nullable=True)
    provider_task_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    video_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    thumbnail_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class ScriptModel(Base):
    """Drama script owned by a creator; segments are planned per episode."""

    __tablename__ = "scripts"

    id: Mapped[PyUUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )

    # Relationships
    segments: Mapped[list["VideoSegmentModel"]] = relationship(
        "VideoSegmentModel", back_populates="script", cascade="all, delete-orphan"
    )


class VideoSegmentModel(GenerationJobMixin, Base):
    """One generated video segment of a script episode."""

    __tablename__ = "video_segments"

    id: Mapped[PyUUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    script_id: Mapped[PyUUID] = mapped_column(
        Uuid, ForeignKey("scripts.id", ondelete="CASCADE"), index=True
    )
    episode_num: Mapped[int] = mapped_column(Integer, nullable=False)
    segment_index: Mapped[int] = mapped_column(Integer, nullable=False)
    scene_num: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    shot_type: Mapped[str] = mapped_column(String(50), nullable=False, default="medium")
    camera_move: Mapped[str] = mapped_column(String(50), nullable=False, default="static")

    __table_args__ = (
        UniqueConstraint(
            "script_id", "episode_num", "segment_index", name="uq_video_segment_index"
        ),
    )

    # Relationships
    script: Mapped["ScriptModel"] = relationship("ScriptModel", back_populates="segments")


class RehearsalModel(GenerationJobMixin, Base):
    """Standalone single-segment generation with an editable draft phase."""

    __tablename__ = "rehearsals"

    id: Mapped[PyUUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)


# =============================================================================
# Series, episodes and unlock grants
# =============================================================================


class SeriesModel(Base):
    """Published drama series."""

    __tablename__ = "series"

    id: Mapped[PyUUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    episodes: Mapped[list["EpisodeModel"]] = relationship(
        "EpisodeModel", back_populates="series", cascade="all, delete-orphan"
    )


class EpisodeModel(Base):
    """Episode of a series with its unlock price."""

    __tablename__ = "episodes"

    id: Mapped[PyUUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    series_id: Mapped[PyUUID] = mapped_column(
        Uuid, ForeignKey("series.id", ondelete="CASCADE"), index=True
    )
    episode_num: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    unlock_cost: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("series_id", "episode_num", name="uq_episode_num"),
        CheckConstraint("unlock_cost >= 0", name="ck_episodes_unlock_cost_non_negative"),
    )

    # Relationships
    series: Mapped["SeriesModel"] = relationship("SeriesModel", back_populates="episodes")


class EpisodeUnlockModel(Base):
    """Grant recording that a user paid for access to an episode."""

    __tablename__ = "episode_unlocks"

    id: Mapped[PyUUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    episode_id: Mapped[PyUUID] = mapped_column(
        Uuid, ForeignKey("episodes.id", ondelete="CASCADE"), index=True
    )
    coins_cost: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "episode_id", name="uq_episode_unlock_user_episode"),
    )


# =============================================================================
# AI feature pricing
# =============================================================================


class FeaturePriceModel(Base):
    """Admin override of the coin price of a one-shot AI feature."""

    __tablename__ = "feature_prices"

    feature_key: Mapped[str] = mapped_column(String(100), primary_key=True)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    cost_coins: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
