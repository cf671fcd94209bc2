"""Initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _job_columns() -> list[sa.Column]:
    """Columns shared by segments and rehearsals."""
    return [
        sa.Column("model", sa.String(100), nullable=False),
        sa.Column("resolution", sa.String(20), nullable=False),
        sa.Column("duration_sec", sa.Integer(), nullable=False),
        sa.Column("prompt", sa.Text(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("reserved_cost", sa.Integer(), nullable=True),
        sa.Column("token_cost", sa.Integer(), nullable=True),
        sa.Column("provider_task_id", sa.String(255), nullable=True),
        sa.Column("video_url", sa.String(2048), nullable=True),
        sa.Column("thumbnail_url", sa.String(2048), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Coin balances
    op.create_table(
        "user_balances",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reserved", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_purchased", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_consumed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), onupdate=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("balance >= 0", name="ck_user_balances_balance_non_negative"),
        sa.CheckConstraint("reserved >= 0", name="ck_user_balances_reserved_non_negative"),
        sa.CheckConstraint(
            "reserved <= balance", name="ck_user_balances_reserved_within_balance"
        ),
    )
    op.create_index("ix_user_balances_user_id", "user_balances", ["user_id"], unique=True)

    # Coin audit log
    op.create_table(
        "token_transactions",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("job_kind", sa.String(20), nullable=True),
        sa.Column("job_id", sa.UUID(), nullable=True),
        sa.Column("metadata_", JSONType, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_token_transactions_user_id", "token_transactions", ["user_id"])
    op.create_index("ix_token_transactions_type", "token_transactions", ["type"])
    op.create_index("ix_token_transactions_job_id", "token_transactions", ["job_id"])

    # Scripts and their video segments
    op.create_table(
        "scripts",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("status", sa.String(50), nullable=False, server_default="draft"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), onupdate=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_scripts_user_id", "scripts", ["user_id"])

    op.create_table(
        "video_segments",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("script_id", sa.UUID(), nullable=False),
        sa.Column("episode_num", sa.Integer(), nullable=False),
        sa.Column("segment_index", sa.Integer(), nullable=False),
        sa.Column("scene_num", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("shot_type", sa.String(50), nullable=False, server_default="medium"),
        sa.Column("camera_move", sa.String(50), nullable=False, server_default="static"),
        *_job_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["script_id"], ["scripts.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "script_id", "episode_num", "segment_index", name="uq_video_segment_index"
        ),
    )
    op.create_index("ix_video_segments_script_id", "video_segments", ["script_id"])
    op.create_index("ix_video_segments_status", "video_segments", ["status"])
    op.create_index(
        "ix_video_segments_provider_task_id", "video_segments", ["provider_task_id"]
    )

    # Rehearsals
    op.create_table(
        "rehearsals",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        *_job_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_rehearsals_user_id", "rehearsals", ["user_id"])
    op.create_index("ix_rehearsals_status", "rehearsals", ["status"])
    op.create_index("ix_rehearsals_provider_task_id", "rehearsals", ["provider_task_id"])

    # Series, episodes and unlock grants
    op.create_table(
        "series",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "episodes",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("series_id", sa.UUID(), nullable=False),
        sa.Column("episode_num", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("unlock_cost", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["series_id"], ["series.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("series_id", "episode_num", name="uq_episode_num"),
        sa.CheckConstraint("unlock_cost >= 0", name="ck_episodes_unlock_cost_non_negative"),
    )
    op.create_index("ix_episodes_series_id", "episodes", ["series_id"])

    op.create_table(
        "episode_unlocks",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("episode_id", sa.UUID(), nullable=False),
        sa.Column("coins_cost", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["episode_id"], ["episodes.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "episode_id", name="uq_episode_unlock_user_episode"),
    )
    op.create_index("ix_episode_unlocks_user_id", "episode_unlocks", ["user_id"])
    op.create_index("ix_episode_unlocks_episode_id", "episode_unlocks", ["episode_id"])

    # AI feature price overrides
    op.create_table(
        "feature_prices",
        sa.Column("feature_key", sa.String(100), nullable=False),
        sa.Column("label", sa.String(255), nullable=False),
        sa.Column("cost_coins", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("feature_key"),
    )


def downgrade() -> None:
    op.drop_table("feature_prices")
    op.drop_table("episode_unlocks")
    op.drop_table("episodes")
    op.drop_table("series")
    op.drop_table("rehearsals")
    op.drop_table("video_segments")
    op.drop_table("scripts")
    op.drop_table("token_transactions")
    op.drop_table("user_balances")
