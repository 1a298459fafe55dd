"""create let go buddy sessions, items, photos, listings and challenge tasks

Revision ID: 20261019_create_lgb_tables
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_create_lgb_tables"
down_revision = None
branch_labels = None
depends_on = None


scenario_enum = sa.Enum(
    "item-triage",
    "moving-assistant",
    "daily-challenge",
    "quick-listing",
    name="lgb_scenario",
)
session_status_enum = sa.Enum("active", "completed", "archived", name="lgb_session_status")
trade_method_enum = sa.Enum("meet", "ship", "both", name="lgb_trade_method")
decision_enum = sa.Enum("keep", "sell", "donate", "dispose", name="lgb_decision")
item_status_enum = sa.Enum(
    "analyzing",
    "analyzed",
    "error",
    "limit_reached",
    "manual",
    name="lgb_item_status",
)


def upgrade() -> None:
    op.create_table(
        "lgb_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("scenario", scenario_enum, nullable=False),
        sa.Column("title", sa.String(length=200), nullable=True),
        sa.Column(
            "status",
            session_status_enum,
            nullable=False,
            server_default="active",
        ),
        sa.Column("move_date", sa.Date(), nullable=True),
        sa.Column("region", sa.String(length=120), nullable=True),
        sa.Column("trade_method", trade_method_enum, nullable=True),
        sa.Column("challenge_days", sa.Integer(), nullable=True),
        sa.Column(
            "ai_plan_generated",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("moving_plan", sa.JSON(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_lgb_sessions_user_id", "lgb_sessions", ["user_id"])

    op.create_table(
        "lgb_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "session_id",
            sa.Integer(),
            sa.ForeignKey("lgb_sessions.id"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=200), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=80), nullable=True),
        sa.Column("condition", sa.String(length=40), nullable=True),
        sa.Column("decision", decision_enum, nullable=True),
        sa.Column("decision_reason", sa.Text(), nullable=True),
        sa.Column("price_low", sa.Float(), nullable=True),
        sa.Column("price_mid", sa.Float(), nullable=True),
        sa.Column("price_high", sa.Float(), nullable=True),
        sa.Column("price_confidence", sa.Float(), nullable=True),
        sa.Column("price_rationale", sa.Text(), nullable=True),
        sa.Column("usage_score", sa.Integer(), nullable=True),
        sa.Column("sentiment", sa.String(length=40), nullable=True),
        sa.Column("ai_recommendation", sa.String(length=20), nullable=True),
        sa.Column("ai_rationale", sa.Text(), nullable=True),
        sa.Column(
            "status",
            item_status_enum,
            nullable=False,
            server_default="analyzing",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_lgb_items_session_id", "lgb_items", ["session_id"])
    op.create_index("idx_lgb_items_status", "lgb_items", ["status"])

    op.create_table(
        "lgb_item_photos",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "item_id",
            sa.Integer(),
            sa.ForeignKey("lgb_items.id"),
            nullable=False,
        ),
        sa.Column("storage_path", sa.String(), nullable=False),
        sa.Column("content_type", sa.String(length=64), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_lgb_item_photos_item_id", "lgb_item_photos", ["item_id"])

    op.create_table(
        "lgb_listings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "item_id",
            sa.Integer(),
            sa.ForeignKey("lgb_items.id"),
            nullable=False,
        ),
        sa.Column("lang", sa.String(length=8), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("hashtags", sa.JSON(), nullable=False),
        sa.Column("channels", sa.JSON(), nullable=False),
        sa.Column("tone", sa.String(length=16), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_lgb_listings_item_id", "lgb_listings", ["item_id"])

    op.create_table(
        "lgb_challenge_tasks",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column(
            "session_id",
            sa.Integer(),
            sa.ForeignKey("lgb_sessions.id"),
            nullable=True,
        ),
        sa.Column(
            "source",
            sa.String(length=32),
            nullable=False,
            server_default="manual",
        ),
        sa.Column("name", sa.String(length=300), nullable=False),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column(
            "completed",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reflection", sa.Text(), nullable=True),
        sa.Column("tip", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index(
        "idx_lgb_tasks_user_date",
        "lgb_challenge_tasks",
        ["user_id", "scheduled_date"],
    )


def downgrade() -> None:
    op.drop_index("idx_lgb_tasks_user_date", table_name="lgb_challenge_tasks")
    op.drop_table("lgb_challenge_tasks")
    op.drop_index("ix_lgb_listings_item_id", table_name="lgb_listings")
    op.drop_table("lgb_listings")
    op.drop_index("ix_lgb_item_photos_item_id", table_name="lgb_item_photos")
    op.drop_table("lgb_item_photos")
    op.drop_index("idx_lgb_items_status", table_name="lgb_items")
    op.drop_index("ix_lgb_items_session_id", table_name="lgb_items")
    op.drop_table("lgb_items")
    op.drop_index("ix_lgb_sessions_user_id", table_name="lgb_sessions")
    op.drop_table("lgb_sessions")

    bind = op.get_bind()
    for enum in (
        item_status_enum,
        decision_enum,
        trade_method_enum,
        session_status_enum,
        scenario_enum,
    ):
        enum.drop(bind, checkfirst=True)
