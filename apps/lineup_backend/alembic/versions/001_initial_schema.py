"""001_initial_schema

Revision ID: 001
Revises:
Create Date: 2025-11-17 17:15:00.000000

Creates users, teams, players, positions, player_position_preferences,
games, payments, promo_codes, promo_code_redemptions and settings.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamp(name: str = "created_at") -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now())


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(), nullable=False, unique=True),
        sa.Column("full_name", sa.String(), nullable=True),
        _timestamp(),
    )
    op.create_index("idx_users_email", "users", ["email"])

    op.create_table(
        "teams",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("season", sa.String(50), nullable=True),
        sa.Column("year", sa.Integer(), nullable=True),
        sa.Column("sport_type", sa.String(20), nullable=True),
        sa.Column("access_status", sa.String(20), nullable=False, server_default="none"),
        sa.Column("access_granted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("access_expires_at", sa.DateTime(timezone=True), nullable=True),
        _timestamp(),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "access_status IN ('none', 'paid_active', 'promo_active')",
            name="ck_teams_access_status_stored",
        ),
    )
    op.create_index("idx_teams_user_id", "teams", ["user_id"])

    op.create_table(
        "players",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("team_id", sa.Integer(), sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=True),
        sa.Column("first_name", sa.String(), nullable=False),
        sa.Column("last_name", sa.String(), nullable=False),
        sa.Column("jersey_number", sa.String(10), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        _timestamp(),
    )
    op.create_index("idx_players_team_id", "players", ["team_id"])

    op.create_table(
        "positions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(20), nullable=False, unique=True),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("is_editable", sa.Boolean(), nullable=False),
    )

    op.create_table(
        "player_position_preferences",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("player_id", sa.Integer(), sa.ForeignKey("players.id", ondelete="CASCADE"), nullable=False),
        sa.Column("position_id", sa.Integer(), sa.ForeignKey("positions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("preference_type", sa.String(20), nullable=False),
        _timestamp(),
        sa.UniqueConstraint("player_id", "position_id", "preference_type", name="uq_player_position_preference"),
    )
    op.create_index("idx_player_position_preferences_player", "player_position_preferences", ["player_id"])

    op.create_table(
        "games",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("team_id", sa.Integer(), sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
        sa.Column("opponent_name", sa.String(), nullable=True),
        sa.Column("game_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("innings", sa.Integer(), nullable=False),
        sa.Column("location_type", sa.String(10), nullable=True),
        sa.Column("lineup_data", postgresql.JSONB(), nullable=True),
        sa.Column("finalized_at", sa.DateTime(timezone=True), nullable=True),
        _timestamp(),
        sa.CheckConstraint("innings >= 1 AND innings <= 20", name="ck_games_innings_range"),
    )
    op.create_index("idx_games_team_finalized", "games", ["team_id", "finalized_at"])

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("provider_key", sa.String(), nullable=False, unique=True),
        sa.Column("team_id", sa.Integer(), sa.ForeignKey("teams.id", ondelete="SET NULL"), nullable=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("status", sa.String(30), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=False),
        _timestamp(),
    )
    op.create_index("idx_payments_team_id", "payments", ["team_id"])

    op.create_table(
        "promo_codes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(50), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_uses", sa.Integer(), nullable=True),
        sa.Column("max_uses_per_user", sa.Integer(), nullable=False),
        sa.Column("use_count", sa.Integer(), nullable=False),
        _timestamp(),
        sa.CheckConstraint("max_uses IS NULL OR use_count <= max_uses", name="ck_promo_codes_use_count"),
    )

    op.create_table(
        "promo_code_redemptions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("promo_code_id", sa.Integer(), sa.ForeignKey("promo_codes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("team_id", sa.Integer(), sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "idx_promo_redemptions_user_code_team",
        "promo_code_redemptions",
        ["user_id", "promo_code_id", "team_id"],
    )

    op.create_table(
        "settings",
        sa.Column("key", sa.String(), primary_key=True),
        sa.Column("value", sa.Text(), nullable=False),
        _timestamp("updated_at"),
    )


def downgrade() -> None:
    """Drop all tables."""
    for table in (
        "settings",
        "promo_code_redemptions",
        "promo_codes",
        "payments",
        "games",
        "player_position_preferences",
        "positions",
        "players",
        "teams",
        "users",
    ):
        op.drop_table(table)
