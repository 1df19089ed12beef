"""
SQLAlchemy ORM models for the lineup access, stats and optimization backend.
"""

import enum
from sqlalchemy import (
    JSON,
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Numeric,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from lineup_backend.database.db import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite test databases)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class AccessStatus(str, enum.Enum):
    """Team access status.

    EXPIRED is never written; it is derived at read time from
    access_expires_at (see access_service.get_access_state).
    """

    NONE = "none"
    PAID_ACTIVE = "paid_active"
    PROMO_ACTIVE = "promo_active"
    EXPIRED = "expired"


ACTIVE_ACCESS_STATUSES = (AccessStatus.PAID_ACTIVE.value, AccessStatus.PROMO_ACTIVE.value)


class PreferenceType(str, enum.Enum):
    """Player position preference type."""

    PREFERRED = "preferred"
    RESTRICTED = "restricted"


class LocationType(str, enum.Enum):
    """Game location."""

    HOME = "home"
    AWAY = "away"


class User(Base):
    """Team owners. Identity and credentials live with the external identity provider."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, nullable=False, unique=True)
    full_name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_users_email", "email"),)


class Team(Base):
    """Teams, including the embedded access record."""

    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False)
    season = Column(String(50), nullable=True)
    year = Column(Integer, nullable=True)
    sport_type = Column(String(20), nullable=True)  # baseball / softball
    access_status = Column(
        String(20), nullable=False, default=AccessStatus.NONE.value, server_default=AccessStatus.NONE.value
    )
    access_granted_at = Column(DateTime(timezone=True), nullable=True)
    access_expires_at = Column(DateTime(timezone=True), nullable=True)  # NULL = never expires
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_teams_user_id", "user_id"),
        CheckConstraint(
            "access_status IN ('none', 'paid_active', 'promo_active')",
            name="ck_teams_access_status_stored",
        ),
    )


class Player(Base):
    """Roster entries."""

    __tablename__ = "players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False, default="")
    jersey_number = Column(String(10), nullable=True)
    email = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_players_team_id", "team_id"),)

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class Position(Base):
    """Assignment labels a player can hold in a slot."""

    __tablename__ = "positions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(20), nullable=False, unique=True)
    category = Column(String(20), nullable=False)  # PITCHER, CATCHER, INF, OF, SPECIAL
    is_editable = Column(Boolean, nullable=False, default=True)


class PlayerPositionPreference(Base):
    """Preferred / restricted positions per player."""

    __tablename__ = "player_position_preferences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False)
    position_id = Column(Integer, ForeignKey("positions.id", ondelete="CASCADE"), nullable=False)
    preference_type = Column(String(20), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint(
            "player_id", "position_id", "preference_type", name="uq_player_position_preference"
        ),
        Index("idx_player_position_preferences_player", "player_id"),
    )


class Game(Base):
    """Games with their lineup.

    lineup_data is a list of entries:
        {"player_id": 12, "innings": {"1": "SS", "2": "OUT"}, "batting_order": 3}
    """

    __tablename__ = "games"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    opponent_name = Column(String, nullable=True)
    game_date = Column(DateTime(timezone=True), nullable=True)
    innings = Column(Integer, nullable=False)  # slot count
    location_type = Column(String(10), nullable=True)
    lineup_data = Column(JSONType, nullable=True)
    finalized_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_games_team_finalized", "team_id", "finalized_at"),
        CheckConstraint("innings >= 1 AND innings <= 20", name="ck_games_innings_range"),
    )


class Payment(Base):
    """Immutable record of a successful provider payment."""

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider_key = Column(String, nullable=False, unique=True)  # Stripe payment intent id
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(String(30), nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_payments_team_id", "team_id"),)


class PromoCode(Base):
    """Promo codes granting team access. Codes are stored uppercase."""

    __tablename__ = "promo_codes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(50), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    max_uses = Column(Integer, nullable=True)  # NULL = unlimited
    max_uses_per_user = Column(Integer, nullable=False, default=1)
    use_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "max_uses IS NULL OR use_count <= max_uses", name="ck_promo_codes_use_count"
        ),
    )


class PromoCodeRedemption(Base):
    """Immutable record of one promo redemption."""

    __tablename__ = "promo_code_redemptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    promo_code_id = Column(Integer, ForeignKey("promo_codes.id", ondelete="CASCADE"), nullable=False)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    redeemed_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_promo_redemptions_user_code_team", "user_id", "promo_code_id", "team_id"),
    )


class Setting(Base):
    """Application configuration."""

    __tablename__ = "settings"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
