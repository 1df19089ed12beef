"""
Pydantic models for API request/response validation.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator


class LineupEntry(BaseModel):
    """One player's row of a lineup."""

    player_id: int
    innings: Dict[str, Optional[str]] = Field(default_factory=dict)
    batting_order: Optional[int] = None


class LineupUpdateRequest(BaseModel):
    lineup: List[LineupEntry]


class LineupResponse(BaseModel):
    game_id: int
    lineup: List[Dict[str, Any]]
    finalized_at: Optional[str] = None


class AutocompleteLineupRequest(BaseModel):
    """
    players_in_game is ordered: it becomes the batting order.
    fixed_assignments maps player id -> {inning: position}.
    """

    players_in_game: List[int] = Field(min_length=1)
    fixed_assignments: Dict[str, Dict[str, str]] = Field(default_factory=dict)

    @field_validator("players_in_game")
    @classmethod
    def no_duplicate_players(cls, value: List[int]) -> List[int]:
        if len(set(value)) != len(value):
            raise ValueError("players_in_game must not contain duplicates")
        return value


class AutocompleteLineupResponse(LineupResponse):
    missing_player_ids: List[int] = Field(default_factory=list)


class PlayerPreferencesRequest(BaseModel):
    preferred_positions: List[int] = Field(default_factory=list)
    restricted_positions: List[int] = Field(default_factory=list)


class PlayerPreferencesResponse(BaseModel):
    player_id: int
    preferred_positions: List[int]
    restricted_positions: List[int]


class PlayerStatsPayload(BaseModel):
    pct_slots_played: Optional[float] = None
    top_position: Optional[str] = None
    avg_batting_order: Optional[int] = None
    position_counts: Dict[str, int] = Field(default_factory=dict)


class TeamPlayerResponse(BaseModel):
    id: int
    team_id: Optional[int] = None
    first_name: str
    last_name: str
    full_name: str
    jersey_number: Optional[str] = None
    stats: PlayerStatsPayload


class TeamAccessResponse(BaseModel):
    team_id: int
    access_status: str
    has_active_access: bool
    access_granted_at: Optional[str] = None
    access_expires_at: Optional[str] = None
    unlock_price_amount: Optional[float] = None
    unlock_currency: Optional[str] = None
    unlock_currency_symbol: Optional[str] = None
    unlock_currency_symbol_position: Optional[str] = None


class PaymentIntentResponse(BaseModel):
    client_secret: str
    payment_intent_id: str
    amount: int
    currency: str


class PromoRedeemRequest(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    team_id: int


class PromoCodeCreate(BaseModel):
    """Code is optional; a random one is generated when omitted."""

    code: Optional[str] = Field(default=None, max_length=50)
    description: Optional[str] = None
    expires_at: Optional[datetime] = None
    max_uses: Optional[int] = Field(default=None, ge=1)
    max_uses_per_user: int = Field(default=1, ge=1)
    is_active: bool = True


class PromoCodeUpdate(BaseModel):
    """Only fields present in the request are changed."""

    description: Optional[str] = None
    expires_at: Optional[datetime] = None
    max_uses: Optional[int] = Field(default=None, ge=1)
    max_uses_per_user: Optional[int] = Field(default=None, ge=1)
    is_active: Optional[bool] = None


class PromoCodeResponse(BaseModel):
    id: int
    code: str
    description: Optional[str] = None
    is_active: bool
    expires_at: Optional[str] = None
    max_uses: Optional[int] = None
    max_uses_per_user: int
    use_count: int
    redemptions_count: Optional[int] = None


class SettingUpdateRequest(BaseModel):
    value: Optional[str] = None
