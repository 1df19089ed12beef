"""
Player position preference service.

Preferred and restricted positions feed the optimizer payload and the
lineup editor.
"""

import logging
from typing import Dict, Iterable, List

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from lineup_backend.database.models import Player, PlayerPositionPreference, Position, PreferenceType
from lineup_backend.utils.constants import NOT_PLAYING_LABEL
from lineup_backend.utils.exceptions import ValidationFailed

logger = logging.getLogger(__name__)


async def get_preference_names(
    session: AsyncSession, player_ids: Iterable[int]
) -> Dict[int, Dict[str, List[str]]]:
    """
    Preferred/restricted position names for several players in one query.

    Args:
        session: Database session
        player_ids: Players to look up

    Returns:
        Dict of player_id -> {"preferred": [...], "restricted": [...]}; every
        requested player is present even without preferences
    """
    ids = list(player_ids)
    preferences: Dict[int, Dict[str, List[str]]] = {
        player_id: {PreferenceType.PREFERRED.value: [], PreferenceType.RESTRICTED.value: []}
        for player_id in ids
    }
    if not ids:
        return preferences

    result = await session.execute(
        select(
            PlayerPositionPreference.player_id,
            PlayerPositionPreference.preference_type,
            Position.name,
        )
        .join(Position, Position.id == PlayerPositionPreference.position_id)
        .where(PlayerPositionPreference.player_id.in_(ids))
        .order_by(Position.name)
    )
    for row in result.all():
        bucket = preferences[row.player_id].get(row.preference_type)
        if bucket is not None:
            bucket.append(row.name)
    return preferences


async def get_player_preferences(session: AsyncSession, player: Player) -> Dict:
    """
    Position id lists for a player.

    Returns:
        Dict with player_id, preferred_positions and restricted_positions (ids)
    """
    result = await session.execute(
        select(PlayerPositionPreference.position_id, PlayerPositionPreference.preference_type)
        .where(PlayerPositionPreference.player_id == player.id)
        .order_by(PlayerPositionPreference.position_id)
    )
    preferred, restricted = [], []
    for row in result.all():
        if row.preference_type == PreferenceType.PREFERRED.value:
            preferred.append(row.position_id)
        else:
            restricted.append(row.position_id)
    return {"player_id": player.id, "preferred_positions": preferred, "restricted_positions": restricted}


async def set_player_preferences(
    session: AsyncSession,
    player: Player,
    preferred_ids: List[int],
    restricted_ids: List[int],
) -> Dict:
    """
    Replace a player's preferences.

    Args:
        session: Database session
        player: Player ORM instance
        preferred_ids: Position ids the player prefers
        restricted_ids: Position ids the player must not play

    Returns:
        The stored preferences (see get_player_preferences)

    Raises:
        ValidationFailed: Overlapping lists, unknown position ids, or OUT used as a preference
    """
    preferred = list(dict.fromkeys(preferred_ids))
    restricted = list(dict.fromkeys(restricted_ids))

    conflicting = sorted(set(preferred) & set(restricted))
    if conflicting:
        raise ValidationFailed(
            "A position cannot be both preferred and restricted.", conflicting_ids=conflicting
        )

    requested = set(preferred) | set(restricted)
    if requested:
        result = await session.execute(select(Position.id, Position.name).where(Position.id.in_(requested)))
        known = {row.id: row.name for row in result.all()}
        missing = sorted(requested - set(known))
        if missing:
            raise ValidationFailed("Unknown position ids.", unknown_ids=missing)
        if any(name.upper() == NOT_PLAYING_LABEL for name in known.values()):
            raise ValidationFailed(f'The "{NOT_PLAYING_LABEL}" position cannot be set as a preference.')

    await session.execute(
        delete(PlayerPositionPreference).where(PlayerPositionPreference.player_id == player.id)
    )
    for position_id in preferred:
        session.add(
            PlayerPositionPreference(
                player_id=player.id,
                position_id=position_id,
                preference_type=PreferenceType.PREFERRED.value,
            )
        )
    for position_id in restricted:
        session.add(
            PlayerPositionPreference(
                player_id=player.id,
                position_id=position_id,
                preference_type=PreferenceType.RESTRICTED.value,
            )
        )
    await session.flush()

    logger.info(
        f"Updated preferences for player {player.id}: "
        f"{len(preferred)} preferred, {len(restricted)} restricted"
    )
    return await get_player_preferences(session, player)
