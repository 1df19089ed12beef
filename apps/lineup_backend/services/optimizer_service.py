"""
Lineup optimization orchestrator.

One invocation walks Validating -> BuildingPayload -> AwaitingExternal ->
Reconciling -> Persisted, or ends in Failed. The optimizer is called exactly
once, with no retry, and before anything is written; no row locks are held
while waiting on it.
"""

import enum
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from lineup_backend.database.models import Game
from lineup_backend.services import data_service, lineup_service, preference_service, stats_service
from lineup_backend.services.settings_service import AppConfig
from lineup_backend.utils.constants import NOT_PLAYING_LABEL, normalize_label
from lineup_backend.utils.exceptions import (
    DuplicateAssignment,
    LineupCoreError,
    OptimizerMalformedResponse,
    OptimizerRejected,
    OptimizerUnreachable,
    ValidationFailed,
)

logger = logging.getLogger(__name__)


class OptimizationState(str, enum.Enum):
    VALIDATING = "validating"
    BUILDING_PAYLOAD = "building_payload"
    AWAITING_EXTERNAL = "awaiting_external"
    RECONCILING = "reconciling"
    PERSISTED = "persisted"
    FAILED = "failed"


def _parse_player_ids(players_in_game: Sequence[Any]) -> List[int]:
    if not players_in_game:
        raise ValidationFailed("players_in_game must contain at least one player.")
    player_ids: List[int] = []
    for value in players_in_game:
        if isinstance(value, bool):
            raise ValidationFailed(f"Invalid player id {value!r}.")
        try:
            player_id = int(value)
        except (TypeError, ValueError):
            raise ValidationFailed(f"Invalid player id {value!r}.")
        if player_id in player_ids:
            raise ValidationFailed(f"Player {player_id} is listed more than once.", player_id=player_id)
        player_ids.append(player_id)
    return player_ids


def _normalize_fixed_assignments(
    fixed_assignments: Optional[Mapping[Any, Any]],
    player_ids: List[int],
    slot_count: int,
    known_labels: set,
) -> Dict[str, Dict[str, str]]:
    """Fixed assignments keyed by player id string, then slot string."""
    normalized: Dict[str, Dict[str, str]] = {}
    for raw_player_id, assignments in (fixed_assignments or {}).items():
        try:
            player_id = int(raw_player_id)
        except (TypeError, ValueError):
            raise ValidationFailed(f"Invalid player id {raw_player_id!r} in fixed assignments.")
        if player_id not in player_ids:
            raise ValidationFailed(
                f"Player {player_id} has fixed assignments but is not in the game.", player_id=player_id
            )
        if not isinstance(assignments, Mapping):
            raise ValidationFailed(f"Fixed assignments for player {player_id} must be an object.")

        slots: Dict[str, str] = {}
        for slot, label in assignments.items():
            try:
                slot_number = int(slot)
            except (TypeError, ValueError):
                raise ValidationFailed(f"Inning '{slot}' in fixed assignments is not a number.")
            if not 1 <= slot_number <= slot_count:
                raise ValidationFailed(f"Inning {slot_number} is outside 1..{slot_count}.")
            if not isinstance(label, str) or normalize_label(label) not in known_labels:
                raise ValidationFailed(f"Unknown position '{label}' in fixed assignments.")
            slots[str(slot_number)] = normalize_label(label)
        if slots:
            normalized[str(player_id)] = slots
    return normalized


def build_optimizer_payload(
    player_ids: List[int],
    fixed_assignments: Dict[str, Dict[str, str]],
    stats: Dict[int, stats_service.PlayerHistoricalStats],
    preferences: Dict[int, Dict[str, List[str]]],
    slot_count: int,
) -> Dict[str, Any]:
    """
    Request body for the optimizer.

    Player ids are sent as strings in batting-candidate order. The slot count
    goes out as both game_slots and game_innings; deployed optimizers read
    game_innings.
    """
    return {
        "players": [str(player_id) for player_id in player_ids],
        "fixed_assignments": fixed_assignments,
        "actual_counts": {
            str(player_id): dict(stats[player_id].position_counts) for player_id in player_ids
        },
        "game_slots": slot_count,
        "game_innings": slot_count,
        "player_preferences": {
            str(player_id): {
                "preferred": list(preferences.get(player_id, {}).get("preferred", [])),
                "restricted": list(preferences.get(player_id, {}).get("restricted", [])),
            }
            for player_id in player_ids
        },
    }


def _upstream_detail(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {"error": "Unknown optimizer error", "details": response.text}


async def call_optimizer(
    config: AppConfig,
    payload: Dict[str, Any],
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Any:
    """
    POST the payload to the optimizer and return the decoded JSON body.

    Args:
        config: Runtime configuration (URL and timeout)
        payload: Request body
        transport: Optional httpx transport (tests use httpx.MockTransport)

    Raises:
        OptimizerUnreachable: No URL configured, connection failure or timeout
        OptimizerRejected: Non-2xx response
        OptimizerMalformedResponse: 2xx response that is not JSON
    """
    if not config.optimizer_url:
        raise OptimizerUnreachable("Optimizer service URL not configured.")

    try:
        async with httpx.AsyncClient(
            timeout=config.optimizer_timeout_seconds, transport=transport
        ) as client:
            response = await client.post(
                config.optimizer_url, json=payload, headers={"Accept": "application/json"}
            )
    except httpx.TimeoutException:
        raise OptimizerUnreachable(
            f"Lineup optimizer timed out after {config.optimizer_timeout_seconds} seconds."
        )
    except httpx.TransportError as e:
        logger.error(f"HTTP request to optimizer service failed: {e}")
        raise OptimizerUnreachable("Could not connect to the lineup optimizer service.")

    if not response.is_success:
        detail = _upstream_detail(response)
        logger.error(f"Lineup optimizer service failed: status={response.status_code} body={detail}")
        raise OptimizerRejected(response.status_code, detail)

    try:
        return response.json()
    except ValueError:
        raise OptimizerMalformedResponse("Optimizer response is not valid JSON.")


def parse_optimizer_response(body: Any) -> Dict[str, Dict[str, Any]]:
    """
    Map player id string -> slot assignment map.

    Each element must be an object with player_id and an innings (or slots) object.
    """
    if not isinstance(body, list):
        raise OptimizerMalformedResponse("Optimizer response must be a list of player assignments.")

    assignments: Dict[str, Dict[str, Any]] = {}
    for item in body:
        if not isinstance(item, dict) or item.get("player_id") in (None, ""):
            raise OptimizerMalformedResponse("Optimizer returned an assignment without player_id.")
        slots = item.get("innings", item.get("slots"))
        if not isinstance(slots, dict):
            raise OptimizerMalformedResponse(
                f"Optimizer assignment for player {item['player_id']} has no innings map."
            )
        assignments[str(item["player_id"])] = slots
    return assignments


def reconcile_lineup(
    player_ids: List[int],
    assignments: Dict[str, Dict[str, Any]],
    slot_count: int,
    game_id: Any = None,
    fixed: Optional[Dict[str, Dict[str, str]]] = None,
) -> List[Dict[str, Any]]:
    """
    Merge optimizer assignments back onto the requested players.

    Input order decides batting order, numbered 1..k over the players the
    optimizer covered. A player it left out is marked not playing in every
    inning with no batting order. Fixed assignments are written over the
    optimizer's choice for the players it covered.
    """
    lineup: List[Dict[str, Any]] = []
    batting_slot = 1
    for player_id in player_ids:
        slots = assignments.get(str(player_id))
        if slots is not None:
            innings = {str(slot): label for slot, label in slots.items()}
            for slot, label in (fixed or {}).get(str(player_id), {}).items():
                if normalize_label(innings.get(slot)) != label:
                    logger.warning(
                        f"Optimizer moved player {player_id} off fixed position {label} in inning {slot} "
                        f"for game {game_id}; keeping {label}."
                    )
                innings[slot] = label
            lineup.append({"player_id": player_id, "innings": innings, "batting_order": batting_slot})
            batting_slot += 1
            continue
        logger.warning(
            f"Player ID {player_id} requested for game {game_id} but not found in optimizer output. "
            f"Marking as {NOT_PLAYING_LABEL}."
        )
        lineup.append(
            {
                "player_id": player_id,
                "innings": {str(slot): NOT_PLAYING_LABEL for slot in range(1, slot_count + 1)},
                "batting_order": None,
            }
        )
    return lineup


class LineupOptimizer:
    """Runs one optimization for one game."""

    def __init__(
        self,
        session: AsyncSession,
        config: AppConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.session = session
        self.config = config
        self.transport = transport
        self.state = OptimizationState.VALIDATING
        self.failure: Optional[LineupCoreError] = None

    def _transition(self, state: OptimizationState, game: Game) -> None:
        logger.debug(f"Optimization for game {game.id}: {self.state.value} -> {state.value}")
        self.state = state

    async def run(
        self,
        game: Game,
        players_in_game: Sequence[Any],
        fixed_assignments: Optional[Mapping[Any, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Optimize and save the lineup for a game.

        Args:
            game: Game ORM instance
            players_in_game: Participating player ids, in batting-candidate order
            fixed_assignments: {player_id: {inning: position}} that must be kept

        Returns:
            Result of lineup_service.save_lineup plus the list of players the
            optimizer left out

        Raises:
            ValidationFailed, OptimizerUnreachable, OptimizerRejected,
            OptimizerMalformedResponse, DuplicateAssignment
        """
        try:
            return await self._run(game, players_in_game, fixed_assignments)
        except LineupCoreError as e:
            self.failure = e
            self._transition(OptimizationState.FAILED, game)
            logger.info(f"Optimization for game {game.id} failed: {e.kind}: {e.detail}")
            raise

    async def _run(
        self,
        game: Game,
        players_in_game: Sequence[Any],
        fixed_assignments: Optional[Mapping[Any, Any]],
    ) -> Dict[str, Any]:
        self.state = OptimizationState.VALIDATING
        player_ids = _parse_player_ids(players_in_game)
        roster = await data_service.get_team_players(self.session, game.team_id)
        roster_by_id = {player.id: player for player in roster}
        outsiders = [player_id for player_id in player_ids if player_id not in roster_by_id]
        if outsiders:
            raise ValidationFailed("Some players are not on this game's team.", player_ids=outsiders)
        known_labels = await data_service.get_position_names(self.session)
        fixed = _normalize_fixed_assignments(fixed_assignments, player_ids, game.innings, known_labels)

        self._transition(OptimizationState.BUILDING_PAYLOAD, game)
        lineups = await stats_service.load_team_lineups(self.session, game.team_id)
        stats = {
            player_id: stats_service.aggregate_player_stats(lineups, player_id) for player_id in player_ids
        }
        preferences = await preference_service.get_preference_names(self.session, player_ids)
        payload = build_optimizer_payload(player_ids, fixed, stats, preferences, game.innings)

        self._transition(OptimizationState.AWAITING_EXTERNAL, game)
        logger.info(f"Sending payload to optimizer: game_id={game.id} player_count={len(player_ids)}")
        body = await call_optimizer(self.config, payload, transport=self.transport)
        logger.info(f"Received optimized positional lineup for game {game.id}")

        self._transition(OptimizationState.RECONCILING, game)
        assignments = parse_optimizer_response(body)
        lineup = reconcile_lineup(player_ids, assignments, game.innings, game_id=game.id, fixed=fixed)
        missing = [entry["player_id"] for entry in lineup if entry["batting_order"] is None]

        try:
            saved = await lineup_service.save_lineup(self.session, game, lineup)
        except DuplicateAssignment:
            raise
        except ValidationFailed as e:
            raise OptimizerMalformedResponse(f"Optimizer returned an unusable lineup: {e.detail}") from e

        self._transition(OptimizationState.PERSISTED, game)
        return {**saved, "missing_player_ids": missing}


async def optimize_lineup(
    session: AsyncSession,
    config: AppConfig,
    game: Game,
    players_in_game: Sequence[Any],
    fixed_assignments: Optional[Mapping[Any, Any]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """Optimize and persist a game's lineup. See LineupOptimizer.run."""
    optimizer = LineupOptimizer(session, config, transport=transport)
    return await optimizer.run(game, players_in_game, fixed_assignments)
