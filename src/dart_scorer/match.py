from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from math import ceil
from typing import Iterable, Optional

from .errors import InvalidStateError
from .resolver import Outcome, ThrowResolution, resolve_throw
from .scores import require_valid_score

logger = logging.getLogger(__name__)

DEFAULT_STARTING_SCORE = 501


class MatchPhase(str, Enum):
    AWAITING_THROW = "awaiting_throw"
    LEG_WON = "leg_won"
    MATCH_WON = "match_won"


class MatchStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass(frozen=True)
class PlayerConfig:
    player_id: str
    name: str
    starting_score: int = DEFAULT_STARTING_SCORE

    def __post_init__(self) -> None:
        if not self.player_id:
            raise ValueError("player_id must not be empty")
        if self.starting_score < 2:
            raise ValueError("starting_score must be >= 2")


@dataclass(frozen=True)
class MatchConfig:
    """
    Match rules. Legs and sets are both played as a race to a majority:
    best of 5 legs is won by the first player to 3.
    """

    players: tuple[PlayerConfig, ...]
    number_of_legs: int = 3
    number_of_sets: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "players", tuple(self.players))
        if not self.players:
            raise ValueError("a match needs at least one player")
        ids = [p.player_id for p in self.players]
        if len(set(ids)) != len(ids):
            raise ValueError("player ids must be unique")
        if self.number_of_legs < 1:
            raise ValueError("number_of_legs must be >= 1")
        if self.number_of_sets is not None and self.number_of_sets < 1:
            raise ValueError("number_of_sets must be >= 1")

    @property
    def uses_sets(self) -> bool:
        return self.number_of_sets is not None

    @property
    def legs_needed(self) -> int:
        return ceil(self.number_of_legs / 2)

    @property
    def sets_needed(self) -> Optional[int]:
        if self.number_of_sets is None:
            return None
        return ceil(self.number_of_sets / 2)


@dataclass(frozen=True)
class Throw:
    # A bust keeps the attempted total; `points` is what actually counted.
    score: int
    round_number: int
    is_checkout: bool = False
    is_bust: bool = False

    @property
    def points(self) -> int:
        return 0 if self.is_bust else self.score


@dataclass(frozen=True)
class PlayerLeg:
    player_id: str
    starting_score: int
    remaining: int
    throws: tuple[Throw, ...] = ()

    @classmethod
    def fresh(cls, config: PlayerConfig) -> "PlayerLeg":
        return cls(
            player_id=config.player_id,
            starting_score=config.starting_score,
            remaining=config.starting_score,
        )

    @property
    def is_finished(self) -> bool:
        return self.remaining == 0


@dataclass(frozen=True)
class Leg:
    set_number: int
    leg_number: int
    players: tuple[PlayerLeg, ...]
    current_player_index: int = 0
    starting_player_index: int = 0
    winner_id: Optional[str] = None
    leg_id: Optional[int] = None

    @property
    def is_completed(self) -> bool:
        return self.winner_id is not None

    @property
    def current_player(self) -> PlayerLeg:
        return self.players[self.current_player_index]

    @property
    def current_round(self) -> int:
        return len(self.current_player.throws) + 1

    @property
    def throw_count(self) -> int:
        return sum(len(p.throws) for p in self.players)

    def player(self, player_id: str) -> PlayerLeg:
        for p in self.players:
            if p.player_id == player_id:
                return p
        raise KeyError(player_id)


@dataclass(frozen=True)
class GameSet:
    set_number: int
    legs: tuple[Leg, ...]
    winner_id: Optional[str] = None

    @property
    def is_completed(self) -> bool:
        return self.winner_id is not None

    def leg_wins(self) -> dict[str, int]:
        wins: dict[str, int] = {}
        for leg in self.legs:
            if leg.winner_id is not None:
                wins[leg.winner_id] = wins.get(leg.winner_id, 0) + 1
        return wins


@dataclass(frozen=True)
class MatchState:
    config: MatchConfig
    sets: tuple[GameSet, ...]
    current_set_index: int = 0
    current_leg_index: int = 0
    phase: MatchPhase = MatchPhase.AWAITING_THROW
    status: MatchStatus = MatchStatus.IN_PROGRESS
    winner_id: Optional[str] = None
    match_id: Optional[int] = None

    @property
    def current_set(self) -> GameSet:
        return self.sets[self.current_set_index]

    @property
    def current_leg(self) -> Leg:
        return self.current_set.legs[self.current_leg_index]

    @property
    def current_player(self) -> Optional[PlayerLeg]:
        """The player expected to throw, or None when no throw is accepted."""
        if self.phase is not MatchPhase.AWAITING_THROW:
            return None
        return self.current_leg.current_player

    @property
    def is_over(self) -> bool:
        return self.status is MatchStatus.COMPLETED

    @property
    def legs_played(self) -> int:
        return sum(len(s.legs) for s in self.sets)

    def all_legs(self) -> list[Leg]:
        return [leg for game_set in self.sets for leg in game_set.legs]

    def leg_wins(self) -> dict[str, int]:
        wins = {p.player_id: 0 for p in self.config.players}
        for game_set in self.sets:
            for player_id, count in game_set.leg_wins().items():
                wins[player_id] += count
        return wins

    def set_wins(self) -> dict[str, int]:
        wins = {p.player_id: 0 for p in self.config.players}
        for game_set in self.sets:
            if game_set.winner_id is not None:
                wins[game_set.winner_id] += 1
        return wins


@dataclass(frozen=True)
class SubmitResult:
    outcome: Outcome
    state: MatchState
    throw: Throw


def new_leg(config: MatchConfig, set_number: int, leg_number: int, starting_player_index: int = 0) -> Leg:
    index = starting_player_index % len(config.players)
    return Leg(
        set_number=set_number,
        leg_number=leg_number,
        players=tuple(PlayerLeg.fresh(p) for p in config.players),
        current_player_index=index,
        starting_player_index=index,
    )


def create_match(config: MatchConfig, match_id: Optional[int] = None) -> MatchState:
    leg = new_leg(config, set_number=1, leg_number=1)
    return MatchState(config=config, sets=(GameSet(set_number=1, legs=(leg,)),), match_id=match_id)


def apply_throw(leg: Leg, score: int) -> tuple[Leg, ThrowResolution, Throw]:
    """Resolve one visit for the leg's current player and pass the turn."""
    if leg.is_completed:
        raise InvalidStateError(f"leg {leg.set_number}.{leg.leg_number} is already won")

    player = leg.current_player
    resolution = resolve_throw(player.remaining, score)
    throw = Throw(
        score=score,
        round_number=leg.current_round,
        is_checkout=resolution.outcome is Outcome.FINISH,
        is_bust=resolution.outcome is Outcome.BUST,
    )
    updated = replace(player, remaining=resolution.new_remaining, throws=player.throws + (throw,))
    players = _replace_at(leg.players, leg.current_player_index, updated)

    if resolution.outcome is Outcome.FINISH:
        return replace(leg, players=players, winner_id=player.player_id), resolution, throw

    next_index = (leg.current_player_index + 1) % len(players)
    return replace(leg, players=players, current_player_index=next_index), resolution, throw


def replay_leg(leg: Leg, throws: Iterable[tuple[str, int]]) -> Leg:
    """Re-apply an ordered (player_id, score) log to a leg.

    Busts are re-derived from the scores, so the log only needs attempted totals.
    """
    for player_id, score in throws:
        expected = leg.current_player.player_id
        if player_id != expected:
            raise InvalidStateError(f"throw log out of turn: expected {expected}, got {player_id}")
        leg, _, _ = apply_throw(leg, score)
    return leg


def submit_throw(state: MatchState, player_id: str, score: int) -> SubmitResult:
    if state.phase is not MatchPhase.AWAITING_THROW:
        logger.warning("Rejected throw for match id=%s in phase %s", state.match_id, state.phase.value)
        raise InvalidStateError(f"cannot submit a throw while the match is in phase {state.phase.value}")

    leg = state.current_leg
    expected = leg.current_player.player_id
    if player_id != expected:
        logger.warning("Rejected out-of-turn throw by %s (expected %s)", player_id, expected)
        raise InvalidStateError(f"it is {expected}'s turn, not {player_id}'s")

    require_valid_score(score)
    leg, resolution, throw = apply_throw(leg, score)
    updated = _replace_current_leg(state, leg)
    logger.debug(
        "Player %s threw %d: %s, remaining %d",
        player_id,
        score,
        resolution.outcome.value,
        resolution.new_remaining,
    )

    if resolution.outcome is Outcome.FINISH:
        logger.info("Player %s won leg %d.%d", player_id, leg.set_number, leg.leg_number)
        updated = replace(updated, phase=MatchPhase.LEG_WON)

    return SubmitResult(outcome=resolution.outcome, state=updated, throw=throw)


def advance_after_leg_win(state: MatchState) -> MatchState:
    if state.phase is not MatchPhase.LEG_WON:
        logger.warning("Rejected advance for match id=%s in phase %s", state.match_id, state.phase.value)
        raise InvalidStateError(f"cannot advance while the match is in phase {state.phase.value}")

    config = state.config
    winner = state.current_leg.winner_id

    if not config.uses_sets:
        if state.leg_wins()[winner] >= config.legs_needed:
            return _finish_match(state, winner)
        return _start_leg(state)

    if state.current_set.leg_wins().get(winner, 0) < config.legs_needed:
        return _start_leg(state)

    state = _replace_current_set(state, replace(state.current_set, winner_id=winner))
    logger.info("Player %s won set %d", winner, state.current_set.set_number)
    if state.set_wins()[winner] >= config.sets_needed:
        return _finish_match(state, winner)
    return _start_set(state)


def quit_match(state: MatchState) -> MatchState:
    if state.is_over:
        raise InvalidStateError("match is already completed")
    logger.info("Match id=%s quit without a winner", state.match_id)
    return replace(state, phase=MatchPhase.MATCH_WON, status=MatchStatus.COMPLETED, winner_id=None)


def undo_last_throw(state: MatchState) -> MatchState:
    """Remove the most recent throw of the current leg.

    Undo never reaches back into a previous leg. Undoing a checkout reopens the leg.
    """
    if state.is_over:
        raise InvalidStateError("match is already completed")

    leg = state.current_leg
    if leg.throw_count == 0:
        raise InvalidStateError("no throws to undo in the current leg")

    if leg.is_completed:
        index = leg.current_player_index
    else:
        index = (leg.current_player_index - 1) % len(leg.players)

    player = leg.players[index]
    last = player.throws[-1]
    restored = replace(player, remaining=player.remaining + last.points, throws=player.throws[:-1])
    leg = replace(
        leg,
        players=_replace_at(leg.players, index, restored),
        current_player_index=index,
        winner_id=None,
    )
    return replace(_replace_current_leg(state, leg), phase=MatchPhase.AWAITING_THROW)


def attach_leg_id(state: MatchState, leg_id: int) -> MatchState:
    """Record the storage identity of the current leg."""
    return _replace_current_leg(state, replace(state.current_leg, leg_id=leg_id))


def _finish_match(state: MatchState, winner: str) -> MatchState:
    logger.info("Player %s won match id=%s", winner, state.match_id)
    return replace(state, phase=MatchPhase.MATCH_WON, status=MatchStatus.COMPLETED, winner_id=winner)


def _start_leg(state: MatchState) -> MatchState:
    game_set = state.current_set
    leg = new_leg(
        state.config,
        set_number=game_set.set_number,
        leg_number=len(game_set.legs) + 1,
        starting_player_index=state.legs_played,
    )
    state = _replace_current_set(state, replace(game_set, legs=game_set.legs + (leg,)))
    return replace(state, current_leg_index=len(game_set.legs), phase=MatchPhase.AWAITING_THROW)


def _start_set(state: MatchState) -> MatchState:
    set_number = len(state.sets) + 1
    leg = new_leg(state.config, set_number=set_number, leg_number=1, starting_player_index=state.legs_played)
    return replace(
        state,
        sets=state.sets + (GameSet(set_number=set_number, legs=(leg,)),),
        current_set_index=len(state.sets),
        current_leg_index=0,
        phase=MatchPhase.AWAITING_THROW,
    )


def _replace_at(items: tuple, index: int, value) -> tuple:
    return items[:index] + (value,) + items[index + 1:]


def _replace_current_set(state: MatchState, game_set: GameSet) -> MatchState:
    return replace(state, sets=_replace_at(state.sets, state.current_set_index, game_set))


def _replace_current_leg(state: MatchState, leg: Leg) -> MatchState:
    game_set = state.current_set
    game_set = replace(game_set, legs=_replace_at(game_set.legs, state.current_leg_index, leg))
    return _replace_current_set(state, game_set)
