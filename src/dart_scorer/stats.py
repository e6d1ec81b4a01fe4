from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from .match import Leg, MatchState, Throw

DARTS_PER_TURN = 3


@dataclass(frozen=True)
class PlayerStats:
    turns: int
    darts_thrown: int
    points_scored: int
    three_dart_average: float
    first_nine_average: Optional[float]
    scores_100_plus: int
    scores_140_plus: int
    scores_180: int
    highest_score: int
    busts: int
    checkouts: int


@dataclass(frozen=True)
class LegStats:
    player_id: str
    stats: PlayerStats
    finishing_score: Optional[int]
    is_winner: bool


def three_dart_average(throws: Sequence[Throw]) -> float:
    if not throws:
        return 0.0
    darts = len(throws) * DARTS_PER_TURN
    points = sum(t.points for t in throws)
    return round(points / darts * DARTS_PER_TURN, 2)


def first_nine_average(throws: Sequence[Throw]) -> Optional[float]:
    if len(throws) < 3:
        return None
    return three_dart_average(throws[:3])


def compute_player_stats(throws: Sequence[Throw]) -> PlayerStats:
    """Derive display statistics from a player's recorded turns, oldest first.

    Busted turns count as thrown darts scoring nothing; they never count
    towards the milestones or the highest score.
    """
    counted = [t.score for t in throws if not t.is_bust]
    return PlayerStats(
        turns=len(throws),
        darts_thrown=len(throws) * DARTS_PER_TURN,
        points_scored=sum(counted),
        three_dart_average=three_dart_average(throws),
        first_nine_average=first_nine_average(throws),
        scores_100_plus=sum(1 for s in counted if s >= 100),
        scores_140_plus=sum(1 for s in counted if s >= 140),
        scores_180=sum(1 for s in counted if s == 180),
        highest_score=max(counted, default=0),
        busts=sum(1 for t in throws if t.is_bust),
        checkouts=sum(1 for t in throws if t.is_checkout),
    )


def compute_match_stats(state: MatchState) -> dict[str, PlayerStats]:
    throws: dict[str, list[Throw]] = {p.player_id: [] for p in state.config.players}
    for leg in state.all_legs():
        for player in leg.players:
            throws[player.player_id].extend(player.throws)
    return {player_id: compute_player_stats(t) for player_id, t in throws.items()}


def leg_stats(leg: Leg) -> list[LegStats]:
    result = []
    for player in leg.players:
        finish = player.throws[-1].score if player.throws and player.throws[-1].is_checkout else None
        result.append(
            LegStats(
                player_id=player.player_id,
                stats=compute_player_stats(player.throws),
                finishing_score=finish,
                is_winner=leg.winner_id == player.player_id,
            )
        )
    return result
