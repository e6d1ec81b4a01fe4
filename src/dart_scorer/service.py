from __future__ import annotations

import logging
import threading
from typing import Optional, Sequence

from .checkout import CheckoutSuggestion, suggest_checkouts
from .errors import MatchNotFoundError
from .match import (
    Leg,
    MatchConfig,
    MatchState,
    PlayerConfig,
    SubmitResult,
    advance_after_leg_win,
    attach_leg_id,
    create_match,
    quit_match,
    submit_throw,
    undo_last_throw,
)
from .resolver import Outcome
from .stats import LegStats, PlayerStats, compute_match_stats, leg_stats
from .storage import MatchStore, MatchSummary, PlayerAggregate, PlayerRecord

logger = logging.getLogger(__name__)


class ScoringService:
    """
    Calling layer between a client and the scoring engine.

    Every mutating operation loads the match from the store, runs the pure
    engine function, writes the result, and only then hands the new state
    back. `_lock` is held across that whole sequence so two requests for the
    same match cannot both pass the turn check. Each write is a single store
    transaction; a failed write propagates and leaves the stored match
    untouched.
    """

    def __init__(self, store: MatchStore) -> None:
        self.store = store
        self._lock = threading.Lock()

    def register_player(self, name: str) -> PlayerRecord:
        return self.store.resolve_or_create_player(name)

    def start_match(
        self,
        players: Sequence[tuple[str, int]],
        number_of_legs: int,
        number_of_sets: Optional[int] = None,
    ) -> MatchState:
        """Create a match from (name, starting_score) pairs in throwing order."""
        configs = []
        for name, starting_score in players:
            record = self.store.resolve_or_create_player(name)
            configs.append(PlayerConfig(player_id=record.id, name=record.name, starting_score=starting_score))
        config = MatchConfig(players=tuple(configs), number_of_legs=number_of_legs, number_of_sets=number_of_sets)

        with self._lock:
            match_record, leg_record = self.store.create_match(config)
        state = attach_leg_id(create_match(config, match_id=match_record.id), leg_record.id)
        logger.info(
            "Created match id=%s for %d players (legs=%s, sets=%s)",
            match_record.id,
            len(configs),
            number_of_legs,
            number_of_sets,
        )
        return state

    def get_match(self, match_id: int) -> MatchState:
        return self.store.load_match_state(match_id)

    def current_match(self) -> MatchState:
        record = self.store.read_current_match()
        if record is None:
            raise MatchNotFoundError("current")
        return self.store.load_match_state(record.id)

    def submit_throw(self, match_id: int, player_id: str, score: int) -> SubmitResult:
        with self._lock:
            state = self.store.load_match_state(match_id)
            result = submit_throw(state, player_id, score)
            leg = result.state.current_leg
            try:
                self.store.append_throw(
                    leg_id=leg.leg_id,
                    player_id=player_id,
                    round_number=result.throw.round_number,
                    score=score,
                    is_checkout=result.throw.is_checkout,
                    is_bust=result.throw.is_bust,
                    winner_id=player_id if result.outcome is Outcome.FINISH else None,
                )
            except Exception:
                logger.exception("Failed to store throw of %d for match id=%s", score, match_id)
                raise
        return result

    def undo_last_throw(self, match_id: int) -> MatchState:
        with self._lock:
            state = self.store.load_match_state(match_id)
            updated = undo_last_throw(state)
            self.store.remove_last_throw(state.current_leg.leg_id)
        logger.info("Undid last throw in match id=%s", match_id)
        return updated

    def advance(self, match_id: int) -> MatchState:
        with self._lock:
            state = self.store.load_match_state(match_id)
            updated = advance_after_leg_win(state)
            if updated.is_over:
                self.store.mark_match_complete(match_id, updated.winner_id)
                return updated
            leg = updated.current_leg
            record = self.store.create_leg(
                match_id=match_id,
                set_number=leg.set_number,
                leg_number=leg.leg_number,
                starting_player_index=leg.starting_player_index,
            )
        return attach_leg_id(updated, record.id)

    def quit(self, match_id: int) -> MatchState:
        with self._lock:
            state = self.store.load_match_state(match_id)
            updated = quit_match(state)
            self.store.mark_match_complete(match_id, None)
        return updated

    def checkout_hint(self, match_id: int) -> list[CheckoutSuggestion]:
        state = self.store.load_match_state(match_id)
        player = state.current_player
        if player is None:
            return []
        return suggest_checkouts(player.remaining)

    def match_stats(self, match_id: int) -> dict[str, PlayerStats]:
        return compute_match_stats(self.store.load_match_state(match_id))

    def leg_breakdown(self, match_id: int) -> list[tuple[Leg, list[LegStats]]]:
        state = self.store.load_match_state(match_id)
        return [(leg, leg_stats(leg)) for leg in state.all_legs()]

    def history(self) -> list[MatchSummary]:
        return self.store.list_match_summaries()

    def player_stats(self) -> list[PlayerAggregate]:
        return self.store.read_player_aggregate_stats()

    def head_to_head(self, player1_id: str, player2_id: str) -> dict[str, int]:
        return self.store.head_to_head(player1_id, player2_id)
