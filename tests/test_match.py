import random

import pytest

from dart_scorer.errors import InvalidScoreError, InvalidStateError
from dart_scorer.match import (
    MatchConfig,
    MatchPhase,
    MatchStatus,
    PlayerConfig,
    advance_after_leg_win,
    create_match,
    new_leg,
    quit_match,
    replay_leg,
    submit_throw,
    undo_last_throw,
)
from dart_scorer.resolver import Outcome
from dart_scorer.scores import is_valid_score


def make_config(starting_score=501, legs=3, sets=None):
    return MatchConfig(
        players=(
            PlayerConfig("a", "Alice", starting_score),
            PlayerConfig("b", "Bob", starting_score),
        ),
        number_of_legs=legs,
        number_of_sets=sets,
    )


def play(state, *throws):
    for player_id, score in throws:
        state = submit_throw(state, player_id, score).state
    return state


def ordered_log(leg):
    """Interleave per-player throws back into throwing order."""
    count = len(leg.players)
    log = []
    for round_index in range(max(len(p.throws) for p in leg.players)):
        for offset in range(count):
            player = leg.players[(leg.starting_player_index + offset) % count]
            if round_index < len(player.throws):
                log.append((player.player_id, player.throws[round_index].score))
    return log


def test_config_validation():
    with pytest.raises(ValueError):
        MatchConfig(players=(), number_of_legs=3)
    with pytest.raises(ValueError):
        MatchConfig(players=(PlayerConfig("a", "A"), PlayerConfig("a", "B")))
    with pytest.raises(ValueError):
        make_config(legs=0)
    with pytest.raises(ValueError):
        make_config(sets=0)
    assert make_config(legs=5).legs_needed == 3
    assert make_config(legs=3, sets=5).sets_needed == 3


def test_new_match_awaits_first_player():
    state = create_match(make_config())
    assert state.phase is MatchPhase.AWAITING_THROW
    assert state.status is MatchStatus.IN_PROGRESS
    assert state.current_player.player_id == "a"
    assert [p.remaining for p in state.current_leg.players] == [501, 501]
    assert len(state.sets) == 1 and len(state.current_set.legs) == 1


def test_player_a_wins_first_leg():
    state = create_match(make_config())
    for score in (100, 100, 100, 100, 81):
        state = play(state, ("a", score), ("b", 26))
    assert state.current_leg.player("a").remaining == 20

    result = submit_throw(state, "a", 20)
    assert result.outcome is Outcome.FINISH
    assert result.throw.is_checkout is True

    state = result.state
    leg = state.current_leg
    assert leg.winner_id == "a"
    assert leg.is_completed
    assert leg.player("a").is_finished
    assert leg.player("b").remaining == 501 - 5 * 26
    assert state.phase is MatchPhase.LEG_WON
    assert state.leg_wins() == {"a": 1, "b": 0}
    assert state.current_player is None


def test_bust_keeps_score_and_passes_turn():
    state = create_match(make_config())
    for score in (100, 100, 100, 100, 81):
        state = play(state, ("a", score), ("b", 26))

    result = submit_throw(state, "a", 30)
    assert result.outcome is Outcome.BUST
    assert result.throw.is_bust is True
    assert result.throw.score == 30
    assert result.state.current_leg.player("a").remaining == 20
    assert result.state.current_player.player_id == "b"


def test_round_numbers_advance_per_player():
    state = play(create_match(make_config()), ("a", 60), ("b", 60), ("a", 60))
    assert [t.round_number for t in state.current_leg.player("a").throws] == [1, 2]
    assert [t.round_number for t in state.current_leg.player("b").throws] == [1]
    assert state.current_leg.current_round == 2


def test_turn_wraps_round_robin_with_three_players():
    config = MatchConfig(
        players=(PlayerConfig("a", "A"), PlayerConfig("b", "B"), PlayerConfig("c", "C")),
        number_of_legs=1,
    )
    state = play(create_match(config), ("a", 1), ("b", 2), ("c", 3))
    assert state.current_player.player_id == "a"


def test_race_to_two_legs_ends_match_without_third_leg():
    state = create_match(make_config(starting_score=40, legs=3))
    state = advance_after_leg_win(play(state, ("a", 40)))

    assert state.phase is MatchPhase.AWAITING_THROW
    assert state.current_leg.leg_number == 2
    # Starting player rotates each leg.
    assert state.current_player.player_id == "b"

    state = advance_after_leg_win(play(state, ("b", 0), ("a", 40)))
    assert state.phase is MatchPhase.MATCH_WON
    assert state.status is MatchStatus.COMPLETED
    assert state.winner_id == "a"
    assert len(state.current_set.legs) == 2
    assert state.leg_wins() == {"a": 2, "b": 0}


def test_sets_progression():
    state = create_match(make_config(starting_score=40, legs=3, sets=3))
    state = advance_after_leg_win(play(state, ("a", 40)))
    state = advance_after_leg_win(play(state, ("b", 0), ("a", 40)))

    assert state.sets[0].winner_id == "a"
    assert state.current_set.set_number == 2
    assert state.current_leg.leg_number == 1
    assert state.set_wins() == {"a": 1, "b": 0}

    state = advance_after_leg_win(play(state, ("a", 40)))
    state = advance_after_leg_win(play(state, ("b", 40)))
    assert state.current_set.set_number == 2
    assert state.current_leg.leg_number == 3

    state = advance_after_leg_win(play(state, ("a", 40)))
    assert state.phase is MatchPhase.MATCH_WON
    assert state.winner_id == "a"
    assert state.set_wins() == {"a": 2, "b": 0}
    assert len(state.sets) == 2


def test_single_leg_match():
    state = create_match(make_config(starting_score=40, legs=1))
    state = advance_after_leg_win(play(state, ("a", 40)))
    assert state.winner_id == "a"
    assert state.is_over


def test_submit_after_leg_won_is_rejected():
    state = play(create_match(make_config(starting_score=40)), ("a", 40))
    with pytest.raises(InvalidStateError):
        submit_throw(state, "b", 20)


def test_out_of_turn_throw_is_rejected():
    state = create_match(make_config())
    with pytest.raises(InvalidStateError):
        submit_throw(state, "b", 60)


def test_invalid_score_leaves_state_untouched():
    state = create_match(make_config())
    with pytest.raises(InvalidScoreError):
        submit_throw(state, "a", 179)
    assert state.current_leg.throw_count == 0
    assert state.current_player.player_id == "a"


def test_advance_requires_won_leg():
    with pytest.raises(InvalidStateError):
        advance_after_leg_win(create_match(make_config()))


def test_quit_completes_without_winner():
    state = quit_match(play(create_match(make_config()), ("a", 60)))
    assert state.phase is MatchPhase.MATCH_WON
    assert state.status is MatchStatus.COMPLETED
    assert state.winner_id is None
    with pytest.raises(InvalidStateError):
        submit_throw(state, "b", 60)
    with pytest.raises(InvalidStateError):
        quit_match(state)


def test_quit_from_leg_won():
    state = quit_match(play(create_match(make_config(starting_score=40)), ("a", 40)))
    assert state.is_over
    assert state.winner_id is None


def test_undo_walks_back_throws():
    state = play(create_match(make_config()), ("a", 60), ("b", 45))

    state = undo_last_throw(state)
    assert state.current_player.player_id == "b"
    assert state.current_leg.player("b").remaining == 501
    assert state.current_leg.player("a").remaining == 441

    state = undo_last_throw(state)
    assert state.current_player.player_id == "a"
    assert state.current_leg.player("a").remaining == 501

    with pytest.raises(InvalidStateError):
        undo_last_throw(state)


def test_undo_bust_keeps_remaining():
    state = play(create_match(make_config(starting_score=40)), ("a", 50))
    state = undo_last_throw(state)
    assert state.current_leg.player("a").remaining == 40
    assert state.current_leg.player("a").throws == ()


def test_undo_checkout_reopens_leg():
    state = play(create_match(make_config(starting_score=40)), ("a", 40))
    state = undo_last_throw(state)
    assert state.phase is MatchPhase.AWAITING_THROW
    assert state.current_leg.winner_id is None
    assert state.current_player.player_id == "a"
    assert state.current_leg.player("a").remaining == 40


def test_remaining_never_reaches_one():
    rng = random.Random(4545)
    valid = [s for s in range(0, 181) if is_valid_score(s)]
    config = make_config(legs=5)
    state = create_match(config)
    for _ in range(2000):
        if state.phase is MatchPhase.LEG_WON:
            state = advance_after_leg_win(state)
        if state.is_over:
            state = create_match(config)
        player = state.current_player
        score = rng.choice([s for s in valid if s <= player.remaining + 5])
        state = submit_throw(state, player.player_id, score).state
        for p in state.current_leg.players:
            assert p.remaining != 1
            assert 0 <= p.remaining <= p.starting_score


def test_replaying_a_leg_reproduces_the_result():
    config = make_config()
    state = create_match(config)
    throws = [
        ("a", 140), ("b", 100), ("a", 180), ("b", 60), ("a", 100),
        ("b", 45), ("a", 60), ("b", 26), ("a", 30), ("b", 85), ("a", 21),
    ]
    state = play(state, *throws)
    finished = state.current_leg
    assert finished.winner_id == "a"

    log = ordered_log(finished)
    assert log == throws

    replayed = replay_leg(new_leg(config, 1, 1), log)
    assert replayed.winner_id == finished.winner_id
    assert [p.remaining for p in replayed.players] == [p.remaining for p in finished.players]
    assert replayed.players == finished.players


def test_replay_rejects_out_of_turn_log():
    with pytest.raises(InvalidStateError):
        replay_leg(new_leg(make_config(), 1, 1), [("b", 60)])
