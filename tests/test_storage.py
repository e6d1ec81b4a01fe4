import sqlite3
import threading

import pytest

from dart_scorer.match import MatchConfig, MatchPhase, PlayerConfig
from dart_scorer.storage import MatchStore, config_from_json, config_to_json


def make_store(tmp_path):
    return MatchStore(str(tmp_path / "test.db"))


def solo_config():
    return MatchConfig(players=(PlayerConfig("a", "A"),), number_of_legs=1)


def test_resolve_or_create_player_is_idempotent(tmp_path):
    store = make_store(tmp_path)
    alice = store.resolve_or_create_player("Alice")
    again = store.resolve_or_create_player("Alice")
    assert alice.id == again.id
    assert [p.name for p in store.list_players()] == ["Alice"]
    assert store.get_player(alice.id).name == "Alice"
    assert store.get_player("missing") is None


def test_resolve_or_create_player_from_many_threads(tmp_path):
    store = make_store(tmp_path)
    ids = []
    errors = []

    def register():
        try:
            ids.append(store.resolve_or_create_player("Alice").id)
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=register) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(set(ids)) == 1
    assert len(store.list_players()) == 1


def test_config_json_roundtrip():
    config = MatchConfig(
        players=(PlayerConfig("a", "Alice", 501), PlayerConfig("b", "Bob", 301)),
        number_of_legs=5,
        number_of_sets=3,
    )
    assert config_from_json(config_to_json(config)) == config


def test_store_match_leg_throw_roundtrip(tmp_path):
    store = make_store(tmp_path)
    alice = store.resolve_or_create_player("Alice")
    bob = store.resolve_or_create_player("Bob")
    config = MatchConfig(
        players=(PlayerConfig(alice.id, "Alice", 101), PlayerConfig(bob.id, "Bob", 101)),
        number_of_legs=3,
    )

    match, leg = store.create_match(config)
    assert store.read_current_match().id == match.id
    assert store.read_match(match.id).config == config
    assert [record.id for record in store.list_legs(match.id)] == [leg.id]
    assert (leg.set_number, leg.leg_number, leg.starting_player_index) == (1, 1, 0)

    store.append_throw(leg.id, alice.id, 1, 60)
    store.append_throw(leg.id, bob.id, 1, 120, is_bust=True)
    store.append_throw(leg.id, alice.id, 2, 41, is_checkout=True, winner_id=alice.id)

    throws = store.list_throws_for_leg(leg.id)
    assert [t.score for t in throws] == [60, 120, 41]
    assert throws[1].is_bust is True
    assert throws[2].is_checkout is True
    [stored_leg] = store.list_legs(match.id)
    assert stored_leg.winner_id == alice.id
    assert stored_leg.completed_at is not None

    state = store.load_match_state(match.id)
    assert state.match_id == match.id
    assert state.phase is MatchPhase.LEG_WON
    assert state.current_leg.leg_id == leg.id
    assert state.current_leg.winner_id == alice.id
    assert state.current_leg.player(bob.id).remaining == 101


def test_mark_leg_complete(tmp_path):
    store = make_store(tmp_path)
    match, leg = store.create_match(solo_config())
    store.mark_leg_complete(leg.id, "a")
    [stored] = store.list_legs(match.id)
    assert stored.winner_id == "a"


def test_remove_last_throw(tmp_path):
    store = make_store(tmp_path)
    _, leg = store.create_match(solo_config())
    assert store.remove_last_throw(leg.id) is None

    store.append_throw(leg.id, "a", 1, 60)
    store.append_throw(leg.id, "a", 2, 45)
    removed = store.remove_last_throw(leg.id)
    assert removed.score == 45
    assert [t.score for t in store.list_throws_for_leg(leg.id)] == [60]


def test_removing_checkout_reopens_leg(tmp_path):
    store = make_store(tmp_path)
    config = MatchConfig(players=(PlayerConfig("a", "A", 60),), number_of_legs=3)
    match, leg = store.create_match(config)
    store.append_throw(leg.id, "a", 1, 60, is_checkout=True, winner_id="a")

    removed = store.remove_last_throw(leg.id)
    assert removed.is_checkout is True
    [stored] = store.list_legs(match.id)
    assert stored.winner_id is None
    assert stored.completed_at is None


def test_failed_leg_completion_rolls_back_throw(tmp_path, monkeypatch):
    store = make_store(tmp_path)
    config = MatchConfig(players=(PlayerConfig("a", "A", 60),), number_of_legs=3)
    match, leg = store.create_match(config)

    def broken_complete(conn, leg_id, winner_id):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(store, "_complete_leg", broken_complete)
    with pytest.raises(sqlite3.OperationalError):
        store.append_throw(leg.id, "a", 1, 60, is_checkout=True, winner_id="a")

    assert store.list_throws_for_leg(leg.id) == []
    assert store.list_legs(match.id)[0].winner_id is None


def test_failed_reopen_keeps_checkout(tmp_path, monkeypatch):
    store = make_store(tmp_path)
    config = MatchConfig(players=(PlayerConfig("a", "A", 60),), number_of_legs=3)
    match, leg = store.create_match(config)
    store.append_throw(leg.id, "a", 1, 60, is_checkout=True, winner_id="a")

    def broken_complete(conn, leg_id, winner_id):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(store, "_complete_leg", broken_complete)
    with pytest.raises(sqlite3.OperationalError):
        store.remove_last_throw(leg.id)

    assert [t.score for t in store.list_throws_for_leg(leg.id)] == [60]
    assert store.list_legs(match.id)[0].winner_id == "a"


def test_failed_first_leg_rolls_back_match(tmp_path, monkeypatch):
    store = make_store(tmp_path)

    def broken_insert(conn, match_id, set_number, leg_number, starting_player_index):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(store, "_insert_leg", broken_insert)
    with pytest.raises(sqlite3.OperationalError):
        store.create_match(solo_config())

    assert store.read_current_match() is None
    assert store.list_match_summaries() == []


def test_completed_match_is_not_current(tmp_path):
    store = make_store(tmp_path)
    match, _ = store.create_match(solo_config())
    store.mark_match_complete(match.id)
    assert store.read_current_match() is None

    state = store.load_match_state(match.id)
    assert state.is_over
    assert state.winner_id is None
