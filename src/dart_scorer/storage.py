from __future__ import annotations

import json
import logging
import sqlite3
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from .errors import MatchNotFoundError
from .match import (
    MatchConfig,
    MatchPhase,
    MatchState,
    PlayerConfig,
    advance_after_leg_win,
    attach_leg_id,
    create_match,
    quit_match,
    submit_throw,
)

logger = logging.getLogger(__name__)


@dataclass
class PlayerRecord:
    id: str
    name: str
    created_at: str


@dataclass
class MatchRecord:
    id: int
    config: MatchConfig
    status: str
    created_at: str
    completed_at: str | None
    winner_id: str | None


@dataclass
class LegRecord:
    id: int
    match_id: int
    set_number: int
    leg_number: int
    starting_player_index: int
    winner_id: str | None
    created_at: str
    completed_at: str | None


@dataclass
class ThrowRecord:
    id: int
    leg_id: int
    player_id: str
    round_number: int
    score: int
    is_checkout: bool
    is_bust: bool
    created_at: str


@dataclass
class MatchSummary:
    id: int
    created_at: str
    completed_at: str | None
    status: str
    winner_name: str | None
    total_legs: int
    player_count: int
    players: str


@dataclass
class PlayerAggregate:
    id: str
    name: str
    matches_played: int
    matches_won: int
    total_throws: int
    total_score: int
    overall_average: float
    highest_score: int
    scores_100_plus: int
    scores_140_plus: int
    scores_180: int
    successful_checkouts: int
    win_percentage: int


def config_to_json(config: MatchConfig) -> str:
    return json.dumps(
        {
            "number_of_legs": config.number_of_legs,
            "number_of_sets": config.number_of_sets,
            "players": [
                {"id": p.player_id, "name": p.name, "starting_score": p.starting_score}
                for p in config.players
            ],
        }
    )


def config_from_json(raw: str) -> MatchConfig:
    payload = json.loads(raw)
    return MatchConfig(
        players=tuple(
            PlayerConfig(player_id=p["id"], name=p["name"], starting_score=p["starting_score"])
            for p in payload["players"]
        ),
        number_of_legs=payload["number_of_legs"],
        number_of_sets=payload.get("number_of_sets"),
    )


class MatchStore:
    def __init__(self, db_path: str = "darts.db") -> None:
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS players (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL UNIQUE,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS matches (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    config TEXT NOT NULL,
                    status TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    completed_at TEXT,
                    winner_id TEXT,
                    FOREIGN KEY(winner_id) REFERENCES players(id)
                );

                CREATE TABLE IF NOT EXISTS match_players (
                    match_id INTEGER NOT NULL,
                    player_id TEXT NOT NULL,
                    starting_score INTEGER NOT NULL,
                    position INTEGER NOT NULL,
                    PRIMARY KEY(match_id, player_id),
                    FOREIGN KEY(match_id) REFERENCES matches(id),
                    FOREIGN KEY(player_id) REFERENCES players(id)
                );

                CREATE TABLE IF NOT EXISTS legs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    match_id INTEGER NOT NULL,
                    set_number INTEGER NOT NULL,
                    leg_number INTEGER NOT NULL,
                    starting_player_index INTEGER NOT NULL,
                    winner_id TEXT,
                    created_at TEXT NOT NULL,
                    completed_at TEXT,
                    FOREIGN KEY(match_id) REFERENCES matches(id)
                );

                CREATE TABLE IF NOT EXISTS throws (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    leg_id INTEGER NOT NULL,
                    player_id TEXT NOT NULL,
                    round_number INTEGER NOT NULL,
                    score INTEGER NOT NULL,
                    is_checkout INTEGER NOT NULL,
                    is_bust INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY(leg_id) REFERENCES legs(id),
                    FOREIGN KEY(player_id) REFERENCES players(id)
                );

                CREATE INDEX IF NOT EXISTS idx_legs_match ON legs(match_id);
                CREATE INDEX IF NOT EXISTS idx_throws_leg ON throws(leg_id);
                CREATE INDEX IF NOT EXISTS idx_throws_player ON throws(player_id);
                """
            )

    @staticmethod
    def _now_iso() -> str:
        return datetime.now(timezone.utc).isoformat()

    # --- Players ---

    @staticmethod
    def _player_from_row(row: sqlite3.Row) -> PlayerRecord:
        return PlayerRecord(id=row["id"], name=row["name"], created_at=row["created_at"])

    def get_player(self, player_id: str) -> PlayerRecord | None:
        with self._lock, self._connect() as conn:
            row = conn.execute("SELECT * FROM players WHERE id = ?", (player_id,)).fetchone()
            if row is None:
                return None
            return self._player_from_row(row)

    def resolve_or_create_player(self, name: str) -> PlayerRecord:
        """Return the player with this name, creating it on first use."""
        with self._lock, self._connect() as conn:
            conn.execute(
                "INSERT INTO players (id, name, created_at) VALUES (?, ?, ?) ON CONFLICT(name) DO NOTHING",
                (uuid.uuid4().hex[:12], name, self._now_iso()),
            )
            row = conn.execute("SELECT * FROM players WHERE name = ?", (name,)).fetchone()
            return self._player_from_row(row)

    def list_players(self) -> list[PlayerRecord]:
        with self._lock, self._connect() as conn:
            rows = conn.execute("SELECT * FROM players ORDER BY name ASC").fetchall()
            return [self._player_from_row(row) for row in rows]

    # --- Matches ---

    def create_match(self, config: MatchConfig) -> tuple[MatchRecord, LegRecord]:
        """Insert a match together with its opening leg in one transaction."""
        with self._lock, self._connect() as conn:
            created_at = self._now_iso()
            cursor = conn.execute(
                "INSERT INTO matches (config, status, created_at) VALUES (?, ?, ?)",
                (config_to_json(config), "in_progress", created_at),
            )
            match_id = int(cursor.lastrowid)
            conn.executemany(
                """
                INSERT INTO match_players (match_id, player_id, starting_score, position)
                VALUES (?, ?, ?, ?)
                """,
                [
                    (match_id, p.player_id, p.starting_score, position)
                    for position, p in enumerate(config.players)
                ],
            )
            leg = self._insert_leg(conn, match_id, set_number=1, leg_number=1, starting_player_index=0)
            match = MatchRecord(
                id=match_id,
                config=config,
                status="in_progress",
                created_at=created_at,
                completed_at=None,
                winner_id=None,
            )
            return match, leg

    @staticmethod
    def _match_from_row(row: sqlite3.Row) -> MatchRecord:
        return MatchRecord(
            id=row["id"],
            config=config_from_json(row["config"]),
            status=row["status"],
            created_at=row["created_at"],
            completed_at=row["completed_at"],
            winner_id=row["winner_id"],
        )

    def read_match(self, match_id: int) -> MatchRecord | None:
        with self._lock, self._connect() as conn:
            row = conn.execute("SELECT * FROM matches WHERE id = ?", (match_id,)).fetchone()
            if row is None:
                return None
            return self._match_from_row(row)

    def read_current_match(self) -> MatchRecord | None:
        """The most recently created match that is still in progress."""
        with self._lock, self._connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM matches
                WHERE status = 'in_progress'
                ORDER BY created_at DESC, id DESC
                LIMIT 1
                """
            ).fetchone()
            if row is None:
                return None
            return self._match_from_row(row)

    def mark_match_complete(self, match_id: int, winner_id: str | None = None) -> None:
        with self._lock, self._connect() as conn:
            conn.execute(
                "UPDATE matches SET status = 'completed', completed_at = ?, winner_id = ? WHERE id = ?",
                (self._now_iso(), winner_id, match_id),
            )

    # --- Legs ---

    def _insert_leg(
        self,
        conn: sqlite3.Connection,
        match_id: int,
        set_number: int,
        leg_number: int,
        starting_player_index: int,
    ) -> LegRecord:
        created_at = self._now_iso()
        cursor = conn.execute(
            """
            INSERT INTO legs (match_id, set_number, leg_number, starting_player_index, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (match_id, set_number, leg_number, starting_player_index, created_at),
        )
        return LegRecord(
            id=int(cursor.lastrowid),
            match_id=match_id,
            set_number=set_number,
            leg_number=leg_number,
            starting_player_index=starting_player_index,
            winner_id=None,
            created_at=created_at,
            completed_at=None,
        )

    def create_leg(self, match_id: int, set_number: int, leg_number: int, starting_player_index: int = 0) -> LegRecord:
        with self._lock, self._connect() as conn:
            return self._insert_leg(conn, match_id, set_number, leg_number, starting_player_index)

    def list_legs(self, match_id: int) -> list[LegRecord]:
        with self._lock, self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM legs WHERE match_id = ? ORDER BY id ASC",
                (match_id,),
            ).fetchall()
            return [
                LegRecord(
                    id=row["id"],
                    match_id=row["match_id"],
                    set_number=row["set_number"],
                    leg_number=row["leg_number"],
                    starting_player_index=row["starting_player_index"],
                    winner_id=row["winner_id"],
                    created_at=row["created_at"],
                    completed_at=row["completed_at"],
                )
                for row in rows
            ]

    def _complete_leg(self, conn: sqlite3.Connection, leg_id: int, winner_id: str | None) -> None:
        completed_at = self._now_iso() if winner_id is not None else None
        conn.execute(
            "UPDATE legs SET winner_id = ?, completed_at = ? WHERE id = ?",
            (winner_id, completed_at, leg_id),
        )

    def mark_leg_complete(self, leg_id: int, winner_id: str) -> None:
        with self._lock, self._connect() as conn:
            self._complete_leg(conn, leg_id, winner_id)

    # --- Throws ---

    def append_throw(
        self,
        leg_id: int,
        player_id: str,
        round_number: int,
        score: int,
        is_checkout: bool = False,
        is_bust: bool = False,
        winner_id: str | None = None,
    ) -> ThrowRecord:
        """
        Store a throw. When `winner_id` is given the leg is marked won by the
        same transaction, so a checkout is never stored without its result.
        """
        with self._lock, self._connect() as conn:
            created_at = self._now_iso()
            cursor = conn.execute(
                """
                INSERT INTO throws (leg_id, player_id, round_number, score, is_checkout, is_bust, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (leg_id, player_id, round_number, score, int(is_checkout), int(is_bust), created_at),
            )
            if winner_id is not None:
                self._complete_leg(conn, leg_id, winner_id)
            return ThrowRecord(
                id=int(cursor.lastrowid),
                leg_id=leg_id,
                player_id=player_id,
                round_number=round_number,
                score=score,
                is_checkout=is_checkout,
                is_bust=is_bust,
                created_at=created_at,
            )

    @staticmethod
    def _throw_from_row(row: sqlite3.Row) -> ThrowRecord:
        return ThrowRecord(
            id=row["id"],
            leg_id=row["leg_id"],
            player_id=row["player_id"],
            round_number=row["round_number"],
            score=row["score"],
            is_checkout=bool(row["is_checkout"]),
            is_bust=bool(row["is_bust"]),
            created_at=row["created_at"],
        )

    def list_throws_for_leg(self, leg_id: int) -> list[ThrowRecord]:
        with self._lock, self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM throws WHERE leg_id = ? ORDER BY id ASC",
                (leg_id,),
            ).fetchall()
            return [self._throw_from_row(row) for row in rows]

    def remove_last_throw(self, leg_id: int) -> ThrowRecord | None:
        """
        Delete the newest throw of a leg and return it. Removing a checkout
        reopens the leg in the same transaction.
        """
        with self._lock, self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM throws WHERE leg_id = ? ORDER BY id DESC LIMIT 1",
                (leg_id,),
            ).fetchone()
            if row is None:
                return None
            conn.execute("DELETE FROM throws WHERE id = ?", (row["id"],))
            if row["is_checkout"]:
                self._complete_leg(conn, leg_id, None)
            return self._throw_from_row(row)

    # --- Read-side views ---

    def list_match_summaries(self) -> list[MatchSummary]:
        with self._lock, self._connect() as conn:
            rows = conn.execute(
                """
                SELECT
                    m.id, m.created_at, m.completed_at, m.status,
                    w.name AS winner_name,
                    (SELECT COUNT(*) FROM legs l WHERE l.match_id = m.id AND l.winner_id IS NOT NULL)
                        AS total_legs,
                    (SELECT COUNT(*) FROM match_players mp WHERE mp.match_id = m.id) AS player_count
                FROM matches m
                LEFT JOIN players w ON w.id = m.winner_id
                ORDER BY m.created_at DESC, m.id DESC
                """
            ).fetchall()
            names: dict[int, list[str]] = {}
            for row in conn.execute(
                """
                SELECT mp.match_id, p.name FROM match_players mp
                JOIN players p ON p.id = mp.player_id
                ORDER BY mp.match_id, mp.position
                """
            ):
                names.setdefault(row["match_id"], []).append(row["name"])
            return [
                MatchSummary(
                    id=row["id"],
                    created_at=row["created_at"],
                    completed_at=row["completed_at"],
                    status=row["status"],
                    winner_name=row["winner_name"],
                    total_legs=row["total_legs"],
                    player_count=row["player_count"],
                    players=", ".join(names.get(row["id"], [])),
                )
                for row in rows
            ]

    def read_player_aggregate_stats(self) -> list[PlayerAggregate]:
        with self._lock, self._connect() as conn:
            rows = conn.execute(
                """
                SELECT
                    p.id, p.name,
                    (SELECT COUNT(*) FROM match_players mp WHERE mp.player_id = p.id) AS matches_played,
                    (SELECT COUNT(*) FROM matches m WHERE m.winner_id = p.id) AS matches_won,
                    COUNT(t.id) AS total_throws,
                    COALESCE(SUM(CASE WHEN t.is_bust THEN 0 ELSE t.score END), 0) AS total_score,
                    COALESCE(MAX(CASE WHEN t.is_bust THEN 0 ELSE t.score END), 0) AS highest_score,
                    COALESCE(SUM(CASE WHEN NOT t.is_bust AND t.score >= 100 THEN 1 ELSE 0 END), 0)
                        AS scores_100_plus,
                    COALESCE(SUM(CASE WHEN NOT t.is_bust AND t.score >= 140 THEN 1 ELSE 0 END), 0)
                        AS scores_140_plus,
                    COALESCE(SUM(CASE WHEN NOT t.is_bust AND t.score = 180 THEN 1 ELSE 0 END), 0)
                        AS scores_180,
                    COALESCE(SUM(t.is_checkout), 0) AS successful_checkouts
                FROM players p
                LEFT JOIN throws t ON t.player_id = p.id
                GROUP BY p.id, p.name
                ORDER BY p.name ASC
                """
            ).fetchall()
            result = []
            for row in rows:
                throws = row["total_throws"]
                played = row["matches_played"]
                result.append(
                    PlayerAggregate(
                        id=row["id"],
                        name=row["name"],
                        matches_played=played,
                        matches_won=row["matches_won"],
                        total_throws=throws,
                        total_score=row["total_score"],
                        overall_average=round(row["total_score"] / throws, 2) if throws else 0.0,
                        highest_score=row["highest_score"],
                        scores_100_plus=row["scores_100_plus"],
                        scores_140_plus=row["scores_140_plus"],
                        scores_180=row["scores_180"],
                        successful_checkouts=row["successful_checkouts"],
                        win_percentage=round(row["matches_won"] / played * 100) if played else 0,
                    )
                )
            return result

    def head_to_head(self, player1_id: str, player2_id: str) -> dict[str, int]:
        """Completed-match win counts between two players who both took part."""
        with self._lock, self._connect() as conn:
            rows = conn.execute(
                """
                SELECT m.winner_id FROM matches m
                WHERE m.status = 'completed'
                  AND EXISTS (SELECT 1 FROM match_players a WHERE a.match_id = m.id AND a.player_id = ?)
                  AND EXISTS (SELECT 1 FROM match_players b WHERE b.match_id = m.id AND b.player_id = ?)
                  AND m.winner_id IN (?, ?)
                """,
                (player1_id, player2_id, player1_id, player2_id),
            ).fetchall()
            winners = [row["winner_id"] for row in rows]
            return {
                "player1_wins": winners.count(player1_id),
                "player2_wins": winners.count(player2_id),
                "total_matches": len(winners),
            }

    # --- Rehydration ---

    def load_match_state(self, match_id: int) -> MatchState:
        """Rebuild a match by replaying its stored throws through the scoring engine."""
        record = self.read_match(match_id)
        if record is None:
            raise MatchNotFoundError(match_id)

        state = create_match(record.config, match_id=record.id)
        for position, leg_record in enumerate(self.list_legs(match_id)):
            if position > 0:
                state = advance_after_leg_win(state)
            state = attach_leg_id(state, leg_record.id)
            for throw in self.list_throws_for_leg(leg_record.id):
                state = submit_throw(state, throw.player_id, throw.score).state

        if record.status == "completed" and not state.is_over:
            if record.winner_id is not None and state.phase is MatchPhase.LEG_WON:
                state = advance_after_leg_win(state)
            else:
                state = quit_match(state)
        logger.debug("Rehydrated match id=%s in phase %s", match_id, state.phase.value)
        return state

