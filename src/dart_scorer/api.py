import logging
import os

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from .checkout import (
    CheckoutSuggestion,
    darts_needed,
    get_checkout_suggestions,
    is_checkout_attempt,
    is_checkout_possible,
    suggest_checkouts,
)
from .errors import InvalidScoreError, InvalidStateError, MatchNotFoundError
from .match import MatchState
from .models import (
    CheckoutOut,
    CheckoutSuggestionsOut,
    HeadToHeadOut,
    LegOut,
    LegPlayerStatsOut,
    LegStatsOut,
    MatchCreate,
    MatchOut,
    MatchStatsOut,
    MatchSummaryOut,
    PlayerAggregateOut,
    PlayerCreate,
    PlayerLegOut,
    PlayerOut,
    PlayerStatsOut,
    ThrowIn,
    ThrowOut,
    ThrowResultOut,
)
from .service import ScoringService
from .stats import PlayerStats
from .storage import MatchStore

logging.basicConfig(level=os.getenv("DARTS_LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

app = FastAPI(title="Dart Scorer", version="0.1.0")
store = MatchStore(db_path=os.getenv("DARTS_DB_PATH", "darts.db"))
service = ScoringService(store)
api_key = os.getenv("DARTS_API_KEY")


@app.middleware("http")
async def api_key_middleware(request: Request, call_next):
    if not api_key:
        return await call_next(request)

    public_paths = {"/health", "/docs", "/openapi.json", "/redoc"}
    if request.url.path in public_paths:
        return await call_next(request)

    supplied = request.headers.get("x-api-key") or request.query_params.get("api_key")
    if supplied != api_key:
        return JSONResponse(status_code=401, content={"detail": "invalid or missing api key"})

    return await call_next(request)


@app.exception_handler(InvalidScoreError)
async def invalid_score_handler(request: Request, exc: InvalidScoreError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(InvalidStateError)
async def invalid_state_handler(request: Request, exc: InvalidStateError) -> JSONResponse:
    logger.warning("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(MatchNotFoundError)
async def match_not_found_handler(request: Request, exc: MatchNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": "match not found"})


def _checkout_out(suggestion: CheckoutSuggestion) -> CheckoutOut:
    return CheckoutOut(
        combo_label=suggestion.combo_label,
        description=suggestion.description,
        darts=list(suggestion.darts),
    )


def _match_out(state: MatchState) -> MatchOut:
    leg = state.current_leg
    names = {p.player_id: p.name for p in state.config.players}
    current = state.current_player
    hints = suggest_checkouts(current.remaining) if current is not None else []
    return MatchOut(
        match_id=state.match_id,
        status=state.status.value,
        phase=state.phase.value,
        winner_id=state.winner_id,
        number_of_legs=state.config.number_of_legs,
        number_of_sets=state.config.number_of_sets,
        current_set=state.current_set.set_number,
        current_leg=LegOut(
            set_number=leg.set_number,
            leg_number=leg.leg_number,
            current_player_id=current.player_id if current is not None else None,
            current_round=leg.current_round,
            winner_id=leg.winner_id,
            players=[
                PlayerLegOut(
                    player_id=p.player_id,
                    name=names[p.player_id],
                    starting_score=p.starting_score,
                    remaining=p.remaining,
                    throws=[
                        ThrowOut(
                            score=t.score,
                            round_number=t.round_number,
                            is_checkout=t.is_checkout,
                            is_bust=t.is_bust,
                        )
                        for t in p.throws
                    ],
                    is_finished=p.is_finished,
                )
                for p in leg.players
            ],
        ),
        leg_wins=state.leg_wins(),
        set_wins=state.set_wins() if state.config.uses_sets else {},
        checkout_zone=current is not None and is_checkout_attempt(current.remaining),
        checkout_suggestions=[_checkout_out(s) for s in hints],
    )


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/players", response_model=PlayerOut)
def create_player(payload: PlayerCreate) -> PlayerOut:
    player = service.register_player(payload.name)
    return PlayerOut(player_id=player.id, name=player.name, created_at=player.created_at)


@app.get("/players", response_model=list[PlayerOut])
def list_players() -> list[PlayerOut]:
    return [PlayerOut(player_id=p.id, name=p.name, created_at=p.created_at) for p in store.list_players()]


@app.post("/matches", response_model=MatchOut)
def create_match(payload: MatchCreate) -> MatchOut:
    try:
        state = service.start_match(
            players=[(p.name, p.starting_score) for p in payload.players],
            number_of_legs=payload.number_of_legs,
            number_of_sets=payload.number_of_sets,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _match_out(state)


@app.get("/matches/current", response_model=MatchOut)
def current_match() -> MatchOut:
    return _match_out(service.current_match())


@app.get("/matches/{match_id}", response_model=MatchOut)
def get_match(match_id: int) -> MatchOut:
    return _match_out(service.get_match(match_id))


@app.post("/matches/{match_id}/throws", response_model=ThrowResultOut)
def submit_throw(match_id: int, payload: ThrowIn) -> ThrowResultOut:
    result = service.submit_throw(match_id, payload.player_id, payload.score)
    return ThrowResultOut(outcome=result.outcome.value, match=_match_out(result.state))


@app.post("/matches/{match_id}/undo", response_model=MatchOut)
def undo_throw(match_id: int) -> MatchOut:
    return _match_out(service.undo_last_throw(match_id))


@app.post("/matches/{match_id}/advance", response_model=MatchOut)
def advance(match_id: int) -> MatchOut:
    return _match_out(service.advance(match_id))


@app.post("/matches/{match_id}/quit", response_model=MatchOut)
def quit_match(match_id: int) -> MatchOut:
    return _match_out(service.quit(match_id))


def _player_stats_out(player_id: str, s: PlayerStats) -> PlayerStatsOut:
    return PlayerStatsOut(
        player_id=player_id,
        turns=s.turns,
        darts_thrown=s.darts_thrown,
        points_scored=s.points_scored,
        three_dart_average=s.three_dart_average,
        first_nine_average=s.first_nine_average,
        scores_100_plus=s.scores_100_plus,
        scores_140_plus=s.scores_140_plus,
        scores_180=s.scores_180,
        highest_score=s.highest_score,
        busts=s.busts,
        checkouts=s.checkouts,
    )


@app.get("/matches/{match_id}/stats", response_model=MatchStatsOut)
def match_stats(match_id: int) -> MatchStatsOut:
    totals = service.match_stats(match_id)
    legs = [
        LegStatsOut(
            set_number=leg.set_number,
            leg_number=leg.leg_number,
            winner_id=leg.winner_id,
            players=[
                LegPlayerStatsOut(
                    player_id=entry.player_id,
                    finishing_score=entry.finishing_score,
                    is_winner=entry.is_winner,
                    stats=_player_stats_out(entry.player_id, entry.stats),
                )
                for entry in entries
            ],
        )
        for leg, entries in service.leg_breakdown(match_id)
    ]
    return MatchStatsOut(
        players=[_player_stats_out(player_id, s) for player_id, s in totals.items()],
        legs=legs,
    )


@app.get("/checkout/{score}", response_model=CheckoutSuggestionsOut)
def checkout(score: int) -> CheckoutSuggestionsOut:
    if not is_checkout_possible(score):
        raise HTTPException(status_code=404, detail="No checkout combinations for score")
    return CheckoutSuggestionsOut(
        score=score,
        darts_needed=darts_needed(score),
        suggestions=[_checkout_out(s) for s in get_checkout_suggestions(score)],
    )


@app.get("/history", response_model=list[MatchSummaryOut])
def history() -> list[MatchSummaryOut]:
    return [
        MatchSummaryOut(
            match_id=m.id,
            created_at=m.created_at,
            completed_at=m.completed_at,
            status=m.status,
            winner_name=m.winner_name,
            total_legs=m.total_legs,
            player_count=m.player_count,
            players=m.players,
        )
        for m in service.history()
    ]


@app.get("/stats/players", response_model=list[PlayerAggregateOut])
def player_stats() -> list[PlayerAggregateOut]:
    return [
        PlayerAggregateOut(
            player_id=p.id,
            name=p.name,
            matches_played=p.matches_played,
            matches_won=p.matches_won,
            total_throws=p.total_throws,
            total_score=p.total_score,
            overall_average=p.overall_average,
            highest_score=p.highest_score,
            scores_100_plus=p.scores_100_plus,
            scores_140_plus=p.scores_140_plus,
            scores_180=p.scores_180,
            successful_checkouts=p.successful_checkouts,
            win_percentage=p.win_percentage,
        )
        for p in service.player_stats()
    ]


@app.get("/stats/head-to-head/{player1_id}/{player2_id}", response_model=HeadToHeadOut)
def head_to_head(player1_id: str, player2_id: str) -> HeadToHeadOut:
    for player_id in (player1_id, player2_id):
        if store.get_player(player_id) is None:
            raise HTTPException(status_code=404, detail="player not found")
    counts = service.head_to_head(player1_id, player2_id)
    return HeadToHeadOut(player1_id=player1_id, player2_id=player2_id, **counts)
