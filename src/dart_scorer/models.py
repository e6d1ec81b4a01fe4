from typing import Optional

from pydantic import BaseModel, Field


class PlayerCreate(BaseModel):
    name: str = Field(min_length=1)


class PlayerOut(BaseModel):
    player_id: str
    name: str
    created_at: str


class MatchPlayerIn(BaseModel):
    name: str = Field(min_length=1)
    starting_score: int = Field(default=501, ge=2, le=1001)


class MatchCreate(BaseModel):
    players: list[MatchPlayerIn] = Field(min_length=1)
    number_of_legs: int = Field(default=3, ge=1)
    number_of_sets: Optional[int] = Field(default=None, ge=1)


class ThrowIn(BaseModel):
    player_id: str = Field(min_length=1)
    # Range only; impossible totals such as 179 are rejected by the engine.
    score: int


class ThrowOut(BaseModel):
    score: int
    round_number: int
    is_checkout: bool
    is_bust: bool


class PlayerLegOut(BaseModel):
    player_id: str
    name: str
    starting_score: int
    remaining: int
    throws: list[ThrowOut]
    is_finished: bool


class LegOut(BaseModel):
    set_number: int
    leg_number: int
    current_player_id: Optional[str]
    current_round: int
    winner_id: Optional[str]
    players: list[PlayerLegOut]


class CheckoutOut(BaseModel):
    combo_label: str
    description: str
    darts: list[str]


class MatchOut(BaseModel):
    match_id: int
    status: str
    phase: str
    winner_id: Optional[str]
    number_of_legs: int
    number_of_sets: Optional[int]
    current_set: int
    current_leg: LegOut
    leg_wins: dict[str, int]
    set_wins: dict[str, int]
    checkout_zone: bool
    checkout_suggestions: list[CheckoutOut]


class ThrowResultOut(BaseModel):
    outcome: str
    match: MatchOut


class CheckoutSuggestionsOut(BaseModel):
    score: int
    darts_needed: int
    suggestions: list[CheckoutOut]


class PlayerStatsOut(BaseModel):
    player_id: str
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


class LegPlayerStatsOut(BaseModel):
    player_id: str
    finishing_score: Optional[int]
    is_winner: bool
    stats: PlayerStatsOut


class LegStatsOut(BaseModel):
    set_number: int
    leg_number: int
    winner_id: Optional[str]
    players: list[LegPlayerStatsOut]


class MatchStatsOut(BaseModel):
    players: list[PlayerStatsOut]
    legs: list[LegStatsOut]


class MatchSummaryOut(BaseModel):
    match_id: int
    created_at: str
    completed_at: Optional[str]
    status: str
    winner_name: Optional[str]
    total_legs: int
    player_count: int
    players: str


class PlayerAggregateOut(BaseModel):
    player_id: str
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


class HeadToHeadOut(BaseModel):
    player1_id: str
    player2_id: str
    player1_wins: int
    player2_wins: int
    total_matches: int
