class ScoringError(Exception):
    """Base class for errors raised by the scoring engine."""


class InvalidScoreError(ScoringError, ValueError):
    def __init__(self, score: object) -> None:
        self.score = score
        super().__init__(f"{score!r} is not an achievable 3-dart score")


class InvalidStateError(ScoringError, RuntimeError):
    """An operation was attempted against a match in the wrong phase."""


class MatchNotFoundError(ScoringError, LookupError):
    def __init__(self, match_id: object) -> None:
        self.match_id = match_id
        super().__init__(f"match {match_id!r} not found")
