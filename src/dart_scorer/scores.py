from .errors import InvalidScoreError


MAX_SCORE = 180

# Totals in [0, 180] that no combination of three darts can make.
IMPOSSIBLE_SCORES = frozenset({163, 166, 169, 172, 173, 175, 176, 178, 179})


def is_valid_score(score: object) -> bool:
    if isinstance(score, bool) or not isinstance(score, int):
        return False
    if score < 0 or score > MAX_SCORE:
        return False
    return score not in IMPOSSIBLE_SCORES


def require_valid_score(score: object) -> int:
    if isinstance(score, int) and is_valid_score(score):
        return score
    raise InvalidScoreError(score)
