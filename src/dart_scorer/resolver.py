from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .scores import require_valid_score


class Outcome(str, Enum):
    BUST = "bust"
    FINISH = "finish"
    CONTINUE = "continue"


@dataclass(frozen=True)
class ThrowResolution:
    outcome: Outcome
    new_remaining: int


def resolve_throw(remaining: int, thrown: int) -> ThrowResolution:
    """Apply a 3-dart total to a remaining score under double-out rules.

    Only the visit total is known, so a zero finish is accepted without
    checking that the last dart was a double.
    """
    require_valid_score(thrown)

    candidate = remaining - thrown
    if candidate < 0 or candidate == 1:
        return ThrowResolution(Outcome.BUST, remaining)
    if candidate == 0:
        return ThrowResolution(Outcome.FINISH, 0)
    return ThrowResolution(Outcome.CONTINUE, candidate)
