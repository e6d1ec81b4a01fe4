from __future__ import annotations

from dataclasses import dataclass
from itertools import combinations_with_replacement
from types import MappingProxyType
from typing import Mapping, Optional


SINGLES = {f"S{i}": i for i in range(1, 21)}
DOUBLES = {f"D{i}": i * 2 for i in range(1, 21)}
TRIPLES = {f"T{i}": i * 3 for i in range(1, 21)}
BULLS = {"25": 25, "Bull": 50}

ALL_THROWS: dict[str, int] = {}
ALL_THROWS.update(SINGLES)
ALL_THROWS.update(DOUBLES)
ALL_THROWS.update(TRIPLES)
ALL_THROWS.update(BULLS)

FINISH_THROWS: dict[str, int] = {}
FINISH_THROWS.update(DOUBLES)
FINISH_THROWS["Bull"] = 50

MAX_CHECKOUT = 170

# Finishing doubles in the order a player would rather be left on.
FINISH_PREFERENCE = (
    "D20", "D16", "D18", "D12", "D10", "D8", "D19", "D17", "D14", "D15",
    "D13", "D11", "D9", "D7", "D6", "D4", "D5", "D3", "D2", "D1", "Bull",
)

# Routes used on the professional circuit, preferred over anything derived.
CANONICAL_CHECKOUTS: dict[int, tuple[str, ...]] = {
    170: ("T20", "T20", "Bull"),
    167: ("T20", "T19", "Bull"),
    164: ("T20", "T18", "Bull"),
    161: ("T20", "T17", "Bull"),
    160: ("T20", "T20", "D20"),
    158: ("T20", "T20", "D19"),
    157: ("T20", "T19", "D20"),
    156: ("T20", "T20", "D18"),
    155: ("T20", "T19", "D19"),
    154: ("T20", "T18", "D20"),
    153: ("T20", "T19", "D18"),
    152: ("T20", "T20", "D16"),
    151: ("T20", "T17", "D20"),
    150: ("T20", "T18", "D18"),
    141: ("T20", "T19", "D12"),
    121: ("T20", "T11", "D14"),
    120: ("T20", "S20", "D20"),
    110: ("T20", "Bull"),
    100: ("T20", "D20"),
}

_KIND_NAMES = {"S": "Single", "D": "Double", "T": "Triple"}


@dataclass(frozen=True)
class CheckoutSuggestion:
    darts: tuple[str, ...]

    @property
    def combo_label(self) -> str:
        return ", ".join(self.darts)

    @property
    def description(self) -> str:
        return ", ".join(describe_dart(label) for label in self.darts)

    @property
    def total(self) -> int:
        return sum(ALL_THROWS[label] for label in self.darts)


def describe_dart(label: str) -> str:
    if label == "Bull":
        return "Bullseye"
    if label == "25":
        return "Outer Bull"
    return f"{_KIND_NAMES[label[0]]} {label[1:]}"


def _rank_throw(label: str) -> tuple[int, int, str]:
    """Prefer higher-value throws, then deterministic lexical tie-break."""
    kind_rank = {"T": 0, "D": 1, "S": 2}.get(label[0], 3)
    return (-ALL_THROWS[label], kind_rank, label)


def _route_key(route: tuple[str, ...]) -> tuple:
    setup = route[:-1]
    return (
        len(route),
        -setup.count("T20"),
        FINISH_PREFERENCE.index(route[-1]),
        tuple(_rank_throw(label) for label in setup),
    )


def _search_routes() -> dict[int, tuple[str, ...]]:
    """Best 1-3 dart double-out route for every reachable total."""
    best: dict[int, tuple[str, ...]] = {}

    def offer(route: tuple[str, ...]) -> None:
        total = sum(ALL_THROWS[label] for label in route)
        if total > MAX_CHECKOUT:
            return
        current = best.get(total)
        if current is None or _route_key(route) < _route_key(current):
            best[total] = route

    prethrows = sorted(ALL_THROWS.keys(), key=_rank_throw)
    for last in FINISH_THROWS:
        offer((last,))
        for first in prethrows:
            offer((first, last))
        # Set-up darts are order-free; list the heavier one first.
        for first, second in combinations_with_replacement(prethrows, 2):
            offer((first, second, last))
    return best


def _build_table() -> Mapping[int, tuple[CheckoutSuggestion, ...]]:
    searched = _search_routes()
    table: dict[int, tuple[CheckoutSuggestion, ...]] = {}
    for score in range(2, MAX_CHECKOUT + 1):
        if score in CANONICAL_CHECKOUTS:
            route = CANONICAL_CHECKOUTS[score]
        elif score <= 40 and score % 2 == 0:
            route = (f"D{score // 2}",)
        elif score <= 41 and score % 2 == 1:
            route = ("S1", f"D{(score - 1) // 2}")
        elif score <= 49 and score % 2 == 1:
            route = (f"S{score - 40}", "D20")
        elif score in searched:
            route = searched[score]
        else:
            continue
        table[score] = (CheckoutSuggestion(route),)
    return MappingProxyType(table)


CHECKOUT_TABLE = _build_table()


def suggest_checkouts(remaining: int) -> list[CheckoutSuggestion]:
    if remaining <= 1 or remaining > MAX_CHECKOUT:
        return []
    return list(CHECKOUT_TABLE.get(remaining, ()))


get_checkout_suggestions = suggest_checkouts


def is_checkout_attempt(remaining: int) -> bool:
    return 2 <= remaining <= MAX_CHECKOUT


def is_checkout_possible(remaining: int) -> bool:
    return remaining in CHECKOUT_TABLE


def darts_needed(remaining: int) -> Optional[int]:
    suggestions = CHECKOUT_TABLE.get(remaining)
    if not suggestions:
        return None
    return len(suggestions[0].darts)
