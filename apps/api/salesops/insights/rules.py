from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar


S = TypeVar("S")
O = TypeVar("O")


@dataclass(frozen=True, slots=True)
class Rule(Generic[S, O]):
    """One entry of an override chain: when ``predicate`` holds, ``outcome`` applies."""

    name: str
    predicate: Callable[[S], bool]
    outcome: O


def last_match(rules: Sequence[Rule[S, O]], subject: S, default: O) -> O:
    """Evaluate every rule in order; the last rule whose predicate holds wins."""
    result = default
    for rule in rules:
        if rule.predicate(subject):
            result = rule.outcome
    return result


def matching(rules: Sequence[Rule[S, O]], subject: S) -> list[O]:
    return [rule.outcome for rule in rules if rule.predicate(subject)]
