from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Sequence


Predicate = Callable[[str], bool]


@dataclass(frozen=True)
class Rule:
    """A named (predicate, target) pair. Order of declaration is priority order."""

    name: str
    predicate: Predicate
    target: Any = True

    def matches(self, text: str) -> bool:
        return bool(self.predicate(text or ""))


def contains_all(*markers: str) -> Predicate:
    return lambda text: all(m in text for m in markers)


def contains_any(*markers: str) -> Predicate:
    return lambda text: any(m in text for m in markers)


def all_of(*predicates: Predicate) -> Predicate:
    return lambda text: all(p(text) for p in predicates)


def min_length(n: int) -> Predicate:
    return lambda text: len((text or "").strip()) >= n


def first_match(rules: Sequence[Rule], text: str) -> Optional[Rule]:
    for rule in rules:
        if rule.matches(text):
            return rule
    return None


_STRIP_CHARS = " \t\r\n\"'`*"


def decode_choice(text: Optional[str], choices: Iterable[str]) -> Optional[str]:
    """Decode a closed-choice model reply.

    Returns the matching member of `choices` or None; never returns raw text.
    Exact match after trimming wins over a case-insensitive match.
    """
    options = list(choices)
    raw = (text or "").strip(_STRIP_CHARS)
    if raw.endswith("."):
        raw = raw[:-1].strip(_STRIP_CHARS)
    if not raw:
        return None
    if raw in options:
        return raw
    folded = raw.casefold()
    for opt in options:
        if opt.casefold() == folded:
            return opt
    return None


class DecisionError(ValueError):
    """A model reply did not decode to any member of the closed choice set."""
