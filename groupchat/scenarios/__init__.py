from __future__ import annotations

from typing import Any, Callable, Dict

from .base import Scenario
from .nrd import NrdAgent, build_nrd_scenario
from .printer import PrinterAgent, build_printer_scenario


SCENARIOS: Dict[str, Callable[..., Scenario]] = {
    "nrd": build_nrd_scenario,
    "printer": build_printer_scenario,
}


def build_scenario(name: str, **options: Any) -> Scenario:
    """Build a fresh scenario (new simulated world) by registry name."""
    try:
        factory = SCENARIOS[name]
    except KeyError:
        raise KeyError(f"unknown scenario {name!r}; choose from {sorted(SCENARIOS)}") from None
    return factory(**options)


__all__ = [
    "NrdAgent",
    "PrinterAgent",
    "SCENARIOS",
    "Scenario",
    "build_nrd_scenario",
    "build_printer_scenario",
    "build_scenario",
]
