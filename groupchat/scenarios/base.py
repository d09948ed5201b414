from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Sequence

from ..agents import AgentRoster
from ..rules import Rule


def _no_context() -> str:
    return ""


def _no_reset(message: str) -> None:
    return None


@dataclass
class Scenario:
    """Everything a ChatManager needs to run one kind of group chat.

    `reset(message)` re-seeds the simulated world from the opening message;
    `context()` renders that world for model-backed agents.
    """

    name: str
    roster: AgentRoster
    selection_rules: Sequence[Rule]
    termination_rules: Sequence[Rule]
    selection_guide: str = ""
    termination_criteria: str = ""
    terminate_label: str = "terminate"
    continue_label: str = "continue"
    context: Callable[[], str] = _no_context
    reset: Callable[[str], None] = _no_reset
    test_cases: Sequence[str] = field(default_factory=tuple)
