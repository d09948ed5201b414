from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


USER_SPEAKER = "user"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat() + "Z"


class RunState(Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETE = "complete"
    ABORTED = "aborted"


class CompletionReason(Enum):
    TERMINAL_MARKER = "terminal_marker"
    MAX_TURNS = "max_turns"
    ERROR = "error"


@dataclass(frozen=True)
class Turn:
    speaker: str
    text: str
    timestamp: str = field(default_factory=utc_timestamp)

    def as_dict(self) -> Dict[str, str]:
        return {"speaker": self.speaker, "message": self.text, "timestamp": self.timestamp}


@dataclass
class RunMetrics:
    turn_count: int = 0
    failures: int = 0
    consecutive_failures: int = 0
    downgraded: bool = False
    failure_points: List[str] = field(default_factory=list)


@dataclass
class RunResult:
    state: RunState
    turns: List[Turn]
    turn_count: int
    reason: Optional[CompletionReason] = None
    error: Optional[str] = None
    downgraded: bool = False

    @property
    def resolved(self) -> bool:
        """True only when a terminal marker (not the turn ceiling) ended the run."""
        return self.state is RunState.COMPLETE and self.reason is CompletionReason.TERMINAL_MARKER

    @property
    def last_message(self) -> str:
        return self.turns[-1].text if self.turns else ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "reason": self.reason.value if self.reason else None,
            "resolved": self.resolved,
            "turn_count": self.turn_count,
            "downgraded": self.downgraded,
            "error": self.error,
            "conversation": [t.as_dict() for t in self.turns],
        }
