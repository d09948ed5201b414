from __future__ import annotations

from typing import Dict, Iterator, List, Tuple

from .states import Turn


NO_MESSAGES = "no messages yet"


class ConversationLog:
    """Ordered, append-only turn history for a single run.

    Owned by one ChatManager; `reset()` is the only way to drop turns.
    """

    def __init__(self) -> None:
        self._turns: List[Turn] = []
        self.is_complete = False

    def reset(self) -> None:
        self._turns.clear()
        self.is_complete = False

    def append(self, turn: Turn) -> Turn:
        if not turn.speaker or not turn.speaker.strip():
            raise ValueError("turn speaker must be a non-empty agent name")
        self._turns.append(turn)
        return turn

    def last_message(self) -> str:
        if not self._turns:
            return NO_MESSAGES
        return self._turns[-1].text

    @property
    def turns(self) -> Tuple[Turn, ...]:
        return tuple(self._turns)

    def as_dicts(self) -> List[Dict[str, str]]:
        return [t.as_dict() for t in self._turns]

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(tuple(self._turns))
