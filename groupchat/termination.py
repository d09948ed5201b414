from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from loguru import logger

from .llm import Invoke
from .rules import DecisionError, Rule, decode_choice, first_match
from .states import CompletionReason


TERMINATION_PROMPT = """Examine the provided RESPONSE and determine if the conversation should terminate.
Reply with only "{terminate}" or "{cont}" without explanation.

{criteria}

RESPONSE:
{response}"""


@dataclass(frozen=True)
class TerminationDecision:
    terminate: bool
    reason: Optional[CompletionReason] = None
    rule: Optional[str] = None


CONTINUE = TerminationDecision(False)


class TerminationEvaluator:
    """Decides whether the latest message ends the conversation.

    The turn ceiling always ends a run, but a marker on the ceiling turn still
    reports TERMINAL_MARKER. Messages shorter than `min_length` never match a
    marker. Between those, either the marker rules or a two-label model prompt decide.
    """

    def __init__(
        self,
        rules: Sequence[Rule],
        max_turns: int,
        min_length: int = 10,
        criteria: str = "",
        terminate_label: str = "terminate",
        continue_label: str = "continue",
    ) -> None:
        self.rules = tuple(rules)
        self.max_turns = max_turns
        self.min_length = min_length
        self.criteria = criteria
        self.terminate_label = terminate_label
        self.continue_label = continue_label

    def preliminary(self, text: str, turn_count: int) -> Optional[TerminationDecision]:
        """Checks that need no strategy: the ceiling (marker rules still name the reason) and the noise filter."""
        short = len((text or "").strip()) < self.min_length
        if turn_count >= self.max_turns:
            marker = None if short else self._match(text, turn_count)
            if marker is not None:
                return marker
            logger.info(f"chat_terminate | reason=max_turns turns={turn_count}")
            return TerminationDecision(True, CompletionReason.MAX_TURNS)
        if short:
            return CONTINUE
        return None

    def _match(self, text: str, turn_count: int) -> Optional[TerminationDecision]:
        rule = first_match(self.rules, text)
        if rule is None:
            return None
        logger.info(f"chat_terminate | reason=marker rule={rule.name} turns={turn_count}")
        return TerminationDecision(True, CompletionReason.TERMINAL_MARKER, rule.name)

    def evaluate_rules(self, text: str, turn_count: int) -> TerminationDecision:
        early = self.preliminary(text, turn_count)
        if early is not None:
            return early
        return self._match(text, turn_count) or CONTINUE

    def build_prompt(self, text: str) -> str:
        return TERMINATION_PROMPT.format(
            terminate=self.terminate_label,
            cont=self.continue_label,
            criteria=self.criteria.strip(),
            response=text,
        )

    async def evaluate_model(self, text: str, turn_count: int, invoke: Invoke) -> TerminationDecision:
        """Model-delegated decision; raises on call or parse failure."""
        early = self.preliminary(text, turn_count)
        if early is not None:
            return early
        raw = await invoke(self.build_prompt(text))
        label = decode_choice(raw, (self.terminate_label, self.continue_label))
        if label is None:
            snippet = " ".join((raw or "").split())[:80]
            raise DecisionError(f"unrecognized termination label: {snippet!r}")
        logger.debug(f"chat_terminate_decision | strategy=model label={label}")
        if label == self.terminate_label:
            return TerminationDecision(True, CompletionReason.TERMINAL_MARKER, "model")
        return CONTINUE
