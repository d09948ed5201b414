from __future__ import annotations

from enum import Enum
from typing import Sequence

from loguru import logger

from .agents import AgentRoster
from .llm import Invoke
from .rules import DecisionError, Rule, decode_choice, first_match


SELECTION_PROMPT = """Examine the provided RESPONSE and choose the next participant.
State only the name of the chosen participant without explanation.

Choose only from these participants:
{participants}

Always follow these rules when choosing the next participant:
- If RESPONSE is user input, it is {first}'s turn.
{rules}

RESPONSE:
{response}"""


class RuleBasedSelector:
    """Ordered (predicate, agent) table; first match wins, else the roster's first agent."""

    def __init__(self, roster: AgentRoster, rules: Sequence[Rule]) -> None:
        for rule in rules:
            if rule.target not in roster:
                raise ValueError(f"selection rule {rule.name!r} targets an unknown agent: {rule.target}")
        self.roster = roster
        self.rules = tuple(rules)

    def select(self, text: str) -> Enum:
        if not text or not text.strip():
            return self.roster.first
        rule = first_match(self.rules, text)
        if rule is None:
            logger.debug(f"chat_select | strategy=rules rule=default next={self.roster.first.value}")
            return self.roster.first
        logger.debug(f"chat_select | strategy=rules rule={rule.name} next={rule.target.value}")
        return rule.target


class ModelSelector:
    """Delegates the choice to the model with a closed participant list."""

    def __init__(self, roster: AgentRoster, rules_description: str = "") -> None:
        self.roster = roster
        self.rules_description = rules_description

    def build_prompt(self, text: str) -> str:
        return SELECTION_PROMPT.format(
            participants="\n".join(f"- {n}" for n in self.roster.names),
            first=self.roster.first.value,
            rules=self.rules_description.strip(),
            response=text,
        )

    async def select(self, text: str, invoke: Invoke) -> Enum:
        """Return the chosen agent or raise; callers fall back to rules on any error."""
        if not text or not text.strip():
            return self.roster.first
        raw = await invoke(self.build_prompt(text))
        name = decode_choice(raw, self.roster.names)
        identity = self.roster.resolve(name)
        if identity is None:
            snippet = " ".join((raw or "").split())[:80]
            raise DecisionError(f"unrecognized next participant: {snippet!r}")
        logger.debug(f"chat_select | strategy=model next={identity.value}")
        return identity
