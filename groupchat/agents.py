from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Sequence

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from loguru import logger

from .llm import EmptyResponseError, Invoke
from .states import Turn


Simulator = Callable[[Sequence[Turn]], str]


def render_transcript(turns: Sequence[Turn]) -> str:
    return "\n\n".join(f"{t.speaker}: {t.text}" for t in turns)


@dataclass(frozen=True)
class Agent:
    """A named role: persona instructions plus a local deterministic simulator."""

    identity: Enum
    instructions: str
    simulate: Simulator

    @property
    def name(self) -> str:
        return str(self.identity.value)

    def build_system(self) -> SystemMessage:
        return SystemMessage(content=self.instructions)

    def build_messages(self, turns: Sequence[Turn], context: str = "") -> List[BaseMessage]:
        blocks = []
        if context:
            blocks.append(f"SCENARIO_CONTEXT:\n{context}")
        blocks.append(f"TRANSCRIPT:\n{render_transcript(turns) or '(empty)'}")
        blocks.append(f"TURN_INDEX: {len(turns)}")
        blocks.append(f"REPLY: You are {self.name}. Provide your response now in the required format. Do not leave this blank.")
        return [self.build_system(), HumanMessage(content="\n\n".join(blocks))]

    async def respond(self, turns: Sequence[Turn], invoke: Invoke, context: str = "") -> str:
        text = (await invoke(self.build_messages(turns, context)) or "").strip()
        if not text:
            # Retry once with a nudge
            logger.info(f"llm_retry | agent={self.name} reason=empty_reply")
            nudge = [
                self.build_system(),
                HumanMessage(
                    content=(
                        "Your previous response was empty. "
                        f"LAST_MESSAGE:\n{turns[-1].text if turns else ''}\n\n"
                        "REPLY: Provide the response now in the required format."
                    )
                ),
            ]
            text = (await invoke(nudge) or "").strip()
        if not text:
            raise EmptyResponseError(f"{self.name} returned an empty reply twice")
        return text


class AgentRoster:
    """Ordered, closed set of agents. The first member is the default speaker."""

    def __init__(self, agents: Sequence[Agent]) -> None:
        if not agents:
            raise ValueError("an agent roster needs at least one agent")
        self._agents: Dict[Enum, Agent] = {}
        for agent in agents:
            if agent.identity in self._agents:
                raise ValueError(f"duplicate agent identity: {agent.name}")
            self._agents[agent.identity] = agent
        self._by_name = {a.name: a.identity for a in agents}

    @property
    def first(self) -> Enum:
        return next(iter(self._agents))

    @property
    def names(self) -> List[str]:
        return list(self._by_name)

    def resolve(self, name: Optional[str]) -> Optional[Enum]:
        if name is None:
            return None
        return self._by_name.get(name)

    def __getitem__(self, identity: Enum) -> Agent:
        return self._agents[identity]

    def __contains__(self, identity: object) -> bool:
        return identity in self._agents

    def __iter__(self) -> Iterator[Agent]:
        return iter(self._agents.values())

    def __len__(self) -> int:
        return len(self._agents)
