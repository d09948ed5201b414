"""
Multi-agent group chat orchestration with rule-based and model-delegated turn taking.

Modules:
- conversation: append-only ConversationLog of Turns
- agents: Agent identities, instructions and simulated behaviors
- selection / termination: next-speaker and end-of-chat decisions
- manager: ChatManager turn driver + failure/downgrade policy
- llm: LangChain chat client wrapped as an opaque async invoke
- scenarios / plugins: NRD and printer troubleshooting worlds
"""

from .config import ChatConfig
from .manager import ChatManager
from .scenarios import build_scenario
from .states import RunResult, RunState, Turn

__all__ = [
    "ChatConfig",
    "ChatManager",
    "RunResult",
    "RunState",
    "Turn",
    "build_scenario",
]
