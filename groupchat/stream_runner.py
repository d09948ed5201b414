from __future__ import annotations

import asyncio
from typing import Any, Dict, Generator

from loguru import logger

from .manager import ChatManager


def run_chat_stream(manager: ChatManager, message: str) -> Generator[Dict[str, Any], None, None]:
    """Synchronous streaming runner for UI. Yields events as the chat progresses.

    Yields dicts of shape:
      - {type: 'start', data: {scenario, max_turns, mode, agents}}
      - {type: 'turn', data: {speaker, message, timestamp, turn}}
      - {type: 'end', data: RunResult.to_dict()}
    """
    loop = asyncio.new_event_loop()
    stream = manager.stream(message)
    try:
        first = loop.run_until_complete(stream.__anext__())
        yield {
            "type": "start",
            "data": {
                "scenario": manager.scenario.name,
                "max_turns": manager.config.max_turns,
                "mode": "simulation" if manager.simulation else "model",
                "agents": manager.scenario.roster.names,
            },
        }
        yield {"type": "turn", "data": {**first.as_dict(), "turn": 0}}
        while True:
            try:
                turn = loop.run_until_complete(stream.__anext__())
            except StopAsyncIteration:
                break
            yield {"type": "turn", "data": {**turn.as_dict(), "turn": manager.metrics.turn_count}}
        result = manager.result()
        logger.info(f"ui_chat_end | state={result.state.value} turns={result.turn_count}")
        yield {"type": "end", "data": result.to_dict()}
    finally:
        loop.run_until_complete(stream.aclose())
        loop.close()
