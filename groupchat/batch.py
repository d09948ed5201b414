from __future__ import annotations

import asyncio
from typing import Callable, List, Optional, Sequence

from loguru import logger

from .config import ChatConfig
from .llm import Invoke
from .manager import ChatManager
from .scenarios.base import Scenario
from .states import RunResult


async def run_batch(
    scenario_factory: Callable[[], Scenario],
    messages: Sequence[str],
    config: Optional[ChatConfig] = None,
    invoke: Optional[Invoke] = None,
    parallel: bool = False,
) -> List[RunResult]:
    """Run each opening message as an independent chat.

    Every run gets its own scenario (fresh simulated world) and manager, so no
    state leaks between runs. With `parallel=True` the runs fan out together and
    are joined with asyncio.gather; results keep the input order either way.
    """
    config = config or ChatConfig()

    async def _one(index: int, message: str) -> RunResult:
        manager = ChatManager(scenario_factory(), config=config, invoke=invoke)
        logger.info(f"batch_run:start | case={index + 1}/{len(messages)} | msg='{message}'")
        result = await manager.start(message)
        logger.info(
            f"batch_run:done | case={index + 1} state={result.state.value} "
            f"resolved={result.resolved} turns={result.turn_count}"
        )
        return result

    if parallel:
        return list(await asyncio.gather(*(_one(i, m) for i, m in enumerate(messages))))
    results = []
    for i, m in enumerate(messages):
        results.append(await _one(i, m))
    return results
