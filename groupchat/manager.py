from __future__ import annotations

from enum import Enum
from typing import AsyncIterator, Callable, Optional

from loguru import logger

from .agents import Agent
from .config import ChatConfig, DecisionMode
from .conversation import ConversationLog
from .llm import Invoke
from .scenarios.base import Scenario
from .selection import ModelSelector, RuleBasedSelector
from .states import (
    USER_SPEAKER,
    CompletionReason,
    RunMetrics,
    RunResult,
    RunState,
    Turn,
)
from .termination import TerminationDecision, TerminationEvaluator


class RunAborted(RuntimeError):
    pass


class ChatManager:
    """Drives one group chat at a time: respond -> append -> terminate? -> select.

    Every model call site follows the same policy: on failure, record it and use
    the simulated/rule-based result for that decision point. Reaching
    `max_consecutive_failures` downgrades the run to simulation mode (sticky until
    the next start); reaching it again in simulation mode aborts the run.
    """

    def __init__(
        self,
        scenario: Scenario,
        config: Optional[ChatConfig] = None,
        invoke: Optional[Invoke] = None,
        on_turn: Optional[Callable[[Turn], None]] = None,
    ) -> None:
        self.scenario = scenario
        self.config = config or ChatConfig()
        self.invoke = invoke
        self.on_turn = on_turn
        self.log = ConversationLog()
        self.metrics = RunMetrics()
        self.state = RunState.NOT_STARTED
        self.reason: Optional[CompletionReason] = None
        self.error: Optional[str] = None
        self.current: Enum = scenario.roster.first
        self.simulation = self._initial_simulation()
        self.rule_selector = RuleBasedSelector(scenario.roster, scenario.selection_rules)
        self.model_selector = ModelSelector(scenario.roster, scenario.selection_guide)
        self.terminator = TerminationEvaluator(
            scenario.termination_rules,
            max_turns=self.config.max_turns,
            min_length=self.config.min_message_length,
            criteria=scenario.termination_criteria,
            terminate_label=scenario.terminate_label,
            continue_label=scenario.continue_label,
        )

    def _initial_simulation(self) -> bool:
        return self.config.simulation_mode or self.invoke is None

    @property
    def model_decisions(self) -> bool:
        return (
            not self.simulation
            and self.invoke is not None
            and self.config.decision_mode is DecisionMode.MODEL
        )

    def reset(self) -> None:
        if self.state is RunState.RUNNING:
            raise RuntimeError("cannot reset while a chat is running")
        self.log.reset()
        self.metrics = RunMetrics()
        self.state = RunState.NOT_STARTED
        self.reason = None
        self.error = None
        self.current = self.scenario.roster.first
        self.simulation = self._initial_simulation()
        logger.info(f"chat_reset | scenario={self.scenario.name}")

    async def start(self, message: str) -> RunResult:
        """Run a fresh conversation to a terminal state and return its result."""
        async for _ in self.stream(message):
            pass
        return self.result()

    async def stream(self, message: str) -> AsyncIterator[Turn]:
        """Same as start() but yields each Turn as it is appended (opening message first)."""
        self._begin(message)
        try:
            yield self._append(USER_SPEAKER, message)
            while self.state is RunState.RUNNING:
                agent = self.scenario.roster[self.current]
                try:
                    text = await self._respond(agent)
                except RunAborted:
                    raise
                except Exception as e:
                    # Nothing appended; retry the same speaker
                    self._record_failure(f"respond:{agent.name}", e)
                    continue
                self.metrics.turn_count += 1
                yield self._append(agent.name, text)

                decision = await self._should_terminate(text)
                if decision.terminate:
                    self._finish(decision.reason or CompletionReason.TERMINAL_MARKER)
                    break
                self.current = await self._select_next(text)
                logger.info(f"chat_next | agent={self.current.value}")
        except RunAborted as e:
            self._abort(str(e))
        finally:
            if self.state is RunState.RUNNING:
                self._abort("run interrupted before completion")

    def result(self) -> RunResult:
        return RunResult(
            state=self.state,
            turns=list(self.log.turns),
            turn_count=self.metrics.turn_count,
            reason=self.reason,
            error=self.error,
            downgraded=self.metrics.downgraded,
        )

    def _begin(self, message: str) -> None:
        if self.state is RunState.RUNNING:
            raise RuntimeError("a chat is already running; wait for it to finish")
        self.reset()
        self.scenario.reset(message)
        self.state = RunState.RUNNING
        logger.info(
            f"chat_start | scenario={self.scenario.name} max_turns={self.config.max_turns} "
            f"mode={'simulation' if self.simulation else 'model'} first={self.current.value}"
        )

    async def _respond(self, agent: Agent) -> str:
        turns = self.log.turns
        if self.simulation:
            text = agent.simulate(turns)
            self._record_success()
            return text
        try:
            text = await agent.respond(turns, self.invoke, self.scenario.context())
        except Exception as e:
            self._record_failure(f"respond:{agent.name}", e)
            logger.warning(f"chat_fallback | point=respond agent={agent.name} using simulated response")
            return agent.simulate(turns)
        self._record_success()
        return text

    async def _should_terminate(self, text: str) -> TerminationDecision:
        count = self.metrics.turn_count
        early = self.terminator.preliminary(text, count)
        if early is not None:
            return early
        if self.model_decisions:
            try:
                decision = await self.terminator.evaluate_model(text, count, self.invoke)
            except Exception as e:
                self._record_failure("terminate", e)
                logger.warning("chat_fallback | point=terminate using rules")
            else:
                self._record_success()
                return decision
        return self.terminator.evaluate_rules(text, count)

    async def _select_next(self, text: str) -> Enum:
        if self.model_decisions:
            try:
                nxt = await self.model_selector.select(text, self.invoke)
            except Exception as e:
                self._record_failure("select", e)
                logger.warning("chat_fallback | point=select using rules")
            else:
                self._record_success()
                return nxt
        return self.rule_selector.select(text)

    def _record_success(self) -> None:
        self.metrics.consecutive_failures = 0

    def _record_failure(self, point: str, exc: Exception) -> None:
        m = self.metrics
        m.failures += 1
        m.consecutive_failures += 1
        m.failure_points.append(point)
        logger.warning(
            f"chat_failure | point={point} consecutive={m.consecutive_failures} "
            f"mode={'simulation' if self.simulation else 'model'} | {exc}"
        )
        if m.consecutive_failures < self.config.max_consecutive_failures:
            return
        if not self.simulation:
            self.simulation = True
            m.downgraded = True
            m.consecutive_failures = 0
            logger.warning("chat_downgrade | switching to simulation mode for the rest of the run")
            return
        raise RunAborted(f"{m.consecutive_failures} consecutive failures in simulation mode (last at {point}: {exc})")

    def _append(self, speaker: str, text: str) -> Turn:
        turn = self.log.append(Turn(speaker=speaker, text=text))
        self._log_turn(turn)
        if self.on_turn is not None:
            self.on_turn(turn)
        return turn

    def _finish(self, reason: CompletionReason) -> None:
        self.state = RunState.COMPLETE
        self.reason = reason
        self.log.is_complete = True
        logger.info(
            f"chat_end | state=complete reason={reason.value} turns={self.metrics.turn_count} "
            f"downgraded={self.metrics.downgraded}"
        )

    def _abort(self, error: str) -> None:
        self.state = RunState.ABORTED
        self.reason = CompletionReason.ERROR
        self.error = error
        logger.error(f"chat_end | state=aborted turns={self.metrics.turn_count} | {error}")

    def _log_turn(self, turn: Turn) -> None:
        raw = turn.text or ""
        snippet = raw if len(raw) <= 400 else raw[:400] + "..."
        # Single line so it always prints visibly
        one_line = " ".join(snippet.split())
        logger.info(f"chat_turn | spk={turn.speaker} t={self.metrics.turn_count} | msg='{one_line}'")
