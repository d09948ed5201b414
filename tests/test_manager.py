"""
Tests for ChatManager: turn loop, termination, failure policy and restarts.
"""

import asyncio
from enum import Enum

import pytest

from groupchat.agents import Agent, AgentRoster
from groupchat.config import ChatConfig, DecisionMode
from groupchat.manager import ChatManager
from groupchat.rules import Rule, contains_all
from groupchat.scenarios import build_nrd_scenario
from groupchat.scenarios.base import Scenario
from groupchat.scenarios.nrd import NrdAgent
from groupchat.scenarios.printer import PrinterAgent
from groupchat.states import CompletionReason, RunState


def run(coro):
    """Helper to run a coroutine synchronously."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class Team(str, Enum):
    ALPHA = "Alpha"
    BETA = "Beta"


def make_scenario(alpha, beta, selection=(), termination=(Rule("done", contains_all("ALL DONE")),)):
    roster = AgentRoster([Agent(Team.ALPHA, "You are Alpha.", alpha), Agent(Team.BETA, "You are Beta.", beta)])
    return Scenario(name="toy", roster=roster, selection_rules=selection, termination_rules=termination)


def transcript(result):
    return [(t.speaker, t.text) for t in result.turns]


class TestSimulatedRuns:

    def test_nrd_default_message_resolves_in_four_turns(self, nrd_scenario, sim_config):
        manager = ChatManager(nrd_scenario, config=sim_config)
        result = run(manager.start("My device is not reporting."))
        assert result.state is RunState.COMPLETE
        assert result.reason is CompletionReason.TERMINAL_MARKER
        assert result.turn_count == 4
        assert [t.speaker for t in result.turns] == [
            "user",
            NrdAgent.MONITORING.value,
            NrdAgent.DIAGNOSTIC.value,
            NrdAgent.REMEDIATION.value,
            NrdAgent.KNOWLEDGEBASE.value,
        ]
        assert "ISSUE RESOLVED" in result.last_message
        assert result.resolved
        assert not result.downgraded

    def test_healthy_device_needs_no_attention(self, nrd_scenario, sim_config):
        result = run(ChatManager(nrd_scenario, config=sim_config).start("Is DEV005 reporting?"))
        assert result.resolved
        assert result.turn_count == 1
        assert "Attention Required: No" in result.last_message

    def test_unknown_device_is_enrolled(self, nrd_scenario, sim_config):
        result = run(ChatManager(nrd_scenario, config=sim_config).start("Device DEV042 is not reporting."))
        assert result.resolved
        remediation = result.turns[3].text
        assert "Enrolled device DEV042" in remediation
        assert "Verification Result: Success" in remediation

    def test_network_fault_hits_turn_ceiling(self, nrd_scenario, sim_config):
        result = run(ChatManager(nrd_scenario, config=sim_config).start("Device DEV004 is not reporting."))
        assert result.state is RunState.COMPLETE
        assert result.reason is CompletionReason.MAX_TURNS
        assert result.turn_count == sim_config.max_turns
        assert not result.resolved
        speakers = [t.speaker for t in result.turns[1:]]
        assert speakers[:3] == ["MonitoringAgent", "DiagnosticAgent", "RemediationAgent"]
        assert "KnowledgebaseAgent" not in speakers

    def test_printer_jam_resolves(self, printer_scenario, sim_config):
        result = run(ChatManager(printer_scenario, config=sim_config).start("I'm getting a paper jam error"))
        assert result.resolved
        assert [t.speaker for t in result.turns[1:]] == [
            PrinterAgent.DIAGNOSTIC.value,
            PrinterAgent.REPAIR.value,
            PrinterAgent.VERIFICATION.value,
        ]
        assert "Paper jam detected" in result.turns[1].text
        assert "ALL ISSUES RESOLVED" in result.last_message

    def test_missing_invoke_means_simulation(self, nrd_scenario, model_config):
        manager = ChatManager(nrd_scenario, config=model_config, invoke=None)
        assert manager.simulation
        assert not manager.model_decisions
        assert run(manager.start("My device is not reporting.")).resolved


class TestTermination:

    def test_stops_on_the_turn_that_emits_the_marker(self, sim_config):
        beta_calls = []
        scenario = make_scenario(
            alpha=lambda turns: "ALL DONE, nothing left to do.",
            beta=lambda turns: beta_calls.append(1) or "never",
        )
        result = run(ChatManager(scenario, config=sim_config).start("go"))
        assert result.turn_count == 1
        assert result.resolved
        assert beta_calls == []

    def test_ceiling_holds_when_no_marker_is_ever_emitted(self):
        config = ChatConfig(simulation_mode=True, max_turns=3)
        scenario = make_scenario(alpha=lambda turns: "Still investigating.", beta=lambda turns: "Hmm.")
        result = run(ChatManager(scenario, config=config).start("go"))
        assert result.state is RunState.COMPLETE
        assert result.reason is CompletionReason.MAX_TURNS
        assert result.turn_count == 3

    def test_marker_on_the_last_allowed_turn_counts_as_resolved(self, nrd_scenario):
        config = ChatConfig(simulation_mode=True, max_turns=4)
        result = run(ChatManager(nrd_scenario, config=config).start("My device is not reporting."))
        assert result.turn_count == 4
        assert "ISSUE RESOLVED" in result.last_message
        assert result.reason is CompletionReason.TERMINAL_MARKER
        assert result.resolved

    def test_nothing_to_do_on_a_single_turn_budget(self, nrd_scenario):
        config = ChatConfig(simulation_mode=True, max_turns=1)
        result = run(ChatManager(nrd_scenario, config=config).start("Is DEV005 reporting?"))
        assert result.turn_count == 1
        assert result.reason is CompletionReason.TERMINAL_MARKER
        assert result.resolved

    def test_short_marker_message_does_not_terminate(self):
        config = ChatConfig(simulation_mode=True, max_turns=4)
        scenario = make_scenario(alpha=lambda turns: "ALL DONE", beta=lambda turns: "ALL DONE")
        result = run(ChatManager(scenario, config=config).start("go"))
        assert result.reason is CompletionReason.MAX_TURNS
        assert result.turn_count == 4

    def test_unmatched_selection_returns_to_first_agent(self):
        config = ChatConfig(simulation_mode=True, max_turns=3)
        scenario = make_scenario(
            alpha=lambda turns: "Handing over to beta now.",
            beta=lambda turns: "Beta checked things.",
            selection=(Rule("handoff", contains_all("beta"), Team.BETA),),
        )
        result = run(ChatManager(scenario, config=config).start("go"))
        assert [t.speaker for t in result.turns[1:]] == ["Alpha", "Beta", "Alpha"]


class TestModelRuns:

    def test_model_decisions_drive_the_chat(self, nrd_scenario, model_config, routing_model):
        manager = ChatManager(nrd_scenario, config=model_config, invoke=routing_model)
        assert manager.model_decisions
        result = run(manager.start("My device is not reporting."))
        assert result.resolved
        assert result.turn_count == 4
        assert not result.downgraded
        assert routing_model.kinds.count("respond") == 4
        assert routing_model.kinds.count("terminate") == 4
        assert routing_model.kinds.count("select") == 3

    def test_rules_decision_mode_only_calls_model_for_replies(self, nrd_scenario, routing_model):
        config = ChatConfig(simulation_mode=False, decision_mode=DecisionMode.RULES)
        manager = ChatManager(nrd_scenario, config=config, invoke=routing_model)
        result = run(manager.start("My device is not reporting."))
        assert result.resolved
        assert set(routing_model.kinds) == {"respond"}

    def test_agent_prompt_carries_scenario_context(self, nrd_scenario, scripted):
        model = scripted(["MONITORING FINDINGS:\n4. Attention Required: No"])
        config = ChatConfig(simulation_mode=False, decision_mode=DecisionMode.RULES)
        result = run(ChatManager(nrd_scenario, config=config, invoke=model).start("Is DEV005 ok?"))
        assert result.resolved
        human = model.prompts[0][-1].content
        assert "SCENARIO_CONTEXT:" in human
        assert "Device ID: DEV005" in human
        assert "user: Is DEV005 ok?" in human
        assert "valid and working correctly" in human

    def test_always_failing_model_downgrades_and_completes(self, nrd_scenario, model_config, failing_model):
        manager = ChatManager(nrd_scenario, config=model_config, invoke=failing_model)
        result = run(manager.start("My device is not reporting."))
        assert result.state is RunState.COMPLETE
        assert result.downgraded
        assert result.resolved
        assert result.turn_count == 4
        # first reply and first termination check, then simulation only
        assert failing_model.calls == 2
        assert manager.metrics.failure_points == ["respond:MonitoringAgent", "terminate"]

    def test_bad_selection_reply_falls_back_to_rules(self, nrd_scenario, scripted):
        healthy = "MONITORING FINDINGS:\n4. Attention Required: Yes"
        model = scripted([healthy, "continue", "TheBestAgent", "DIAGNOSTIC FINDINGS:\n2. Credential Status: Expired"])
        config = ChatConfig(simulation_mode=False, max_turns=2)
        manager = ChatManager(nrd_scenario, config=config, invoke=model)
        result = run(manager.start("My device is not reporting."))
        assert result.turns[2].speaker == NrdAgent.DIAGNOSTIC.value
        assert "select" in manager.metrics.failure_points
        assert not result.downgraded


class TestFailurePolicy:

    def test_simulator_failures_abort_the_run(self, sim_config):
        def broken(turns):
            raise RuntimeError("simulator exploded")

        scenario = make_scenario(alpha=broken, beta=broken)
        result = run(ChatManager(scenario, config=sim_config).start("go"))
        assert result.state is RunState.ABORTED
        assert result.reason is CompletionReason.ERROR
        assert "consecutive failures" in result.error
        assert [t.speaker for t in result.turns] == ["user"]
        assert result.turn_count == 0

    def test_single_simulator_failure_retries_same_speaker(self, sim_config):
        attempts = []

        def flaky(turns):
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("transient")
            return "ALL DONE after a retry."

        scenario = make_scenario(alpha=flaky, beta=lambda turns: "unused")
        result = run(ChatManager(scenario, config=sim_config).start("go"))
        assert result.resolved
        assert result.turn_count == 1
        assert result.turns[1].speaker == "Alpha"

    def test_failing_model_and_simulator_abort_after_downgrade(self, model_config, failing_model):
        def broken(turns):
            raise RuntimeError("simulator exploded")

        scenario = make_scenario(alpha=broken, beta=broken)
        result = run(ChatManager(scenario, config=model_config, invoke=failing_model).start("go"))
        assert result.state is RunState.ABORTED
        assert result.downgraded


class TestLifecycle:

    def test_restart_is_idempotent_for_nrd(self, nrd_scenario, sim_config):
        manager = ChatManager(nrd_scenario, config=sim_config)
        first = run(manager.start("My device is not reporting."))
        second = run(manager.start("My device is not reporting."))
        assert transcript(first) == transcript(second)

    def test_restart_is_idempotent_for_printer(self, printer_scenario, sim_config):
        manager = ChatManager(printer_scenario, config=sim_config)
        first = run(manager.start("My printer won't print anything"))
        second = run(manager.start("My printer won't print anything"))
        assert transcript(first) == transcript(second)

    def test_restart_is_idempotent_with_the_default_clock(self, sim_config):
        manager = ChatManager(build_nrd_scenario(), config=sim_config)
        first = run(manager.start("My device is not reporting."))
        second = run(manager.start("My device is not reporting."))
        assert transcript(first) == transcript(second)

    def test_downgrade_does_not_survive_restart(self, nrd_scenario, model_config, failing_model):
        manager = ChatManager(nrd_scenario, config=model_config, invoke=failing_model)
        run(manager.start("My device is not reporting."))
        assert manager.simulation
        manager.reset()
        assert not manager.simulation
        assert manager.state is RunState.NOT_STARTED

    def test_start_while_running_is_rejected(self, nrd_scenario, sim_config):
        manager = ChatManager(nrd_scenario, config=sim_config)

        async def _test():
            stream = manager.stream("My device is not reporting.")
            await stream.__anext__()
            assert manager.state is RunState.RUNNING
            with pytest.raises(RuntimeError):
                await manager.start("again")
            with pytest.raises(RuntimeError):
                manager.reset()
            await stream.aclose()

        run(_test())
        assert manager.state is RunState.ABORTED
        assert "interrupted" in manager.error

    def test_on_turn_sees_every_appended_turn(self, nrd_scenario, sim_config):
        seen = []
        manager = ChatManager(nrd_scenario, config=sim_config, on_turn=seen.append)
        result = run(manager.start("My device is not reporting."))
        assert seen == result.turns

    def test_result_before_start(self, nrd_scenario):
        result = ChatManager(nrd_scenario).result()
        assert result.state is RunState.NOT_STARTED
        assert result.turns == []
