"""
Shared fixtures: fixed clocks, seeded worlds and scripted model invokers.
"""

from datetime import datetime

import pytest

from groupchat.config import ChatConfig
from groupchat.plugins.devices import DeviceStore
from groupchat.scenarios import build_nrd_scenario, build_printer_scenario
from groupchat.scenarios import nrd, printer


FIXED_NOW = datetime(2025, 3, 1, 12, 0, 0)


class ScriptedModel:
    """Async invoke that replays canned replies; Exceptions in the script are raised."""

    def __init__(self, replies=()):
        self.replies = list(replies)
        self.prompts = []

    async def __call__(self, prompt):
        self.prompts.append(prompt)
        if not self.replies:
            raise ConnectionError("script exhausted")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class FailingModel:
    """Async invoke that always fails like a transport/quota error."""

    def __init__(self):
        self.calls = 0

    async def __call__(self, prompt):
        self.calls += 1
        raise ConnectionError("quota exceeded")


class RoutingModel:
    """Behaves like a cooperative hosted model for the NRD team.

    Agent calls (message lists) get the simulated reply of the agent named in the
    REPLY block; selection and termination prompts are answered from the rules.
    """

    def __init__(self, scenario):
        self.scenario = scenario
        self.kinds = []

    async def __call__(self, prompt):
        if isinstance(prompt, str):
            response = prompt.rsplit("RESPONSE:\n", 1)[-1]
            if "choose the next participant" in prompt:
                self.kinds.append("select")
                from groupchat.selection import RuleBasedSelector

                rules = RuleBasedSelector(self.scenario.roster, self.scenario.selection_rules)
                return f"  {rules.select(response).value}\n"
            self.kinds.append("terminate")
            return "terminate" if nrd.RESOLVED_MARKER in response else "continue"
        self.kinds.append("respond")
        human = prompt[-1].content
        for agent in self.scenario.roster:
            if f"You are {agent.name}." in human:
                return agent.simulate(())
        return ""


@pytest.fixture
def fixed_store():
    return DeviceStore(clock=lambda: FIXED_NOW)


@pytest.fixture
def nrd_scenario(fixed_store):
    return build_nrd_scenario(store=fixed_store)


@pytest.fixture
def printer_scenario():
    return build_printer_scenario(seed=11)


@pytest.fixture
def sim_config():
    return ChatConfig(simulation_mode=True)


@pytest.fixture
def model_config():
    return ChatConfig(simulation_mode=False)


@pytest.fixture
def scripted():
    return ScriptedModel


@pytest.fixture
def failing_model():
    return FailingModel()


@pytest.fixture
def routing_model(nrd_scenario):
    return RoutingModel(nrd_scenario)


@pytest.fixture
def markers():
    return {"nrd": nrd.RESOLVED_MARKER, "printer": printer.RESOLVED_MARKER}
