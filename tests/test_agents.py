"""
Tests for Agent prompt building, the empty-reply nudge and AgentRoster.
"""

import asyncio
from enum import Enum

import pytest
from langchain_core.messages import HumanMessage, SystemMessage

from groupchat.agents import Agent, AgentRoster, render_transcript
from groupchat.llm import EmptyResponseError
from groupchat.states import Turn


def run(coro):
    """Helper to run a coroutine synchronously."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class Crew(str, Enum):
    SCOUT = "Scout"
    MEDIC = "Medic"


def make_agent(identity=Crew.SCOUT):
    return Agent(identity, f"You are the {identity.value}.", lambda turns: f"{identity.value} simulated")


class TestAgent:

    def setup_method(self):
        self.agent = make_agent()
        self.turns = (Turn("user", "The device is down"),)

    def test_messages_have_persona_and_blocks(self):
        messages = self.agent.build_messages(self.turns, context="Device ID: DEV001")
        assert isinstance(messages[0], SystemMessage)
        assert messages[0].content == "You are the Scout."
        assert isinstance(messages[1], HumanMessage)
        human = messages[1].content
        assert "SCENARIO_CONTEXT:\nDevice ID: DEV001" in human
        assert "TRANSCRIPT:\nuser: The device is down" in human
        assert "TURN_INDEX: 1" in human
        assert "You are Scout." in human

    def test_context_block_is_optional(self):
        human = self.agent.build_messages(self.turns)[1].content
        assert "SCENARIO_CONTEXT" not in human

    def test_respond_returns_stripped_text(self, scripted):
        model = scripted(["  scouting report  "])
        assert run(self.agent.respond(self.turns, model)) == "scouting report"

    def test_empty_reply_gets_one_nudge(self, scripted):
        model = scripted(["", "second try"])
        assert run(self.agent.respond(self.turns, model)) == "second try"
        assert len(model.prompts) == 2
        assert "previous response was empty" in model.prompts[1][-1].content

    def test_two_empty_replies_raise(self, scripted):
        with pytest.raises(EmptyResponseError):
            run(self.agent.respond(self.turns, scripted(["", "   "])))

    def test_simulator_is_plain_data(self):
        assert self.agent.simulate(self.turns) == "Scout simulated"
        assert self.agent.name == "Scout"

    def test_render_transcript(self):
        turns = [Turn("user", "a"), Turn("Scout", "b")]
        assert render_transcript(turns) == "user: a\n\nScout: b"


class TestAgentRoster:

    def test_first_and_lookup(self):
        roster = AgentRoster([make_agent(Crew.SCOUT), make_agent(Crew.MEDIC)])
        assert roster.first is Crew.SCOUT
        assert roster.names == ["Scout", "Medic"]
        assert roster.resolve("Medic") is Crew.MEDIC
        assert roster.resolve("Pilot") is None
        assert roster[Crew.MEDIC].name == "Medic"
        assert Crew.MEDIC in roster
        assert len(roster) == 2

    def test_rejects_empty_and_duplicates(self):
        with pytest.raises(ValueError):
            AgentRoster([])
        with pytest.raises(ValueError):
            AgentRoster([make_agent(), make_agent()])
