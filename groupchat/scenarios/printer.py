from __future__ import annotations

import random
from enum import Enum
from typing import List, Optional, Sequence

from ..agents import Agent, AgentRoster
from ..plugins.printer import PAPER_JAM, PrinterPlugin, PrinterState
from ..rules import Rule, contains_all
from ..states import Turn
from .base import Scenario


RESOLVED_MARKER = "ALL ISSUES RESOLVED"
STUCK_QUEUE = 5


class PrinterAgent(str, Enum):
    DIAGNOSTIC = "DiagnosticAgent"
    REPAIR = "RepairAgent"
    VERIFICATION = "VerificationAgent"


DIAGNOSTIC_INSTRUCTIONS = """You are a printer diagnostic specialist. Your responsibility is to diagnose printer issues.
Always review diagnostics in this order: printer status, connection, paper, toner.

After diagnostics, format your response EXACTLY like this:
DIAGNOSTIC FINDINGS:
1. [First issue found]
2. [Second issue found]
etc...

Never perform repairs or make suggestions - only diagnose issues."""

REPAIR_INSTRUCTIONS = """You are a printer repair specialist. Execute these steps in order:
1. Read the diagnostic findings
2. For each issue found:
   - Execute the appropriate repair
   - Document the result
3. End your message with EXACTLY:

REPAIRS COMPLETED:
[List all repairs performed]

Do not ask questions or make suggestions. Focus only on executing repairs."""

VERIFICATION_INSTRUCTIONS = """You are a verification specialist. Follow this process:
1. Check the current printer state in SCENARIO_CONTEXT
2. Verify each repair that was performed
3. End your message with EXACTLY ONE of these:

IF any issues remain:
ADDITIONAL ISSUES DETECTED:
[List remaining issues]

IF everything is fixed:
ALL ISSUES RESOLVED

Do not make suggestions or ask questions. Focus only on verification."""


SELECTION_RULES = (
    Rule("diagnosis_done", contains_all("DIAGNOSTIC FINDINGS:"), PrinterAgent.REPAIR),
    Rule("repairs_done", contains_all("REPAIRS COMPLETED:"), PrinterAgent.VERIFICATION),
    Rule("issues_remain", contains_all("ADDITIONAL ISSUES DETECTED:"), PrinterAgent.DIAGNOSTIC),
)

SELECTION_GUIDE = """- If RESPONSE contains "DIAGNOSTIC FINDINGS:", it is RepairAgent's turn.
- If RESPONSE contains "REPAIRS COMPLETED:", it is VerificationAgent's turn.
- If RESPONSE contains "ADDITIONAL ISSUES DETECTED:", it is DiagnosticAgent's turn."""

TERMINATION_RULES = (Rule("all_resolved", contains_all(RESOLVED_MARKER)),)

TERMINATION_CRITERIA = """The session should ONLY end when ALL of these have occurred:
1. DiagnosticAgent has provided findings
2. RepairAgent has completed repairs
3. VerificationAgent has confirmed resolution

Respond COMPLETE only if you see "ALL ISSUES RESOLVED"; otherwise respond CONTINUE."""

TEST_CASES = (
    "My printer won't print anything",
    "I'm getting a paper jam error",
    "The printer says toner is low",
    "Print queue seems stuck",
    "Printer is offline",
)


class PrinterWorld:
    """A single simulated printer seeded from the user's complaint."""

    def __init__(self, seed: Optional[int] = None) -> None:
        self.seed = seed
        self.plugin = PrinterPlugin(PrinterState(), random.Random(seed))

    def reset(self, message: str = "") -> None:
        self.plugin.state = PrinterState()
        self.plugin.rng = random.Random(self.seed)
        low = (message or "").lower()
        if "jam" in low:
            self.plugin.simulate_paper_jam()
        if "offline" in low:
            self.plugin.state.is_connected = False
        if "toner" in low:
            self.plugin.state.toner_level = 5
        if "queue" in low or "stuck" in low:
            self.plugin.state.queued_jobs = STUCK_QUEUE + 2

    def context(self) -> str:
        return self.plugin.get_printer_status()

    def _issues(self) -> List[str]:
        s = self.plugin.state
        issues = []
        if not s.is_connected:
            issues.append("Printer is not connected to the network")
        if s.last_error == PAPER_JAM:
            issues.append("Paper jam detected")
        if self.plugin.paper_low:
            issues.append(f"Paper level is critically low ({s.paper_level}%)")
        if self.plugin.toner_low:
            issues.append(f"Toner level is low ({s.toner_level}%)")
        if s.queued_jobs >= STUCK_QUEUE:
            issues.append(f"Print queue is stuck with {s.queued_jobs} jobs")
        return issues

    def diagnostic(self, turns: Sequence[Turn]) -> str:
        self.plugin.get_printer_status()
        self.plugin.check_connection()
        self.plugin.check_paper()
        # A reported toner problem is confirmed, not re-sampled
        if not self.plugin.toner_low:
            self.plugin.check_toner()
        issues = self._issues() or ["No issues found"]
        return "DIAGNOSTIC FINDINGS:\n" + "\n".join(f"{i}. {issue}" for i, issue in enumerate(issues, 1))

    def repair(self, turns: Sequence[Turn]) -> str:
        p = self.plugin
        done = []
        if not p.state.is_connected:
            done.append(p.reset_connection())
        if p.state.last_error == PAPER_JAM:
            done.append(p.clear_paper_jam())
        if p.paper_low:
            done.append(p.load_paper())
        if p.toner_low:
            done.append(p.replace_toner())
        if p.state.queued_jobs >= STUCK_QUEUE:
            done.append(p.clear_print_queue())
        if not done:
            done.append("No repairs were required.")
        return "Repairs executed for the reported findings.\n\nREPAIRS COMPLETED:\n" + "\n".join(f"- {d}" for d in done)

    def verification(self, turns: Sequence[Turn]) -> str:
        status = self.plugin.get_printer_status()
        remaining = self._issues()
        if remaining:
            return f"{status}\n\nADDITIONAL ISSUES DETECTED:\n" + "\n".join(f"- {r}" for r in remaining)
        return f"{status}\n\n{RESOLVED_MARKER}"


def build_printer_scenario(seed: Optional[int] = 7) -> Scenario:
    world = PrinterWorld(seed=seed)
    roster = AgentRoster(
        [
            Agent(PrinterAgent.DIAGNOSTIC, DIAGNOSTIC_INSTRUCTIONS, world.diagnostic),
            Agent(PrinterAgent.REPAIR, REPAIR_INSTRUCTIONS, world.repair),
            Agent(PrinterAgent.VERIFICATION, VERIFICATION_INSTRUCTIONS, world.verification),
        ]
    )
    return Scenario(
        name="printer",
        roster=roster,
        selection_rules=SELECTION_RULES,
        termination_rules=TERMINATION_RULES,
        selection_guide=SELECTION_GUIDE,
        termination_criteria=TERMINATION_CRITERIA,
        terminate_label="COMPLETE",
        continue_label="CONTINUE",
        context=world.context,
        reset=world.reset,
        test_cases=TEST_CASES,
    )
