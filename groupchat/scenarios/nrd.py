from __future__ import annotations

import re
from enum import Enum
from typing import Optional, Sequence

from loguru import logger

from ..agents import Agent, AgentRoster
from ..plugins.devices import (
    TIME_FMT,
    CredentialPlugin,
    DeviceStore,
    LogSearchPlugin,
    ManagementPlugin,
)
from ..rules import Rule, all_of, contains_all, contains_any
from ..states import Turn
from .base import Scenario


DEFAULT_DEVICE = "DEV001"
RESOLVED_MARKER = "ISSUE RESOLVED"

_DEVICE_RE = re.compile(r"\bDEV\d+\b", re.IGNORECASE)


class NrdAgent(str, Enum):
    MONITORING = "MonitoringAgent"
    DIAGNOSTIC = "DiagnosticAgent"
    REMEDIATION = "RemediationAgent"
    KNOWLEDGEBASE = "KnowledgebaseAgent"


MONITORING_INSTRUCTIONS = """You are a device monitoring specialist. Your responsibility is to detect NRD (Non-Reporting Device) events.

Follow these steps in order:
1. Check in SCENARIO_CONTEXT whether the device has reported data in the past three days
2. Verify the data collection status
3. If no data collection is found, mark the event as needing attention

Format your response EXACTLY like this:
MONITORING FINDINGS:
1. Device ID: [Device ID]
2. Last Report Time: [Time]
3. Data Collection Status: [Status]
4. Attention Required: [Yes/No]

Do not attempt to diagnose or fix issues - only report them."""

DIAGNOSTIC_INSTRUCTIONS = """You are a device diagnostic specialist. Your responsibility is to diagnose NRD (Non-Reporting Device) issues.

Follow these steps in order:
1. Review the monitoring findings
2. Check the device status and credential status in SCENARIO_CONTEXT
3. Identify the root cause of the data collection issue

Format your response EXACTLY like this:
DIAGNOSTIC FINDINGS:
1. Root Cause: [Description of the root cause]
2. Credential Status: [Status]
3. Recommended Action: [Action]

Do not attempt to fix issues - only diagnose them."""

REMEDIATION_INSTRUCTIONS = """You are a device remediation specialist. Your responsibility is to fix NRD (Non-Reporting Device) issues.

Follow these steps in order:
1. Review the diagnostic findings
2. If credential issues are found, generate and validate new credentials
3. Perform a manual data collection
4. Verify the fix was successful

Format your response EXACTLY like this:
REMEDIATION COMPLETED:
1. Actions Taken: [Description of actions]
2. Verification Result: [Success/Failed]
3. Current Status: [Status]

If verification fails, indicate that additional diagnosis is needed."""

KNOWLEDGEBASE_INSTRUCTIONS = """You are a knowledge specialist for device management. Your responsibility is to document the resolution process and provide best practices.

Follow these steps:
1. Review the entire conversation
2. Summarize the issue and resolution
3. Provide best practices to prevent similar issues
4. Document the steps taken for future reference

Format your response EXACTLY like this:
RESOLUTION SUMMARY:
1. Issue: [Brief description of the issue]
2. Root Cause: [Root cause identified]
3. Resolution: [Steps taken to resolve]
4. Best Practices: [Recommendations to prevent recurrence]

End your response with "ISSUE RESOLVED" if the issue was successfully fixed."""


SELECTION_RULES = (
    Rule(
        "monitoring_attention",
        contains_all("MONITORING FINDINGS:", "Attention Required: Yes"),
        NrdAgent.DIAGNOSTIC,
    ),
    Rule(
        "diagnosis_credentials",
        all_of(contains_all("DIAGNOSTIC FINDINGS:"), contains_any("credential", "Credential")),
        NrdAgent.REMEDIATION,
    ),
    Rule(
        "remediation_failed",
        contains_all("REMEDIATION COMPLETED:", "Verification Result: Failed"),
        NrdAgent.DIAGNOSTIC,
    ),
    Rule(
        "remediation_succeeded",
        contains_all("REMEDIATION COMPLETED:", "Verification Result: Success"),
        NrdAgent.KNOWLEDGEBASE,
    ),
)

SELECTION_GUIDE = """- If RESPONSE contains "MONITORING FINDINGS:" and "Attention Required: Yes", it is DiagnosticAgent's turn.
- If RESPONSE contains "DIAGNOSTIC FINDINGS:" and mentions credential issues, it is RemediationAgent's turn.
- If RESPONSE contains "REMEDIATION COMPLETED:" and "Verification Result: Failed", it is DiagnosticAgent's turn.
- If RESPONSE contains "REMEDIATION COMPLETED:" and "Verification Result: Success", it is KnowledgebaseAgent's turn."""

TERMINATION_RULES = (
    Rule("issue_resolved", contains_all(RESOLVED_MARKER)),
    Rule("resolution_summary", contains_all("RESOLUTION SUMMARY:")),
    Rule("best_practices", all_of(contains_all("Best Practices:"), contains_any("implement", "Implement"))),
    Rule("nothing_to_do", contains_all("MONITORING FINDINGS:", "Attention Required: No")),
)

TERMINATION_CRITERIA = """Terminate if ANY of these conditions are met:
- The RESPONSE contains "ISSUE RESOLVED" or indicates the issue has been fixed
- The RESPONSE contains a final summary of the resolution
- The RESPONSE indicates there is nothing more to do

Continue if ANY of these conditions are met:
- The RESPONSE requests more information
- The RESPONSE indicates further diagnosis is needed
- The RESPONSE indicates a remediation action is in progress"""

TEST_CASES = (
    "Device DEV001 is not reporting.",  # expired credentials
    "Device DEV002 is not reporting.",  # corrupted credentials
    "Device DEV003 is not reporting.",  # missing credentials
    "Device DEV004 is not reporting.",  # valid credentials, network fault
)


def parse_device_id(message: str) -> Optional[str]:
    m = _DEVICE_RE.search(message or "")
    return m.group(0).upper() if m else None


def _find_line(turns: Sequence[Turn], label: str) -> Optional[str]:
    for turn in reversed(turns):
        for line in turn.text.splitlines():
            _, sep, value = line.partition(label)
            if sep and value.strip():
                return value.strip()
    return None


class NrdWorld:
    """Simulated device fleet plus the deterministic agent behaviors that act on it."""

    def __init__(self, store: Optional[DeviceStore] = None, device_id: Optional[str] = None) -> None:
        self.store = (store or DeviceStore.frozen()).seed()
        self.management = ManagementPlugin(self.store)
        self.logs = LogSearchPlugin(self.store)
        self.credentials = CredentialPlugin(self.store)
        self.fixed_device = device_id
        self.device_id = device_id or DEFAULT_DEVICE

    def reset(self, message: str = "") -> None:
        self.store.seed()
        self.device_id = self.fixed_device or parse_device_id(message) or DEFAULT_DEVICE
        logger.debug(f"nrd_reset | device={self.device_id}")

    def context(self) -> str:
        dev = self.device_id
        return "\n\n".join(
            [
                self.management.get_device_status(dev),
                self.management.describe_credentials(dev),
                self.credentials.get_credential_status(dev),
                self.logs.get_device_logs(dev),
                f"Recent data collection (past day): {'Yes' if self.logs.verify_data_collection(dev) else 'No'}",
            ]
        )

    def monitoring(self, turns: Sequence[Turn]) -> str:
        dev = self.device_id
        reporting = self.logs.verify_data_collection(dev)
        device = self.store.devices.get(dev)
        last = device.last_report_time.strftime(TIME_FMT) if device and device.last_report_time else "Unknown"
        return (
            "MONITORING FINDINGS:\n"
            f"1. Device ID: {dev}\n"
            f"2. Last Report Time: {last}\n"
            f"3. Data Collection Status: {'Active' if reporting else 'Not Active'}\n"
            f"4. Attention Required: {'No' if reporting else 'Yes'}"
        )

    def diagnostic(self, turns: Sequence[Turn]) -> str:
        dev = self.device_id
        device = self.store.devices.get(dev)
        status = self.management.check_credentials(dev)
        if device is None:
            cause = "The device is not enrolled in the management system."
            action = "Enroll the device and generate credentials."
        elif status != "Valid":
            cause = "The device is not reporting data due to credential issues."
            action = "Generate new credentials for the device."
        elif "network" in device.last_error.lower():
            cause = "The device is not reporting data due to network connectivity issues."
            action = "Check and restore network connectivity."
        else:
            cause = f"The device is not reporting data ({device.last_error})."
            action = "Perform a manual data collection."
        return (
            "DIAGNOSTIC FINDINGS:\n"
            f"1. Root Cause: {cause}\n"
            f"2. Credential Status: {status}\n"
            f"3. Recommended Action: {action}"
        )

    def remediation(self, turns: Sequence[Turn]) -> str:
        dev = self.device_id
        actions = []
        device = self.store.devices.get(dev)
        if device is None or not device.is_enrolled:
            self.management.enroll_device(dev)
            actions.append(f"Enrolled device {dev}")
        if not self.credentials.validate_credentials(dev):
            self.credentials.generate_credentials(dev)
            self.management.update_credentials(dev)
            actions.append(f"Generated new credentials for device {dev} and configured them on the device")
        valid = self.credentials.validate_credentials(dev)
        collected = self.logs.perform_manual_collection(dev)
        actions.append("Performed a manual data collection")
        ok = valid and collected
        current = (
            "Device is now reporting data correctly."
            if ok
            else "Device is still not reporting data; additional diagnosis is needed."
        )
        return (
            "REMEDIATION COMPLETED:\n"
            f"1. Actions Taken: {'; '.join(actions)}.\n"
            f"2. Verification Result: {'Success' if ok else 'Failed'}\n"
            f"3. Current Status: {current}"
        )

    def knowledgebase(self, turns: Sequence[Turn]) -> str:
        dev = self.device_id
        cause = _find_line(turns, "Root Cause:") or "Undetermined"
        resolution = _find_line(turns, "Actions Taken:") or "See remediation notes"
        if "credential" in cause.lower():
            practice = "Implement automated credential rotation and monitoring to prevent future issues"
        elif "network" in cause.lower():
            practice = "Implement network monitoring and automated recovery procedures"
        else:
            practice = "Implement proactive NRD monitoring and periodic manual collection checks"
        return (
            "RESOLUTION SUMMARY:\n"
            f"1. Issue: Device {dev} was not reporting data (NRD)\n"
            f"2. Root Cause: {cause}\n"
            f"3. Resolution: {resolution}\n"
            f"4. Best Practices: {practice}\n\n"
            f"{RESOLVED_MARKER}"
        )


def build_nrd_scenario(device_id: Optional[str] = None, store: Optional[DeviceStore] = None) -> Scenario:
    world = NrdWorld(store=store, device_id=device_id)
    roster = AgentRoster(
        [
            Agent(NrdAgent.MONITORING, MONITORING_INSTRUCTIONS, world.monitoring),
            Agent(NrdAgent.DIAGNOSTIC, DIAGNOSTIC_INSTRUCTIONS, world.diagnostic),
            Agent(NrdAgent.REMEDIATION, REMEDIATION_INSTRUCTIONS, world.remediation),
            Agent(NrdAgent.KNOWLEDGEBASE, KNOWLEDGEBASE_INSTRUCTIONS, world.knowledgebase),
        ]
    )
    return Scenario(
        name="nrd",
        roster=roster,
        selection_rules=SELECTION_RULES,
        termination_rules=TERMINATION_RULES,
        selection_guide=SELECTION_GUIDE,
        termination_criteria=TERMINATION_CRITERIA,
        context=world.context,
        reset=world.reset,
        test_cases=TEST_CASES,
    )
