from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Optional, Sequence

from loguru import logger

from groupchat.batch import run_batch
from groupchat.config import ChatConfig, DecisionMode
from groupchat.llm import build_invoker
from groupchat.manager import ChatManager
from groupchat.scenarios import SCENARIOS, build_scenario
from groupchat.states import RunResult, RunState, Turn


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Run a multi-agent troubleshooting group chat")
    p.add_argument("--scenario", choices=sorted(SCENARIOS), default="nrd", help="Which agent team to run")
    p.add_argument("--message", type=str, default="My device is not reporting.", help="Opening user message")
    p.add_argument("--device-id", type=str, help="NRD only: device to investigate (else parsed from the message)")
    p.add_argument("--seed", type=int, default=7, help="Printer only: seed for simulated sensor readings")
    p.add_argument("--max-turns", type=int, help="Turn ceiling (default from CHAT_MAX_TURNS or 10)")
    p.add_argument("--simulate", action="store_true", help="Force simulation mode (no API calls)")
    p.add_argument("--decisions", choices=[m.value for m in DecisionMode], help="Speaker/termination strategy")
    p.add_argument("--test-cases", action="store_true", help="Run the scenario's built-in test cases instead")
    p.add_argument("--parallel", action="store_true", help="With --test-cases: run the cases concurrently")
    p.add_argument("--json", action="store_true", help="Print the final result(s) as JSON")
    p.add_argument("--log-level", type=str, default="WARNING", help="Log level for the stderr sink")
    return p.parse_args(argv)


def scenario_options(args: argparse.Namespace) -> dict:
    if args.scenario == "nrd":
        return {"device_id": args.device_id}
    if args.scenario == "printer":
        return {"seed": args.seed}
    return {}


def print_turn(turn: Turn) -> None:
    print(f"\n--- {turn.speaker} ---")
    print(turn.text)


def print_summary(result: RunResult) -> None:
    print(f"\n=== Session {result.state.value.upper()} ===")
    print(f"Total turns: {result.turn_count}")
    if result.downgraded:
        print("[Switched to simulation mode after repeated model failures]")
    if result.state is RunState.ABORTED:
        print(f"Error: {result.error}")
    elif result.resolved:
        print("Issue successfully resolved!")
    else:
        print("Investigation completed but may require further attention.")


def build_config(args: argparse.Namespace) -> ChatConfig:
    config = ChatConfig.from_env()
    if args.max_turns is not None:
        config.max_turns = max(1, args.max_turns)
    if args.simulate:
        config.simulation_mode = True
    if args.decisions:
        config.decision_mode = DecisionMode(args.decisions)
    return config


async def main() -> int:
    args = parse_args()
    logger.remove()
    logger.add(sys.stderr, level=args.log_level.upper(), colorize=True, format="{time:HH:mm:ss} | {level} | {message}")

    config = build_config(args)
    invoke = None if config.simulation_mode else build_invoker(config.model)
    if invoke is None:
        print("[Running in simulation mode - no API calls will be made]")

    options = scenario_options(args)
    if args.test_cases:
        cases = list(build_scenario(args.scenario, **options).test_cases)
        results = await run_batch(
            lambda: build_scenario(args.scenario, **options),
            cases,
            config=config,
            invoke=invoke,
            parallel=args.parallel,
        )
        for case, result in zip(cases, results):
            print(f"\nTest case: {case}")
            print_summary(result)
        if args.json:
            print(json.dumps([r.to_dict() for r in results], ensure_ascii=False, indent=2))
        return 0 if all(r.state is RunState.COMPLETE for r in results) else 1

    manager = ChatManager(
        build_scenario(args.scenario, **options),
        config=config,
        invoke=invoke,
        on_turn=None if args.json else print_turn,
    )
    result = await manager.start(args.message)
    if args.json:
        print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    else:
        print_summary(result)
    return 0 if result.state is RunState.COMPLETE else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
