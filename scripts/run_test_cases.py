from __future__ import annotations

import asyncio
import json
import sys
import time
from pathlib import Path as _PathForSys

from loguru import logger

# Ensure the project root is on sys.path when run from scripts/
_pkg_root = str(_PathForSys(__file__).resolve().parents[1])
if _pkg_root not in sys.path:
    sys.path.insert(0, _pkg_root)

from groupchat.batch import run_batch
from groupchat.config import ChatConfig
from groupchat.llm import build_invoker
from groupchat.scenarios import build_scenario


# ==========================
# Configuration (edit here)
# ==========================
ROOT = _PathForSys(__file__).resolve().parents[1]

# Scenario registry name: "nrd" or "printer"
SCENARIO = "nrd"

# Run the cases concurrently (independent runs, joined at the end)
PARALLEL = True

# Output result path
RESULTS_DIR = ROOT / "chat_results"
RESULT_FILE = RESULTS_DIR / f"{SCENARIO}__test_cases.json"


async def main():
    # Configure verbose logging to stdout
    logger.remove()
    logger.add(sys.stdout, level="DEBUG", colorize=True, format="{time:HH:mm:ss} | {level} | {message}")

    config = ChatConfig.from_env()
    invoke = None if config.simulation_mode else build_invoker(config.model)
    cases = list(build_scenario(SCENARIO).test_cases)
    logger.info(f"Scenario: {SCENARIO} | cases={len(cases)} | parallel={PARALLEL} | simulation={invoke is None}")

    t0 = time.perf_counter()
    results = await run_batch(lambda: build_scenario(SCENARIO), cases, config=config, invoke=invoke, parallel=PARALLEL)
    t1 = time.perf_counter()
    logger.info(f"Test cases completed in {t1 - t0:.2f}s")

    report = [{"case": case, **result.to_dict()} for case, result in zip(cases, results)]
    RESULTS_DIR.mkdir(parents=True, exist_ok=True)
    RESULT_FILE.write_text(json.dumps(report, ensure_ascii=False, indent=2), encoding="utf-8")
    logger.info(f"Wrote report to {RESULT_FILE}")

    for row in report:
        logger.info(
            f"{row['case']} | state={row['state']} | resolved={row['resolved']} | turns={row['turn_count']}"
        )


if __name__ == "__main__":
    asyncio.run(main())
