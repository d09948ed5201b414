from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Optional

from loguru import logger


PAPER_JAM = "Paper Jam Detected"


@dataclass
class PrinterState:
    paper_level: int = 45
    toner_level: int = 30
    is_connected: bool = True
    last_error: str = "None"
    queued_jobs: int = 2


class PrinterPlugin:
    """Simulated printer. Sensor readings come from the injected `rng`."""

    LOW_PAPER = 10
    LOW_TONER = 15

    def __init__(self, state: Optional[PrinterState] = None, rng: Optional[random.Random] = None) -> None:
        self.state = state or PrinterState()
        self.rng = rng or random.Random()

    def get_printer_status(self) -> str:
        logger.info("plugin_call | fn=get_printer_status")
        s = self.state
        return (
            "Printer Status:\n"
            f"Paper Level: {s.paper_level}%\n"
            f"Toner Level: {s.toner_level}%\n"
            f"Connection Status: {'Connected' if s.is_connected else 'Disconnected'}\n"
            f"Last Error: {s.last_error}\n"
            f"Print Queue: {s.queued_jobs} jobs"
        )

    def check_connection(self) -> bool:
        logger.info("plugin_call | fn=check_connection")
        # Fails roughly a third of the time
        if self.rng.randrange(3) == 0:
            self.state.is_connected = False
        return self.state.is_connected

    def reset_connection(self) -> str:
        logger.info("plugin_call | fn=reset_connection")
        self.state.is_connected = True
        if self.state.last_error != PAPER_JAM:
            self.state.last_error = "None"
        return "Printer connection has been reset successfully."

    def check_paper(self) -> str:
        logger.info("plugin_call | fn=check_paper")
        self.state.paper_level = self.rng.randint(0, 100)
        if self.paper_low:
            return f"Warning: Paper level is critically low ({self.state.paper_level}%). Please add paper."
        return f"Paper level is adequate ({self.state.paper_level}%)."

    def check_toner(self) -> str:
        logger.info("plugin_call | fn=check_toner")
        self.state.toner_level = self.rng.randint(0, 100)
        if self.toner_low:
            return f"Warning: Toner level is low ({self.state.toner_level}%). Please replace toner cartridge."
        return f"Toner level is adequate ({self.state.toner_level}%)."

    def load_paper(self) -> str:
        logger.info("plugin_call | fn=load_paper")
        self.state.paper_level = 100
        return "Paper tray has been refilled (100%)."

    def replace_toner(self) -> str:
        logger.info("plugin_call | fn=replace_toner")
        self.state.toner_level = 100
        return "Toner cartridge has been replaced (100%)."

    def clear_print_queue(self) -> str:
        logger.info("plugin_call | fn=clear_print_queue")
        previous = self.state.queued_jobs
        self.state.queued_jobs = 0
        return f"Print queue has been cleared. Removed {previous} jobs."

    def simulate_paper_jam(self) -> str:
        logger.info("plugin_call | fn=simulate_paper_jam")
        self.state.last_error = PAPER_JAM
        return "Paper jam has been simulated in the printer."

    def clear_paper_jam(self) -> str:
        logger.info("plugin_call | fn=clear_paper_jam")
        if self.state.last_error == PAPER_JAM:
            self.state.last_error = "None"
            return "Paper jam has been cleared successfully."
        return "No paper jam detected to clear."

    @property
    def paper_low(self) -> bool:
        return self.state.paper_level < self.LOW_PAPER

    @property
    def toner_low(self) -> bool:
        return self.state.toner_level < self.LOW_TONER
