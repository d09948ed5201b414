"""
Run configuration for group chats.
All settings come from environment variables (and a local .env) with defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from loguru import logger


class DecisionMode(Enum):
    MODEL = "model"
    RULES = "rules"


def load_env() -> None:
    # Local .env inside the project first, then the working directory
    here = Path(__file__).resolve().parents[1]
    for env_path in (here / ".env", Path.cwd() / ".env"):
        if env_path.is_file():
            load_dotenv(dotenv_path=str(env_path), override=False)
            return
    load_dotenv(override=False)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"config | invalid int for {name}={raw!r}; using {default}")
        return default


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"config | invalid float for {name}={raw!r}; using {default}")
        return default


@dataclass
class ModelConfig:
    """Hosted chat model settings (OpenAI or Azure OpenAI)."""
    api_key: str = ""
    model: str = "gpt-4o-mini"
    temperature: float = 0.2
    max_tokens: Optional[int] = 400
    timeout: Optional[float] = 60.0  # seconds per call; None waits forever
    azure_endpoint: str = ""
    azure_api_key: str = ""
    azure_deployment: str = ""
    azure_api_version: str = "2024-06-01"

    @property
    def use_azure(self) -> bool:
        return bool(self.azure_endpoint and self.azure_api_key)

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key) or self.use_azure


@dataclass
class ChatConfig:
    """Top-level group chat configuration."""
    max_turns: int = 10
    simulation_mode: bool = False
    decision_mode: DecisionMode = DecisionMode.MODEL
    min_message_length: int = 10
    max_consecutive_failures: int = 2
    model: ModelConfig = field(default_factory=ModelConfig)

    def __post_init__(self):
        if self.max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        if self.max_consecutive_failures < 1:
            raise ValueError("max_consecutive_failures must be at least 1")

    @property
    def uses_model_decisions(self) -> bool:
        return not self.simulation_mode and self.decision_mode is DecisionMode.MODEL

    @classmethod
    def from_env(cls) -> "ChatConfig":
        """Load configuration from environment variables (including .env file)."""
        load_env()
        config = cls()

        config.model.api_key = os.getenv("OPENAI_API_KEY", config.model.api_key)
        config.model.model = os.getenv("OPENAI_MODEL", config.model.model)
        config.model.temperature = _env_float("OPENAI_TEMPERATURE", config.model.temperature)
        config.model.max_tokens = _env_int("OPENAI_MAX_TOKENS", config.model.max_tokens or 0) or None
        config.model.timeout = _env_float("OPENAI_TIMEOUT", config.model.timeout)
        config.model.azure_endpoint = os.getenv("AZURE_OPENAI_ENDPOINT", config.model.azure_endpoint)
        config.model.azure_api_key = os.getenv("AZURE_OPENAI_API_KEY", config.model.azure_api_key)
        config.model.azure_deployment = os.getenv("AZURE_OPENAI_DEPLOYMENT", config.model.azure_deployment)
        config.model.azure_api_version = os.getenv("AZURE_OPENAI_API_VERSION", config.model.azure_api_version)

        config.max_turns = max(1, _env_int("CHAT_MAX_TURNS", config.max_turns))
        config.min_message_length = _env_int("CHAT_MIN_MESSAGE_LENGTH", config.min_message_length)
        config.max_consecutive_failures = max(
            1, _env_int("CHAT_MAX_CONSECUTIVE_FAILURES", config.max_consecutive_failures)
        )

        mode = os.getenv("CHAT_DECISION_MODE", config.decision_mode.value).strip().lower()
        try:
            config.decision_mode = DecisionMode(mode)
        except ValueError:
            logger.warning(f"config | unknown CHAT_DECISION_MODE={mode!r}; using model")

        config.simulation_mode = _env_bool("CHAT_SIMULATION_MODE", config.simulation_mode)
        if not config.simulation_mode and not config.model.has_credentials:
            logger.info("config | no model credentials found; enabling simulation mode")
            config.simulation_mode = True
        return config
