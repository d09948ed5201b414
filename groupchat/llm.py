from __future__ import annotations

import asyncio
import time
from functools import lru_cache
from typing import Awaitable, Callable, Optional, Sequence, Union

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage
from langchain_openai import AzureChatOpenAI, ChatOpenAI
from loguru import logger

from .config import ModelConfig


Prompt = Union[str, Sequence[BaseMessage]]
Invoke = Callable[[Prompt], Awaitable[str]]


class ModelCallError(RuntimeError):
    """The hosted model call failed, timed out, or returned nothing usable."""


class EmptyResponseError(ModelCallError):
    pass


@lru_cache(maxsize=8)
def _cached_chat(
    model: str,
    temperature: float,
    max_tokens: Optional[int],
    api_key: str,
    azure_endpoint: str,
    azure_api_key: str,
    azure_deployment: str,
    azure_api_version: str,
) -> BaseChatModel:
    kwargs = {"temperature": temperature}
    if max_tokens:
        kwargs["max_tokens"] = max_tokens
    if azure_endpoint and azure_api_key:
        deployment = azure_deployment or model
        logger.debug(f"Initializing AzureChatOpenAI deployment={deployment} temperature={temperature}")
        return AzureChatOpenAI(
            azure_endpoint=azure_endpoint,
            api_key=azure_api_key,
            azure_deployment=deployment,
            api_version=azure_api_version,
            **kwargs,
        )
    logger.debug(f"Initializing OpenAI chat model={model} temperature={temperature}")
    return ChatOpenAI(model=model, api_key=api_key, **kwargs)


def get_chat_model(config: ModelConfig) -> Optional[BaseChatModel]:
    """Return a cached LangChain chat model for `config`, or None without credentials.

    Azure OpenAI is used when both AZURE_OPENAI_ENDPOINT and AZURE_OPENAI_API_KEY
    are set; otherwise OPENAI_API_KEY is required.
    """
    if not config.has_credentials:
        logger.warning("No OpenAI/Azure OpenAI credentials set; cannot initialize chat client")
        return None
    return _cached_chat(
        config.model,
        config.temperature,
        config.max_tokens,
        config.api_key,
        config.azure_endpoint,
        config.azure_api_key,
        config.azure_deployment,
        config.azure_api_version,
    )


class ModelClient:
    """Opaque async text-in/text-out call over a LangChain chat model."""

    def __init__(self, chat: BaseChatModel, timeout: Optional[float] = None) -> None:
        self.chat = chat
        self.timeout = timeout

    async def __call__(self, prompt: Prompt) -> str:
        if isinstance(prompt, str):
            messages = [HumanMessage(content=prompt)]
        else:
            messages = list(prompt)
        t0 = time.perf_counter()
        try:
            result = await asyncio.wait_for(self.chat.ainvoke(messages), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ModelCallError(f"model call timed out after {self.timeout}s") from e
        except Exception as e:
            raise ModelCallError(f"model call failed: {e}") from e
        dt = time.perf_counter() - t0
        content = getattr(result, "content", "")
        text = content.strip() if isinstance(content, str) else str(content or "").strip()
        logger.debug(f"llm_call | dt={dt:.2f}s chars={len(text)}")
        return text


def build_invoker(config: ModelConfig) -> Optional[ModelClient]:
    chat = get_chat_model(config)
    if chat is None:
        return None
    return ModelClient(chat, timeout=config.timeout)
