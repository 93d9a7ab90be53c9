"""
Narrative Providers for Saga.

The turn pipeline only needs one thing from a language model: a chat
completion that carries the next story beat. Players bring their own
OpenRouter key; tests and offline sessions use the canned mock.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Protocol

from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3

OPENROUTER_URL = "https://openrouter.ai/api/v1"
DEFAULT_NARRATOR_MODEL = "google/gemini-2.0-flash-001"

# Dataclass field -> environment variable that overrides it
_ENV_OVERRIDES = {
    "model": "OPENROUTER_MODEL",
    "base_url": "LLM_BASE_URL",
    "site_url": "OPENROUTER_SITE_URL",
    "site_name": "OPENROUTER_SITE_NAME",
}


class LLMProvider(Protocol):
    """What the turn pipeline needs from a narrator model."""

    async def complete(
        self,
        messages: list[dict[str, str]],
        max_tokens: int = 2048,
        temperature: float = 0.8,
    ) -> str:
        """
        Produce the raw narrator reply for a chat transcript.

        Args:
            messages: Chat turns with ``role`` in system/user/assistant
            max_tokens: Reply length cap
            temperature: Sampling temperature

        Returns:
            Reply text, normally a ``{"story", "choices"}`` JSON object
        """
        ...

    @property
    def model_name(self) -> str: ...

    @property
    def is_available(self) -> bool: ...


@dataclass
class OpenRouterProvider:
    """
    Narrator backed by any OpenAI-compatible endpoint, OpenRouter by default.

    Fields left at their defaults are overridden from the environment:
    OPENROUTER_API_KEY, OPENROUTER_MODEL, LLM_BASE_URL, OPENROUTER_SITE_URL
    and OPENROUTER_SITE_NAME. Without a key the provider stays unavailable.
    """

    api_key: str | None = None
    model: str = DEFAULT_NARRATOR_MODEL
    base_url: str = OPENROUTER_URL
    site_url: str | None = None
    site_name: str = "Saga"

    _client: AsyncOpenAI | None = field(init=False, default=None)

    def __post_init__(self) -> None:
        self.api_key = self.api_key or os.getenv("OPENROUTER_API_KEY")
        for attr, variable in _ENV_OVERRIDES.items():
            value = os.getenv(variable)
            if value:
                setattr(self, attr, value)

        if not self.api_key:
            logger.debug("No OpenRouter key configured; narrator unavailable")
            return

        # OpenRouter attributes traffic by these headers
        headers = {"X-Title": self.site_name}
        if self.site_url:
            headers["HTTP-Referer"] = self.site_url
        self._client = AsyncOpenAI(
            api_key=self.api_key, base_url=self.base_url, default_headers=headers
        )

    @property
    def model_name(self) -> str:
        return self.model

    @property
    def is_available(self) -> bool:
        return self._client is not None

    async def complete(
        self,
        messages: list[dict[str, str]],
        max_tokens: int = 2048,
        temperature: float = 0.8,
    ) -> str:
        """
        Request the next story beat.

        Blank replies and request errors are retried up to MAX_ATTEMPTS
        times, sleeping 1s, then 2s between attempts. A reply that stays
        blank is returned as is; the pipeline shows it verbatim.

        Raises:
            RuntimeError: No API key, or every attempt raised
        """
        if self._client is None:
            raise RuntimeError("Narrator not configured: set OPENROUTER_API_KEY")

        reply = ""
        failure: Exception | None = None
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                response = await self._client.chat.completions.create(
                    model=self.model,
                    messages=messages,  # type: ignore[arg-type]
                    max_tokens=max_tokens,
                    temperature=temperature,
                )
            except Exception as e:
                logger.warning("Narrator request %d/%d failed: %s", attempt, MAX_ATTEMPTS, e)
                failure = e
            else:
                reply = response.choices[0].message.content or ""
                if reply.strip():
                    return reply
                logger.warning("Narrator reply %d/%d was blank", attempt, MAX_ATTEMPTS)
                failure = None

            if attempt < MAX_ATTEMPTS:
                await asyncio.sleep(2.0 ** (attempt - 1))

        if failure is not None:
            raise RuntimeError(
                f"Narrator request failed after {MAX_ATTEMPTS} attempts"
            ) from failure
        return reply


@dataclass
class MockLLMProvider:
    """
    Offline narrator.

    Replies with the first canned response whose trigger occurs in the
    latest player message, else a quiet default story. ``fail_with``
    simulates an outage; every transcript received lands in ``calls``.
    """

    model: str = "mock"
    responses: dict[str, str] = field(default_factory=dict)
    default_story: str = "Gió thổi qua khu rừng yên tĩnh."
    fail_with: Exception | None = None
    calls: list[list[dict[str, str]]] = field(default_factory=list)

    @property
    def model_name(self) -> str:
        return self.model

    @property
    def is_available(self) -> bool:
        return True

    async def complete(
        self,
        messages: list[dict[str, str]],
        max_tokens: int = 2048,
        temperature: float = 0.8,
    ) -> str:
        self.calls.append(messages)
        if self.fail_with is not None:
            raise self.fail_with

        player_turns = [m["content"] for m in messages if m["role"] == "user"]
        latest = player_turns[-1] if player_turns else ""
        for trigger, reply in self.responses.items():
            if trigger in latest:
                return reply
        return json.dumps({"story": self.default_story, "choices": []}, ensure_ascii=False)

    def set_response(self, trigger: str, response: str) -> None:
        self.responses[trigger] = response


def create_provider(provider_type: str = "openrouter", **kwargs) -> LLMProvider:
    """
    Build a narrator by name.

    ``"openrouter"`` reads its configuration from the environment unless
    overridden through ``kwargs``; ``"mock"`` accepts MockLLMProvider fields.

    Raises:
        ValueError: For any other provider name
    """
    providers = {"openrouter": OpenRouterProvider, "mock": MockLLMProvider}
    if provider_type not in providers:
        raise ValueError(f"Unknown provider type: {provider_type}")
    return providers[provider_type](**kwargs)
