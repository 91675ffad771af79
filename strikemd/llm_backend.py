"""
Generation backends: Ollama (local, httpx streaming), Claude API (anthropic
SDK, optional dependency) and a replay backend for saved answers.

Every backend exposes stream(system, user), an async iterator of channel
events (Phase, Fragment, then exactly one Completed or Failed). Transport
errors never escape as exceptions; they become a Failed event.
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, Optional
import json
import os

import httpx

from strikemd.config import LLMConfig
from strikemd.stream_parser import (
    PHASE_ANSWER,
    PHASE_REASONING,
    ChannelEvent,
    Completed,
    Failed,
    Fragment,
    Phase,
)

import logging

logger = logging.getLogger(__name__)


class GenerationBackend(ABC):
    """Abstract base for streaming generation backends."""

    @abstractmethod
    def stream(self, system: str, user: str) -> AsyncIterator[ChannelEvent]:
        """Stream the answer to one (system, user) prompt pair."""
        ...

    @property
    @abstractmethod
    def is_local(self) -> bool:
        """Whether this backend runs entirely locally."""
        ...

    @property
    @abstractmethod
    def model_name(self) -> str:
        """The model identifier."""
        ...

    def describe(self) -> Dict[str, Any]:
        return {
            "backend": type(self).__name__,
            "model": self.model_name,
            "local_only": self.is_local,
        }


# ---------------------------------------------------------------------------
# Ollama
# ---------------------------------------------------------------------------

class OllamaBackend(GenerationBackend):
    """
    Local backend via the Ollama chat API.

    Streams NDJSON chunks from {endpoint}/api/chat. message.thinking marks
    the reasoning phase, message.content carries answer fragments.

    Args:
        client: Optional httpx.AsyncClient (a fresh one per call otherwise)
    """

    def __init__(
        self,
        model: str = "mistral:instruct",
        endpoint: str = "http://127.0.0.1:11434",
        temperature: float = 0.1,
        num_predict: int = 16384,
        timeout: int = 300,
        think: bool = False,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._model = model
        self._endpoint = endpoint.rstrip("/")
        self._temperature = temperature
        self._num_predict = num_predict
        self._timeout = timeout
        self._think = think
        self._client = client

    @property
    def is_local(self) -> bool:
        return True

    @property
    def model_name(self) -> str:
        return self._model

    def _payload(self, system: str, user: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "stream": True,
            "options": {
                "temperature": self._temperature,
                "num_predict": self._num_predict,
            },
        }
        if self._think:
            payload["think"] = True
        return payload

    async def stream(self, system: str, user: str) -> AsyncIterator[ChannelEvent]:
        url = f"{self._endpoint}/api/chat"
        client = self._client or httpx.AsyncClient()
        fragments = 0
        try:
            async with client.stream(
                "POST", url, json=self._payload(system, user), timeout=self._timeout,
            ) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", "replace")
                    yield Failed(f"Ollama returned HTTP {response.status_code}: {body[:200]}")
                    return
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        chunk = json.loads(line)
                    except json.JSONDecodeError:
                        logger.debug(f"[ollama] skipping non-JSON line: {line[:80]!r}")
                        continue

                    if chunk.get("error"):
                        yield Failed(f"Ollama error: {chunk['error']}")
                        return

                    message = chunk.get("message") or {}
                    if message.get("thinking"):
                        yield Phase(PHASE_REASONING)
                    content = message.get("content", "")
                    if content:
                        if fragments == 0:
                            yield Phase(PHASE_ANSWER)
                        fragments += 1
                        yield Fragment(content)

                    if chunk.get("done"):
                        logger.debug(
                            f"[ollama] done: {fragments} fragments, "
                            f"reason={chunk.get('done_reason', '?')}"
                        )
                        yield Completed()
                        return
            yield Failed("Ollama stream ended before completion")
        except httpx.HTTPError as e:
            logger.warning(f"[ollama] transport error: {e}")
            yield Failed(f"Ollama request failed: {e}")
        finally:
            if self._client is None:
                await client.aclose()


# ---------------------------------------------------------------------------
# Claude API
# ---------------------------------------------------------------------------

class ClaudeAPIBackend(GenerationBackend):
    """
    Claude API backend (non-local).

    Requires: pip install strikemd[claude] or pip install anthropic
    """

    def __init__(
        self,
        model: str = "claude-sonnet-4-5-20250929",
        api_key: str = "",
        temperature: float = 0.1,
        max_tokens: int = 16384,
        think: bool = False,
        thinking_budget: int = 4096,
    ):
        self._model = model
        self._api_key = api_key
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._think = think
        self._thinking_budget = thinking_budget
        self._client = None

    @property
    def is_local(self) -> bool:
        return False

    @property
    def model_name(self) -> str:
        return self._model

    def _get_client(self):
        if self._client is None:
            try:
                import anthropic
            except ImportError:
                raise ImportError(
                    "anthropic package not installed. "
                    "Install with: pip install strikemd[claude] or pip install anthropic"
                )
            key = self._api_key or os.environ.get("ANTHROPIC_API_KEY", "")
            if not key:
                raise ValueError("No API key: set ANTHROPIC_API_KEY or pass api_key")
            self._client = anthropic.AsyncAnthropic(api_key=key)
        return self._client

    def _request(self, system: str, user: str) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "system": system,
            "messages": [{"role": "user", "content": user}],
        }
        if self._think:
            # Extended thinking requires the default temperature
            request["thinking"] = {"type": "enabled", "budget_tokens": self._thinking_budget}
        else:
            request["temperature"] = self._temperature
        return request

    async def stream(self, system: str, user: str) -> AsyncIterator[ChannelEvent]:
        client = self._get_client()
        import anthropic

        try:
            async with client.messages.stream(**self._request(system, user)) as stream:
                async for event in stream:
                    if event.type == "content_block_start":
                        block_type = event.content_block.type
                        if block_type == "thinking":
                            yield Phase(PHASE_REASONING)
                        elif block_type == "text":
                            yield Phase(PHASE_ANSWER)
                    elif event.type == "content_block_delta" and event.delta.type == "text_delta":
                        yield Fragment(event.delta.text)
            yield Completed()
        except anthropic.APIError as e:
            logger.warning(f"[claude] API error: {e}")
            yield Failed(f"Claude API request failed: {e}")


# ---------------------------------------------------------------------------
# Replay
# ---------------------------------------------------------------------------

class ReplayBackend(GenerationBackend):
    """
    Replay a saved answer as a stream of fixed-size fragments.

    Args:
        answer: Full model answer text
        chunk_size: Fragment size in characters
        error: If set, fail with this message after the answer
    """

    def __init__(self, answer: str, chunk_size: int = 64, error: Optional[str] = None):
        self._answer = answer
        self._chunk_size = max(1, chunk_size)
        self._error = error

    @property
    def is_local(self) -> bool:
        return True

    @property
    def model_name(self) -> str:
        return "replay"

    async def stream(self, system: str, user: str) -> AsyncIterator[ChannelEvent]:
        yield Phase(PHASE_ANSWER)
        for i in range(0, len(self._answer), self._chunk_size):
            yield Fragment(self._answer[i:i + self._chunk_size])
        if self._error:
            yield Failed(self._error)
        else:
            yield Completed()


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def get_backend(config: LLMConfig, replay_answer: Optional[str] = None) -> GenerationBackend:
    """
    Factory for generation backends.

    Args:
        config: LLM configuration
        replay_answer: Saved answer text (required for the replay backend)

    Returns:
        GenerationBackend instance
    """
    if config.backend == "ollama":
        return OllamaBackend(
            model=config.model_name,
            endpoint=config.endpoint,
            temperature=config.temperature,
            num_predict=config.max_tokens,
            timeout=config.timeout,
            think=config.think,
        )
    if config.backend == "claude":
        return ClaudeAPIBackend(
            model=config.model_name,
            api_key=config.api_key,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            think=config.think,
        )
    if config.backend == "replay":
        if replay_answer is None:
            raise ValueError("The replay backend needs a saved answer")
        return ReplayBackend(replay_answer)
    raise ValueError(f"Unknown backend: {config.backend!r}. Use 'ollama', 'claude' or 'replay'.")
