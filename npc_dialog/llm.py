"""Chat-completion client: HTTP connection to an OpenAI-compatible backend.

The conversation controller and the topic classifier depend on anything
matching the protocol:

    async def complete(self, messages, params) -> Message: ...

Two implementations are provided:

    CompletionClient  real HTTP client. Every failed attempt (connection
                      error, timeout, non-2xx status, malformed body) is
                      logged and retried according to a RetryPolicy.
    EchoClient        replies with the last prompt message. Useful for
                      smoke-testing the conversation wiring without a model.

Retry policies decide how long to wait before attempt N+1, or that no further
attempt should be made:

    FixedDelay(0.5)                chat turns; same short pause every time.
    GrowingDelay(start=1, step=1)  startup self-check; 2s, 3s, 4s, ...

Both retry forever unless given max_attempts.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Protocol

import httpx

from npc_dialog.models import (
    SELF_CHECK_PARAMS,
    Message,
    SamplingParams,
)

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_URL = "https://api.openai.com"
DEFAULT_MODEL = "gpt-3.5-turbo"

API_KEY_WARNING = (
    "API key not set! Set OPENAI_API_KEY in the environment or in .env, "
    "or save api_key in the settings. Register with your provider if you "
    "don't have a key yet."
)


# ---------------------------------------------------------------------------
# Protocol: every completion implementation must match this signature
# ---------------------------------------------------------------------------

class Completer(Protocol):
    async def complete(
        self, messages: Iterable[Message], params: SamplingParams
    ) -> Message: ...

    async def check_connection(self, retry: RetryPolicy | None = None) -> bool: ...


# ---------------------------------------------------------------------------
# Retry policies
# ---------------------------------------------------------------------------

class RetryPolicy(Protocol):
    def delay(self, attempt: int) -> float | None:
        """Seconds to wait after failed attempt number `attempt` (1-based).

        None means give up.
        """
        ...


class FixedDelay:
    def __init__(self, seconds: float = 0.5, max_attempts: int | None = None) -> None:
        self.seconds = seconds
        self.max_attempts = max_attempts

    def delay(self, attempt: int) -> float | None:
        if self.max_attempts is not None and attempt >= self.max_attempts:
            return None
        return self.seconds


class GrowingDelay:
    """Wait start + step * attempt seconds after each consecutive failure."""

    def __init__(
        self, start: float = 1.0, step: float = 1.0, max_attempts: int | None = None,
    ) -> None:
        self.start = start
        self.step = step
        self.max_attempts = max_attempts

    def delay(self, attempt: int) -> float | None:
        if self.max_attempts is not None and attempt >= self.max_attempts:
            return None
        return self.start + self.step * attempt


# ---------------------------------------------------------------------------
# CompletionClient: connects to a real backend
# ---------------------------------------------------------------------------

class CompletionClient:
    """Async HTTP client for the chat-completions endpoint.

    POST {provider_url}/v1/chat/completions
      {"model": ..., "messages": [{"role", "content"}], "temperature": ...,
       "max_tokens"?, "frequency_penalty"?, "presence_penalty"?}
    Response: {"choices": [{"message": {"role": ..., "content": ...}}]}

    Args:
        api_key:      Zero-argument callable returning the bearer token. Read
                      on every attempt so a key set later is picked up.
        provider_url: Base URL of the backend.
        model:        Model identifier sent with every request.
        timeout:      HTTP timeout in seconds.
        retry:        Policy for chat and classification calls.
        sleep:        Awaitable sleep, replaced in tests.
    """

    def __init__(
        self,
        api_key: Callable[[], str],
        provider_url: str = DEFAULT_PROVIDER_URL,
        model: str = DEFAULT_MODEL,
        timeout: float = 60.0,
        retry: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._api_key = api_key
        self._base_url = provider_url.rstrip("/")
        self._model = model
        self._timeout = timeout
        self._retry = retry or FixedDelay(0.5)
        self._sleep = sleep

    @property
    def url(self) -> str:
        return f"{self._base_url}/v1/chat/completions"

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key()}",
        }

    def build_body(self, messages: Iterable[Message], params: SamplingParams) -> dict:
        body: dict = {
            "model": self._model,
            "messages": [m.model_dump() for m in messages],
        }
        body.update(params.model_dump(exclude_none=True))
        return body

    def _parse_response(self, data: dict) -> Message:
        """Extract the first choice's message from the response body."""
        try:
            message = data["choices"][0]["message"]
            return Message(role=message["role"], content=message["content"])
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise LLMError("Unexpected response format from completion backend") from e

    def _warn_if_no_key(self) -> None:
        if not self._api_key():
            logger.warning(API_KEY_WARNING)

    async def send(self, body: dict) -> Message:
        """One attempt. Raises LLMError on any transport or protocol failure."""
        logger.debug(
            "completion call url=%s messages=%d", self.url, len(body["messages"])
        )
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self.url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to completion backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(
                f"Completion backend returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise LLMError(f"Completion backend timed out after {self._timeout}s") from e
        except httpx.TransportError as e:
            raise LLMError(f"Transport error talking to completion backend: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise LLMError("Completion backend returned a non-JSON body") from e
        message = self._parse_response(data)
        logger.debug("completion response role=%s len=%d", message.role, len(message.content))
        return message

    async def _send_with_retry(self, body: dict, policy: RetryPolicy) -> Message:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self.send(body)
            except LLMError as e:
                logger.error("Completion attempt %d failed: %s", attempt, e)
                self._warn_if_no_key()
                wait = policy.delay(attempt)
                if wait is None:
                    raise
                await self._sleep(wait)

    async def complete(
        self, messages: Iterable[Message], params: SamplingParams
    ) -> Message:
        """Send the messages and return the reply, retrying until it succeeds."""
        body = self.build_body(messages, params)
        return await self._send_with_retry(body, self._retry)

    async def check_connection(self, retry: RetryPolicy | None = None) -> bool:
        """Startup self-check. Logs the outcome and discards the reply."""
        body = self.build_body([Message(role="user", content="test")], SELF_CHECK_PARAMS)
        policy = retry or GrowingDelay(start=1.0, step=1.0)
        try:
            await self._send_with_retry(body, policy)
        except LLMError as e:
            logger.error("Connecting to the completion backend failed: %s", e)
            return False
        logger.info("Connecting to the completion backend succeeded")
        return True


# ---------------------------------------------------------------------------
# EchoClient: replies with the prompt; useful for wiring smoke tests
# ---------------------------------------------------------------------------

class EchoClient:
    """Answers every request with the content of the last message. No network calls."""

    async def complete(
        self, messages: Iterable[Message], params: SamplingParams
    ) -> Message:
        messages = list(messages)
        content = messages[-1].content if messages else ""
        logger.debug("EchoClient messages=%d", len(messages))
        return Message(role="assistant", content=content)

    async def check_connection(self, retry: RetryPolicy | None = None) -> bool:
        return True


# ---------------------------------------------------------------------------
# LLMError: raised by CompletionClient for all connection and protocol failures
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the completion backend cannot be reached or returns an error."""
