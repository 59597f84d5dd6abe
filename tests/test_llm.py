"""Tests for npc_dialog.llm: CompletionClient, retry policies and EchoClient."""

import logging

import pytest
import httpx
from unittest.mock import AsyncMock, MagicMock, patch

from npc_dialog.llm import (
    API_KEY_WARNING,
    CompletionClient,
    EchoClient,
    FixedDelay,
    GrowingDelay,
    LLMError,
)
from npc_dialog.models import CLASSIFY_PARAMS, Message, SamplingParams

USER_HI = [Message(role="system", content="sys"), Message(role="user", content="Hero: hi")]


def _mock_response(body: dict, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = body
    resp.raise_for_status = MagicMock(
        side_effect=None if status < 400 else httpx.HTTPStatusError(
            "", request=MagicMock(), response=resp
        )
    )
    return resp


def _reply(content: str, role: str = "assistant") -> dict:
    return {"choices": [{"message": {"role": role, "content": content}}]}


# ---------------------------------------------------------------------------
# Retry policies
# ---------------------------------------------------------------------------

class TestRetryPolicies:
    def test_fixed_delay_never_gives_up_by_default(self) -> None:
        policy = FixedDelay(0.5)
        assert [policy.delay(n) for n in (1, 2, 100)] == [0.5, 0.5, 0.5]

    def test_fixed_delay_ceiling(self) -> None:
        policy = FixedDelay(0.5, max_attempts=2)
        assert policy.delay(1) == 0.5
        assert policy.delay(2) is None

    def test_growing_delay_adds_step_per_failure(self) -> None:
        policy = GrowingDelay(start=1, step=1)
        assert [policy.delay(n) for n in (1, 2, 3)] == [2, 3, 4]

    def test_growing_delay_ceiling(self) -> None:
        assert GrowingDelay(max_attempts=1).delay(1) is None


# ---------------------------------------------------------------------------
# CompletionClient: request shape
# ---------------------------------------------------------------------------

class TestCompletionClientRequest:
    @pytest.fixture
    def client(self) -> CompletionClient:
        return CompletionClient(api_key=lambda: "secret", sleep=AsyncMock())

    async def test_happy_path(self, client: CompletionClient) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_reply("Well met.")))
        with patch("httpx.AsyncClient.post", mock_post):
            result = await client.complete(USER_HI, SamplingParams())
        assert result == Message(role="assistant", content="Well met.")

    async def test_posts_to_chat_completions(self, client: CompletionClient) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_reply("ok")))
        with patch("httpx.AsyncClient.post", mock_post):
            await client.complete(USER_HI, SamplingParams())
        assert mock_post.call_args[0][0] == "https://api.openai.com/v1/chat/completions"

    async def test_trailing_slash_stripped_from_url(self) -> None:
        client = CompletionClient(api_key=lambda: "", provider_url="http://localhost:8080/")
        mock_post = AsyncMock(return_value=_mock_response(_reply("ok")))
        with patch("httpx.AsyncClient.post", mock_post):
            await client.complete(USER_HI, SamplingParams())
        assert mock_post.call_args[0][0] == "http://localhost:8080/v1/chat/completions"

    async def test_chat_body(self, client: CompletionClient) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_reply("ok")))
        params = SamplingParams(temperature=0.7, max_tokens=50, frequency_penalty=0.1, presence_penalty=0.2)
        with patch("httpx.AsyncClient.post", mock_post):
            await client.complete(USER_HI, params)
        assert mock_post.call_args.kwargs["json"] == {
            "model": "gpt-3.5-turbo",
            "messages": [
                {"role": "system", "content": "sys"},
                {"role": "user", "content": "Hero: hi"},
            ],
            "temperature": 0.7,
            "max_tokens": 50,
            "frequency_penalty": 0.1,
            "presence_penalty": 0.2,
        }

    async def test_classification_body_omits_shaping(self, client: CompletionClient) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_reply("ok")))
        with patch("httpx.AsyncClient.post", mock_post):
            await client.complete(USER_HI, CLASSIFY_PARAMS)
        body = mock_post.call_args.kwargs["json"]
        assert body["temperature"] == 0
        assert "max_tokens" not in body
        assert "frequency_penalty" not in body
        assert "presence_penalty" not in body

    async def test_headers(self, client: CompletionClient) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_reply("ok")))
        with patch("httpx.AsyncClient.post", mock_post):
            await client.complete(USER_HI, SamplingParams())
        headers = mock_post.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer secret"
        assert headers["Content-Type"] == "application/json"

    async def test_empty_key_still_sends_bearer_header(self) -> None:
        client = CompletionClient(api_key=lambda: "")
        mock_post = AsyncMock(return_value=_mock_response(_reply("ok")))
        with patch("httpx.AsyncClient.post", mock_post):
            await client.complete(USER_HI, SamplingParams())
        assert mock_post.call_args.kwargs["headers"]["Authorization"] == "Bearer "

    async def test_key_read_on_every_attempt(self) -> None:
        current = {"key": ""}

        def api_key() -> str:
            return current["key"]

        async def sleep(_: float) -> None:
            current["key"] = "late-key"

        client = CompletionClient(api_key=api_key, sleep=sleep)
        mock_post = AsyncMock(side_effect=[
            httpx.ConnectError("refused"),
            _mock_response(_reply("ok")),
        ])
        with patch("httpx.AsyncClient.post", mock_post):
            await client.complete(USER_HI, SamplingParams())
        assert mock_post.call_args_list[0].kwargs["headers"]["Authorization"] == "Bearer "
        assert mock_post.call_args_list[1].kwargs["headers"]["Authorization"] == "Bearer late-key"


# ---------------------------------------------------------------------------
# CompletionClient: failures and retry
# ---------------------------------------------------------------------------

class TestCompletionClientRetry:
    async def test_send_connect_error_raises_llm_error(self) -> None:
        client = CompletionClient(api_key=lambda: "k")
        mock_post = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="Cannot connect"):
                await client.send(client.build_body(USER_HI, SamplingParams()))

    async def test_send_timeout_raises_llm_error(self) -> None:
        client = CompletionClient(api_key=lambda: "k")
        mock_post = AsyncMock(side_effect=httpx.ReadTimeout("slow"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="timed out"):
                await client.send(client.build_body(USER_HI, SamplingParams()))

    async def test_send_http_error_raises_llm_error(self) -> None:
        client = CompletionClient(api_key=lambda: "k")
        mock_post = AsyncMock(return_value=_mock_response({}, status=429))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="HTTP 429"):
                await client.send(client.build_body(USER_HI, SamplingParams()))

    async def test_send_malformed_response_raises_llm_error(self) -> None:
        client = CompletionClient(api_key=lambda: "k")
        mock_post = AsyncMock(return_value=_mock_response({"choices": []}))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="Unexpected response format"):
                await client.send(client.build_body(USER_HI, SamplingParams()))

    async def test_retries_identical_request_after_failure(self) -> None:
        sleep = AsyncMock()
        client = CompletionClient(api_key=lambda: "k", sleep=sleep)
        mock_post = AsyncMock(side_effect=[
            httpx.ConnectError("refused"),
            _mock_response({}, status=500),
            _mock_response(_reply("Finally.")),
        ])
        with patch("httpx.AsyncClient.post", mock_post):
            result = await client.complete(USER_HI, SamplingParams())
        assert result.content == "Finally."
        assert mock_post.call_count == 3
        bodies = [c.kwargs["json"] for c in mock_post.call_args_list]
        assert bodies[0] == bodies[1] == bodies[2]
        assert [c.args[0] for c in sleep.call_args_list] == [0.5, 0.5]

    async def test_warns_about_missing_key_on_failure(self, caplog) -> None:
        client = CompletionClient(api_key=lambda: "", sleep=AsyncMock())
        mock_post = AsyncMock(side_effect=[
            httpx.ConnectError("refused"),
            _mock_response(_reply("ok")),
        ])
        with patch("httpx.AsyncClient.post", mock_post):
            await client.complete(USER_HI, SamplingParams())
        assert API_KEY_WARNING in caplog.text
        assert "Completion attempt 1 failed" in caplog.text

    async def test_no_key_warning_when_key_set(self, caplog) -> None:
        client = CompletionClient(api_key=lambda: "k", sleep=AsyncMock())
        mock_post = AsyncMock(side_effect=[
            httpx.ConnectError("refused"),
            _mock_response(_reply("ok")),
        ])
        with patch("httpx.AsyncClient.post", mock_post):
            await client.complete(USER_HI, SamplingParams())
        assert API_KEY_WARNING not in caplog.text

    async def test_bounded_policy_gives_up(self) -> None:
        client = CompletionClient(
            api_key=lambda: "k", retry=FixedDelay(0, max_attempts=2), sleep=AsyncMock(),
        )
        mock_post = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError):
                await client.complete(USER_HI, SamplingParams())
        assert mock_post.call_count == 2


# ---------------------------------------------------------------------------
# CompletionClient: startup self-check
# ---------------------------------------------------------------------------

class TestCheckConnection:
    async def test_success(self, caplog) -> None:
        caplog.set_level(logging.INFO)
        client = CompletionClient(api_key=lambda: "k")
        mock_post = AsyncMock(return_value=_mock_response(_reply("Hi")))
        with patch("httpx.AsyncClient.post", mock_post):
            assert await client.check_connection() is True
        body = mock_post.call_args.kwargs["json"]
        assert body["messages"] == [{"role": "user", "content": "test"}]
        assert body["temperature"] == 0
        assert body["max_tokens"] == 4
        assert body["frequency_penalty"] == 0
        assert body["presence_penalty"] == 0
        assert "succeeded" in caplog.text

    async def test_growing_delay_between_failures(self) -> None:
        sleep = AsyncMock()
        client = CompletionClient(api_key=lambda: "k", sleep=sleep)
        mock_post = AsyncMock(side_effect=[
            httpx.ConnectError("refused"),
            httpx.ConnectError("refused"),
            _mock_response(_reply("Hi")),
        ])
        with patch("httpx.AsyncClient.post", mock_post):
            assert await client.check_connection() is True
        assert [c.args[0] for c in sleep.call_args_list] == [2.0, 3.0]

    async def test_single_attempt_failure_returns_false(self) -> None:
        client = CompletionClient(api_key=lambda: "k")
        mock_post = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with patch("httpx.AsyncClient.post", mock_post):
            ok = await client.check_connection(retry=FixedDelay(0, max_attempts=1))
        assert ok is False
        assert mock_post.call_count == 1


# ---------------------------------------------------------------------------
# EchoClient
# ---------------------------------------------------------------------------

class TestEchoClient:
    async def test_returns_last_message(self) -> None:
        result = await EchoClient().complete(USER_HI, SamplingParams())
        assert result == Message(role="assistant", content="Hero: hi")

    async def test_empty_messages(self) -> None:
        result = await EchoClient().complete([], SamplingParams())
        assert result.content == ""
