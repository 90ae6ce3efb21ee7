"""Tests for the LLM client, JSON extraction and the circuit breaker."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import SecretStr

from problem_vault.llm.circuit_breaker import (
    CircuitOpenError,
    CircuitState,
    CircuitBreaker,
)
from problem_vault.llm.client import LLMClient, extract_json_block
from problem_vault.llm.config import LLMConfig


class TestExtractJsonBlock:
    def test_plain_object(self):
        assert extract_json_block('{"a": 1}') == '{"a": 1}'

    def test_json_fence(self):
        assert extract_json_block('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_bare_fence(self):
        assert extract_json_block('```\n[1, 2]\n```', opener="[") == "[1, 2]"

    def test_leading_prose(self):
        assert extract_json_block('Here it is: [{"t": 1}]', opener="[") == '[{"t": 1}]'

    def test_nothing_to_find(self):
        assert extract_json_block("  nope  ") == "nope"


async def _fail():
    raise RuntimeError("provider down")


async def _ok():
    return "ok"


class TestCircuitBreaker:
    @pytest.mark.asyncio
    async def test_opens_after_threshold(self):
        breaker = CircuitBreaker("test", failure_threshold=2, recovery_timeout=60.0)

        for _ in range(2):
            with pytest.raises(RuntimeError):
                await breaker.call(_fail)

        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitOpenError):
            await breaker.call(_ok)

    @pytest.mark.asyncio
    async def test_success_resets_failures(self):
        breaker = CircuitBreaker("test", failure_threshold=3)

        with pytest.raises(RuntimeError):
            await breaker.call(_fail)
        assert breaker.consecutive_failures == 1

        assert await breaker.call(_ok) == "ok"
        assert breaker.consecutive_failures == 0
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_probe(self):
        breaker = CircuitBreaker("test", failure_threshold=1, recovery_timeout=30.0)
        with pytest.raises(RuntimeError):
            await breaker.call(_fail)
        breaker._opened_at -= 31.0

        assert await breaker.call(_ok) == "ok"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_failed_probe_reopens(self):
        breaker = CircuitBreaker("test", failure_threshold=1, recovery_timeout=30.0)
        with pytest.raises(RuntimeError):
            await breaker.call(_fail)
        breaker._opened_at -= 31.0

        with pytest.raises(RuntimeError):
            await breaker.call(_fail)
        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_open_error_carries_retry_after(self):
        breaker = CircuitBreaker("test", failure_threshold=1, recovery_timeout=30.0)
        with pytest.raises(RuntimeError):
            await breaker.call(_fail)

        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.call(_ok)
        assert exc_info.value.provider == "test"
        assert 0 < exc_info.value.retry_after <= 30.0

    @pytest.mark.asyncio
    async def test_only_one_probe_at_a_time(self):
        breaker = CircuitBreaker("test", failure_threshold=1, recovery_timeout=30.0)
        with pytest.raises(RuntimeError):
            await breaker.call(_fail)
        breaker._opened_at -= 31.0

        release = asyncio.Event()

        async def _slow():
            await release.wait()
            return "ok"

        probe = asyncio.create_task(breaker.call(_slow))
        await asyncio.sleep(0)
        assert breaker.state == CircuitState.HALF_OPEN
        with pytest.raises(CircuitOpenError):
            await breaker.call(_ok)

        release.set()
        assert await probe == "ok"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_cancelled_probe_frees_the_next_call(self):
        breaker = CircuitBreaker("test", failure_threshold=1, recovery_timeout=30.0)
        with pytest.raises(RuntimeError):
            await breaker.call(_fail)
        breaker._opened_at -= 31.0

        probe = asyncio.create_task(breaker.call(asyncio.Event().wait))
        await asyncio.sleep(0)
        probe.cancel()
        with pytest.raises(asyncio.CancelledError):
            await probe

        assert await breaker.call(_ok) == "ok"
        assert breaker.state == CircuitState.CLOSED


def test_configured_flags():
    assert not LLMConfig(_env_file=None, openai_api_key=None).openai_configured
    assert not LLMConfig(_env_file=None, openai_api_key=SecretStr("  ")).openai_configured
    assert LLMConfig(_env_file=None, openai_api_key=SecretStr("sk-1")).openai_configured
    assert LLMConfig(_env_file=None, anthropic_api_key=SecretStr("sk-ant")).anthropic_configured


@pytest.fixture
def client() -> LLMClient:
    config = LLMConfig(
        _env_file=None,
        openai_api_key=SecretStr("sk-test"),
        anthropic_api_key=SecretStr("sk-ant-test"),
    )
    return LLMClient(config)


@pytest.mark.asyncio
async def test_chat_sends_single_turn(client):
    openai_client = MagicMock()
    openai_client.chat.completions.create = AsyncMock(
        return_value=SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content='{"has_problem": false}'))]
        )
    )
    client._openai_client = openai_client

    reply = await client.chat("system", "user", model="gpt-4o-mini", max_tokens=50, json_mode=True)

    assert reply == '{"has_problem": false}'
    kwargs = openai_client.chat.completions.create.await_args.kwargs
    assert kwargs["messages"][0] == {"role": "system", "content": "system"}
    assert kwargs["messages"][1] == {"role": "user", "content": "user"}
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["max_completion_tokens"] == 50


@pytest.mark.asyncio
async def test_embed_returns_list(client):
    openai_client = MagicMock()
    openai_client.embeddings.create = AsyncMock(
        return_value=SimpleNamespace(data=[SimpleNamespace(embedding=(0.5, 0.25))])
    )
    client._openai_client = openai_client

    assert await client.embed("text") == [0.5, 0.25]
    assert openai_client.embeddings.create.await_args.kwargs["model"] == "text-embedding-3-small"


@pytest.mark.asyncio
async def test_message_joins_text_blocks(client):
    anthropic_client = MagicMock()
    anthropic_client.messages.create = AsyncMock(
        return_value=SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text="[{"),
                SimpleNamespace(type="tool_use", text="ignored"),
                SimpleNamespace(type="text", text="}]"),
            ]
        )
    )
    client._anthropic_client = anthropic_client

    assert await client.message("system", "user") == "[{}]"
    kwargs = anthropic_client.messages.create.await_args.kwargs
    assert kwargs["system"] == "system"
    assert kwargs["max_tokens"] == 4096


@pytest.mark.asyncio
async def test_failures_trip_the_openai_breaker(client):
    openai_client = MagicMock()
    openai_client.embeddings.create = AsyncMock(side_effect=RuntimeError("503"))
    client._openai_client = openai_client

    for _ in range(client.config.circuit_failure_threshold):
        with pytest.raises(RuntimeError):
            await client.embed("text")

    with pytest.raises(CircuitOpenError):
        await client.embed("text")
    assert client.anthropic_breaker.state == CircuitState.CLOSED
