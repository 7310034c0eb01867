"""Tests for SSE parsing, the OpenRouter client and relay fallback."""

import asyncio
import json

import httpx
import pytest

from config.settings import OpenRouterConfig, RelayConfig, SystemConfig
from models.manager import ModelManager
from models.providers import (
    GatewayError,
    GatewayTimeoutError,
    OpenRouterProvider,
    RelayError,
    RelayProvider,
    StreamEventError,
    iter_sse_fragments,
)


def sse_body(*events: str) -> bytes:
    return "".join(f"data: {event}\n\n" for event in events).encode()


def delta(text: str) -> str:
    return json.dumps({"choices": [{"delta": {"content": text}}]})


async def lines(*items: str):
    for item in items:
        yield item


async def collect(stream) -> list[str]:
    return [fragment async for fragment in stream]


def system_config(**openrouter) -> SystemConfig:
    return SystemConfig(
        server_token="relay-token",
        openrouter=OpenRouterConfig(api_key="test-key", **openrouter),
        relay=RelayConfig(url="http://relay.test/api/debate/stream"),
    )


def test_sse_parser_stops_at_done_and_skips_noise() -> None:
    stream = iter_sse_fragments(
        lines(
            ": keep-alive",
            "",
            f"data: {delta('Hello')}",
            "data: {not json",
            "event: ping",
            f"data: {delta('')}",
            f"data: {delta(' world')}",
            "data: [DONE]",
            f"data: {delta('ignored')}",
        )
    )

    assert asyncio.run(collect(stream)) == ["Hello", " world"]


def test_sse_parser_reads_relay_shaped_payloads() -> None:
    stream = iter_sse_fragments(
        lines('data: {"content": "relayed"}', "data: [DONE]")
    )
    assert asyncio.run(collect(stream)) == ["relayed"]


def test_sse_parser_raises_on_error_event() -> None:
    stream = iter_sse_fragments(
        lines(f"data: {delta('partial')}", 'data: {"error": {"message": "overloaded"}}')
    )
    received: list[str] = []

    async def consume() -> None:
        async for fragment in stream:
            received.append(fragment)

    with pytest.raises(StreamEventError, match="overloaded"):
        asyncio.run(consume())
    # Fragments before the failure were still delivered
    assert received == ["partial"]


def test_openrouter_streams_fragments() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        assert request.headers["Authorization"] == "Bearer test-key"
        return httpx.Response(
            200,
            headers={"content-type": "text/event-stream"},
            content=sse_body(delta("One"), delta(" two"), "[DONE]"),
        )

    provider = OpenRouterProvider(system_config(), transport=httpx.MockTransport(handler))
    result = asyncio.run(collect(provider.stream_chat("openai/gpt-4.1", [{"role": "user", "content": "hi"}])))

    assert result == ["One", " two"]
    assert seen[0]["model"] == "openai/gpt-4.1"
    assert seen[0]["stream"] is True


def test_free_model_rate_limit_falls_back_to_paid_once() -> None:
    models_requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        model = json.loads(request.content)["model"]
        models_requested.append(model)
        if model.endswith(":free"):
            return httpx.Response(429, text="rate limited")
        return httpx.Response(200, content=sse_body(delta("paid answer"), "[DONE]"))

    provider = OpenRouterProvider(system_config(), transport=httpx.MockTransport(handler))
    result = asyncio.run(collect(provider.stream_chat("qwen/qwq-32b:free", [])))

    assert result == ["paid answer"]
    assert models_requested == ["qwen/qwq-32b:free", "qwen/qwq-32b"]


def test_rate_limit_on_paid_model_is_a_gateway_error() -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(json.loads(request.content)["model"])
        return httpx.Response(429, text="slow down")

    provider = OpenRouterProvider(system_config(), transport=httpx.MockTransport(handler))

    with pytest.raises(GatewayError) as exc_info:
        asyncio.run(collect(provider.stream_chat("openai/gpt-4.1", [])))

    assert exc_info.value.status_code == 429
    assert calls == ["openai/gpt-4.1"]


def test_fallback_happens_only_once() -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(json.loads(request.content)["model"])
        return httpx.Response(429, text="still limited")

    provider = OpenRouterProvider(system_config(), transport=httpx.MockTransport(handler))

    with pytest.raises(GatewayError):
        asyncio.run(collect(provider.stream_chat("deepseek/deepseek-chat:free", [])))

    assert calls == ["deepseek/deepseek-chat:free", "deepseek/deepseek-chat"]


def test_non_success_status_carries_status_and_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="bad upstream")

    provider = OpenRouterProvider(system_config(), transport=httpx.MockTransport(handler))

    with pytest.raises(GatewayError) as exc_info:
        asyncio.run(collect(provider.stream_chat("openai/gpt-4.1", [])))

    assert exc_info.value.status_code == 502
    assert exc_info.value.body == "bad upstream"


def test_outer_deadline_raises_gateway_timeout() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200, content=sse_body("[DONE]"))

    provider = OpenRouterProvider(
        system_config(timeout=0.05), transport=httpx.MockTransport(handler)
    )

    with pytest.raises(GatewayTimeoutError):
        asyncio.run(collect(provider.stream_chat("openai/gpt-4.1", [])))


def test_relay_sends_server_token_and_maps_error_event() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer relay-token"
        return httpx.Response(200, content=sse_body('{"error": "upstream broke"}'))

    relay = RelayProvider(system_config(), transport=httpx.MockTransport(handler))

    with pytest.raises(RelayError, match="upstream broke"):
        asyncio.run(collect(relay.stream_chat("openai/gpt-4.1", [])))


def test_manager_falls_back_to_gateway_when_relay_fails_before_output() -> None:
    hosts: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        hosts.append(request.url.host)
        if request.url.host == "relay.test":
            return httpx.Response(503, text="relay down")
        return httpx.Response(200, content=sse_body(delta("direct"), "[DONE]"))

    manager = ModelManager(system_config(), transport=httpx.MockTransport(handler))
    result = asyncio.run(collect(manager.stream_response("openai/gpt-4.1", [])))

    assert result == ["direct"]
    assert hosts == ["relay.test", "openrouter.ai"]


def test_manager_does_not_fall_back_after_partial_relay_output() -> None:
    hosts: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        hosts.append(request.url.host)
        return httpx.Response(
            200, content=sse_body('{"content": "half"}', '{"error": "cut off"}')
        )

    manager = ModelManager(system_config(), transport=httpx.MockTransport(handler))
    received: list[str] = []

    async def consume() -> None:
        async for fragment in manager.stream_response("openai/gpt-4.1", []):
            received.append(fragment)

    with pytest.raises(RelayError):
        asyncio.run(consume())

    assert received == ["half"]
    assert hosts == ["relay.test"]


def test_manager_without_relay_goes_direct() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=sse_body(delta("ok"), "[DONE]"))

    config = SystemConfig(openrouter=OpenRouterConfig(api_key="k"))
    manager = ModelManager(config, transport=httpx.MockTransport(handler))

    assert manager.relay is None
    assert asyncio.run(collect(manager.stream_response("m", []))) == ["ok"]
