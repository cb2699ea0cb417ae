"""Tests for the OpenAI-compatible completion client."""

from __future__ import annotations

from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any, Iterable, cast

import httpx
import pytest
from openai import APIConnectionError, AsyncOpenAI, AuthenticationError

from notepilot.ai.ai_types import BackendError, BackendRequest, CompletionChunk, ModelOptions
from notepilot.ai.client import AIClient, ClientSettings
from notepilot.ai.prompts import MASK_TOKEN

_REQUEST = httpx.Request("POST", "https://api.example.com/v1/chat/completions")


@dataclass
class _FakeEvent:
    """Simple structure emulating ChatCompletionStreamEvent attributes."""

    type: str
    delta: str | None = None


class _FakeStream:
    def __init__(self, events: Iterable[_FakeEvent], error: BaseException | None = None):
        self._iterator = iter(list(events))
        self._error = error

    def __aiter__(self) -> "_FakeStream":
        return self

    async def __anext__(self) -> _FakeEvent:
        try:
            return next(self._iterator)
        except StopIteration as exc:
            if self._error is not None:
                raise self._error from None
            raise StopAsyncIteration from exc


class _FakeStreamContext:
    def __init__(self, script: Any):
        self._script = script

    async def __aenter__(self) -> _FakeStream:
        if isinstance(self._script, BaseException):
            raise self._script
        events, error = self._script
        return _FakeStream(events, error)

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class _FakeCompletions:
    """Each ``stream`` call consumes the next script.

    A script is an exception raised on open, or ``(events, error)`` where
    ``error`` is raised after the events.
    """

    def __init__(self, *scripts: Any):
        self._scripts = list(scripts)
        self.calls: list[dict[str, Any]] = []

    def stream(self, **kwargs: Any) -> _FakeStreamContext:
        self.calls.append(kwargs)
        return _FakeStreamContext(self._scripts[min(len(self.calls), len(self._scripts)) - 1])


class _FakeModels:
    def __init__(self, payload: list[SimpleNamespace]):
        self._payload = payload
        self.calls = 0

    async def list(self) -> SimpleNamespace:
        self.calls += 1
        return SimpleNamespace(data=self._payload)


def _make_client(completions: _FakeCompletions, **overrides: Any) -> AIClient:
    fake = SimpleNamespace(
        chat=SimpleNamespace(completions=completions),
        models=_FakeModels([SimpleNamespace(id="test-model")]),
    )
    settings = ClientSettings(
        base_url="http://local",
        api_key="test",
        model="stub",
        retry_min_seconds=0.0,
        retry_max_seconds=0.0,
        **overrides,
    )
    return AIClient(settings, client=cast(AsyncOpenAI, fake))


def _backend_request(**overrides: Any) -> BackendRequest:
    values: dict[str, Any] = {
        "model": "gpt-test",
        "system_prompt": "Complete the text.",
        "prefix": "Hello ",
        "suffix": "!",
        "options": ModelOptions(temperature=0.3, max_tokens=42),
    }
    values.update(overrides)
    return BackendRequest(**values)


async def _collect(client: AIClient, request: BackendRequest) -> list[CompletionChunk]:
    return [chunk async for chunk in client.stream_completion(request)]


@pytest.mark.asyncio
async def test_list_models_caches_results() -> None:
    payload = [SimpleNamespace(id="gpt-4o"), SimpleNamespace(id="gpt-4o-mini")]
    fake_models = _FakeModels(payload)
    fake_client = SimpleNamespace(
        chat=SimpleNamespace(completions=_FakeCompletions()),
        models=fake_models,
    )
    client = AIClient(
        ClientSettings(base_url="http://local", api_key="test", model="stub"),
        client=cast(AsyncOpenAI, fake_client),
    )

    first = await client.list_models()
    second = await client.list_models()

    assert first == ["gpt-4o", "gpt-4o-mini"]
    assert second == first  # cached result
    assert fake_models.calls == 1


@pytest.mark.asyncio
async def test_stream_completion_yields_deltas_then_done() -> None:
    events = [
        _FakeEvent(type="content.delta", delta="wor"),
        _FakeEvent(type="chunk"),
        _FakeEvent(type="content.delta", delta="ld"),
        _FakeEvent(type="content.done"),
    ]
    completions = _FakeCompletions((events, None))
    client = _make_client(completions)

    chunks = await _collect(client, _backend_request())

    assert chunks == [
        CompletionChunk(text="wor"),
        CompletionChunk(text="ld"),
        CompletionChunk(done=True),
    ]


@pytest.mark.asyncio
async def test_chat_payload_carries_prompt_and_options() -> None:
    completions = _FakeCompletions(([], None))
    client = _make_client(completions)

    await _collect(client, _backend_request())

    payload = completions.calls[0]
    assert payload["model"] == "gpt-test"
    assert payload["messages"] == [
        {"role": "system", "content": "Complete the text."},
        {"role": "user", "content": f"Hello {MASK_TOKEN}!"},
    ]
    assert payload["temperature"] == 0.3
    assert payload["max_tokens"] == 42
    assert payload["top_p"] == ModelOptions().top_p


@pytest.mark.asyncio
async def test_empty_model_falls_back_to_settings() -> None:
    completions = _FakeCompletions(([], None))
    client = _make_client(completions)

    await _collect(client, _backend_request(model=""))

    assert completions.calls[0]["model"] == "stub"


@pytest.mark.asyncio
async def test_connection_errors_are_retried_before_first_chunk() -> None:
    completions = _FakeCompletions(
        APIConnectionError(request=_REQUEST),
        ([_FakeEvent(type="content.delta", delta="ok")], None),
    )
    client = _make_client(completions, max_retries=3)

    chunks = await _collect(client, _backend_request())

    assert len(completions.calls) == 2
    assert chunks == [CompletionChunk(text="ok"), CompletionChunk(done=True)]


@pytest.mark.asyncio
async def test_errors_after_first_chunk_are_not_retried() -> None:
    completions = _FakeCompletions(
        ([_FakeEvent(type="content.delta", delta="par")], APIConnectionError(request=_REQUEST)),
        ([_FakeEvent(type="content.delta", delta="never")], None),
    )
    client = _make_client(completions, max_retries=3)
    received: list[CompletionChunk] = []

    with pytest.raises(BackendError) as excinfo:
        async for chunk in client.stream_completion(_backend_request()):
            received.append(chunk)

    assert received == [CompletionChunk(text="par")]
    assert len(completions.calls) == 1
    assert excinfo.value.kind == "network"
    assert excinfo.value.provider == "openai"


@pytest.mark.asyncio
async def test_auth_errors_are_mapped_and_not_retried() -> None:
    response = httpx.Response(401, request=_REQUEST)
    completions = _FakeCompletions(AuthenticationError("bad key", response=response, body=None))
    client = _make_client(completions, max_retries=3)

    with pytest.raises(BackendError) as excinfo:
        await _collect(client, _backend_request())

    assert excinfo.value.kind == "auth"
    assert excinfo.value.retryable is False
    assert len(completions.calls) == 1


@pytest.mark.asyncio
async def test_exhausted_retries_raise_backend_error() -> None:
    completions = _FakeCompletions(APIConnectionError(request=_REQUEST))
    client = _make_client(completions, max_retries=2)

    with pytest.raises(BackendError) as excinfo:
        await _collect(client, _backend_request())

    assert excinfo.value.kind == "network"
    assert excinfo.value.retryable is True
    assert len(completions.calls) == 2


@pytest.mark.asyncio
async def test_aclose_closes_underlying_client() -> None:
    closed: list[bool] = []

    async def _close() -> None:
        closed.append(True)

    fake = SimpleNamespace(chat=None, models=None, close=_close)
    client = AIClient(
        ClientSettings(base_url="http://local", api_key="test", model="stub"),
        client=cast(AsyncOpenAI, fake),
    )

    await client.aclose()

    assert closed == [True]
