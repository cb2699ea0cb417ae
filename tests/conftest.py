"""Shared pytest fixtures."""

from __future__ import annotations

import asyncio
from typing import Callable, Iterable

import pytest

from notepilot.ai.ai_types import BackendRequest, CompletionChunk


class ScriptedBackend:
    """Completion backend that replays a fixed list of fragments.

    ``gate`` holds the stream open until it is set, ``error`` is raised after
    the fragments, and ``finish=False`` ends the stream without a done chunk.
    """

    name = "scripted"

    def __init__(
        self,
        chunks: Iterable[str] = (),
        *,
        error: BaseException | None = None,
        gate: asyncio.Event | None = None,
        finish: bool = True,
    ) -> None:
        self.chunks = list(chunks)
        self.error = error
        self.gate = gate
        self.finish = finish
        self.requests: list[BackendRequest] = []
        self.stream_closed = False
        self.closed = False

    async def stream_completion(self, request: BackendRequest):
        self.requests.append(request)
        try:
            if self.gate is not None:
                await self.gate.wait()
            for text in self.chunks:
                yield CompletionChunk(text=text)
            if self.error is not None:
                raise self.error
            if self.finish:
                yield CompletionChunk(done=True)
        finally:
            self.stream_closed = True

    async def list_models(self) -> list[str]:
        return ["scripted-model"]

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def make_backend() -> Callable[..., ScriptedBackend]:
    return ScriptedBackend


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    for name in (
        "NOTEPILOT_PROVIDER",
        "NOTEPILOT_API_KEY",
        "NOTEPILOT_BASE_URL",
        "NOTEPILOT_MODEL",
        "NOTEPILOT_ORGANIZATION",
        "NOTEPILOT_SYSTEM_MESSAGE",
        "NOTEPILOT_OLLAMA_HOST",
        "NOTEPILOT_OLLAMA_MODEL",
        "NOTEPILOT_DEBUG",
        "NOTEPILOT_DEBUG_MODE",
        "NOTEPILOT_DEBUG_LOGGING",
        "NOTEPILOT_MATH_CONVERSION",
        "NOTEPILOT_STRIP_DATAVIEW",
        "NOTEPILOT_PREFIX_CHAR_LIMIT",
        "NOTEPILOT_SUFFIX_CHAR_LIMIT",
        "NOTEPILOT_REQUEST_TIMEOUT",
        "NOTEPILOT_SETTINGS_PATH",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("NOTEPILOT_LOG_DIR", str(tmp_path / "logs"))
