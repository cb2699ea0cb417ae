"""Streaming client for Ollama's native ``/api/generate`` endpoint."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Mapping

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from .ai_types import BackendError, BackendRequest, CompletionChunk, UnexpectedStreamEnd

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class OllamaClientSettings:
    """Connection settings for an Ollama server."""

    host: str = "localhost:11434"
    model: str = ""
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    debug_logging: bool = False

    @property
    def base_url(self) -> str:
        host = self.host.strip().rstrip("/")
        if "://" not in host:
            host = f"http://{host}"
        return host


class OllamaClient:
    """Fill-in-the-middle backend using Ollama's prompt/suffix request shape."""

    name = "ollama"

    def __init__(self, settings: OllamaClientSettings, *, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._client = client or httpx.AsyncClient(
            base_url=settings.base_url,
            timeout=settings.request_timeout,
        )

    @property
    def settings(self) -> OllamaClientSettings:
        return self._settings

    async def stream_completion(self, request: BackendRequest) -> AsyncIterator[CompletionChunk]:
        """Stream NDJSON generate responses as completion chunks.

        The last chunk has ``done=True``. A stream that closes before Ollama
        reports ``done`` raises :class:`UnexpectedStreamEnd`.
        """

        payload = self._build_generate_payload(request)
        LOGGER.debug(
            "Starting Ollama generate via %s (prefix=%d chars, suffix=%d chars)",
            payload["model"],
            len(request.prefix),
            len(request.suffix),
        )
        if self._settings.debug_logging:
            LOGGER.debug("Ollama request payload:\n%s", json.dumps(payload, ensure_ascii=False, indent=2))

        response = await self._open_stream(payload)
        try:
            async for line in response.aiter_lines():
                if not line.strip():
                    continue
                data = self._parse_line(line)
                if data.get("error"):
                    raise BackendError(
                        provider=self.name,
                        kind="bad_response",
                        message=str(data["error"]),
                        retryable=False,
                    )
                if data.get("done"):
                    text = data.get("response") or ""
                    if text:
                        yield CompletionChunk(text=text)
                    LOGGER.debug("Ollama stream finished (reason=%s)", data.get("done_reason"))
                    yield CompletionChunk(done=True)
                    return
                text = data.get("response") or ""
                if text:
                    yield CompletionChunk(text=text)
        except httpx.HTTPError as exc:
            raise self._map_transport_error(exc) from exc
        finally:
            await response.aclose()
        raise UnexpectedStreamEnd(self.name)

    async def list_models(self) -> List[str]:
        """Return the names of the models pulled on the server."""

        try:
            response = await self._client.get("/api/tags")
        except httpx.HTTPError as exc:
            raise self._map_transport_error(exc) from exc
        if response.status_code != 200:
            raise self._status_error(response.status_code, response.text)
        try:
            payload = response.json()
        except ValueError as exc:
            raise BackendError(
                provider=self.name,
                kind="bad_response",
                message=f"Malformed JSON response: {exc}",
                retryable=False,
            ) from exc
        models = payload.get("models") if isinstance(payload, Mapping) else None
        return [str(item["name"]) for item in models or [] if isinstance(item, Mapping) and item.get("name")]

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""

        await self._client.aclose()

    async def _open_stream(self, payload: Mapping[str, Any]) -> httpx.Response:
        async for attempt in self._retrying():
            with attempt:
                request = self._client.build_request("POST", "/api/generate", json=payload)
                try:
                    response = await self._client.send(request, stream=True)
                except httpx.HTTPError as exc:
                    raise self._map_transport_error(exc) from exc
                if response.status_code != 200:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    await response.aclose()
                    raise self._status_error(response.status_code, body)
                return response
        raise AssertionError("unreachable")  # pragma: no cover

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception(lambda exc: isinstance(exc, BackendError) and exc.retryable),
        )

    def _build_generate_payload(self, request: BackendRequest) -> Dict[str, Any]:
        options = request.options
        return {
            "model": request.model or self._settings.model,
            "system": request.system_prompt,
            "prompt": request.prefix,
            "suffix": request.suffix,
            "stream": True,
            "options": {
                "temperature": options.temperature,
                "top_p": options.top_p,
                "frequency_penalty": options.frequency_penalty,
                "presence_penalty": options.presence_penalty,
                "num_predict": options.max_tokens,
                "num_ctx": options.num_ctx,
            },
        }

    def _parse_line(self, line: str) -> Dict[str, Any]:
        try:
            data = json.loads(line)
        except json.JSONDecodeError as exc:
            raise BackendError(
                provider=self.name,
                kind="bad_response",
                message=f"Malformed stream line: {exc}",
                retryable=False,
            ) from exc
        if not isinstance(data, dict):
            raise BackendError(
                provider=self.name,
                kind="bad_response",
                message=f"Unexpected stream payload of type {type(data).__name__}",
                retryable=False,
            )
        return data

    def _map_transport_error(self, exc: httpx.HTTPError) -> BackendError:
        kind = "timeout" if isinstance(exc, httpx.TimeoutException) else "network"
        return BackendError(provider=self.name, kind=kind, message=str(exc) or type(exc).__name__, retryable=True)

    def _status_error(self, status_code: int, body: str) -> BackendError:
        kind = "bad_response"
        retryable = False
        if status_code in (401, 403):
            kind = "auth"
        elif status_code == 429:
            kind = "rate_limit"
            retryable = True
        elif status_code == 408:
            kind = "timeout"
            retryable = True
        elif status_code >= 500:
            kind = "network"
            retryable = True
        return BackendError(
            provider=self.name,
            kind=kind,
            message=f"HTTP {status_code}: {body}",
            retryable=retryable,
        )
