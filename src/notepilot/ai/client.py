"""Async completion client built around OpenAI-compatible chat endpoints.

Chat endpoints have no suffix field, so the cursor-split text is sent as a
single user message with a mask token at the cursor position.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Mapping

import httpx
from openai import (
    APIConnectionError,
    APIError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    RateLimitError,
)
from openai.lib.streaming.chat import ChatCompletionStreamEvent
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from .ai_types import BackendError, BackendRequest, CompletionChunk
from .prompts import format_user_message

LOGGER = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (APIError, httpx.HTTPError)


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the AI client."""

    base_url: str
    api_key: str
    model: str
    organization: str | None = None
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    debug_logging: bool = False


class AIClient:
    """Streaming fill-in-the-middle backend for OpenAI-compatible APIs."""

    name = "openai"

    def __init__(self, settings: ClientSettings, *, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client or self._build_client(settings)
        self._models_cache: List[str] | None = None
        self._models_lock = asyncio.Lock()

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def stream_completion(self, request: BackendRequest) -> AsyncIterator[CompletionChunk]:
        """Stream the completion for ``request``, ending with a ``done`` chunk.

        Opening the stream is retried on transient failures. Once a fragment
        has been yielded, errors are raised as-is so text is never repeated.
        """

        payload = self._build_chat_payload(request)
        LOGGER.debug(
            "Starting streamed completion via %s (prefix=%d chars, suffix=%d chars)",
            payload["model"],
            len(request.prefix),
            len(request.suffix),
        )
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)

        emitted = False

        def _should_retry(exc: BaseException) -> bool:
            return not emitted and isinstance(exc, _TRANSPORT_ERRORS) and self._map_error(exc).retryable

        try:
            async for attempt in self._retrying(_should_retry):
                with attempt:
                    async with self._client.chat.completions.stream(**payload) as stream:
                        async for event in stream:
                            text = self._normalize_stream_event(event)
                            if text:
                                emitted = True
                                yield CompletionChunk(text=text)
                    break
        except _TRANSPORT_ERRORS as exc:
            raise self._map_error(exc) from exc
        yield CompletionChunk(done=True)

    async def list_models(self) -> List[str]:
        """Return a list of supported model identifiers."""

        if self._models_cache is not None:
            return list(self._models_cache)

        async with self._models_lock:
            if self._models_cache is not None:
                return list(self._models_cache)

            try:
                response = await self._client.models.list()
            except _TRANSPORT_ERRORS as exc:
                raise self._map_error(exc) from exc
            models = [item.id for item in response.data if getattr(item, "id", None)]
            self._models_cache = models
            return list(models)

    def _build_client(self, settings: ClientSettings) -> AsyncOpenAI:
        headers = dict(settings.default_headers) if settings.default_headers else None
        return AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            organization=settings.organization,
            timeout=settings.request_timeout,
            default_headers=headers,
        )

    def _retrying(self, predicate) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception(predicate),
        )

    def _build_chat_payload(self, request: BackendRequest) -> Dict[str, Any]:
        options = request.options
        return {
            "model": request.model or self._settings.model,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": format_user_message(request.prefix, request.suffix)},
            ],
            "temperature": options.temperature,
            "top_p": options.top_p,
            "frequency_penalty": options.frequency_penalty,
            "presence_penalty": options.presence_penalty,
            "max_tokens": options.max_tokens,
        }

    def _normalize_stream_event(self, event: ChatCompletionStreamEvent[Any]) -> str | None:
        if getattr(event, "type", None) != "content.delta":
            return None
        delta_text = getattr(event, "delta", None)
        return str(delta_text) if delta_text else None

    def _map_error(self, exc: BaseException) -> BackendError:
        kind = "bad_response"
        retryable = False
        if isinstance(exc, RateLimitError):
            kind = "rate_limit"
            retryable = True
        elif isinstance(exc, (APITimeoutError, httpx.TimeoutException)):
            kind = "timeout"
            retryable = True
        elif isinstance(exc, (APIConnectionError, httpx.TransportError)):
            kind = "network"
            retryable = True
        elif isinstance(exc, APIStatusError):
            if exc.status_code in (401, 403):
                kind = "auth"
            elif exc.status_code >= 500:
                kind = "network"
                retryable = True
        return BackendError(provider=self.name, kind=kind, message=str(exc), retryable=retryable)

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("AI prompt payload (unserializable): %s", payload)
        else:
            LOGGER.debug("AI prompt payload:\n%s", serialized)

    async def aclose(self) -> None:
        """Close the underlying OpenAI client to release network resources."""

        close = getattr(self._client, "close", None)
        if close is None:
            return
        try:
            result = close()
        except Exception as exc:  # pragma: no cover
            LOGGER.debug("AI client close failed to start: %s", exc)
            return
        if inspect.isawaitable(result):
            await result
