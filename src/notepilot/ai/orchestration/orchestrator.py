"""Prediction orchestrator: pre-process, stream, post-process.

The orchestrator owns the ordered processor lists and a completion backend.
``dispatch`` runs the synchronous pre-processing stage, starts the streaming
task and hands back a :class:`PredictionHandle` immediately; the handle's
``outcome()`` resolves to one of the ``PredictionOutcome`` variants.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from dataclasses import asdict
from typing import TYPE_CHECKING, Sequence

from ..ai_types import (
    BackendRequest,
    CompletionBackend,
    ModelOptions,
    PredictionAborted,
    PredictionFailed,
    PredictionOk,
    PredictionOutcome,
    UnexpectedStreamEnd,
)
from ..client import AIClient, ClientSettings
from ..ollama_client import OllamaClient, OllamaClientSettings
from ..prompts import DEFAULT_SYSTEM_MESSAGE, system_message_for
from .pipeline import (
    DataviewRemover,
    LengthLimiter,
    MathDelimiterNormalizer,
    NativeMathConverter,
    PostProcessor,
    PreProcessor,
    RemoveCodeIndicators,
    RemoveMathIndicators,
    RemoveOverlap,
    RemoveWhitespace,
)
from .types import PredictionRequest, PreparedPrediction

if TYPE_CHECKING:  # pragma: no cover
    from ...services.settings import Settings

__all__ = [
    "PredictionOrchestrator",
    "PredictionHandle",
    "build_backend",
]

LOGGER = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Handle
# -----------------------------------------------------------------------------


class PredictionHandle:
    """Cancellable reference to an in-flight prediction.

    ``cancel()`` is idempotent and safe after completion. ``outcome()``
    never raises for cancellation or backend failure; both are mapped to
    outcome variants.
    """

    __slots__ = ("request_id", "_task", "_result")

    def __init__(
        self,
        task: asyncio.Task[PredictionOutcome] | None,
        *,
        request_id: str = "",
        result: PredictionOutcome | None = None,
    ) -> None:
        self.request_id = request_id
        self._task = task
        self._result = result

    @classmethod
    def completed(cls, outcome: PredictionOutcome, *, request_id: str = "") -> PredictionHandle:
        """Return a handle that already holds ``outcome``."""
        return cls(None, request_id=request_id, result=outcome)

    @property
    def done(self) -> bool:
        return self._task is None or self._task.done()

    def cancel(self) -> bool:
        """Request cancellation; returns False when there is nothing left to cancel."""
        if self._task is None or self._task.done():
            return False
        return self._task.cancel()

    async def outcome(self) -> PredictionOutcome:
        if self._task is None:
            return self._result if self._result is not None else PredictionOk(None)
        # ``asyncio.wait`` does not propagate the task's cancellation to us.
        await asyncio.wait({self._task})
        if self._task.cancelled():
            return PredictionAborted()
        exc = self._task.exception()
        if exc is not None:
            return PredictionFailed(exc)
        return self._task.result()


# -----------------------------------------------------------------------------
# Backend factory
# -----------------------------------------------------------------------------


def build_backend(settings: Settings) -> CompletionBackend:
    """Create the completion backend selected by ``settings.api_provider``."""

    if settings.api_provider == "openai":
        return AIClient(
            ClientSettings(
                base_url=settings.base_url,
                api_key=settings.api_key,
                model=settings.model,
                organization=settings.organization,
                request_timeout=settings.request_timeout,
                max_retries=settings.max_retries,
                retry_min_seconds=settings.retry_min_seconds,
                retry_max_seconds=settings.retry_max_seconds,
                default_headers=settings.default_headers or None,
                debug_logging=settings.debug_mode,
            )
        )
    return OllamaClient(
        OllamaClientSettings(
            host=settings.ollama.host,
            model=settings.ollama.model,
            request_timeout=settings.request_timeout,
            max_retries=settings.max_retries,
            retry_min_seconds=settings.retry_min_seconds,
            retry_max_seconds=settings.retry_max_seconds,
            debug_logging=settings.debug_mode,
        )
    )


# -----------------------------------------------------------------------------
# Orchestrator
# -----------------------------------------------------------------------------


class PredictionOrchestrator:
    """Runs one prediction through the processor chain and the backend."""

    def __init__(
        self,
        backend: CompletionBackend,
        *,
        pre_processors: Sequence[PreProcessor] = (),
        post_processors: Sequence[PostProcessor] = (),
        model: str = "",
        model_options: ModelOptions | None = None,
        system_message: str = DEFAULT_SYSTEM_MESSAGE,
        debug_mode: bool = False,
    ) -> None:
        self._backend = backend
        self._pre_processors = tuple(pre_processors)
        self._post_processors = tuple(post_processors)
        self._model = model
        self._model_options = model_options or ModelOptions()
        self._system_message = system_message
        self._debug_mode = debug_mode

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        backend: CompletionBackend | None = None,
    ) -> PredictionOrchestrator:
        """Assemble the processor chain and backend described by ``settings``."""

        pre_processors: list[PreProcessor] = []
        if settings.dataview_stripping_enabled:
            pre_processors.append(DataviewRemover())
        if settings.math_block_conversion_enabled:
            pre_processors.append(MathDelimiterNormalizer())
        # Length limiting must see canonical delimiters, so it runs last.
        pre_processors.append(LengthLimiter(settings.prefix_char_limit, settings.suffix_char_limit))

        post_processors: list[PostProcessor] = []
        if settings.duplicate_math_indicator_suppression:
            post_processors.append(RemoveMathIndicators())
        if settings.duplicate_code_indicator_suppression:
            post_processors.append(RemoveCodeIndicators())
        if settings.math_block_conversion_enabled:
            post_processors.append(NativeMathConverter())
        post_processors.append(RemoveOverlap())
        post_processors.append(RemoveWhitespace())

        model = settings.model if settings.api_provider == "openai" else settings.ollama.model
        return cls(
            backend or build_backend(settings),
            pre_processors=pre_processors,
            post_processors=post_processors,
            model=model,
            model_options=settings.model_options,
            system_message=settings.system_message,
            debug_mode=settings.debug_mode,
        )

    @property
    def backend(self) -> CompletionBackend:
        return self._backend

    @property
    def pre_processors(self) -> tuple[PreProcessor, ...]:
        return self._pre_processors

    @property
    def post_processors(self) -> tuple[PostProcessor, ...]:
        return self._post_processors

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def prepare(self, request: PredictionRequest) -> PreparedPrediction | None:
        """Run the pre-processing stage; None means the cursor cannot be completed."""

        text = request.cursor_split
        for processor in self._pre_processors:
            if processor.removes_cursor(text):
                LOGGER.debug(
                    "Prediction %s short-circuited by %s",
                    request.request_id,
                    type(processor).__name__,
                )
                return None
        for processor in self._pre_processors:
            text = processor.process(text, request.context)
        return PreparedPrediction(request=request, text=text)

    def post_process(self, prepared: PreparedPrediction, completion: str) -> str:
        for processor in self._post_processors:
            completion = processor.process(prepared.text, completion, prepared.context)
        return completion

    def build_backend_request(self, prepared: PreparedPrediction) -> BackendRequest:
        return BackendRequest(
            model=self._model,
            system_prompt=system_message_for(prepared.context, self._system_message),
            prefix=prepared.text.prefix,
            suffix=prepared.text.suffix,
            options=self._model_options,
        )

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(self, request: PredictionRequest) -> PredictionHandle:
        """Start ``request`` on the running loop and return its handle.

        Pre-processing runs before this returns, so a ``LexicalImpossibility``
        raised by the math converter propagates to the caller.
        """

        prepared = self.prepare(request)
        if prepared is None:
            return PredictionHandle.completed(PredictionOk(None), request_id=request.request_id)

        backend_request = self.build_backend_request(prepared)
        if self._debug_mode:
            LOGGER.debug(
                "Prediction %s request:\n%s",
                request.request_id,
                json.dumps(asdict(backend_request), ensure_ascii=False, indent=2),
            )
        loop = asyncio.get_running_loop()
        task = loop.create_task(
            self._run(prepared, backend_request),
            name=f"prediction-{request.request_id}",
        )
        return PredictionHandle(task, request_id=request.request_id)

    async def _run(self, prepared: PreparedPrediction, backend_request: BackendRequest) -> PredictionOutcome:
        request_id = prepared.request.request_id
        parts: list[str] = []
        try:
            async with contextlib.aclosing(self._backend.stream_completion(backend_request)) as stream:
                async for chunk in stream:
                    if chunk.text:
                        parts.append(chunk.text)
                    if not chunk.done:
                        continue
                    response = "".join(parts)
                    completion = self.post_process(prepared, response)
                    if self._debug_mode:
                        LOGGER.debug(
                            "Prediction %s response %r post-processed to %r",
                            request_id,
                            response,
                            completion,
                        )
                    return PredictionOk(completion)
        except asyncio.CancelledError:
            if self._debug_mode:
                LOGGER.debug("Prediction %s aborted", request_id)
            raise
        except Exception as exc:
            LOGGER.debug("Prediction %s failed: %s", request_id, exc)
            return PredictionFailed(exc)
        return PredictionFailed(UnexpectedStreamEnd(self._backend.name))

    async def aclose(self) -> None:
        await self._backend.aclose()