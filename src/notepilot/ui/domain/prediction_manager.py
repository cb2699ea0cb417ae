"""Prediction lifecycle domain service.

Owns the single lifecycle state of an editing session (Idle, Predicting or
Suggesting) and is its only writer. Every transition is a synchronous method
call; the only suspension happens inside the outcome watcher task, which
re-checks the current state before applying a result.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Callable

from ...ai import ai_types
from ...ai.context_detection import Context, get_context
from ...ai.orchestration.orchestrator import PredictionHandle, PredictionOrchestrator
from ...ai.orchestration.types import PredictionRequest
from ..events import (
    EventBus,
    LifecycleStateChanged,
    NoticeRaised,
    PredictionCanceled,
    PredictionFailed,
    PredictionStarted,
    SuggestionAccepted,
    SuggestionDismissed,
    SuggestionReady,
)
from ..models.prediction_models import (
    DocumentChange,
    IdleState,
    LifecycleState,
    LifecycleStatus,
    PredictingState,
    SuggestingState,
)

LOGGER = logging.getLogger(__name__)

FAILURE_NOTICE = (
    "Something went wrong, cannot make a prediction. "
    "The full error is available in the log. Please check your settings."
)

Classifier = Callable[[str, str], Context]


class PredictionManager:
    """Domain manager for the prediction lifecycle.

    At most one prediction is in flight: starting a new one cancels the
    previous one first, and an outcome is only applied while its request is
    still the current ``Predicting`` request.

    Not thread-safe; drive it from the event loop thread.

    Events Emitted:
        - PredictionStarted: When a request is dispatched
        - PredictionCanceled: When an in-flight request is cancelled
        - PredictionFailed: When the backend fails
        - SuggestionReady / SuggestionAccepted / SuggestionDismissed
        - NoticeRaised: Once per failed prediction, with a generic message
        - LifecycleStateChanged: On every transition
    """

    def __init__(
        self,
        orchestrator: PredictionOrchestrator,
        event_bus: EventBus,
        *,
        classifier: Classifier = get_context,
    ) -> None:
        self._orchestrator = orchestrator
        self._bus = event_bus
        self._classify = classifier
        self._state: LifecycleState = IdleState()
        self._pending: asyncio.Task[ai_types.PredictionOutcome] | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def status(self) -> LifecycleStatus:
        return self._state.status

    @property
    def pending(self) -> asyncio.Task[ai_types.PredictionOutcome] | None:
        """Watcher task of the most recent prediction, if one was started."""
        return self._pending

    @property
    def suggestion(self) -> str | None:
        if isinstance(self._state, SuggestingState):
            return self._state.text
        return None

    def status_text(self) -> str:
        state = self._state
        if isinstance(state, PredictingState):
            return f"Predicting for {state.request.context.value}"
        if isinstance(state, SuggestingState):
            return f"Suggesting for {state.request.context.value}"
        return "Idle"

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start_prediction(self, prefix: str, suffix: str) -> PredictionRequest:
        """Cancel whatever is in flight and start predicting at the cursor.

        Must be called while the event loop is running.
        """

        if isinstance(self._state, PredictingState):
            self._cancel_prediction("superseded")
        elif isinstance(self._state, SuggestingState):
            self._dismiss_suggestion("superseded")

        context = self._classify(prefix, suffix)
        request = PredictionRequest(prefix=prefix, suffix=suffix, context=context)
        handle = self._orchestrator.dispatch(request)

        LOGGER.debug(
            "PredictionManager.start_prediction: request_id=%s, context=%s",
            request.request_id,
            context.value,
        )
        self._transition(PredictingState(request=request, handle=handle))
        self._bus.publish(PredictionStarted(request_id=request.request_id, context=context.value))
        self._pending = asyncio.get_running_loop().create_task(
            self._watch(request, handle),
            name=f"watch-{request.request_id}",
        )
        return request

    def handle_document_change(self, change: DocumentChange) -> None:
        state = self._state
        if isinstance(state, PredictingState):
            if change.is_significant:
                self._cancel_prediction("document changed")
            return

        if isinstance(state, SuggestingState):
            typed = change.inserted_text
            if (
                change.user_typed
                and typed
                and not change.user_deleted
                and state.text.startswith(typed)
            ):
                remaining = state.text[len(typed) :]
                if not remaining:
                    self._bus.publish(SuggestionAccepted(request_id=state.request.request_id, text=state.text))
                    self._transition(IdleState())
                    return
                request = dataclasses.replace(state.request, prefix=state.request.prefix + typed)
                self._transition(SuggestingState(text=remaining, request=request))
                return
            if change.is_significant:
                self._dismiss_suggestion("document changed")

    def handle_cancel_key_pressed(self) -> bool:
        """Cancel the prediction or dismiss the suggestion; False when idle."""

        if isinstance(self._state, PredictingState):
            self._cancel_prediction("cancel key")
            return True
        if isinstance(self._state, SuggestingState):
            self._dismiss_suggestion("cancel key")
            return True
        return False

    def accept_suggestion(self) -> str | None:
        state = self._state
        if not isinstance(state, SuggestingState):
            return None
        self._bus.publish(SuggestionAccepted(request_id=state.request.request_id, text=state.text))
        self._transition(IdleState())
        return state.text

    async def shutdown(self) -> None:
        """Cancel any in-flight prediction and wait for its watcher to finish."""

        self.handle_cancel_key_pressed()
        if self._pending is not None:
            await asyncio.wait({self._pending})

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _watch(self, request: PredictionRequest, handle: PredictionHandle) -> ai_types.PredictionOutcome:
        outcome = await handle.outcome()
        state = self._state
        if not isinstance(state, PredictingState) or state.request is not request:
            LOGGER.debug("Ignoring stale outcome for %s: %s", request.request_id, type(outcome).__name__)
            return outcome

        if isinstance(outcome, ai_types.PredictionFailed):
            error = outcome.error
            LOGGER.error(
                "Prediction %s failed: %s",
                request.request_id,
                error,
                exc_info=(type(error), error, error.__traceback__),
            )
            self._bus.publish(
                PredictionFailed(
                    request_id=request.request_id,
                    error=str(error),
                    error_type=type(error).__name__,
                )
            )
            self._bus.publish(NoticeRaised(message=FAILURE_NOTICE))
            self._transition(IdleState())
            return outcome

        text = outcome.text if isinstance(outcome, ai_types.PredictionOk) else None
        if not text:
            LOGGER.debug("Prediction %s produced no suggestion", request.request_id)
            self._transition(IdleState())
            return outcome

        self._transition(SuggestingState(text=text, request=request))
        self._bus.publish(SuggestionReady(request_id=request.request_id, text=text))
        return outcome

    def _cancel_prediction(self, reason: str) -> None:
        state = self._state
        if not isinstance(state, PredictingState):
            return
        LOGGER.debug("Cancelling prediction %s (%s)", state.request.request_id, reason)
        try:
            state.handle.cancel()
        except Exception:
            LOGGER.debug("Error cancelling prediction %s", state.request.request_id, exc_info=True)
        self._bus.publish(PredictionCanceled(request_id=state.request.request_id, reason=reason))
        self._transition(IdleState())

    def _dismiss_suggestion(self, reason: str) -> None:
        state = self._state
        if not isinstance(state, SuggestingState):
            return
        self._bus.publish(SuggestionDismissed(request_id=state.request.request_id, reason=reason))
        self._transition(IdleState())

    def _transition(self, new_state: LifecycleState) -> None:
        previous = self._state
        self._state = new_state
        self._bus.publish(
            LifecycleStateChanged(
                previous=previous.status.value,
                current=new_state.status.value,
                status_text=self.status_text(),
            )
        )
