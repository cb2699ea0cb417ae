"""Prediction lifecycle state models.

A session holds exactly one of these values at a time. They are frozen and
replaced on every transition by the PredictionManager.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Union

from ...ai.orchestration.types import PredictionRequest

if TYPE_CHECKING:  # pragma: no cover
    from ...ai.orchestration.orchestrator import PredictionHandle


class LifecycleStatus(Enum):
    """Status of the prediction lifecycle.

    Values:
        IDLE: No request in flight and nothing suggested.
        PREDICTING: A backend request is in flight.
        SUGGESTING: A completion is shown at the cursor.
    """

    IDLE = "idle"
    PREDICTING = "predicting"
    SUGGESTING = "suggesting"


@dataclass(slots=True, frozen=True)
class IdleState:
    @property
    def status(self) -> LifecycleStatus:
        return LifecycleStatus.IDLE


@dataclass(slots=True, frozen=True)
class PredictingState:
    """A request is in flight; ``handle`` cancels it."""

    request: PredictionRequest
    handle: PredictionHandle

    @property
    def status(self) -> LifecycleStatus:
        return LifecycleStatus.PREDICTING


@dataclass(slots=True, frozen=True)
class SuggestingState:
    """``text`` is offered after the cursor of ``request``."""

    text: str
    request: PredictionRequest

    @property
    def status(self) -> LifecycleStatus:
        return LifecycleStatus.SUGGESTING


LifecycleState = Union[IdleState, PredictingState, SuggestingState]


@dataclass(slots=True, frozen=True)
class DocumentChange:
    """An editor edit event as seen by the lifecycle.

    Attributes:
        cursor_moved: The cursor position changed.
        user_typed: Characters were typed at the cursor.
        user_deleted: Characters were deleted.
        text_added: Text was inserted other than by typing (paste, undo).
        inserted_text: The typed or inserted characters, when known.
    """

    cursor_moved: bool = False
    user_typed: bool = False
    user_deleted: bool = False
    text_added: bool = False
    inserted_text: str = ""

    @property
    def is_significant(self) -> bool:
        return self.cursor_moved or self.user_typed or self.user_deleted or self.text_added


__all__ = [
    "LifecycleStatus",
    "IdleState",
    "PredictingState",
    "SuggestingState",
    "LifecycleState",
    "DocumentChange",
]
