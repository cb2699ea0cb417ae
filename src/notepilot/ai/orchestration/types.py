"""Core type definitions for the prediction pipeline.

All types are frozen so a pipeline step can only replace a value, never
mutate the one it was given.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from ..ai_types import CursorSplitText
from ..context_detection import Context

__all__ = [
    "CursorSplitText",
    "PredictionRequest",
    "PreparedPrediction",
]


def _new_request_id() -> str:
    return f"pred-{uuid.uuid4().hex[:8]}"


@dataclass(slots=True, frozen=True)
class PredictionRequest:
    """Input of a single prediction, fixed for the request's lifetime."""

    prefix: str
    suffix: str
    context: Context
    request_id: str = field(default_factory=_new_request_id)

    @property
    def cursor_split(self) -> CursorSplitText:
        return CursorSplitText(self.prefix, self.suffix)


@dataclass(slots=True, frozen=True)
class PreparedPrediction:
    """Output of the pre-processing stage: the text the backend will see."""

    request: PredictionRequest
    text: CursorSplitText

    @property
    def context(self) -> Context:
        return self.request.context
