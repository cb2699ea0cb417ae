"""Domain layer for editor integration.

Domain Managers:
    - PredictionManager: prediction lifecycle state machine

Managers receive their dependencies via constructor injection and
report state changes through the event bus.
"""

from __future__ import annotations

from .prediction_manager import FAILURE_NOTICE, PredictionManager

__all__ = ["FAILURE_NOTICE", "PredictionManager"]
