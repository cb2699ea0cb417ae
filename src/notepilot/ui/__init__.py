"""Editor-facing layer: event bus, lifecycle state and its manager."""

from .events import EventBus
from .models.prediction_models import DocumentChange, LifecycleStatus

__all__ = [
    "DocumentChange",
    "EventBus",
    "LifecycleStatus",
]
