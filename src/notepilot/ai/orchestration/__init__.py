"""Prediction orchestration: request types, processor pipeline, dispatch."""

# Core types
from .types import (
    CursorSplitText,
    PredictionRequest,
    PreparedPrediction,
)

# Orchestrator facade
from .orchestrator import (
    PredictionHandle,
    PredictionOrchestrator,
    build_backend,
)

# Pipeline stages
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

__all__ = [
    # Types
    "CursorSplitText",
    "PredictionRequest",
    "PreparedPrediction",
    # Orchestrator
    "PredictionHandle",
    "PredictionOrchestrator",
    "build_backend",
    # Pipeline
    "PreProcessor",
    "PostProcessor",
    "DataviewRemover",
    "MathDelimiterNormalizer",
    "LengthLimiter",
    "RemoveMathIndicators",
    "RemoveCodeIndicators",
    "NativeMathConverter",
    "RemoveOverlap",
    "RemoveWhitespace",
]
