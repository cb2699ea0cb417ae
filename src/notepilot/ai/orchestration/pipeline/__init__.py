"""Pre- and post-processing stages around a backend completion.

- pre_processors: shape the cursor-split text before dispatch
- post_processors: clean up the accumulated completion
"""

from .pre_processors import (
    DataviewRemover,
    LengthLimiter,
    MathDelimiterNormalizer,
    PreProcessor,
)

from .post_processors import (
    NativeMathConverter,
    PostProcessor,
    RemoveCodeIndicators,
    RemoveMathIndicators,
    RemoveOverlap,
    RemoveWhitespace,
)

__all__ = [
    # pre_processors.py exports
    "PreProcessor",
    "DataviewRemover",
    "MathDelimiterNormalizer",
    "LengthLimiter",
    # post_processors.py exports
    "PostProcessor",
    "RemoveMathIndicators",
    "RemoveCodeIndicators",
    "NativeMathConverter",
    "RemoveOverlap",
    "RemoveWhitespace",
]
