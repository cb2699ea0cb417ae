"""Pre-processing stage: shape the cursor-split text before it is sent.

Each pre-processor exposes two operations:
1. ``removes_cursor`` decides up front whether the cursor position can be
   completed at all (the orchestrator short-circuits when any says yes)
2. ``process`` returns a replacement ``CursorSplitText``

Processors are stateless apart from their configuration.
"""

from __future__ import annotations

import logging
import re
import uuid
from typing import Protocol

from ...ai_types import CursorSplitText
from ...context_detection import Context
from ...math_delimiters import convert_to_canonical

LOGGER = logging.getLogger(__name__)

__all__ = [
    "PreProcessor",
    "DataviewRemover",
    "MathDelimiterNormalizer",
    "LengthLimiter",
]


# -----------------------------------------------------------------------------
# Protocol
# -----------------------------------------------------------------------------


class PreProcessor(Protocol):
    """Capability contract for pre-processing steps."""

    def process(self, text: CursorSplitText, context: Context) -> CursorSplitText:
        ...

    def removes_cursor(self, text: CursorSplitText) -> bool:
        ...


# -----------------------------------------------------------------------------
# Dataview blocks
# -----------------------------------------------------------------------------


_DATAVIEW_RE = re.compile(r"```dataview(?:js)?.*?```", re.DOTALL)


class DataviewRemover:
    """Strip fenced ``dataview``/``dataviewjs`` query blocks.

    Query blocks are rendered by the editor and carry no prose, so they are
    dropped from the prompt. Completing inside one is refused.
    """

    def process(self, text: CursorSplitText, context: Context) -> CursorSplitText:
        return CursorSplitText(
            _DATAVIEW_RE.sub("", text.prefix),
            _DATAVIEW_RE.sub("", text.suffix),
        )

    def removes_cursor(self, text: CursorSplitText) -> bool:
        sentinel = f"<cursor-{uuid.uuid4().hex}>"
        joined = f"{text.prefix}{sentinel}{text.suffix}"
        return any(sentinel in match.group(0) for match in _DATAVIEW_RE.finditer(joined))


# -----------------------------------------------------------------------------
# Math delimiters
# -----------------------------------------------------------------------------


class MathDelimiterNormalizer:
    """Rewrite ``$``/``$$`` math into ``\\(...\\)``/``\\[...\\]``.

    Must run before :class:`LengthLimiter` so truncation never splits a
    native delimiter pair.
    """

    def process(self, text: CursorSplitText, context: Context) -> CursorSplitText:
        if context is Context.CODE_BLOCK:
            return text
        converted = convert_to_canonical(text.prefix, text.suffix)
        if converted != text:
            LOGGER.debug(
                "Normalized math delimiters (prefix %d->%d chars, suffix %d->%d chars)",
                len(text.prefix),
                len(converted.prefix),
                len(text.suffix),
                len(converted.suffix),
            )
        return converted

    def removes_cursor(self, text: CursorSplitText) -> bool:
        return False


# -----------------------------------------------------------------------------
# Length limiting
# -----------------------------------------------------------------------------


class LengthLimiter:
    """Keep the last ``prefix_limit`` and first ``suffix_limit`` characters."""

    def __init__(self, prefix_limit: int, suffix_limit: int) -> None:
        if prefix_limit < 0 or suffix_limit < 0:
            raise ValueError("Character limits must be non-negative")
        self.prefix_limit = prefix_limit
        self.suffix_limit = suffix_limit

    def process(self, text: CursorSplitText, context: Context) -> CursorSplitText:
        # ``[-0:]`` would keep everything
        prefix = text.prefix[-self.prefix_limit :] if self.prefix_limit else ""
        return CursorSplitText(prefix, text.suffix[: self.suffix_limit])

    def removes_cursor(self, text: CursorSplitText) -> bool:
        return False
