"""Post-processing stage: clean up the accumulated completion.

Post-processors only rewrite the completion. They receive the final
pre-processed prefix/suffix (what the backend actually saw) so they can
compare the completion against its surroundings.
"""

from __future__ import annotations

import re
from typing import Protocol

from ...ai_types import CursorSplitText
from ...context_detection import Context
from ...math_delimiters import to_native_math

__all__ = [
    "PostProcessor",
    "RemoveMathIndicators",
    "RemoveCodeIndicators",
    "NativeMathConverter",
    "RemoveOverlap",
    "RemoveWhitespace",
]


class PostProcessor(Protocol):
    """Capability contract for post-processing steps."""

    def process(self, text: CursorSplitText, completion: str, context: Context) -> str:
        ...


# -----------------------------------------------------------------------------
# Duplicate delimiters
# -----------------------------------------------------------------------------


_MATH_BLOCK_MARKER_RE = re.compile(r"\n?\$\$\n?")
_CODE_FENCE_OPEN_RE = re.compile(r"```[a-zA-Z]+[ \t]*\n?")
_CODE_FENCE_CLOSE_RE = re.compile(r"\n?```[ \t]*\n?")


class RemoveMathIndicators:
    """Drop ``$``/``$$`` the model repeats while already inside a math block."""

    def process(self, text: CursorSplitText, completion: str, context: Context) -> str:
        if context is Context.MATH_BLOCK:
            completion = _MATH_BLOCK_MARKER_RE.sub("", completion)
            completion = completion.replace("$", "")
        return completion


class RemoveCodeIndicators:
    """Drop code fences the model repeats while already inside a code block."""

    def process(self, text: CursorSplitText, completion: str, context: Context) -> str:
        if context is Context.CODE_BLOCK:
            completion = _CODE_FENCE_OPEN_RE.sub("", completion)
            completion = _CODE_FENCE_CLOSE_RE.sub("", completion)
        return completion


class NativeMathConverter:
    """Convert canonical math delimiters in the completion back to ``$``/``$$``."""

    def process(self, text: CursorSplitText, completion: str, context: Context) -> str:
        return to_native_math(completion, context, prefix=text.prefix)


# -----------------------------------------------------------------------------
# Overlap
# -----------------------------------------------------------------------------


def _word_starts(text: str) -> list[int]:
    return [i for i, char in enumerate(text) if not char.isspace() and (i == 0 or text[i - 1].isspace())]


def _word_ends(text: str) -> list[int]:
    last = len(text) - 1
    return [i + 1 for i, char in enumerate(text) if not char.isspace() and (i == last or text[i + 1].isspace())]


def remove_word_overlap_prefix(prefix: str, completion: str) -> str:
    """Remove the longest run of whole trailing prefix words the completion repeats."""

    trimmed = completion.lstrip()
    for start in _word_starts(prefix):
        overlap = prefix[start:]
        if trimmed.startswith(overlap):
            return trimmed[len(overlap) :]
    return completion


def remove_word_overlap_suffix(completion: str, suffix: str) -> str:
    """Remove the longest run of whole leading suffix words the completion repeats."""

    trimmed = completion.rstrip()
    for end in reversed(_word_ends(suffix)):
        overlap = suffix[:end]
        if trimmed.endswith(overlap):
            return trimmed[: len(trimmed) - len(overlap)]
    return completion


def remove_whitespace_overlap_prefix(prefix: str, completion: str) -> str:
    index = len(prefix) - 1
    while completion and index >= 0 and completion[0].isspace() and completion[0] == prefix[index]:
        completion = completion[1:]
        index -= 1
    return completion


def remove_whitespace_overlap_suffix(completion: str, suffix: str) -> str:
    index = 0
    while completion and index < len(suffix) and completion[-1].isspace() and completion[-1] == suffix[index]:
        completion = completion[:-1]
        index += 1
    return completion


class RemoveOverlap:
    """Remove text the completion echoes from either side of the cursor."""

    def process(self, text: CursorSplitText, completion: str, context: Context) -> str:
        completion = remove_word_overlap_prefix(text.prefix, completion)
        completion = remove_word_overlap_suffix(completion, text.suffix)
        completion = remove_whitespace_overlap_prefix(text.prefix, completion)
        return remove_whitespace_overlap_suffix(completion, text.suffix)


# -----------------------------------------------------------------------------
# Whitespace
# -----------------------------------------------------------------------------


_WHITESPACE_SENSITIVE = frozenset(
    {
        Context.TEXT,
        Context.HEADING,
        Context.MATH_BLOCK,
        Context.TASK_LIST,
        Context.NUMBERED_LIST,
        Context.UNORDERED_LIST,
    }
)


class RemoveWhitespace:
    """Trim whitespace the surrounding text already provides."""

    def process(self, text: CursorSplitText, completion: str, context: Context) -> str:
        if context not in _WHITESPACE_SENSITIVE:
            return completion
        if text.prefix.endswith((" ", "\n")):
            completion = completion.lstrip()
        if text.suffix.startswith((" ", "\n")):
            completion = completion.rstrip()
        return completion
