"""Cursor context classification for Markdown documents.

The classifier only looks at the line holding the cursor and at fence/delimiter
parity in the prefix. Every pipeline step treats its result as read-only.
"""

from __future__ import annotations

import re
from enum import Enum

__all__ = ["Context", "get_context", "has_open_inline_math"]


class Context(Enum):
    """Kind of Markdown block the cursor is located in."""

    TEXT = "Text"
    HEADING = "Heading"
    BLOCK_QUOTES = "BlockQuotes"
    UNORDERED_LIST = "UnorderedList"
    NUMBERED_LIST = "NumberedList"
    TASK_LIST = "TaskList"
    CODE_BLOCK = "CodeBlock"
    MATH_BLOCK = "MathBlock"
    MATH_BLOCK_OPEN = "MathBlockOpen"


_HEADING_RE = re.compile(r"^#{1,6} ")
_BLOCK_QUOTE_RE = re.compile(r"^\s*>")
_TASK_LIST_RE = re.compile(r"^\s*(?:[-*+]|\d+\.) \[.\]\s")
_NUMBERED_LIST_RE = re.compile(r"^\s*\d+\.\s")
_UNORDERED_LIST_RE = re.compile(r"^\s*[-*+]\s")
_CODE_FENCE_RE = re.compile(r"^\s*```", re.MULTILINE)


def has_open_inline_math(line: str) -> bool:
    """Return True when ``line`` holds an odd number of single ``$`` marks."""

    return line.replace("$$", "").count("$") % 2 == 1


def get_context(prefix: str, suffix: str) -> Context:
    """Classify the cursor position between ``prefix`` and ``suffix``."""

    if len(_CODE_FENCE_RE.findall(prefix)) % 2 == 1:
        return Context.CODE_BLOCK

    if prefix.count("$$") % 2 == 1:
        if "$$" in suffix:
            return Context.MATH_BLOCK
        return Context.MATH_BLOCK_OPEN

    line = prefix.rsplit("\n", 1)[-1]
    if has_open_inline_math(line):
        rest_of_line = suffix.split("\n", 1)[0]
        if "$" in rest_of_line.replace("$$", ""):
            return Context.MATH_BLOCK
        return Context.MATH_BLOCK_OPEN

    if _HEADING_RE.match(line):
        return Context.HEADING
    if _BLOCK_QUOTE_RE.match(line):
        return Context.BLOCK_QUOTES
    if _TASK_LIST_RE.match(line):
        return Context.TASK_LIST
    if _NUMBERED_LIST_RE.match(line):
        return Context.NUMBERED_LIST
    if _UNORDERED_LIST_RE.match(line):
        return Context.UNORDERED_LIST
    return Context.TEXT
