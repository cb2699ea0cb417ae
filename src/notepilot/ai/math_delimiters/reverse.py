"""Map canonical math delimiters in a completion back to ``$``/``$$``."""

from __future__ import annotations

import re

from ..context_detection import Context
from .converter import INLINE_OPEN

__all__ = ["to_native_math"]

# Inline math is not recognized when ``$`` is followed or preceded by
# whitespace, so the whitespace inside the delimiters goes with them.
_INLINE_RE = re.compile(r"\\\(\s*|\s*\\\)")
_BLOCK_RE = re.compile(r"\\\[|\\\]")


def to_native_math(completion: str, context: Context, *, prefix: str = "") -> str:
    """Return ``completion`` with ``\\(``/``\\)`` as ``$`` and ``\\[``/``\\]`` as ``$$``.

    ``prefix`` is the text before the cursor as the backend saw it. When it
    already ends with an open ``\\(`` the completion's leading repeat of it is
    dropped before converting.
    """

    if prefix.endswith(INLINE_OPEN) and completion.startswith(INLINE_OPEN):
        completion = completion[len(INLINE_OPEN) :]

    if context is Context.CODE_BLOCK:
        return completion

    if context is not Context.MATH_BLOCK:
        completion = _INLINE_RE.sub("$", completion)
    return _BLOCK_RE.sub("$$", completion)
