"""Rewrite native ``$``/``$$`` math into ``\\(...\\)``/``\\[...\\]`` across the cursor.

The prefix and suffix are lexed separately and joined around a cursor token,
so a span may open before the cursor and close after it. One left-to-right
pass over that stream drives a three-state machine:

- ``NORMAL``: tokens stay pending until a delimiter shows up; then the pending
  run is flushed verbatim and the delimiter becomes the anchor of a new span.
- ``OPEN_SINGLE``: a ``$`` closes the span as ``\\(...\\)``; a ``$$`` closes it
  too and immediately opens the next one (``$a$$b$`` is two spans). A newline
  or the end of input leaves the span unterminated: it is kept half open when
  the cursor is inside it, otherwise it is rolled back to plain text.
- ``OPEN_DOUBLE``: only ``$$`` closes the span as ``\\[...\\]``. An
  unterminated block is flushed verbatim at the end of input.

The cursor token flips output from the prefix to the suffix the moment it is
emitted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence

from ..ai_types import CursorSplitText
from .lexer import CURSOR, DOLLAR, END, Token, TokenKind, tokenize_part

__all__ = [
    "ConversionState",
    "tokenize",
    "convert_to_canonical",
    "INLINE_OPEN",
    "INLINE_CLOSE",
    "BLOCK_OPEN",
    "BLOCK_CLOSE",
]

LOGGER = logging.getLogger(__name__)

INLINE_OPEN = "\\("
INLINE_CLOSE = "\\)"
BLOCK_OPEN = "\\["
BLOCK_CLOSE = "\\]"


class ConversionState(Enum):
    NORMAL = "normal"
    OPEN_SINGLE = "$"
    OPEN_DOUBLE = "$$"


def tokenize(prefix: str, suffix: str) -> list[Token]:
    """Return ``Lex(prefix) + [CURSOR] + Lex(suffix) + [END]``."""

    return [*tokenize_part(prefix), CURSOR, *tokenize_part(suffix), END]


@dataclass(slots=True)
class _Accumulator:
    """Mutable scan state, owned by a single :func:`convert_to_canonical` call.

    ``anchor`` is the index of the first token not yet emitted. While a span
    is open it points at the span's opening delimiter; a ``$$`` anchor there
    has already spent its first ``$`` closing the previous span.
    """

    tokens: Sequence[Token]
    state: ConversionState = ConversionState.NORMAL
    anchor: int = 0
    emitting_into_suffix: bool = False
    prefix_parts: list[str] = field(default_factory=list)
    suffix_parts: list[str] = field(default_factory=list)

    def emit(self, text: str) -> None:
        if not text:
            return
        if self.emitting_into_suffix:
            self.suffix_parts.append(text)
        else:
            self.prefix_parts.append(text)

    def commit(self, opener: str, begin: int, end: int, closer: str) -> None:
        """Emit ``opener``, the tokens in ``[begin, end)`` and ``closer``."""

        self.emit(opener)
        for token in self.tokens[begin:end]:
            if token.kind is TokenKind.CURSOR:
                self.emitting_into_suffix = True
                continue
            self.emit(token.text)
        self.emit(closer)

    def contains_cursor(self, begin: int, end: int) -> bool:
        return any(token.kind is TokenKind.CURSOR for token in self.tokens[begin:end])

    def open_span(self, index: int, state: ConversionState) -> None:
        self.commit("", self.anchor, index, "")
        self.state = state
        self.anchor = index

    def result(self) -> CursorSplitText:
        return CursorSplitText("".join(self.prefix_parts), "".join(self.suffix_parts))


def _step_normal(acc: _Accumulator, index: int, token: Token) -> None:
    if token.kind is TokenKind.DOLLAR:
        acc.open_span(index, ConversionState.OPEN_SINGLE)
    elif token.kind is TokenKind.DOUBLE_DOLLAR:
        acc.open_span(index, ConversionState.OPEN_DOUBLE)


def _step_open_single(acc: _Accumulator, index: int, token: Token) -> None:
    if token.kind is TokenKind.DOLLAR:
        acc.commit(INLINE_OPEN, acc.anchor + 1, index, INLINE_CLOSE)
        acc.state = ConversionState.NORMAL
        acc.anchor = index + 1
    elif token.kind is TokenKind.DOUBLE_DOLLAR:
        # The first ``$`` closes this span, the second opens the next one.
        acc.commit(INLINE_OPEN, acc.anchor + 1, index, INLINE_CLOSE)
        acc.anchor = index
    elif token.kind in (TokenKind.NEWLINE, TokenKind.END):
        if acc.contains_cursor(acc.anchor + 1, index):
            acc.commit(INLINE_OPEN, acc.anchor + 1, index, token.text)
            acc.anchor = index + 1
        else:
            LOGGER.debug("Rolling back unterminated inline math opened at token %d", acc.anchor)
            if acc.tokens[acc.anchor].kind is TokenKind.DOUBLE_DOLLAR:
                acc.commit(DOLLAR.text, acc.anchor + 1, index, "")
                acc.anchor = index
        acc.state = ConversionState.NORMAL


def _step_open_double(acc: _Accumulator, index: int, token: Token) -> None:
    if token.kind is TokenKind.DOUBLE_DOLLAR:
        acc.commit(BLOCK_OPEN, acc.anchor + 1, index, BLOCK_CLOSE)
        acc.state = ConversionState.NORMAL
        acc.anchor = index + 1


_STEPS = {
    ConversionState.NORMAL: _step_normal,
    ConversionState.OPEN_SINGLE: _step_open_single,
    ConversionState.OPEN_DOUBLE: _step_open_double,
}


def convert_to_canonical(prefix: str, suffix: str) -> CursorSplitText:
    """Convert native math delimiters in ``prefix``/``suffix`` to canonical ones."""

    tokens = tokenize(prefix, suffix)
    acc = _Accumulator(tokens)
    for index, token in enumerate(tokens):
        _STEPS[acc.state](acc, index, token)
    if acc.anchor < len(tokens):
        acc.commit("", acc.anchor, len(tokens), "")
    return acc.result()
