"""Lexer for the native math markers ``$``, ``$$`` and newlines.

Nothing between the markers is inspected: every run of other characters is
emitted as a single text token, so the lexer can never reject its input.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterator

from ..ai_types import LexicalImpossibility

__all__ = [
    "TokenKind",
    "Token",
    "Lexer",
    "tokenize_part",
    "DOLLAR",
    "DOUBLE_DOLLAR",
    "NEWLINE",
    "CURSOR",
    "END",
]


class TokenKind(Enum):
    TEXT = "text"
    DOLLAR = "$"
    DOUBLE_DOLLAR = "$$"
    NEWLINE = "\n"
    CURSOR = "cursor"
    END = "end"


@dataclass(slots=True, frozen=True)
class Token:
    """A lexical token; ``text`` is the literal it stands for."""

    kind: TokenKind
    text: str = ""


DOLLAR = Token(TokenKind.DOLLAR, "$")
DOUBLE_DOLLAR = Token(TokenKind.DOUBLE_DOLLAR, "$$")
NEWLINE = Token(TokenKind.NEWLINE, "\n")
# Injected by the cursor-split tokenizer, never produced by the lexer.
CURSOR = Token(TokenKind.CURSOR)
END = Token(TokenKind.END)

# ``$$`` must come first so the longest marker wins.
_MARKER_RE = re.compile(r"\$\$|\$|\n")
_MARKERS = {"$$": DOUBLE_DOLLAR, "$": DOLLAR, "\n": NEWLINE}


class Lexer:
    """Restartable token sequence over a text fragment.

    Each iteration rescans the fragment from the start, so the same ``Lexer``
    can be consumed more than once.
    """

    __slots__ = ("_fragment",)

    def __init__(self, fragment: str) -> None:
        self._fragment = fragment

    def __iter__(self) -> Iterator[Token]:
        fragment = self._fragment
        position = 0
        for match in _MARKER_RE.finditer(fragment):
            if match.start() > position:
                yield Token(TokenKind.TEXT, fragment[position : match.start()])
            position = match.end()
            marker = _MARKERS.get(match.group(0))
            if marker is None:
                raise LexicalImpossibility(f"Unclassified marker {match.group(0)!r} at {match.start()}")
            yield marker
        if position < len(fragment):
            yield Token(TokenKind.TEXT, fragment[position:])


def tokenize_part(fragment: str) -> list[Token]:
    """Eagerly lex ``fragment``."""

    return list(Lexer(fragment))
