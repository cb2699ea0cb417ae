"""Tests for :mod:`notepilot.ai.math_delimiters.lexer`."""

from __future__ import annotations

import pytest

from notepilot.ai.math_delimiters.lexer import (
    DOLLAR,
    DOUBLE_DOLLAR,
    NEWLINE,
    Lexer,
    Token,
    TokenKind,
    tokenize_part,
)


def _text(value: str) -> Token:
    return Token(TokenKind.TEXT, value)


def test_plain_text_is_a_single_token() -> None:
    assert tokenize_part("hello world") == [_text("hello world")]


def test_empty_fragment_has_no_tokens() -> None:
    assert tokenize_part("") == []


def test_longest_marker_wins() -> None:
    assert tokenize_part("$$$") == [DOUBLE_DOLLAR, DOLLAR]
    assert tokenize_part("$$$$") == [DOUBLE_DOLLAR, DOUBLE_DOLLAR]


def test_markers_split_text_runs() -> None:
    tokens = tokenize_part("a $x$\n$$y$$ b")

    assert tokens == [
        _text("a "),
        DOLLAR,
        _text("x"),
        DOLLAR,
        NEWLINE,
        DOUBLE_DOLLAR,
        _text("y"),
        DOUBLE_DOLLAR,
        _text(" b"),
    ]


def test_text_tokens_are_never_empty() -> None:
    tokens = tokenize_part("$\n$$\n")

    assert all(token.text for token in tokens if token.kind is TokenKind.TEXT)
    assert [token.kind for token in tokens] == [
        TokenKind.DOLLAR,
        TokenKind.NEWLINE,
        TokenKind.DOUBLE_DOLLAR,
        TokenKind.NEWLINE,
    ]


@pytest.mark.parametrize(
    "fragment",
    [
        "",
        "no math here",
        "Here is an example polynomial: $",
        "$ among us eeaas $$1 + 2$$ 1$\n",
        "what $$$$$a$ ",
        "\n\n$$\n\\frac{1}{2}\n$$\n",
        "trailing dollar $",
        "$$$",
        "$$$$$$$",
        "a$$$b\n$c",
        "\n$",
        "$\n$$\n$",
        "$ leading and trailing $",
        "\n\n$$$\n",
    ],
)
def test_concatenated_tokens_reproduce_input(fragment: str) -> None:
    assert "".join(token.text for token in Lexer(fragment)) == fragment


def test_lexer_is_restartable() -> None:
    lexer = Lexer("a $b$")

    first = list(lexer)
    second = list(lexer)

    assert first == second
    assert len(first) == 4


@pytest.mark.parametrize("document", ["$$$", "a$\n$$b", "\n$$$$\n$x$", "$ $$ $"])
def test_every_split_point_reproduces_the_document(document: str) -> None:
    for cut in range(len(document) + 1):
        left, right = document[:cut], document[cut:]

        tokens = tokenize_part(left) + tokenize_part(right)

        assert "".join(token.text for token in tokens) == document
