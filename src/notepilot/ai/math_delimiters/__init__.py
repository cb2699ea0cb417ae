"""Conversion between native ``$``/``$$`` math and canonical LaTeX delimiters."""

from .converter import ConversionState, convert_to_canonical, tokenize
from .lexer import Lexer, Token, TokenKind, tokenize_part
from .reverse import to_native_math

__all__ = [
    "ConversionState",
    "Lexer",
    "Token",
    "TokenKind",
    "convert_to_canonical",
    "to_native_math",
    "tokenize",
    "tokenize_part",
]
