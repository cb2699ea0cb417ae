"""Shared typing contracts for the completion backends and pipeline outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import AsyncIterator, Protocol, Union


class LexicalImpossibility(RuntimeError):
    """Raised when the math lexer meets a token it cannot classify.

    The three lexical patterns are exhaustive, so this always signals a
    defect in the scanner rather than bad input.
    """


class BackendError(Exception):
    """Standardized backend error with retry metadata."""

    def __init__(
        self,
        *,
        provider: str,
        kind: str,
        message: str,
        retryable: bool = False,
    ) -> None:
        self.provider = provider
        self.kind = kind
        self.message = message
        self.retryable = retryable
        super().__init__(self.__str__())

    def __str__(self) -> str:
        return (
            f"BackendError(provider={self.provider!r}, kind={self.kind!r}, "
            f"retryable={self.retryable}): {self.message}"
        )


class UnexpectedStreamEnd(BackendError):
    """The completion stream closed without signalling that it was done."""

    def __init__(self, provider: str) -> None:
        super().__init__(
            provider=provider,
            kind="bad_response",
            message="Unexpected end of stream",
            retryable=False,
        )


@dataclass(slots=True, frozen=True)
class CursorSplitText:
    """A document split at the cursor.

    Attributes:
        prefix: Everything strictly before the cursor.
        suffix: Everything at or after the cursor.
    """

    prefix: str
    suffix: str


@dataclass(slots=True)
class ModelOptions:
    """Sampling options forwarded to the backend."""

    temperature: float = 1.0
    top_p: float = 0.1
    frequency_penalty: float = 0.25
    presence_penalty: float = 0.0
    max_tokens: int = 800
    num_ctx: int = 1024


@dataclass(slots=True, frozen=True)
class BackendRequest:
    """Fill-in-the-middle request sent to a completion backend."""

    model: str
    system_prompt: str
    prefix: str
    suffix: str
    options: ModelOptions = field(default_factory=ModelOptions)


@dataclass(slots=True, frozen=True)
class CompletionChunk:
    """One streamed fragment; ``done`` marks the terminal chunk."""

    text: str = ""
    done: bool = False


class CompletionBackend(Protocol):
    """Protocol for streaming fill-in-the-middle backends."""

    name: str

    def stream_completion(self, request: BackendRequest) -> AsyncIterator[CompletionChunk]:
        """Yield completion chunks until a chunk with ``done=True`` arrives."""
        ...

    async def list_models(self) -> list[str]:
        """Return the model identifiers the backend can serve."""
        ...

    async def aclose(self) -> None:
        """Release network resources."""
        ...


# -----------------------------------------------------------------------------
# Prediction outcomes
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class PredictionOk:
    """The backend finished; ``text`` is None when nothing was requested."""

    text: str | None = None


@dataclass(slots=True, frozen=True)
class PredictionAborted:
    """The prediction was cancelled before it finished."""


@dataclass(slots=True, frozen=True)
class PredictionFailed:
    """The prediction failed with ``error``."""

    error: BaseException


PredictionOutcome = Union[PredictionOk, PredictionAborted, PredictionFailed]


__all__ = [
    "LexicalImpossibility",
    "BackendError",
    "UnexpectedStreamEnd",
    "CursorSplitText",
    "ModelOptions",
    "BackendRequest",
    "CompletionChunk",
    "CompletionBackend",
    "PredictionOk",
    "PredictionAborted",
    "PredictionFailed",
    "PredictionOutcome",
]
