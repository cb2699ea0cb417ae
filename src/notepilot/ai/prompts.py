"""Prompt templates for fill-in-the-middle completion.

The system message is the configured base message followed by a short
instruction about the block the cursor sits in.
"""

from __future__ import annotations

from .context_detection import Context

DEFAULT_SYSTEM_MESSAGE = (
    "Your job is to complete text inside a markdown file.\n"
    "Your text can be code, LaTex math surrounded by $ and $$ characters, a single word, "
    "or multiple sentences. Your answer must be in the same language as the text."
)

# Placeholder for the cursor in chat-style user messages.
MASK_TOKEN = "<mask/>"

_CONTEXT_INSTRUCTIONS: dict[Context, str] = {
    Context.TEXT: (
        "The text is located in a paragraph. Your answer must complete this paragraph or sentence "
        "in a way that fits the surrounding text without overlapping with it. It must be in the "
        "same language as the paragraph."
    ),
    Context.HEADING: (
        "The text is located in the Markdown heading. Your answer must complete this title in a "
        "way that fits the content of this paragraph and be in the same language as the paragraph."
    ),
    Context.BLOCK_QUOTES: (
        "The text is located within a quote. Your answer must complete this quote in a way that "
        "fits the context of the paragraph."
    ),
    Context.UNORDERED_LIST: (
        "The text is located in an unordered list. Your answer must include one or more list items "
        "that fit with the surrounding list without overlapping with it."
    ),
    Context.NUMBERED_LIST: (
        "The text is located in a numbered list. Your answer must include one or more list items "
        "that fit the sequence and context of the surrounding list without overlapping with it."
    ),
    Context.CODE_BLOCK: (
        "The text is located in a code block. Your answer must complete this code block in the same "
        "programming language and support the surrounding code and text outside of the code block."
    ),
    Context.MATH_BLOCK: (
        "The text is located in a math block. Your answer must only contain LaTeX code that captures "
        "the math discussed in the surrounding text. No text or explanation only LaTeX math code."
    ),
    Context.MATH_BLOCK_OPEN: (
        "The text is located in an opened math block. Your answer must only contain LaTeX code that "
        "captures the math discussed in the surrounding text. No text or explanation only LaTeX math "
        "code, then close the block."
    ),
    Context.TASK_LIST: (
        "The text is located in a task list. Your answer must include one or more (sub)tasks that "
        "are logical given the other tasks and the surrounding text."
    ),
}


def system_message_for(context: Context, base: str = DEFAULT_SYSTEM_MESSAGE) -> str:
    """Return ``base`` extended with the instruction for ``context``."""

    instruction = _CONTEXT_INSTRUCTIONS.get(context)
    if not instruction:
        return base
    return f"{base}\n\n{instruction}"


def format_user_message(prefix: str, suffix: str) -> str:
    """Render the cursor-split text for chat backends that lack a suffix field."""

    return f"{prefix}{MASK_TOKEN}{suffix}"


__all__ = [
    "DEFAULT_SYSTEM_MESSAGE",
    "MASK_TOKEN",
    "system_message_for",
    "format_user_message",
]
