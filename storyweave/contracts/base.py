"""
Base Contracts and Shared Types

These are the foundational types used across all layers.
All types here are IMMUTABLE and represent pure data.

BOUNDARY ENFORCEMENT:
=====================
- This module is READ-ONLY from all layers
- Expected outcomes (inconsistent trees, failed searches) are enums and
  Error records, never exceptions
- Exceptions are reserved for malformed input and broken contracts
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Tuple
from enum import Enum, auto


# =============================================================================
# ERROR STATES (Explicit, never silent)
# =============================================================================

class ErrorCode(Enum):
    """
    Explicit error codes.
    Every way a tree can be rejected is enumerated.
    """
    # Aggregation conflicts
    VALUE_CONFLICT = auto()
    DOUBLE_EXPORT = auto()
    EXCLUDED_FACT = auto()

    # Parse errors
    EMPTY_KEY = auto()

    # Tree edits and tree shape
    INVALID_PATH = auto()
    NOT_A_QUERY = auto()
    UNKNOWN_TEMPLATE = auto()


@dataclass(frozen=True)
class Error:
    """
    Immutable error representation with context.
    Errors are data, not exceptions - they can be stored and queried.
    """
    code: ErrorCode
    message: str
    context: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def with_context(self, key: str, value: str) -> Error:
        """Return new Error with additional context (immutable)."""
        return Error(
            code=self.code,
            message=self.message,
            context=self.context + ((key, value),)
        )

    def get(self, key: str, default: str = "") -> str:
        for k, v in self.context:
            if k == key:
                return v
        return default


# =============================================================================
# OUTCOMES
# =============================================================================

class Verdict(Enum):
    """Result of aggregating the facts of a tentative tree."""
    CONSISTENT = "consistent"
    INCONSISTENT = "inconsistent"


class SearchStatus(Enum):
    """
    Lifecycle of a resumable search.

    RUNNING is the only non-terminal state. A search that ran out of
    budget is RUNNING, never EXHAUSTED.
    """
    RUNNING = "running"
    SATISFIED = "satisfied"    # every reachable query answered
    EXHAUSTED = "exhausted"    # all candidates tried, no completion exists
    CANCELLED = "cancelled"    # dropped by the caller before finishing

    @property
    def is_terminal(self) -> bool:
        return self is not SearchStatus.RUNNING


# =============================================================================
# EXCEPTIONS (contract violations only)
# =============================================================================

class CorpusParseError(ValueError):
    """Template source contains a token that cannot be classified."""

    def __init__(self, message: str, paragraph: int, token: int, text: str):
        super().__init__(f"{message} (storylet {paragraph}, token {token}: {text!r})")
        self.paragraph = paragraph
        self.token = token
        self.text = text
        self.error = Error(
            code=ErrorCode.EMPTY_KEY,
            message=message,
            context=(("paragraph", str(paragraph)), ("token", str(token)), ("text", text)),
        )


class ActivationPathError(LookupError):
    """A tree edit addressed a child that does not exist, or a non-query."""

    def __init__(self, message: str, path: Tuple[int, ...] = (), code: ErrorCode = ErrorCode.INVALID_PATH):
        super().__init__(message)
        self.path = tuple(path)
        self.error = Error(code=code, message=message).with_context(
            "path", "/".join(str(i) for i in self.path)
        )


class SearchInvariantError(RuntimeError):
    """The scheduler reached a state its own bookkeeping rules out."""
