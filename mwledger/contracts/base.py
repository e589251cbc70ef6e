"""
Base Contracts and Shared Types

These are the foundational types used across all layers.
All types here are IMMUTABLE and represent pure data.

BOUNDARY ENFORCEMENT:
=====================
- This module is READ-ONLY from all layers
- Layers may import types but MUST NOT modify this module
- All value types are frozen dataclasses
- Exceptions carry an immutable Error so failures can be stored and queried
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Tuple
from enum import Enum, auto


# =============================================================================
# ERROR STATES (Explicit, never silent)
# =============================================================================

class ErrorCode(Enum):
    """
    Explicit error codes for deterministic error handling.
    No silent fallbacks - every error state is enumerated.
    """
    # Ingestion errors
    INVALID_CATEGORY = auto()
    NEGATIVE_VALUE = auto()
    MALFORMED_VALUE = auto()
    MISALIGNED_INSTANT = auto()
    MALFORMED_INSTANT = auto()
    MALFORMED_PAYLOAD = auto()

    # Storage errors
    STORAGE_FAILURE = auto()
    TIMELINE_CORRUPTION = auto()

    # Cache errors (never surfaced to callers)
    SNAPSHOT_INCONSISTENT = auto()
    SNAPSHOT_MATERIALIZATION_FAILED = auto()

    # Query errors
    INVALID_QUERY = auto()


@dataclass(frozen=True)
class Error:
    """
    Immutable error representation with full context.
    Errors are data - they can be stored and queried.
    """
    code: ErrorCode
    message: str
    timestamp: datetime
    context: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def with_context(self, key: str, value: str) -> Error:
        """Return new Error with additional context (immutable)."""
        return Error(
            code=self.code,
            message=self.message,
            timestamp=self.timestamp,
            context=self.context + ((key, value),)
        )

    @staticmethod
    def create(code: ErrorCode, message: str, **context: object) -> Error:
        return Error(
            code=code,
            message=message,
            timestamp=datetime.now(timezone.utc),
            context=tuple((k, str(v)) for k, v in sorted(context.items()))
        )


# =============================================================================
# EXCEPTIONS (raised at layer boundaries, each wraps an Error)
# =============================================================================

class LedgerError(Exception):
    """Base class for every failure the ledger surfaces to callers."""

    default_code = ErrorCode.MALFORMED_PAYLOAD

    def __init__(self, message: str, code: Optional[ErrorCode] = None, **context: object):
        super().__init__(message)
        self.error = Error.create(code or self.default_code, message, **context)

    @property
    def code(self) -> ErrorCode:
        return self.error.code


class ValidationError(LedgerError):
    """Negative value, misaligned or malformed instant, malformed payload."""
    default_code = ErrorCode.MALFORMED_PAYLOAD


class CategoryError(LedgerError):
    """Empty, missing or non-string category."""
    default_code = ErrorCode.INVALID_CATEGORY


class StorageError(LedgerError):
    """Opaque wrapper around persistence failures."""
    default_code = ErrorCode.STORAGE_FAILURE


# =============================================================================
# TEMPORAL TYPES (Immutable, explicit semantics)
# =============================================================================

@dataclass(frozen=True)
class Timestamp:
    """
    Immutable timestamp with explicit semantics.
    All timestamps are UTC, never local time.
    """
    value: datetime

    def __post_init__(self):
        # Naive values are taken as UTC, aware values are normalized to UTC
        if self.value.tzinfo is None:
            object.__setattr__(self, 'value', self.value.replace(tzinfo=timezone.utc))
        elif self.value.tzinfo is not timezone.utc:
            object.__setattr__(self, 'value', self.value.astimezone(timezone.utc))

    @staticmethod
    def now() -> Timestamp:
        return Timestamp(value=datetime.now(timezone.utc))

    @staticmethod
    def from_iso(iso_string: str) -> Timestamp:
        dt = datetime.fromisoformat(iso_string.strip().replace('Z', '+00:00'))
        return Timestamp(value=dt)

    @staticmethod
    def coerce(value: object) -> Timestamp:
        """
        Accept a Timestamp, datetime or ISO-8601 string.

        Raises ValidationError(MALFORMED_INSTANT) for anything else.
        """
        if isinstance(value, Timestamp):
            return value
        if isinstance(value, datetime):
            return Timestamp(value=value)
        if isinstance(value, str):
            try:
                return Timestamp.from_iso(value)
            except ValueError:
                pass
        raise ValidationError(
            f"Malformed instant: {value!r}",
            ErrorCode.MALFORMED_INSTANT,
            instant=repr(value)
        )

    def to_iso(self) -> str:
        return self.value.isoformat().replace('+00:00', 'Z')
