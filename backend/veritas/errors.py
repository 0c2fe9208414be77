"""
Error Taxonomy

Typed failures raised by the cache engine, session history and model
providers. The orchestrator turns each of them into an error value with
a stable ``kind`` so callers can tell them apart without parsing messages.

Kinds:
- validation: missing or inconsistent request fields
- parse: malformed import payload
- provider: model backend failure (transport, status, timeout, shape)
- store: persistence failure or undecodable stored value
- internal: anything unexpected
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Stable error kinds exposed to callers."""
    VALIDATION = "validation"
    PARSE = "parse"
    PROVIDER = "provider"
    STORE = "store"
    INTERNAL = "internal"


class VeritasError(Exception):
    """Base class for all typed failures."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        return self.message


class ValidationError(VeritasError):
    """Missing required field or mismatched identifiers."""
    kind = ErrorKind.VALIDATION


class ParseError(VeritasError):
    """Input could not be parsed into the expected shape."""
    kind = ErrorKind.PARSE


class ProviderError(VeritasError):
    """Model provider was unreachable, failed, or answered with an unexpected shape."""
    kind = ErrorKind.PROVIDER


class StoreError(VeritasError):
    """Underlying persistence failed."""
    kind = ErrorKind.STORE


class InternalError(VeritasError):
    """Unexpected failure wrapped for reporting."""
    kind = ErrorKind.INTERNAL
