"""
Error taxonomy shared by the resolver, validator and workflow layers.
"""

import time
from enum import Enum
from typing import Optional

from .snippet import SnippetError


class ValidationErrorType(str, Enum):
    """Kinds of validation issues"""
    MISSING_STORE = "MISSING_STORE"
    MISSING_SNIPPET = "MISSING_SNIPPET"
    CIRCULAR_DEPENDENCY = "CIRCULAR_DEPENDENCY"
    INVALID_FORMAT = "INVALID_FORMAT"
    DUPLICATE_ID = "DUPLICATE_ID"
    # Reserved for collaborator-originated failures
    PERMISSION_DENIED = "PERMISSION_DENIED"
    NETWORK_ERROR = "NETWORK_ERROR"
    VALIDATION_TIMEOUT = "VALIDATION_TIMEOUT"


class ValidationSeverity(str, Enum):
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"


class DependencyFormatError(SnippetError):
    """Raised when dependency token components cannot form a valid token"""
    pass


class ValidationTimeoutError(SnippetError):
    """Raised internally when a validation deadline has passed"""
    pass


class Deadline:
    """
    Cooperative time limit for one validation call.

    Long traversals call check() at each step; nothing is interrupted preemptively.
    """

    def __init__(self, timeout_ms: Optional[float]):
        self.timeout_ms = timeout_ms
        self._expires = None if not timeout_ms else time.monotonic() + timeout_ms / 1000

    @property
    def expired(self) -> bool:
        return self._expires is not None and time.monotonic() > self._expires

    def check(self) -> None:
        if self.expired:
            raise ValidationTimeoutError(f"Validation exceeded timeout of {self.timeout_ms:g}ms")
