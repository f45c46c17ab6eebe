"""
Failure taxonomy for derivative generation.

Components raise DerivativeError; the orchestrator turns it into a Failure
model attached to the operation result.
"""

from enum import Enum
from typing import Optional


class FailureKind(str, Enum):
    """Machine-checkable reason an operation (or one size of it) failed."""
    UNSUPPORTED_TYPE = "unsupported_type"
    TOOL_MISSING = "tool_missing"
    TOOL_EXECUTION_FAILED = "tool_execution_failed"
    EMPTY_OUTPUT = "empty_output"
    PROBE_UNAVAILABLE = "probe_unavailable"
    PROBE_TIMEOUT = "probe_timeout"
    UNPARSEABLE = "unparseable"
    WRITE_ERROR = "write_error"
    SOURCE_MISSING = "source_missing"
    UNKNOWN_PROFILE = "unknown_profile"
    INVALID_STORAGE_ID = "invalid_storage_id"


class DerivativeError(Exception):
    """
    Error raised by a derivative component.

    Args:
        kind: The failure kind
        reason: Human-readable reason
        exit_code: Exit code of the external tool, if one ran
        output: Captured combined stdout/stderr of the external tool
        timed_out: True when the tool was killed after its timeout
    """

    def __init__(self, kind: FailureKind, reason: str,
                 exit_code: Optional[int] = None,
                 output: Optional[str] = None,
                 timed_out: bool = False):
        super().__init__(reason)
        self.kind = kind
        self.reason = reason
        self.exit_code = exit_code
        self.output = output
        self.timed_out = timed_out

    def to_failure(self):
        from .models import Failure
        return Failure(
            kind=self.kind,
            reason=self.reason,
            exit_code=self.exit_code,
            output=self.output,
        )

    def __repr__(self) -> str:
        return f"DerivativeError(kind={self.kind.value!r}, reason={self.reason!r})"
