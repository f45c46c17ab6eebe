"""
External tool invocation.

Every binary the package uses (ffprobe, ffmpeg, convert, gs) is run through
ToolRunner: argv lists only, never a shell line, with a bounded timeout.
"""

import shutil
import subprocess
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import structlog

from ..errors import DerivativeError, FailureKind

# Captured output kept in failures and logs
MAX_OUTPUT_CHARS = 4000


@dataclass
class ToolResult:
    argv: List[str]
    returncode: int
    output: str = field(default="")

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _truncate(text: str) -> str:
    if len(text) <= MAX_OUTPUT_CHARS:
        return text
    return text[:MAX_OUTPUT_CHARS] + "... [truncated]"


class ToolRunner:
    """Runs external binaries with captured combined stdout/stderr."""

    def __init__(self, logger=None):
        self.logger = logger or structlog.get_logger(__name__)

    def run(self, argv: Sequence[str], timeout: float) -> ToolResult:
        """
        Run a command and wait for it, killing it after `timeout` seconds.

        Args:
            argv: Binary followed by its arguments, each one atomic
            timeout: Seconds before the process is killed

        Returns:
            ToolResult, whatever the exit code

        Raises:
            DerivativeError: TOOL_MISSING when the binary cannot be executed,
                TOOL_EXECUTION_FAILED (timed_out=True) on timeout
        """
        argv = [str(a) for a in argv]
        self.logger.debug("Running external tool", argv=argv, timeout=timeout)
        try:
            proc = subprocess.run(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                timeout=timeout,
            )
        except FileNotFoundError:
            raise DerivativeError(FailureKind.TOOL_MISSING, f"{argv[0]} not found")
        except PermissionError:
            raise DerivativeError(FailureKind.TOOL_MISSING, f"{argv[0]} is not executable")
        except OSError as e:
            raise DerivativeError(FailureKind.TOOL_MISSING, f"{argv[0]} cannot be executed: {e}")
        except subprocess.TimeoutExpired as e:
            output = e.output.decode('utf-8', errors='replace') if e.output else ''
            self.logger.warning("External tool timed out", tool=argv[0], timeout=timeout)
            raise DerivativeError(
                FailureKind.TOOL_EXECUTION_FAILED,
                f"{argv[0]} timed out after {timeout} seconds",
                output=_truncate(output),
                timed_out=True,
            )

        output = proc.stdout.decode('utf-8', errors='replace') if proc.stdout else ''
        return ToolResult(argv=argv, returncode=proc.returncode, output=_truncate(output))

    def is_available(self, binary: str, version_flag: Optional[str] = "-version", timeout: float = 10) -> bool:
        """
        Check that a binary resolves and answers its version flag.

        Args:
            binary: Name on PATH or absolute path
            version_flag: Flag to invoke, or None to only resolve the binary
            timeout: Seconds before giving up

        Returns:
            bool: True if the binary ran and exited with 0
        """
        if shutil.which(binary) is None:
            return False
        if version_flag is None:
            return True
        try:
            return self.run([binary, version_flag], timeout=timeout).ok
        except DerivativeError as e:
            self.logger.warning("Tool availability check failed", tool=binary, error=e.reason)
            return False
