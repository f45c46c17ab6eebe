"""
Duration probing with ffprobe.
"""

import math

import structlog

from ..errors import DerivativeError, FailureKind
from .runner import ToolRunner


class Probe:
    """Reads the container duration of a media file."""

    def __init__(self, ffprobe_path: str = "ffprobe", timeout: float = 30,
                 runner: ToolRunner = None, logger=None):
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout
        self.logger = logger or structlog.get_logger(__name__)
        self.runner = runner or ToolRunner(self.logger)

    def command(self, path: str):
        return [
            self.ffprobe_path,
            "-v", "quiet",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            str(path),
        ]

    def duration(self, path: str) -> float:
        """
        Duration of `path` in seconds.

        Args:
            path: Media file to probe

        Returns:
            float: Duration, always > 0

        Raises:
            DerivativeError: PROBE_UNAVAILABLE, PROBE_TIMEOUT or UNPARSEABLE
        """
        try:
            result = self.runner.run(self.command(path), timeout=self.timeout)
        except DerivativeError as e:
            if e.timed_out:
                raise DerivativeError(FailureKind.PROBE_TIMEOUT, e.reason, output=e.output, timed_out=True)
            raise DerivativeError(FailureKind.PROBE_UNAVAILABLE, e.reason)

        if not result.ok:
            raise DerivativeError(
                FailureKind.PROBE_UNAVAILABLE,
                f"ffprobe exited with code {result.returncode}",
                exit_code=result.returncode,
                output=result.output,
            )

        lines = [line.strip() for line in result.output.splitlines() if line.strip()]
        if not lines or lines[0].upper() == "N/A":
            raise DerivativeError(FailureKind.PROBE_UNAVAILABLE, "ffprobe reported no duration", output=result.output)

        token = lines[0]
        try:
            value = float(token)
        except ValueError:
            raise DerivativeError(FailureKind.UNPARSEABLE, f"Unparseable duration {token!r}", output=result.output)
        if not math.isfinite(value):
            raise DerivativeError(FailureKind.UNPARSEABLE, f"Unparseable duration {token!r}", output=result.output)
        if value <= 0:
            raise DerivativeError(FailureKind.PROBE_UNAVAILABLE, f"Non-positive duration {token!r}", output=result.output)

        self.logger.debug("Probed duration", path=str(path), duration=value)
        return value
