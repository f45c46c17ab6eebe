"""
Converter profiles: audio/video through ffmpeg, PDF through ghostscript.
"""

import shlex
import shutil
import tempfile
from pathlib import Path
from typing import List

import structlog

from ..errors import DerivativeError
from ..models import ConverterProfile, MediaClass
from .frames import check_output
from .runner import ToolRunner


class Transcoder:
    """Runs one converter profile against a source file."""

    def __init__(self, ffmpeg_path: str = "ffmpeg", gs_path: str = "gs", timeout: float = 1800,
                 runner: ToolRunner = None, logger=None, temp_dir: str = None):
        self.ffmpeg_path = ffmpeg_path
        self.gs_path = gs_path
        self.timeout = timeout
        self.temp_dir = temp_dir
        self.logger = logger or structlog.get_logger(__name__)
        self.runner = runner or ToolRunner(self.logger)

    def command(self, profile: ConverterProfile, source: str, output: str) -> List[str]:
        """
        argv for a profile. The argument template is split like a shell
        would, but nothing is ever handed to a shell.
        """
        arguments = shlex.split(profile.arguments)
        if profile.media_class == MediaClass.PDF:
            return [
                self.gs_path, "-sDEVICE=pdfwrite", "-dNOPAUSE", "-dBATCH", "-dQUIET",
                *arguments,
                f"-sOutputFile={output}",
                str(source),
            ]
        return [self.ffmpeg_path, "-y", "-i", str(source), *arguments, str(output)]

    def tool_for(self, profile: ConverterProfile) -> str:
        return "gs" if profile.media_class == MediaClass.PDF else "ffmpeg"

    def transcode(self, profile: ConverterProfile, source: str) -> Path:
        """
        Convert `source` into a temporary file.

        The temp file keeps the profile's extension so the tool picks the
        right container.

        Returns:
            Path: Converted file; the caller owns and removes it

        Raises:
            DerivativeError: TOOL_MISSING, TOOL_EXECUTION_FAILED or EMPTY_OUTPUT
        """
        work_dir = Path(tempfile.mkdtemp(prefix="derivative_", dir=self.temp_dir))
        output = work_dir / f"output.{profile.extension}"
        argv = self.command(profile, source, str(output))
        self.logger.info("Transcoding", profile=profile.key, source=str(source))
        try:
            result = self.runner.run(argv, timeout=self.timeout)
            check_output(output, result, self.tool_for(profile))
        except DerivativeError as e:
            shutil.rmtree(work_dir, ignore_errors=True)
            self.logger.warning("Transcode failed", profile=profile.key, kind=e.kind.value,
                                reason=e.reason, exit_code=e.exit_code, output=e.output)
            raise
        return output
