import shlex
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

import pytest
from PIL import Image

from derivative_media.config.settings import Config

# Written by every stub before its own body runs: argv is appended to the
# log, NUL separated, one record per call; version probes answer right away.
STUB_HEADER = """#!/bin/sh
for a in "$@"; do printf '%s\\0' "$a"; done >> {log}
printf '\\036\\n' >> {log}
for last; do :; done
case "$last" in
    -version|--version) echo "stub 1.0"; exit 0 ;;
esac
"""

RECORD_END = b"\0\x1e\n"


class StubTools:
    """Fake ffprobe/ffmpeg/convert/gs binaries living in one directory."""

    def __init__(self, bin_dir: Path, sample_jpeg: Path):
        self.bin_dir = bin_dir
        self.sample = sample_jpeg
        self.bin_dir.mkdir(parents=True, exist_ok=True)

    def path(self, name: str) -> str:
        return str(self.bin_dir / name)

    def log_path(self, name: str) -> Path:
        return self.bin_dir / f"{name}.log"

    def install(self, name: str, body: str) -> str:
        script = self.bin_dir / name
        script.write_text(STUB_HEADER.format(log=shlex.quote(str(self.log_path(name)))) + body + "\n")
        script.chmod(0o755)
        return str(script)

    def calls(self, name: str) -> List[List[str]]:
        """argv (without the binary) of every call made to a stub, version probes included."""
        log = self.log_path(name)
        if not log.exists():
            return []
        records = log.read_bytes().split(RECORD_END)[:-1]
        return [[a.decode() for a in record.split(b"\0")] if record else [] for record in records]

    def work_calls(self, name: str) -> List[List[str]]:
        return [c for c in self.calls(name) if c[-1:] not in (["-version"], ["--version"])]

    # ----- Ready-made stubs -----

    def ffprobe(self, output: str = "20.0", exit_code: int = 0) -> str:
        return self.install("ffprobe", f"echo {shlex.quote(output)}\nexit {exit_code}")

    def ffmpeg(self, body: Optional[str] = None) -> str:
        if body is None:
            body = f'cp {shlex.quote(str(self.sample))} "$last"'
        return self.install("ffmpeg", body)

    def convert(self, fail_on: Optional[str] = None) -> str:
        lines = []
        if fail_on:
            lines.append(f'case "$*" in *{fail_on}*) echo "convert: cannot resize" >&2; exit 1 ;; esac')
        lines.append('out="${last#jpeg:}"')
        lines.append(f'cp {shlex.quote(str(self.sample))} "$out"')
        return self.install("convert", "\n".join(lines))

    def gs(self) -> str:
        body = (
            'out=""\n'
            'for a in "$@"; do case "$a" in -sOutputFile=*) out="${a#-sOutputFile=}" ;; esac; done\n'
            'printf "%%PDF-1.7 stub" > "$out"'
        )
        return self.install("gs", body)

    def unexecutable(self, name: str) -> str:
        """Replace a tool with an executable file the kernel cannot run."""
        script = self.bin_dir / name
        script.write_bytes(b"\x00\x01\x02 not a program\n")
        script.chmod(0o755)
        return str(script)

    def install_defaults(self) -> None:
        self.ffprobe()
        self.ffmpeg()
        self.convert()
        self.gs()

    def tool_settings(self) -> Dict[str, str]:
        return {name: self.path(name) for name in ("ffmpeg", "ffprobe", "convert", "gs")}


@pytest.fixture
def sample_jpeg(tmp_path) -> Path:
    """A small real JPEG the stubs hand out as their output."""
    path = tmp_path / "sample.jpg"
    Image.new("RGB", (64, 48), color=(200, 30, 30)).save(path, "JPEG")
    return path


@pytest.fixture
def stub_tools(tmp_path, sample_jpeg) -> StubTools:
    tools = StubTools(tmp_path / "bin", sample_jpeg)
    tools.install_defaults()
    return tools


@pytest.fixture
def base_path(tmp_path) -> Path:
    path = tmp_path / "files"
    (path / "original").mkdir(parents=True, exist_ok=True)
    return path


@pytest.fixture
def work_dir(tmp_path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def stub_config(stub_tools, base_path) -> Config:
    return Config({
        'base_path': str(base_path),
        'tools': stub_tools.tool_settings(),
        'timeouts': {'probe': 5, 'extract': 5, 'resize': 5, 'transcode': 5, 'version': 5},
    })


@pytest.fixture
def make_original(base_path):
    """Write a file under original/ and return its path."""
    def _make(relative: str, content: bytes = b"\x00" * 128) -> Path:
        path = base_path / "original" / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return path
    return _make


@pytest.fixture
def make_image(base_path):
    """Write a real image under original/ and return its path."""
    def _make(relative: str, size=(1200, 900), fmt: str = "JPEG") -> Path:
        path = base_path / "original" / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        Image.new("RGB", size, color=(10, 120, 200)).save(path, fmt)
        return path
    return _make


def require_tools(*names: str) -> None:
    missing = [name for name in names if shutil.which(name) is None]
    if missing:
        pytest.skip(f"Not installed: {', '.join(missing)}")


@pytest.fixture
def real_tools():
    return require_tools


@pytest.fixture
def sample_video(tmp_path, real_tools):
    """A 5 second 320x240 test pattern video made with real ffmpeg."""
    real_tools("ffmpeg")
    path = tmp_path / "files" / "original" / "clip.mp4"
    path.parent.mkdir(parents=True, exist_ok=True)
    proc = subprocess.run(
        ["ffmpeg", "-v", "quiet", "-y", "-f", "lavfi", "-i", "testsrc=duration=5:size=320x240:rate=10",
         "-pix_fmt", "yuv420p", str(path)],
        stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, timeout=120,
    )
    if proc.returncode != 0 or not path.exists():
        pytest.skip("ffmpeg cannot encode a test video here")
    return path
