"""Download media by running the yt-dlp command-line tool."""

from __future__ import annotations

import json
import os
import shutil
import subprocess
import tempfile
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence, Union

__all__ = [
    "BIN",
    "FFMPEG",
    "RunError",
    "DownloadRequest",
    "DownloadResult",
    "extract_first_frame",
]

BIN = "yt-dlp"
FFMPEG = "ffmpeg"

_DEFAULT_RESOLUTION = 1080
_OUTPUT_TEMPLATE = "%(title).150B.%(ext)s"
_AUDIO_SORT = "flac:alac:wav:aiff:aac:mp4a:mp3"


class RunError(Exception):
    """An external command exited unsuccessfully or timed out."""

    def __init__(self, err: Exception, stdout: str, stderr: str, exit_code: int) -> None:
        super().__init__(f"{err}\nstderr={stderr}\nstdout={stdout}")
        self.err = err
        self.stdout = stdout
        self.stderr = stderr
        self.exit_code = exit_code


def _text(data: Union[str, bytes, None]) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", "replace")
    return data


def _run(cmd: Sequence[str], timeout: Optional[float] = None) -> str:
    try:
        proc = subprocess.run(
            list(cmd),
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as exc:
        raise RunError(exc, _text(exc.stdout), _text(exc.stderr), -1) from exc
    if proc.returncode != 0:
        err = subprocess.CalledProcessError(
            proc.returncode, list(cmd), proc.stdout, proc.stderr
        )
        code = proc.returncode if proc.returncode > 0 else -1
        raise RunError(err, _text(proc.stdout), _text(proc.stderr), code)
    return _text(proc.stdout)


@dataclass
class DownloadRequest:
    """Options for one yt-dlp download into a private temporary directory."""

    url: str
    audio_only: bool = False
    resolution: int = 0
    embed_metadata: bool = False
    post_exec: str = ""
    priority_formats: List[str] = field(default_factory=list)
    write_info_json: bool = False
    _tmp_path: str = field(default="", init=False, repr=False, compare=False)
    _prepared: bool = field(default=False, init=False, repr=False, compare=False)

    @property
    def tmp_path(self) -> str:
        return self._tmp_path

    def _prepare(self) -> None:
        if self._prepared:
            return
        self._prepared = True
        if self.resolution == 0:
            self.resolution = _DEFAULT_RESOLUTION
        if not self._tmp_path:
            self._tmp_path = tempfile.mkdtemp(prefix="ytdlp")

    def build_args(self) -> List[str]:
        """The yt-dlp arguments for the current options."""
        args = [
            self.url,
            "-o",
            os.path.join(self._tmp_path, _OUTPUT_TEMPLATE),
            "--quiet",
            "--print",
            "after_move:%(filepath)j",
            "--format",
            "bestvideo+bestaudio/best",
            "--windows-filenames",
        ]
        if self.write_info_json:
            args.append("--write-info-json")
        formats = ":".join(self.priority_formats)
        args += [
            "--format-sort",
            f"+vcodec:{formats},+acodec:{_AUDIO_SORT},res:{self.resolution}",
        ]
        if self.audio_only:
            args += ["--extract-audio", "--audio-format", "mp3", "--audio-quality", "0"]
        if self.embed_metadata:
            args += ["--embed-metadata", "--embed-info-json", "--add-metadata"]
        if self.post_exec:
            args += ["--exec", self.post_exec]
        return args

    def clean(self) -> None:
        """Remove the temporary download directory and everything in it."""
        if self._tmp_path and os.path.exists(self._tmp_path):
            shutil.rmtree(self._tmp_path)

    def run_with_timeout(self, timeout: Union[float, timedelta]) -> "DownloadResult":
        """Run yt-dlp, killing it after ``timeout`` (seconds or a timedelta)."""
        if isinstance(timeout, timedelta):
            timeout = timeout.total_seconds()
        self._prepare()
        stdout = _run([BIN, *self.build_args()], timeout)
        file_path = json.loads(stdout)
        if not isinstance(file_path, str):
            raise ValueError(f"unexpected yt-dlp output: {stdout!r}")
        result = DownloadResult(request=self, file_path=file_path)
        if self.write_info_json:
            info_path = os.path.splitext(file_path)[0] + ".info.json"
            try:
                with open(info_path, encoding="utf-8") as fh:
                    result.info_json = json.load(fh)
            except (OSError, ValueError) as exc:
                result.info_json_error = exc
        return result


@dataclass
class DownloadResult:
    """The downloaded file and, when requested, its parsed info JSON.

    The info JSON is optional, so a failure to read it is kept in
    ``info_json_error`` rather than raised.
    """

    request: DownloadRequest
    file_path: str = ""
    info_json: Optional[Dict[str, Any]] = None
    info_json_error: Optional[Exception] = None

    def _info(self, key: str) -> str:
        if not self.request.write_info_json or not isinstance(self.info_json, dict):
            return ""
        value = self.info_json.get(key)
        return value if isinstance(value, str) else ""

    def uploader(self) -> str:
        return self._info("uploader")

    def title(self) -> str:
        return self._info("title")

    def description(self) -> str:
        return self._info("description")

    def thumbnail(self) -> str:
        """Extract a JPEG frame from the thumbnail, or "" when there is none."""
        thumbnail = self._info("thumbnail")
        if not thumbnail:
            return ""
        return extract_first_frame(thumbnail)


def extract_first_frame(path: str) -> str:
    """Save the first frame of ``path`` as ``path + ".jpg"`` using ffmpeg."""
    out_path = path + ".jpg"
    _run([FFMPEG, "-i", path, "-vframes", "1", "-q:v", "2", out_path])
    return out_path