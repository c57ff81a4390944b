"""
Narrow wrapper around the yt-dlp binary.

Only two operations are exposed to the request handler:

- probe_duration(url)                   -> total seconds
- extract_audio(url, output_dir, ...)   -> MP3 written into output_dir

Both block, so callers on the event loop run them in a thread executor.
"""

import os
import shutil
import subprocess
import sys
import tempfile
import threading
from collections import deque
from contextlib import contextmanager
from typing import Callable, Iterator, List, Mapping, Optional

from config import settings
from download_yt_dlp import ensure_yt_dlp
from errors import ConversionProcessError, MetadataUnavailable, ToolAcquisitionError

OUTPUT_TEMPLATE = "%(title)s.%(ext)s"

# Lines of yt-dlp output kept for the error details of a failed conversion
_OUTPUT_TAIL_LINES = 20


def parse_duration(value: str) -> int:
    """Parse "H:MM:SS", "M:SS" or "SS" into total seconds.

    Raises ValueError for anything else.
    """
    parts = value.strip().split(":")
    if not 1 <= len(parts) <= 3 or not all(p.strip().isdigit() for p in parts):
        raise ValueError(f"Unrecognized duration: {value!r}")

    seconds = 0
    for part in parts:
        seconds = seconds * 60 + int(part)
    return seconds


def resolve_ffmpeg_location(
    platform: str = sys.platform,
    env: Optional[Mapping[str, str]] = None,
    override: Optional[str] = None,
) -> Optional[str]:
    """Return an explicit ffmpeg path for yt-dlp, or None to let it use PATH."""
    env = os.environ if env is None else env
    override = override if override is not None else settings.FFMPEG_PATH
    if override:
        return override

    if not platform.startswith("win"):
        return None

    candidates = [
        "C:\\ffmpeg\\bin\\ffmpeg.exe",
        os.path.join(env.get("USERPROFILE", ""), "ffmpeg", "bin", "ffmpeg.exe"),
    ]
    for candidate in candidates:
        if os.path.isfile(candidate):
            print(f"[ffmpeg] Using local FFmpeg at: {candidate}", file=sys.stderr)
            return candidate
    return None


class YtDlpTool:
    """yt-dlp invoked as a child process.

    `binary_path` may be left as None; the binary is then acquired with
    ensure_yt_dlp() on the first call.
    """

    def __init__(
        self,
        binary_path: Optional[str] = None,
        ffmpeg_location: Optional[str] = None,
        cookies_file: Optional[str] = None,
        probe_timeout: Optional[float] = None,
        conversion_timeout: Optional[float] = None,
        binary_resolver: Callable[[], str] = ensure_yt_dlp,
    ):
        self._binary_path = binary_path
        self._binary_resolver = binary_resolver
        self.ffmpeg_location = ffmpeg_location
        self.cookies_file = cookies_file
        self.probe_timeout = probe_timeout or settings.PROBE_TIMEOUT_SECONDS
        self.conversion_timeout = conversion_timeout or settings.CONVERSION_TIMEOUT_SECONDS

    @property
    def binary_path(self) -> str:
        if self._binary_path is None:
            self._binary_path = self._binary_resolver()
        return self._binary_path

    @contextmanager
    def _cookie_args(self) -> Iterator[List[str]]:
        """Yield ["--cookies", <writable copy>] when a cookies file is configured."""
        if not self.cookies_file or not os.path.isfile(self.cookies_file):
            yield []
            return

        # Secret Manager mounts are read-only; copy to writable temp so yt-dlp can save back
        tmp = tempfile.NamedTemporaryFile(suffix=".txt", delete=False)
        tmp_cookies = tmp.name
        tmp.close()
        try:
            shutil.copy2(self.cookies_file, tmp_cookies)
            yield ["--cookies", tmp_cookies]
        finally:
            os.unlink(tmp_cookies)

    def probe_duration(self, url: str) -> int:
        """Ask yt-dlp for the duration of `url` without downloading anything."""
        with self._cookie_args() as cookie_args:
            cmd = [self.binary_path, *cookie_args, "--get-duration", "--", url]
            try:
                output = subprocess.check_output(
                    cmd,
                    encoding="utf-8",
                    errors="replace",
                    stderr=subprocess.PIPE,
                    timeout=self.probe_timeout,
                )
            except subprocess.CalledProcessError as e:
                msg = (e.stderr or "").strip() or f"yt-dlp exited with code {e.returncode}"
                print(f"[yt-dlp/probe] Command failed: {' '.join(cmd)}\n{msg}", file=sys.stderr)
                raise MetadataUnavailable(details=msg) from e
            except subprocess.TimeoutExpired as e:
                msg = f"yt-dlp did not report a duration within {self.probe_timeout:g} seconds"
                print(f"[yt-dlp/probe] {msg}: {url}", file=sys.stderr)
                raise MetadataUnavailable(details=msg) from e
            except OSError as e:
                raise ToolAcquisitionError(f"Could not run yt-dlp: {e}") from e

        lines = [line.strip() for line in output.splitlines() if line.strip()]
        if not lines:
            raise MetadataUnavailable(details="yt-dlp returned no duration")
        try:
            return parse_duration(lines[0])
        except ValueError as e:
            raise MetadataUnavailable(details=str(e)) from e

    def build_extract_command(
        self,
        url: str,
        output_dir: str,
        bitrate_kbps: int,
        embed_thumbnail: bool,
        cookie_args: Optional[List[str]] = None,
    ) -> List[str]:
        cmd = [self.binary_path]
        if self.ffmpeg_location:
            cmd += ["--ffmpeg-location", self.ffmpeg_location]
        cmd += cookie_args or []
        cmd += ["-x", "--audio-format", "mp3", "--audio-quality", "0"]
        if embed_thumbnail:
            cmd += ["--embed-thumbnail", "--add-metadata"]
        cmd += [
            "--newline",
            "--output", os.path.join(output_dir, OUTPUT_TEMPLATE),
            "--postprocessor-args", f"ffmpeg:-b:a {bitrate_kbps}k",
            "--", url,
        ]
        return cmd

    def extract_audio(
        self,
        url: str,
        output_dir: str,
        bitrate_kbps: Optional[int] = None,
        embed_thumbnail: Optional[bool] = None,
    ) -> None:
        """Download `url` as MP3 into `output_dir`, streaming progress to the log."""
        bitrate_kbps = bitrate_kbps or settings.AUDIO_BITRATE_KBPS
        if embed_thumbnail is None:
            embed_thumbnail = settings.EMBED_THUMBNAIL

        with self._cookie_args() as cookie_args:
            cmd = self.build_extract_command(
                url, output_dir, bitrate_kbps, embed_thumbnail, cookie_args
            )
            self._run_streaming(cmd)

    def _run_streaming(self, cmd: List[str]) -> None:
        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except OSError as e:
            raise ToolAcquisitionError(f"Could not run yt-dlp: {e}") from e

        timed_out = threading.Event()

        def _kill() -> None:
            timed_out.set()
            process.kill()

        timer = threading.Timer(self.conversion_timeout, _kill)
        timer.daemon = True
        tail: deque = deque(maxlen=_OUTPUT_TAIL_LINES)
        timer.start()
        returncode = None
        try:
            with process.stdout:
                for line in process.stdout:
                    line = line.rstrip()
                    if line:
                        tail.append(line)
                        print(f"[yt-dlp/convert] {line}", file=sys.stderr)
            returncode = process.wait()
        finally:
            timer.cancel()
            if returncode is None:
                process.kill()
                process.wait()

        details = "\n".join(tail)
        if timed_out.is_set():
            print(f"[yt-dlp/convert] Killed after {self.conversion_timeout:g}s: {' '.join(cmd)}",
                  file=sys.stderr)
            raise ConversionProcessError(
                None,
                details,
                message=f"Conversion timed out after {self.conversion_timeout:g} seconds",
            )
        if returncode != 0:
            print(f"[yt-dlp/convert] Command failed ({returncode}): {' '.join(cmd)}",
                  file=sys.stderr)
            raise ConversionProcessError(returncode, details)


def build_default_tool() -> YtDlpTool:
    """Tool configured from settings; the binary itself is acquired lazily."""
    return YtDlpTool(
        ffmpeg_location=resolve_ffmpeg_location(),
        cookies_file=settings.YTDLP_COOKIES_FILE,
    )
