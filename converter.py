"""
Conversion request lifecycle: URL in, base64 MP3 out.

    received -> validating -> probing_duration -> (rejected | transcoding)
             -> (succeeded | failed)

Every failure is terminal and raised as a ConversionError subclass. Once the
scratch directory exists it is removed on every path out of convert_video().
"""

import base64
import os
import shutil
import sys
import tempfile
import time
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qs, urlparse

from config import settings
from errors import (
    DurationExceeded,
    InvalidArgument,
    OutputMissing,
    PackagingError,
    WorkspaceError,
)
from yt_dlp_tool import YtDlpTool

AUDIO_EXTENSION = ".mp3"

_YOUTUBE_HOSTS = {"youtube.com", "m.youtube.com", "music.youtube.com"}
_YOUTUBE_PATH_PREFIXES = ("/shorts/", "/embed/", "/live/", "/v/")


@dataclass
class ConversionResult:
    audio_data: str   # base64
    file_name: str
    size_bytes: int


def _youtube_video_id(url: str) -> Optional[str]:
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    if host.startswith("www."):
        host = host[len("www."):]

    if host == "youtu.be":
        return parsed.path.lstrip("/").split("/")[0] or None

    if host in _YOUTUBE_HOSTS:
        if parsed.path == "/watch":
            ids = parse_qs(parsed.query).get("v")
            return ids[0] if ids and ids[0] else None
        for prefix in _YOUTUBE_PATH_PREFIXES:
            if parsed.path.startswith(prefix):
                return parsed.path[len(prefix):].split("/")[0] or None
    return None


def normalize_url(url: str) -> str:
    """Rewrite known YouTube link forms to a bare watch URL.

    https://youtu.be/abc123?si=xyz -> https://www.youtube.com/watch?v=abc123
    Anything unrecognized is returned untouched.
    """
    video_id = _youtube_video_id(url)
    if video_id is None:
        return url
    return f"https://www.youtube.com/watch?v={video_id}"


def create_workspace(root: Optional[str] = None) -> str:
    root = root or settings.WORKSPACE_ROOT
    try:
        return tempfile.mkdtemp(prefix=f"convert_{int(time.time() * 1000)}_", dir=root)
    except OSError as e:
        raise WorkspaceError(f"Could not create a scratch directory in {root}: {e}") from e


def find_audio_file(workdir: str) -> str:
    """Name of the MP3 yt-dlp left in `workdir`."""
    matches = sorted(
        name for name in os.listdir(workdir)
        if name.lower().endswith(AUDIO_EXTENSION)
        and os.path.isfile(os.path.join(workdir, name))
    )
    if not matches:
        raise OutputMissing()
    if len(matches) > 1:
        print(f"[convert] Expected one MP3, found {len(matches)}; using {matches[0]!r}",
              file=sys.stderr)
    return matches[0]


def remove_workspace(workdir: str, raise_errors: bool = True) -> None:
    try:
        shutil.rmtree(workdir)
    except OSError as e:
        print(f"[convert] Could not remove {workdir}: {e}", file=sys.stderr)
        if raise_errors:
            raise


def encode_audio_file(path: str) -> ConversionResult:
    try:
        with open(path, "rb") as f:
            data = f.read()
        encoded = base64.b64encode(data).decode("ascii")
    except (OSError, ValueError) as e:
        raise PackagingError(f"Could not read {os.path.basename(path)}: {e}") from e
    return ConversionResult(
        audio_data=encoded,
        file_name=os.path.basename(path),
        size_bytes=len(data),
    )


def convert_video(
    url: Optional[str],
    tool: YtDlpTool,
    max_duration_seconds: Optional[int] = None,
    bitrate_kbps: Optional[int] = None,
    embed_thumbnail: Optional[bool] = None,
    workspace_root: Optional[str] = None,
) -> ConversionResult:
    """Run one conversion end to end. Blocking; call from a worker thread."""
    if max_duration_seconds is None:
        max_duration_seconds = settings.MAX_DURATION_SECONDS

    if not url or not url.strip():
        raise InvalidArgument()
    url = normalize_url(url.strip())

    seconds = tool.probe_duration(url)
    print(f"[convert] {url} is {seconds}s long", file=sys.stderr)
    if seconds > max_duration_seconds:
        raise DurationExceeded(seconds, max_duration_seconds)

    workdir = create_workspace(workspace_root)
    try:
        tool.extract_audio(
            url,
            workdir,
            bitrate_kbps=bitrate_kbps,
            embed_thumbnail=embed_thumbnail,
        )
        file_name = find_audio_file(workdir)
        result = encode_audio_file(os.path.join(workdir, file_name))
    except BaseException:
        # cleanup errors are logged, never raised over the conversion error
        remove_workspace(workdir, raise_errors=False)
        raise
    remove_workspace(workdir)

    print(f"[convert] Done: {result.file_name} ({result.size_bytes} bytes)", file=sys.stderr)
    return result
