#!/usr/bin/env python3
"""
Make sure a usable yt-dlp binary exists, downloading it if needed.

It uses GitHub's "latest release" download URL:
https://github.com/yt-dlp/yt-dlp/releases/latest

The server calls ensure_yt_dlp() lazily on the first conversion. The result is
memoized for the lifetime of the process and only one thread ever downloads.

Run it directly to pre-seed the cache at build time:
    python3 download_yt_dlp.py
"""

import os
import sys
import threading
from typing import Optional

import httpx

from config import settings
from errors import ToolAcquisitionError


# Base URL that always points to the latest yt-dlp release assets
DOWNLOAD_BASE_URL = "https://github.com/yt-dlp/yt-dlp/releases/latest/download"

# Resolved once per process, guarded by _lock.
_binary_path: Optional[str] = None
_lock = threading.Lock()


def asset_name(platform: str = sys.platform) -> str:
    """Release asset for the host platform (standalone builds, no Python needed)."""
    if platform.startswith("win"):
        return "yt-dlp.exe"
    if platform == "darwin":
        return "yt-dlp_macos"
    return "yt-dlp_linux"


def cached_binary_path(cache_dir: Optional[str] = None, platform: str = sys.platform) -> str:
    return os.path.join(cache_dir or settings.YTDLP_CACHE_DIR, asset_name(platform))


def download_file(
    url: str,
    dest_path: str,
    timeout: float = 120.0,
    client: Optional[httpx.Client] = None,
    executable: bool = False,
) -> None:
    """Stream `url` into `dest_path`.

    The body goes to a ".part" file first and is moved into place only when
    complete (and, with `executable`, already chmod +x), so a half-written or
    non-executable binary is never left at `dest_path`.
    """
    part_path = dest_path + ".part"
    own_client = client is None
    if own_client:
        client = httpx.Client(follow_redirects=True, timeout=timeout)
    try:
        with client.stream("GET", url) as response:
            response.raise_for_status()
            with open(part_path, "wb") as out_file:
                for chunk in response.iter_bytes(chunk_size=65536):
                    out_file.write(chunk)
        if executable:
            make_executable(part_path)
        os.replace(part_path, dest_path)
    except (httpx.HTTPError, OSError):
        if os.path.exists(part_path):
            os.unlink(part_path)
        raise
    finally:
        if own_client:
            client.close()


def make_executable(path: str) -> None:
    current_mode = os.stat(path).st_mode
    os.chmod(path, current_mode | 0o111)


def _acquire() -> str:
    if settings.YTDLP_PATH:
        path = settings.YTDLP_PATH
        if not os.path.isfile(path):
            raise ToolAcquisitionError(f"YTDLP_PATH points to a missing file: {path}")
        if not os.access(path, os.X_OK):
            raise ToolAcquisitionError(f"YTDLP_PATH is not executable: {path}")
        return path

    dest_path = cached_binary_path()
    if os.path.isfile(dest_path) and os.access(dest_path, os.X_OK):
        return dest_path

    url = f"{DOWNLOAD_BASE_URL}/{asset_name()}"
    print(f"[yt-dlp/download] Downloading {url} -> {dest_path}", file=sys.stderr)
    try:
        os.makedirs(os.path.dirname(dest_path), exist_ok=True)
        download_file(
            url,
            dest_path,
            timeout=settings.YTDLP_DOWNLOAD_TIMEOUT,
            executable=not sys.platform.startswith("win"),
        )
    except httpx.HTTPError as e:
        raise ToolAcquisitionError(f"Failed to download yt-dlp: {e}") from e
    except OSError as e:
        raise ToolAcquisitionError(f"Failed to save yt-dlp to {dest_path}: {e}") from e

    print("[yt-dlp/download] Download complete.", file=sys.stderr)
    return dest_path


def ensure_yt_dlp() -> str:
    """Return the yt-dlp binary path, acquiring it on first use."""
    global _binary_path
    if _binary_path is not None:
        return _binary_path

    with _lock:
        # Another thread may have finished while we were waiting
        if _binary_path is None:
            _binary_path = _acquire()
        return _binary_path


def main() -> None:
    try:
        path = ensure_yt_dlp()
    except ToolAcquisitionError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    print(f"yt-dlp available at:\n  {path}")


if __name__ == "__main__":
    main()
