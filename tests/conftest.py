"""
Shared fixtures: an in-process stand-in for YtDlpTool and a helper that
writes small executable shell scripts pretending to be the yt-dlp binary.
"""

import os
import stat
import sys

import pytest

from errors import ConversionProcessError

FAKE_MP3_BYTES = b"ID3\x04\x00\x00\x00\x00\x00\x00fake mp3 frames \xff\xfb\x90\x00"


class FakeTool:
    """Canned duration/extract outcomes; records every call it receives."""

    def __init__(self, duration=213, file_name="Never Gonna Give You Up.mp3",
                 audio=FAKE_MP3_BYTES, exit_code=0, write_output=True,
                 probe_error=None, extract_error=None):
        self.duration = duration
        self.file_name = file_name
        self.audio = audio
        self.exit_code = exit_code
        self.write_output = write_output
        self.probe_error = probe_error
        self.extract_error = extract_error
        self.probe_calls = []
        self.extract_calls = []

    def probe_duration(self, url):
        self.probe_calls.append(url)
        if self.probe_error is not None:
            raise self.probe_error
        return self.duration

    def extract_audio(self, url, output_dir, bitrate_kbps=None, embed_thumbnail=None):
        self.extract_calls.append(
            {"url": url, "output_dir": output_dir,
             "bitrate_kbps": bitrate_kbps, "embed_thumbnail": embed_thumbnail}
        )
        # Leftovers from a real run, so cleanup has something to remove
        with open(os.path.join(output_dir, "source.webm"), "wb") as f:
            f.write(b"webm")
        if self.extract_error is not None:
            raise self.extract_error
        if self.exit_code:
            raise ConversionProcessError(self.exit_code, "ERROR: Postprocessing: audio conversion failed")
        if self.write_output:
            with open(os.path.join(output_dir, self.file_name), "wb") as f:
                f.write(self.audio)


@pytest.fixture
def fake_tool():
    return FakeTool()


@pytest.fixture
def workspace_root(tmp_path, monkeypatch):
    """Isolated parent directory for scratch workspaces."""
    from config import settings

    root = tmp_path / "workspaces"
    root.mkdir()
    monkeypatch.setattr(settings, "WORKSPACE_ROOT", str(root))
    return root


@pytest.fixture
def fake_binary(tmp_path):
    """Write an executable /bin/sh script and return its path."""
    if sys.platform.startswith("win"):
        pytest.skip("shell-script binaries need a POSIX shell")

    def _make(body, name="yt-dlp"):
        path = tmp_path / name
        path.write_text("#!/bin/sh\n" + body)
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    return _make
