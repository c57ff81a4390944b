"""
Tests for the conversion lifecycle in converter.py, run against FakeTool so
no real binaries are involved.
"""

import base64
import os
from concurrent.futures import ThreadPoolExecutor

import pytest

import converter
from conftest import FAKE_MP3_BYTES, FakeTool
from converter import (
    convert_video,
    create_workspace,
    encode_audio_file,
    find_audio_file,
    normalize_url,
)
from errors import (
    ConversionProcessError,
    DurationExceeded,
    InvalidArgument,
    MetadataUnavailable,
    OutputMissing,
    PackagingError,
    WorkspaceError,
)


class TestNormalizeUrl:
    def test_short_link_with_tracking(self):
        assert normalize_url("https://youtu.be/abc123?si=xyz") == "https://www.youtube.com/watch?v=abc123"

    def test_watch_url_with_extra_params(self):
        url = "https://www.youtube.com/watch?v=abc123&list=PL1&t=42s&si=xyz"
        assert normalize_url(url) == "https://www.youtube.com/watch?v=abc123"

    def test_mobile_and_shorts_forms(self):
        assert normalize_url("https://m.youtube.com/watch?v=abc123&feature=share") == \
            "https://www.youtube.com/watch?v=abc123"
        assert normalize_url("https://youtube.com/shorts/abc123?feature=share") == \
            "https://www.youtube.com/watch?v=abc123"

    def test_unknown_host_passes_through(self):
        url = "https://vimeo.com/123456?share=copy"
        assert normalize_url(url) == url

    def test_youtube_url_without_id_passes_through(self):
        url = "https://www.youtube.com/channel/UC123"
        assert normalize_url(url) == url

    def test_not_a_url_passes_through(self):
        assert normalize_url("not a url") == "not a url"


class TestConvertVideo:
    def test_success_returns_exact_bytes_and_cleans_up(self, workspace_root):
        tool = FakeTool()
        result = convert_video("https://youtu.be/abc123?si=xyz", tool)

        assert base64.b64decode(result.audio_data) == FAKE_MP3_BYTES
        assert result.file_name == "Never Gonna Give You Up.mp3"
        assert result.size_bytes == len(FAKE_MP3_BYTES)
        assert tool.probe_calls == ["https://www.youtube.com/watch?v=abc123"]
        assert tool.extract_calls[0]["url"] == "https://www.youtube.com/watch?v=abc123"
        assert not os.path.exists(tool.extract_calls[0]["output_dir"])
        assert list(workspace_root.iterdir()) == []

    @pytest.mark.parametrize("url", [None, "", "   "])
    def test_missing_url_runs_nothing(self, workspace_root, url):
        tool = FakeTool()
        with pytest.raises(InvalidArgument):
            convert_video(url, tool)
        assert tool.probe_calls == []
        assert tool.extract_calls == []

    def test_too_long_never_transcodes(self, workspace_root):
        tool = FakeTool(duration=601)
        with pytest.raises(DurationExceeded) as exc:
            convert_video("https://example.com/v", tool)

        assert exc.value.seconds == 601
        assert exc.value.message == "Video is too long. Maximum duration is 10 minutes."
        assert tool.extract_calls == []
        assert list(workspace_root.iterdir()) == []

    def test_exactly_at_limit_is_allowed(self, workspace_root):
        tool = FakeTool(duration=600)
        convert_video("https://example.com/v", tool)
        assert len(tool.extract_calls) == 1

    def test_custom_limit(self, workspace_root):
        tool = FakeTool(duration=90)
        with pytest.raises(DurationExceeded, match="60 seconds"):
            convert_video("https://example.com/v", tool, max_duration_seconds=60)

    def test_metadata_failure_propagates(self, workspace_root):
        tool = FakeTool(probe_error=MetadataUnavailable(details="ERROR: Unsupported URL"))
        with pytest.raises(MetadataUnavailable) as exc:
            convert_video("https://example.com/v", tool)
        assert exc.value.details == "ERROR: Unsupported URL"
        assert tool.extract_calls == []

    def test_process_error_cleans_up(self, workspace_root):
        tool = FakeTool(exit_code=1)
        with pytest.raises(ConversionProcessError) as exc:
            convert_video("https://example.com/v", tool)

        assert exc.value.exit_code == 1
        assert "audio conversion failed" in exc.value.details
        assert not os.path.exists(tool.extract_calls[0]["output_dir"])
        assert list(workspace_root.iterdir()) == []

    def test_missing_output_cleans_up(self, workspace_root):
        tool = FakeTool(write_output=False)
        with pytest.raises(OutputMissing):
            convert_video("https://example.com/v", tool)
        assert list(workspace_root.iterdir()) == []

    def test_unexpected_error_still_cleans_up(self, workspace_root):
        tool = FakeTool(extract_error=RuntimeError("boom"))
        with pytest.raises(RuntimeError):
            convert_video("https://example.com/v", tool)
        assert list(workspace_root.iterdir()) == []

    def test_cleanup_error_does_not_mask_failure(self, workspace_root, monkeypatch):
        def stuck_rmtree(path, *args, **kwargs):
            raise OSError(39, "Directory not empty", path)

        monkeypatch.setattr(converter.shutil, "rmtree", stuck_rmtree)
        tool = FakeTool(exit_code=1)
        with pytest.raises(ConversionProcessError) as exc:
            convert_video("https://example.com/v", tool)

        assert exc.value.exit_code == 1
        assert "audio conversion failed" in exc.value.details

    def test_cleanup_error_on_success_is_raised(self, workspace_root, monkeypatch):
        def stuck_rmtree(path, *args, **kwargs):
            raise OSError(39, "Directory not empty", path)

        monkeypatch.setattr(converter.shutil, "rmtree", stuck_rmtree)
        with pytest.raises(OSError, match="Directory not empty"):
            convert_video("https://example.com/v", FakeTool())

    def test_options_are_passed_to_tool(self, workspace_root):
        tool = FakeTool()
        convert_video("https://example.com/v", tool, bitrate_kbps=192, embed_thumbnail=False)
        call = tool.extract_calls[0]
        assert call["bitrate_kbps"] == 192
        assert call["embed_thumbnail"] is False

    def test_repeated_requests_use_separate_workspaces(self, workspace_root):
        tool = FakeTool()
        first = convert_video("https://example.com/v", tool)
        second = convert_video("https://example.com/v", tool)

        dirs = [c["output_dir"] for c in tool.extract_calls]
        assert dirs[0] != dirs[1]
        assert first == second
        assert list(workspace_root.iterdir()) == []

    def test_concurrent_requests_do_not_interfere(self, workspace_root):
        tool = FakeTool()
        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(lambda _: convert_video("https://example.com/v", tool), range(8)))

        assert all(base64.b64decode(r.audio_data) == FAKE_MP3_BYTES for r in results)
        assert len({c["output_dir"] for c in tool.extract_calls}) == 8
        assert list(workspace_root.iterdir()) == []


class TestWorkspace:
    def test_create_workspace_failure(self, tmp_path):
        missing = tmp_path / "does-not-exist"
        with pytest.raises(WorkspaceError):
            create_workspace(str(missing))

    def test_find_audio_file_ignores_other_files(self, tmp_path):
        (tmp_path / "cover.webp").write_bytes(b"x")
        (tmp_path / "Song.MP3").write_bytes(b"x")
        assert find_audio_file(str(tmp_path)) == "Song.MP3"

    def test_find_audio_file_none(self, tmp_path):
        (tmp_path / "Song.webm").write_bytes(b"x")
        with pytest.raises(OutputMissing):
            find_audio_file(str(tmp_path))

    def test_encode_audio_file(self, tmp_path):
        path = tmp_path / "Song.mp3"
        path.write_bytes(FAKE_MP3_BYTES)
        result = encode_audio_file(str(path))
        assert base64.b64decode(result.audio_data) == FAKE_MP3_BYTES
        assert result.file_name == "Song.mp3"

    def test_encode_unreadable_file(self, tmp_path):
        with pytest.raises(PackagingError):
            encode_audio_file(str(tmp_path / "gone.mp3"))
