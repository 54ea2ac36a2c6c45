import json
import os
import subprocess
from unittest import mock

import pytest

from ytyanbot import ytdlp
from ytyanbot.ytdlp import DownloadRequest, DownloadResult, RunError, extract_first_frame

URL = "https://video.example.com/watch?v=abc"


def _arg_after(args, flag):
    return args[args.index(flag) + 1]


def _fake_download(info=None, name="Clip.mp4"):
    def run(cmd, **kwargs):
        folder = os.path.dirname(_arg_after(cmd, "-o"))
        video = os.path.join(folder, name)
        with open(video, "wb") as fh:
            fh.write(b"video")
        if info is not None and "--write-info-json" in cmd:
            stem = os.path.splitext(video)[0]
            with open(stem + ".info.json", "w", encoding="utf-8") as fh:
                json.dump(info, fh)
        return subprocess.CompletedProcess(cmd, 0, stdout=json.dumps(video) + "\n", stderr="")

    return run


def test_build_args_defaults():
    args = DownloadRequest(url=URL).build_args()
    assert args[0] == URL
    assert _arg_after(args, "-o") == "%(title).150B.%(ext)s"
    assert _arg_after(args, "--print") == "after_move:%(filepath)j"
    assert _arg_after(args, "--format") == "bestvideo+bestaudio/best"
    assert (
        _arg_after(args, "--format-sort")
        == "+vcodec:,+acodec:flac:alac:wav:aiff:aac:mp4a:mp3,res:0"
    )
    assert "--write-info-json" not in args
    assert "--extract-audio" not in args
    assert "--exec" not in args


def test_build_args_with_options():
    req = DownloadRequest(
        url=URL,
        audio_only=True,
        resolution=720,
        embed_metadata=True,
        post_exec="echo done",
        priority_formats=["avc1", "vp9"],
        write_info_json=True,
    )
    args = req.build_args()
    assert "--write-info-json" in args
    assert _arg_after(args, "--format-sort").startswith("+vcodec:avc1:vp9,")
    assert _arg_after(args, "--format-sort").endswith(",res:720")
    assert _arg_after(args, "--audio-format") == "mp3"
    assert _arg_after(args, "--audio-quality") == "0"
    assert "--embed-info-json" in args
    assert _arg_after(args, "--exec") == "echo done"


def test_run_with_timeout_success_and_clean():
    req = DownloadRequest(url=URL, write_info_json=True)
    info = {"title": "Clip", "uploader": "someone", "description": "about"}
    with mock.patch("subprocess.run", side_effect=_fake_download(info)) as run:
        result = req.run_with_timeout(30)
    cmd = run.call_args.args[0]
    assert cmd[0] == ytdlp.BIN
    assert _arg_after(cmd, "--format-sort").endswith("res:1080")
    assert run.call_args.kwargs["timeout"] == 30
    assert result.file_path == os.path.join(req.tmp_path, "Clip.mp4")
    assert os.path.exists(result.file_path)
    assert result.title() == "Clip"
    assert result.uploader() == "someone"
    assert result.description() == "about"
    assert result.info_json_error is None
    req.clean()
    assert not os.path.exists(req.tmp_path)


def test_missing_info_json_is_recorded_not_raised():
    req = DownloadRequest(url=URL, write_info_json=True)
    with mock.patch("subprocess.run", side_effect=_fake_download(None)):
        result = req.run_with_timeout(30)
    try:
        assert isinstance(result.info_json_error, FileNotFoundError)
        assert result.title() == ""
    finally:
        req.clean()


def test_nonzero_exit_raises_run_error():
    req = DownloadRequest(url=URL)
    failed = subprocess.CompletedProcess([], 2, stdout="out", stderr="ERROR: unsupported")
    with mock.patch("subprocess.run", return_value=failed):
        with pytest.raises(RunError) as info:
            req.run_with_timeout(30)
    req.clean()
    assert info.value.exit_code == 2
    assert info.value.stderr == "ERROR: unsupported"
    assert "stderr=ERROR: unsupported" in str(info.value)


def test_timeout_raises_run_error():
    req = DownloadRequest(url=URL)
    expired = subprocess.TimeoutExpired(["yt-dlp"], 5, output=b"partial", stderr=None)
    with mock.patch("subprocess.run", side_effect=expired):
        with pytest.raises(RunError) as info:
            req.run_with_timeout(5)
    req.clean()
    assert info.value.exit_code == -1
    assert info.value.stdout == "partial"


def test_accessors_empty_without_info_json():
    result = DownloadResult(
        request=DownloadRequest(url=URL), file_path="v.mp4", info_json={"title": "Clip"}
    )
    assert result.title() == ""
    assert result.uploader() == ""
    assert result.thumbnail() == ""


def test_accessors_ignore_non_string_values():
    result = DownloadResult(
        request=DownloadRequest(url=URL, write_info_json=True),
        info_json={"title": 5, "uploader": None},
    )
    assert result.title() == ""
    assert result.uploader() == ""


def test_extract_first_frame_runs_ffmpeg():
    done = subprocess.CompletedProcess([], 0, stdout="", stderr="")
    with mock.patch("subprocess.run", return_value=done) as run:
        out = extract_first_frame("/media/thumb.webp")
    assert out == "/media/thumb.webp.jpg"
    assert run.call_args.args[0] == [
        "ffmpeg", "-i", "/media/thumb.webp", "-vframes", "1", "-q:v", "2", out,
    ]


def test_extract_first_frame_failure():
    failed = subprocess.CompletedProcess([], 1, stdout="", stderr="no such file")
    with mock.patch("subprocess.run", return_value=failed):
        with pytest.raises(RunError) as info:
            extract_first_frame("/media/missing.webp")
    assert info.value.exit_code == 1


def test_thumbnail_extracts_frame():
    result = DownloadResult(
        request=DownloadRequest(url=URL, write_info_json=True),
        info_json={"thumbnail": "/media/t.webp"},
    )
    done = subprocess.CompletedProcess([], 0, stdout="", stderr="")
    with mock.patch("subprocess.run", return_value=done):
        assert result.thumbnail() == "/media/t.webp.jpg"