import base64
import subprocess
from pathlib import Path

import pytest

from triage.errors import EncodingError
from triage.services import video
from triage.services.video import assemble_video, decode_frame

JPEG = b"\xff\xd8\xff\xe0fake-jpeg\xff\xd9"
FRAME = base64.b64encode(JPEG).decode()


def test_decode_frame_accepts_data_url():
    assert decode_frame(f"data:image/jpeg;base64,{FRAME}") == JPEG
    assert decode_frame(FRAME) == JPEG


def test_decode_frame_rejects_garbage():
    with pytest.raises(EncodingError):
        decode_frame("not base64!!")


def test_empty_buffer_is_an_encoding_error():
    with pytest.raises(EncodingError):
        assemble_video([])


def _fake_ffmpeg(monkeypatch, returncode=0, produce=True):
    calls = {}

    def fake_run(cmd, check, capture_output, timeout):
        out = Path(cmd[-1])
        calls["cmd"] = cmd
        calls["workdir"] = out.parent
        calls["frames"] = sorted(p.name for p in out.parent.glob("frame_*.jpg"))
        if returncode:
            raise subprocess.CalledProcessError(returncode, cmd, stderr=b"Invalid data found")
        if produce:
            out.write_bytes(b"MP4DATA")
        return subprocess.CompletedProcess(cmd, 0)

    monkeypatch.setattr(video.subprocess, "run", fake_run)
    return calls


def test_frames_are_muxed_and_workdir_removed(monkeypatch):
    calls = _fake_ffmpeg(monkeypatch)
    data = assemble_video([FRAME, FRAME, FRAME], fps=5, ffmpeg="/opt/ffmpeg")

    assert data == b"MP4DATA"
    assert calls["frames"] == ["frame_00000.jpg", "frame_00001.jpg", "frame_00002.jpg"]
    cmd = calls["cmd"]
    assert cmd[0] == "/opt/ffmpeg"
    assert cmd[cmd.index("-framerate") + 1] == "5"
    assert not calls["workdir"].exists()


def test_encoder_failure_raises_and_cleans_up(monkeypatch):
    calls = _fake_ffmpeg(monkeypatch, returncode=1)
    with pytest.raises(EncodingError) as exc:
        assemble_video([FRAME])
    assert "Invalid data found" in str(exc.value)
    assert not calls["workdir"].exists()


def test_missing_output_is_an_encoding_error(monkeypatch):
    calls = _fake_ffmpeg(monkeypatch, produce=False)
    with pytest.raises(EncodingError):
        assemble_video([FRAME])
    assert not calls["workdir"].exists()


def test_missing_encoder_binary():
    with pytest.raises(EncodingError, match="ffmpeg not found"):
        assemble_video([FRAME], ffmpeg="/nonexistent/ffmpeg-binary")


def test_bad_frame_cleans_up(monkeypatch):
    created = []
    real_tempdir = video.tempfile.TemporaryDirectory

    def tracking_tempdir(*args, **kwargs):
        tmp = real_tempdir(*args, **kwargs)
        created.append(Path(tmp.name))
        return tmp

    monkeypatch.setattr(video.tempfile, "TemporaryDirectory", tracking_tempdir)
    with pytest.raises(EncodingError):
        assemble_video([FRAME, "%%%"])
    assert created and not created[0].exists()
