import json
import subprocess

import pytest

from sketchreel.utils import atomic_write_text, probe_media, save_json, temp_path_for
from sketchreel.utils import ffprobe as ffprobe_mod


def test_temp_path_keeps_suffix_and_is_hidden(tmp_path):
    tmp = temp_path_for(tmp_path / "final.mp4", "unit 1/render")
    assert tmp.parent == tmp_path
    assert tmp.name.startswith(".final.")
    assert tmp.suffix == ".mp4"
    assert "/" not in tmp.name and " " not in tmp.name
    assert temp_path_for(tmp_path / "final.mp4", "unit-2") != tmp


def test_atomic_write_leaves_no_temp(tmp_path):
    path = tmp_path / "deep" / "file.txt"
    atomic_write_text(path, "hello")
    atomic_write_text(path, "again")
    assert path.read_text() == "again"
    assert [p.name for p in path.parent.iterdir()] == ["file.txt"]


def test_save_json(tmp_path):
    path = save_json(tmp_path / "a.json", {"b": [1, 2]})
    assert json.loads(path.read_text()) == {"b": [1, 2]}
    assert path.read_text().endswith("\n")


def test_probe_media(monkeypatch, tmp_path):
    payload = {
        "streams": [
            {"codec_type": "video", "width": 1920, "height": 1080},
            {"codec_type": "audio"},
        ],
        "format": {"duration": "5.005"},
    }

    def fake_run(cmd, **kwargs):
        assert cmd[0] == "ffprobe"
        return subprocess.CompletedProcess(cmd, 0, stdout=json.dumps(payload), stderr="")

    monkeypatch.setattr(ffprobe_mod.subprocess, "run", fake_run)
    info = probe_media(tmp_path / "a.mp4")
    assert info.duration_sec == pytest.approx(5.005)
    assert info.has_video and info.has_audio
    assert (info.width, info.height) == (1920, 1080)


def test_probe_media_failure(monkeypatch, tmp_path):
    def fake_run(cmd, **kwargs):
        raise subprocess.CalledProcessError(1, cmd)

    monkeypatch.setattr(ffprobe_mod.subprocess, "run", fake_run)
    with pytest.raises(RuntimeError, match="Failed to probe"):
        probe_media(tmp_path / "a.mp4")
