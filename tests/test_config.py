import json
from pathlib import Path

from sketchreel.config import Config


def test_defaults(monkeypatch, tmp_path):
    monkeypatch.delenv("ELEVENLABS_API_KEY", raising=False)
    monkeypatch.delenv("SKETCHREEL_TTS_ENGINE", raising=False)
    cfg = Config.load(tmp_path / "missing.json")
    assert cfg.fps == 30
    assert cfg.tts_engine == "auto"
    assert cfg.elevenlabs_api_key == ""
    assert cfg.render_command == ["npx", "remotion"]


def test_file_values(monkeypatch, tmp_path):
    monkeypatch.delenv("ELEVENLABS_API_KEY", raising=False)
    monkeypatch.delenv("SKETCHREEL_TTS_ENGINE", raising=False)
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "elevenlabs_api_key": "from-file",
        "tts_engine": "Edge",
        "fps": 24,
        "profile": "whiteboard",
        "project_dir": "/srv/remotion",
        "render_command": "bunx remotion",
        "tts_voices": {"host": "abc"},
        "stage_timeout": 90,
    }))
    cfg = Config.load(path)
    assert cfg.elevenlabs_api_key == "from-file"
    assert cfg.tts_engine == "edge"
    assert cfg.fps == 24
    assert cfg.profile == "whiteboard"
    assert cfg.project_dir == Path("/srv/remotion")
    assert cfg.render_command == ["bunx", "remotion"]
    assert cfg.tts_voices == {"host": "abc"}
    assert cfg.stage_timeout == 90


def test_env_beats_file(monkeypatch, tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"elevenlabs_api_key": "from-file", "tts_engine": "edge"}))
    monkeypatch.setenv("ELEVENLABS_API_KEY", "from-env")
    monkeypatch.setenv("SKETCHREEL_TTS_ENGINE", "sag")
    cfg = Config.load(path)
    assert cfg.elevenlabs_api_key == "from-env"
    assert cfg.tts_engine == "sag"


def test_unreadable_file_is_ignored(monkeypatch, tmp_path):
    monkeypatch.delenv("ELEVENLABS_API_KEY", raising=False)
    path = tmp_path / "config.json"
    path.write_text("{broken")
    assert Config.load(path).fps == 30


def test_save_and_reload(monkeypatch, tmp_path):
    monkeypatch.delenv("ELEVENLABS_API_KEY", raising=False)
    monkeypatch.delenv("SKETCHREEL_TTS_ENGINE", raising=False)
    path = tmp_path / "nested" / "config.json"
    cfg = Config(fps=25, tts_voices={"a": "b"}, project_dir=Path("proj"), elevenlabs_api_key="key")
    cfg.save(path)
    again = Config.load(path)
    assert again.fps == 25
    assert again.tts_voices == {"a": "b"}
    assert again.project_dir == Path("proj")
    assert again.elevenlabs_api_key == "key"
