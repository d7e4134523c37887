"""Settings, render constants and API key management."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

log = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".sketchreel"
CONFIG_FILE = CONFIG_DIR / "config.json"

# Video output
WIDTH = 1920
HEIGHT = 1080
FPS = 30

# Script defaults
DEFAULT_SCENE_DURATION = 5.0  # seconds

# Animation
SCENE_FADE_FRAMES = 30
ELEMENT_FADE_FRAMES = 20
MIN_ELEMENT_SCALE = 0.1  # floor applied before scale() so elements never collapse or mirror

# Captions
CAPTION_MAX_CHARS = 30
TITLE_CUE_SECONDS = 1.0
DEFAULT_SUBTITLE_FORMAT = "srt"

# Narration
DEFAULT_TTS_VOICE = "default"
DEFAULT_TTS_SPEED = 1.0
TTS_SPEED_MIN = 0.5
TTS_SPEED_MAX = 2.0

# Muxing / concatenation
DEFAULT_VOLUME = 1.0
VOLUME_MAX = 2.0
DEFAULT_TRANSITION = 0.0  # seconds

# Every external stage gets at most this long before it is declared failed.
STAGE_TIMEOUT = 600  # seconds


@dataclass
class Config:
    output_dir: Path = field(default_factory=lambda: Path("output"))
    fps: int = FPS
    width: int = WIDTH
    height: int = HEIGHT
    profile: str = "video"            # animation profile: "video" or "whiteboard"
    tts_engine: str = "auto"          # auto, elevenlabs, edge, sag
    tts_voice: str = DEFAULT_TTS_VOICE
    tts_speed: float = DEFAULT_TTS_SPEED
    tts_voices: dict[str, str] = field(default_factory=dict)  # friendly name -> backend voice id
    elevenlabs_api_key: str = ""
    render_command: list[str] = field(default_factory=lambda: ["npx", "remotion"])
    render_entry: str = "src/index.ts"
    project_dir: Path | None = None   # Remotion project; required for rendering
    ffmpeg: str = "ffmpeg"
    ffprobe: str = "ffprobe"
    stage_timeout: float = STAGE_TIMEOUT
    subtitle_format: str = DEFAULT_SUBTITLE_FORMAT

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load config from env vars then config file."""
        cfg = cls()
        config_file = path or CONFIG_FILE

        # Env var takes priority
        api_key = os.environ.get("ELEVENLABS_API_KEY", "")
        engine = os.environ.get("SKETCHREEL_TTS_ENGINE", "")

        if config_file.exists():
            try:
                data = json.loads(config_file.read_text(encoding="utf-8-sig"))
            except (json.JSONDecodeError, OSError) as e:
                log.warning("Ignoring unreadable config %s: %s", config_file, e)
                data = {}
            if not api_key:
                api_key = data.get("elevenlabs_api_key", "")
            if not engine:
                engine = data.get("tts_engine", "")
            if out := data.get("output_dir"):
                cfg.output_dir = Path(out)
            if proj := data.get("project_dir"):
                cfg.project_dir = Path(proj)
            for key in ("fps", "width", "height"):
                if data.get(key):
                    setattr(cfg, key, int(data[key]))
            for key in ("profile", "tts_voice", "render_entry", "ffmpeg", "ffprobe", "subtitle_format"):
                if val := data.get(key):
                    setattr(cfg, key, str(val))
            if data.get("tts_speed") is not None:
                cfg.tts_speed = float(data["tts_speed"])
            if data.get("stage_timeout") is not None:
                cfg.stage_timeout = float(data["stage_timeout"])
            if voices := data.get("tts_voices"):
                cfg.tts_voices = dict(voices)
            if cmd := data.get("render_command"):
                cfg.render_command = list(cmd) if isinstance(cmd, list) else str(cmd).split()

        cfg.elevenlabs_api_key = api_key
        if engine:
            cfg.tts_engine = engine.lower()
        return cfg

    def save(self, path: Path | None = None) -> None:
        config_file = path or CONFIG_FILE
        config_file.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "output_dir": str(self.output_dir),
            "fps": self.fps,
            "width": self.width,
            "height": self.height,
            "profile": self.profile,
            "tts_engine": self.tts_engine,
            "tts_voice": self.tts_voice,
            "tts_speed": self.tts_speed,
            "render_command": self.render_command,
            "render_entry": self.render_entry,
            "ffmpeg": self.ffmpeg,
            "ffprobe": self.ffprobe,
            "stage_timeout": self.stage_timeout,
            "subtitle_format": self.subtitle_format,
        }
        if self.elevenlabs_api_key:
            data["elevenlabs_api_key"] = self.elevenlabs_api_key
        if self.tts_voices:
            data["tts_voices"] = self.tts_voices
        if self.project_dir:
            data["project_dir"] = str(self.project_dir)
        config_file.write_text(json.dumps(data, indent=2))
