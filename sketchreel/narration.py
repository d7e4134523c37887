"""Narration synthesis: text -> speech audio through a pluggable backend.

Backends:
  elevenlabs  ElevenLabs HTTP API (needs an API key)
  edge        Microsoft Edge neural voices via edge-tts (no credentials)
  sag         local ``sag`` command-line tool

The backend is picked from an explicit :class:`~sketchreel.config.Config`,
never from ambient state, so two units in one process can use different
engines.
"""
from __future__ import annotations

import asyncio
import logging
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

import aiohttp
import requests

from .config import DEFAULT_TTS_SPEED, DEFAULT_TTS_VOICE, TTS_SPEED_MAX, TTS_SPEED_MIN, Config
from .errors import BackendUnavailable, ConfigurationError, MissingCredentials, NarrationError, UpstreamError
from .stages import CallStage

log = logging.getLogger(__name__)

ENGINES = ("auto", "elevenlabs", "edge", "sag")

ELEVENLABS_URL = "https://api.elevenlabs.io/v1/text-to-speech/{voice_id}"
ELEVENLABS_MODEL = "eleven_multilingual_v2"
ELEVENLABS_DEFAULT_VOICE_ID = "21m00Tcm4TlvDq8ikWAM"
ELEVENLABS_VOICE_SETTINGS = {
    "stability": 0.5,
    "similarity_boost": 0.75,
    "style": 0.5,
    "use_speaker_boost": True,
}
# The API only accepts speeds in this band.
ELEVENLABS_SPEED_RANGE = (0.7, 1.2)

EDGE_DEFAULT_VOICE = "en-US-GuyNeural"
EDGE_VOICE_PRESETS = {
    "male1": "en-US-GuyNeural",
    "male2": "en-US-DavisNeural",
    "female1": "en-US-AriaNeural",
    "female2": "en-US-JennyNeural",
}

SAG_FALLBACK_PATH = Path.home() / ".local" / "bin" / "sag"


@dataclass(frozen=True)
class NarrationRequest:
    text: str
    voice: str = DEFAULT_TTS_VOICE
    speed: float = DEFAULT_TTS_SPEED

    def __post_init__(self) -> None:
        if not self.text.strip():
            raise ValueError("narration text is empty")
        if not TTS_SPEED_MIN <= self.speed <= TTS_SPEED_MAX:
            raise ValueError(f"speed must be between {TTS_SPEED_MIN} and {TTS_SPEED_MAX}, got {self.speed}")


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------

@dataclass
class ElevenLabsBackend:
    api_key: str
    voices: dict[str, str] = field(default_factory=dict)
    name: str = "elevenlabs"

    def voice_id(self, voice: str) -> str:
        if voice in self.voices:
            return self.voices[voice]
        if voice == DEFAULT_TTS_VOICE:
            return self.voices.get(DEFAULT_TTS_VOICE, ELEVENLABS_DEFAULT_VOICE_ID)
        return voice

    def synthesize(self, request: NarrationRequest, output: Path, timeout: float | None = None) -> None:
        lo, hi = ELEVENLABS_SPEED_RANGE
        speed = min(hi, max(lo, request.speed))
        if speed != request.speed:
            log.debug("ElevenLabs speed %.2f clamped to %.2f", request.speed, speed)

        try:
            resp = requests.post(
                ELEVENLABS_URL.format(voice_id=self.voice_id(request.voice)),
                headers={"xi-api-key": self.api_key, "Content-Type": "application/json"},
                json={
                    "text": request.text,
                    "model_id": ELEVENLABS_MODEL,
                    "voice_settings": {**ELEVENLABS_VOICE_SETTINGS, "speed": speed},
                },
                timeout=timeout,
            )
        except requests.RequestException as e:
            raise BackendUnavailable(f"cannot reach ElevenLabs: {e}") from e

        if not resp.ok:
            raise UpstreamError(resp.status_code, f"ElevenLabs API error: {resp.status_code} {resp.reason}")
        Path(output).write_bytes(resp.content)


@dataclass
class EdgeBackend:
    voices: dict[str, str] = field(default_factory=dict)
    name: str = "edge"

    def voice_name(self, voice: str) -> str:
        if voice in self.voices:
            return self.voices[voice]
        if voice in EDGE_VOICE_PRESETS:
            return EDGE_VOICE_PRESETS[voice]
        if voice == DEFAULT_TTS_VOICE:
            return EDGE_DEFAULT_VOICE
        return voice

    @staticmethod
    def rate(speed: float) -> str:
        """edge-tts expresses speed as a signed percentage, e.g. ``+10%``."""
        return f"{round((speed - 1) * 100):+d}%"

    async def _save_async(self, request: NarrationRequest, output: Path) -> None:
        import edge_tts
        communicate = edge_tts.Communicate(
            request.text,
            voice=self.voice_name(request.voice),
            rate=self.rate(request.speed),
        )
        await communicate.save(str(output))

    def synthesize(self, request: NarrationRequest, output: Path, timeout: float | None = None) -> None:
        from edge_tts.exceptions import EdgeTTSException

        async def _bounded() -> None:
            await asyncio.wait_for(self._save_async(request, output), timeout)

        try:
            asyncio.run(_bounded())
        except asyncio.TimeoutError as e:
            raise BackendUnavailable(f"edge-tts timed out after {timeout:g}s") from e
        except aiohttp.ClientResponseError as e:
            raise UpstreamError(e.status, f"edge-tts service error: {e.status} {e.message}") from e
        except (EdgeTTSException, aiohttp.ClientError, OSError) as e:
            raise BackendUnavailable(f"edge-tts failed: {e}") from e


@dataclass
class SagBackend:
    executable: str
    name: str = "sag"

    def synthesize(self, request: NarrationRequest, output: Path, timeout: float | None = None) -> None:
        cmd = [self.executable, request.text, "--output", str(output)]
        log.debug("CMD: %s", " ".join(cmd))
        result = subprocess.run(cmd, capture_output=True, timeout=timeout)
        if result.returncode != 0:
            stderr = result.stderr.decode(errors="replace")[-500:].strip()
            raise NarrationError(f"sag exited with code {result.returncode}: {stderr}")


def find_sag() -> str | None:
    found = shutil.which("sag")
    if found:
        return found
    if SAG_FALLBACK_PATH.is_file():
        return str(SAG_FALLBACK_PATH)
    return None


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

def detect_engine(config: Config) -> str:
    """Pick the best available engine when the configured one is ``auto``."""
    if config.tts_engine and config.tts_engine != "auto":
        return config.tts_engine
    if config.elevenlabs_api_key:
        return "elevenlabs"
    if find_sag():
        return "sag"
    return "edge"


def select_backend(config: Config, engine: str | None = None):
    """Resolve *engine* (or the configured one) to a ready backend.

    Raises:
        MissingCredentials:  ElevenLabs chosen without an API key.
        BackendUnavailable:  ``sag`` chosen but not installed.
        ConfigurationError:  unknown engine name.
    """
    name = (engine or config.tts_engine or "auto").lower()
    if name == "auto":
        name = detect_engine(config)

    if name == "elevenlabs":
        if not config.elevenlabs_api_key:
            raise MissingCredentials(
                "ElevenLabs needs an API key: set ELEVENLABS_API_KEY or "
                "elevenlabs_api_key in ~/.sketchreel/config.json"
            )
        return ElevenLabsBackend(config.elevenlabs_api_key, dict(config.tts_voices))
    if name == "edge":
        return EdgeBackend(dict(config.tts_voices))
    if name == "sag":
        path = find_sag()
        if path is None:
            raise BackendUnavailable(f"sag not found on PATH or at {SAG_FALLBACK_PATH}")
        return SagBackend(path)
    raise ConfigurationError(f"unknown TTS engine {name!r} (choose from {', '.join(ENGINES)})")


def synthesize(
    request: NarrationRequest,
    output: Path,
    config: Config,
    engine: str | None = None,
    timeout: float | None = None,
) -> None:
    """Synthesize *request* straight to *output*. Raises on failure."""
    backend = select_backend(config, engine)
    log.info("Narration via %s (voice=%s, speed=%.2f)", backend.name, request.voice, request.speed)
    backend.synthesize(request, Path(output), timeout)


def narration_stage(request: NarrationRequest, config: Config, engine: str | None = None) -> CallStage:
    """Stage that narrates *request*; backend errors surface as a failed StageResult."""
    return CallStage(
        name="narration",
        call=lambda output, timeout: synthesize(request, output, config, engine, timeout),
    )
