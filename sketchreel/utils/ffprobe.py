import json
import subprocess
from dataclasses import dataclass
from pathlib import Path


@dataclass
class MediaInfo:
    duration_sec: float
    has_video: bool
    has_audio: bool
    width: int = 0
    height: int = 0


def probe_media(path: Path, ffprobe: str = "ffprobe", timeout: float = 30) -> MediaInfo:
    """Uses ffprobe to read a media file's duration and stream layout."""
    cmd = [
        ffprobe,
        "-v", "error",
        "-show_entries", "format=duration:stream=codec_type,width,height",
        "-of", "json",
        str(path),
    ]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=True, timeout=timeout)
        data = json.loads(result.stdout)
    except (OSError, subprocess.SubprocessError, json.JSONDecodeError) as e:
        raise RuntimeError(f"Failed to probe {path}: {e}") from e

    streams = data.get("streams", [])
    video = next((s for s in streams if s.get("codec_type") == "video"), None)
    duration = data.get("format", {}).get("duration")
    if duration is None:
        raise RuntimeError(f"Failed to probe {path}: no duration reported")

    return MediaInfo(
        duration_sec=float(duration),
        has_video=video is not None,
        has_audio=any(s.get("codec_type") == "audio" for s in streams),
        width=int(video.get("width", 0)) if video else 0,
        height=int(video.get("height", 0)) if video else 0,
    )


def probe_duration(path: Path, ffprobe: str = "ffprobe") -> float:
    return probe_media(path, ffprobe).duration_sec
