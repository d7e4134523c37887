"""FFmpeg stages: narration muxing and clip concatenation."""
from __future__ import annotations

import logging
from pathlib import Path

from .config import DEFAULT_TRANSITION, DEFAULT_VOLUME, FPS, VOLUME_MAX
from .stages import CommandStage
from .utils import probe_duration

log = logging.getLogger(__name__)

VIDEO_CODEC = ["-c:v", "libx264", "-preset", "medium", "-crf", "23", "-pix_fmt", "yuv420p"]
AUDIO_CODEC = ["-c:a", "aac", "-b:a", "192k"]


def _check_volume(volume: float) -> None:
    if not 0.0 <= volume <= VOLUME_MAX:
        raise ValueError(f"volume must be between 0.0 and {VOLUME_MAX}, got {volume}")


def mux_command(
    video: Path,
    audio: Path | None,
    output: Path,
    volume: float = DEFAULT_VOLUME,
    ffmpeg: str = "ffmpeg",
) -> list[str]:
    """Lay *audio* under *video*, padded or cut to the video's length.

    With no audio a silent track is added instead, so every clip carries
    an audio stream and later concatenation stays uniform.
    """
    if audio is None:
        return [
            ffmpeg, "-y",
            "-i", str(video),
            "-f", "lavfi", "-i", "anullsrc=r=44100:cl=stereo",
            "-map", "0:v:0", "-map", "1:a:0",
            "-c:v", "copy",
            *AUDIO_CODEC,
            "-shortest",
            str(output),
        ]
    _check_volume(volume)
    return [
        ffmpeg, "-y",
        "-i", str(video),
        "-i", str(audio),
        "-filter_complex", f"[1:a]volume={volume:g},apad[a]",
        "-map", "0:v:0", "-map", "[a]",
        "-c:v", "copy",
        *AUDIO_CODEC,
        "-shortest",
        str(output),
    ]


def xfade_filter(durations: list[float], fade: float, with_audio: bool = True) -> str:
    """Chain ``xfade`` (and ``acrossfade``) across ``len(durations)`` inputs.

    Each offset is measured on the output of the previous fade: the first
    starts at ``dur[0] - fade`` and every later one ``dur[i] - fade`` after it.
    """
    parts = []
    prev_v, prev_a = "[0:v]", "[0:a]"
    running = durations[0]
    last = len(durations) - 1
    for i in range(1, len(durations)):
        offset = max(0.0, running - fade)
        v_out = "[v]" if i == last else f"[xf{i}]"
        fmt = ",format=yuv420p" if i == last else ""
        parts.append(f"{prev_v}[{i}:v]xfade=transition=fade:duration={fade:.3f}:offset={offset:.3f}{fmt}{v_out}")
        prev_v = v_out
        if with_audio:
            a_out = "[a]" if i == last else f"[af{i}]"
            parts.append(f"{prev_a}[{i}:a]acrossfade=d={fade:.3f}{a_out}")
            prev_a = a_out
        running = offset + durations[i]
    return ";".join(parts)


def concat_list(clips: list[Path]) -> str:
    """Concat-demuxer list file body; paths are absolute and quote-escaped."""
    lines = []
    for clip in clips:
        escaped = str(Path(clip).resolve()).replace("'", r"'\''")
        lines.append(f"file '{escaped}'")
    return "\n".join(lines) + "\n"


def concat_command(
    clips: list[Path],
    output: Path,
    list_file: Path,
    transition: float = DEFAULT_TRANSITION,
    durations: list[float] | None = None,
    with_audio: bool = True,
    ffmpeg: str = "ffmpeg",
    fps: int = FPS,
) -> list[str]:
    """Join *clips* into *output*.

    With no transition (or a single clip) the concat demuxer reads
    *list_file*; otherwise clips are cross-faded using *durations*.
    """
    if not clips:
        raise ValueError("nothing to concatenate")
    audio_args = AUDIO_CODEC if with_audio else ["-an"]

    if transition <= 0 or len(clips) < 2:
        return [
            ffmpeg, "-y",
            "-f", "concat", "-safe", "0",
            "-i", str(list_file),
            *VIDEO_CODEC,
            "-r", str(fps),
            *audio_args,
            str(output),
        ]

    if durations is None or len(durations) != len(clips):
        raise ValueError("cross-fading needs one duration per clip")
    # a fade can't be longer than half the shortest clip
    fade = min(transition, min(durations) / 2)
    if fade < transition:
        log.warning("Transition %.2fs shortened to %.2fs to fit the shortest clip", transition, fade)

    inputs: list[str] = []
    for clip in clips:
        inputs.extend(["-i", str(clip)])
    maps = ["-map", "[v]"] + (["-map", "[a]"] if with_audio else [])
    return [
        ffmpeg, "-y",
        *inputs,
        "-filter_complex", xfade_filter(durations, fade, with_audio),
        *maps,
        *VIDEO_CODEC,
        "-r", str(fps),
        *audio_args,
        str(output),
    ]


# ---------------------------------------------------------------------------
# Stage factories
# ---------------------------------------------------------------------------

def mux_stage(
    video: Path,
    audio: Path | None,
    volume: float = DEFAULT_VOLUME,
    ffmpeg: str = "ffmpeg",
) -> CommandStage:
    if audio is not None:
        _check_volume(volume)
    inputs = [Path(video)] + ([Path(audio)] if audio is not None else [])
    return CommandStage(
        name="mux",
        argv=lambda out: mux_command(video, audio, out, volume, ffmpeg),
        inputs=inputs,
    )


def _list_file_for(tmp_output: Path) -> Path:
    # the temp output is already unique per unit, so its sibling list is too
    return tmp_output.with_name(tmp_output.stem + ".concat.txt")


def concat_stage(
    clips: list[Path],
    transition: float = DEFAULT_TRANSITION,
    durations: list[float] | None = None,
    with_audio: bool = True,
    ffmpeg: str = "ffmpeg",
    ffprobe: str = "ffprobe",
    fps: int = FPS,
) -> CommandStage:
    """Concatenation stage; clip durations are probed if cross-fading needs them."""
    clips = [Path(c) for c in clips]
    if not clips:
        raise ValueError("nothing to concatenate")
    if transition < 0:
        raise ValueError(f"transition must be >= 0, got {transition}")

    def _argv(out: Path) -> list[str]:
        lengths = durations
        if transition > 0 and len(clips) > 1 and lengths is None:
            lengths = [probe_duration(c, ffprobe) for c in clips]
        return concat_command(clips, out, _list_file_for(out), transition, lengths, with_audio, ffmpeg, fps)

    def _support(out: Path) -> dict[Path, str]:
        if transition > 0 and len(clips) > 1:
            return {}
        return {_list_file_for(out): concat_list(clips)}

    return CommandStage(name="concat", argv=_argv, inputs=clips, support_files=_support)
