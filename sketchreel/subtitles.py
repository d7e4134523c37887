"""Subtitle compiler: narration -> time-coded caption cues -> SRT / VTT / ASS.

Scenes are laid end to end. Each scene gets a title cue; narration is packed
into short chunks whose timing is proportional to their word count, with all
arithmetic in whole milliseconds so cues never drift past their scene.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Callable

from .config import CAPTION_MAX_CHARS, DEFAULT_SUBTITLE_FORMAT, HEIGHT, TITLE_CUE_SECONDS, WIDTH
from .script import Scene, Script
from .utils import atomic_write_text

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaptionCue:
    start_ms: int
    end_ms: int
    text: str
    kind: str = "narration"  # "title" or "narration"
    scene_id: str | None = None

    @property
    def start_seconds(self) -> float:
        return self.start_ms / 1000

    @property
    def end_seconds(self) -> float:
        return self.end_ms / 1000


def _to_ms(seconds: Decimal | float) -> int:
    return int((Decimal(str(seconds)) * 1000).to_integral_value(rounding=ROUND_HALF_UP))


def chunk_words(words: list[str], max_chars: int = CAPTION_MAX_CHARS) -> list[list[str]]:
    """Greedily pack *words* into lines of at most *max_chars* characters.

    A word longer than *max_chars* gets a chunk of its own. The trailing
    chunk is always returned, however short.
    """
    chunks: list[list[str]] = []
    current: list[str] = []
    length = 0
    for word in words:
        grown = length + 1 + len(word) if current else len(word)
        if current and grown > max_chars:
            chunks.append(current)
            current, length = [word], len(word)
        else:
            current.append(word)
            length = grown
    if current:
        chunks.append(current)
    return chunks


def _narration_cues(chunks: list[list[str]], start: int, end: int, scene_id: str | None) -> list[CaptionCue]:
    total_words = sum(len(c) for c in chunks)
    span = end - start
    cues: list[CaptionCue] = []
    pending: list[str] = []
    cursor = start
    words_done = 0
    for chunk in chunks:
        words_done += len(chunk)
        # cumulative share keeps the last boundary exactly on the scene end
        boundary = min(start + span * words_done // total_words, end)
        pending.extend(chunk)
        if boundary <= cursor:
            # no room for this chunk on its own; its words ride along with the next one
            continue
        cues.append(CaptionCue(cursor, boundary, " ".join(pending), "narration", scene_id))
        pending = []
        cursor = boundary
    return cues


def _scene_cues(
    scene: Scene,
    start: int,
    end: int,
    max_chars: int,
    title_seconds: float,
    include_titles: bool,
) -> list[CaptionCue]:
    span = end - start
    if span <= 0:
        log.warning("Scene %s is shorter than 1 ms; no captions emitted", scene.id)
        return []

    chunks = chunk_words(scene.narration_text.split(), max_chars)
    title = scene.title or ""
    if not chunks:
        return [CaptionCue(start, end, title, "title", scene.id)] if include_titles else []

    cues: list[CaptionCue] = []
    narration_start = start
    if include_titles:
        slot = min(_to_ms(title_seconds), span // 4)
        if slot > 0:
            cues.append(CaptionCue(start, start + slot, title, "title", scene.id))
            narration_start = start + slot
    cues.extend(_narration_cues(chunks, narration_start, end, scene.id))
    return cues


def compile_cues(
    script: Script,
    max_chars: int = CAPTION_MAX_CHARS,
    title_seconds: float = TITLE_CUE_SECONDS,
    include_titles: bool = True,
) -> list[CaptionCue]:
    """Build the ordered caption track for a whole script."""
    cues: list[CaptionCue] = []
    elapsed = Decimal(0)
    start_ms = 0
    for scene in script.scenes:
        elapsed += Decimal(str(scene.duration_seconds))
        end_ms = _to_ms(elapsed)
        cues.extend(_scene_cues(scene, start_ms, end_ms, max_chars, title_seconds, include_titles))
        start_ms = end_ms
    log.debug("Compiled %d caption cues for %s", len(cues), script.id)
    return cues


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def format_timestamp(ms: int, sep: str = ",") -> str:
    """``HH:MM:SS,mmm`` (SRT) or, with ``sep="."``, the WebVTT form."""
    hours, rem = divmod(ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    seconds, millis = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}{sep}{millis:03d}"


def _ass_timestamp(ms: int) -> str:
    hours, rem = divmod(ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    seconds, millis = divmod(rem, 1000)
    return f"{hours:d}:{minutes:02d}:{seconds:02d}.{millis // 10:02d}"


def to_srt(cues: list[CaptionCue]) -> str:
    blocks = []
    for number, cue in enumerate(cues, 1):
        blocks.append(
            f"{number}\n"
            f"{format_timestamp(cue.start_ms)} --> {format_timestamp(cue.end_ms)}\n"
            f"{cue.text}\n"
        )
    return "\n".join(blocks)


def to_vtt(cues: list[CaptionCue]) -> str:
    blocks = ["WEBVTT\n"]
    for cue in cues:
        blocks.append(
            f"{format_timestamp(cue.start_ms, '.')} --> {format_timestamp(cue.end_ms, '.')}\n"
            f"{cue.text}\n"
        )
    return "\n".join(blocks)


def to_ass(cues: list[CaptionCue], width: int = WIDTH, height: int = HEIGHT) -> str:
    lines = [
        "[Script Info]",
        "ScriptType: v4.00+",
        f"PlayResX: {width}",
        f"PlayResY: {height}",
        "",
        "[V4+ Styles]",
        "Format: Name, Fontname, Fontsize, PrimaryColour, OutlineColour, BackColour, "
        "Bold, Outline, Shadow, Alignment, MarginV",
        "Style: Default,Arial,42,&H00FFFFFF,&H00000000,&H80000000,0,2,1,2,40",
        "Style: Title,Arial,56,&H00FFFFFF,&H00000000,&H80000000,1,2,1,8,40",
        "",
        "[Events]",
        "Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text",
    ]
    for cue in cues:
        style = "Title" if cue.kind == "title" else "Default"
        text = cue.text.replace("\n", "\\N")
        lines.append(
            f"Dialogue: 0,{_ass_timestamp(cue.start_ms)},{_ass_timestamp(cue.end_ms)},{style},,0,0,0,,{text}"
        )
    return "\n".join(lines) + "\n"


FORMATS: dict[str, Callable[[list[CaptionCue]], str]] = {
    "srt": to_srt,
    "vtt": to_vtt,
    "ass": to_ass,
}


def resolve_format(fmt: str | None) -> str:
    key = (fmt or "").lower().lstrip(".")
    if key in FORMATS:
        return key
    if key:
        log.warning("Unknown subtitle format %r, using %s", fmt, DEFAULT_SUBTITLE_FORMAT)
    return DEFAULT_SUBTITLE_FORMAT


def serialize(cues: list[CaptionCue], fmt: str | None = DEFAULT_SUBTITLE_FORMAT) -> str:
    return FORMATS[resolve_format(fmt)](cues)


def write_subtitles(script: Script, path: Path, fmt: str | None = None) -> list[CaptionCue]:
    """Compile and atomically write the subtitle file for *script*.

    When *fmt* is omitted the format follows the file extension.
    """
    path = Path(path)
    cues = compile_cues(script)
    atomic_write_text(path, serialize(cues, fmt or path.suffix))
    log.info("Wrote %d cues to %s", len(cues), path)
    return cues
