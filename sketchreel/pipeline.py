"""Per-unit pipeline: one script in, one finished video out."""
from __future__ import annotations

import logging
import re
import shutil
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .config import DEFAULT_TRANSITION, DEFAULT_VOLUME, Config
from .errors import SketchreelError, StageFailure, ValidationError
from .media import concat_stage, mux_stage
from .narration import NarrationRequest, narration_stage
from .render import render_stage, write_manifest
from .script import Script, load_script
from .stages import Stage, StageResult, run_stage
from .subtitles import resolve_format, write_subtitles
from .timeline import frame_count

log = logging.getLogger(__name__)


class PipelineCancelled(Exception):
    pass


@dataclass
class UnitOptions:
    """Per-run knobs that sit on top of :class:`Config`."""
    profile: str | None = None        # None -> config.profile
    engine: str | None = None         # None -> config.tts_engine
    voice: str | None = None          # None -> config.tts_voice
    speed: float | None = None        # None -> config.tts_speed
    volume: float = DEFAULT_VOLUME
    transition: float = DEFAULT_TRANSITION
    narrate: bool = True
    subtitles: bool = True
    keep_work: bool = False


def work_dir_for(output_path: Path, unit_id: str) -> Path:
    """Scratch directory for one unit, next to its output and unique to it."""
    safe = re.sub(r"[^A-Za-z0-9_.-]+", "_", unit_id)
    return Path(output_path).parent / f".{safe}.work"


class Pipeline:
    """Validate, render, narrate, mux and concatenate one script, with cancellation support."""

    def __init__(
        self,
        config: Config,
        options: UnitOptions | None = None,
        progress_cb: Callable[[str], None] | None = None,
    ):
        self.config = config
        self.options = options or UnitOptions()
        self.progress_cb = progress_cb or (lambda msg: None)
        self.stage_results: list[StageResult] = []
        self._cancelled = threading.Event()
        self._unit_id = ""

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def _check_cancel(self) -> None:
        if self._cancelled.is_set():
            raise PipelineCancelled("Pipeline cancelled by user.")

    def _run(self, stage: Stage, output: Path, label: str) -> StageResult:
        self._check_cancel()
        result = run_stage(stage, self._unit_id, output, self.config.stage_timeout)
        self.stage_results.append(result)
        if not result.succeeded:
            raise StageFailure(self._unit_id, f"{label}: {result.error}")
        return result

    # -- steps ---------------------------------------------------------------

    def step_load(self, script_path: Path) -> Script:
        self.progress_cb(f"📝 Loading {script_path}...")
        script = load_script(script_path)
        fps = self.config.fps
        for scene in script.scenes:
            frames = frame_count(scene.duration_seconds, fps)
            if frames < 1:
                raise ValidationError(
                    f"scene {scene.id!r} is {frames} frames long at {fps} fps "
                    f"({scene.duration_seconds:g}s); every scene needs at least one frame"
                )
        self.progress_cb(f"  {len(script.scenes)} scenes, {script.total_duration:.1f}s total")
        return script

    def step_subtitles(self, script: Script, output_path: Path) -> Path | None:
        if not self.options.subtitles:
            return None
        fmt = resolve_format(self.config.subtitle_format)
        path = Path(output_path).with_suffix(f".{fmt}")
        self._check_cancel()
        try:
            cues = write_subtitles(script, path, fmt)
        except OSError as e:
            raise StageFailure(self._unit_id, f"subtitles: cannot write {path}: {e}") from e
        self.progress_cb(f"💬 {len(cues)} captions -> {path.name}")
        return path

    def step_render(self, script: Script, work: Path) -> list[Path]:
        self.progress_cb(f"🎬 Rendering {len(script.scenes)} scenes...")
        jobs = write_manifest(script, work / "manifest", self.config, self.options.profile)
        clips = []
        for i, scene in enumerate(script.scenes, 1):
            clip = work / f"scene_{i:03d}.mp4"
            self._run(render_stage(jobs[scene.id], self.config), clip, f"render scene {scene.id}")
            self.progress_cb(f"  ✓ Scene {scene.id}")
            clips.append(clip)
        return clips

    def step_narrate(self, script: Script, work: Path) -> list[Path | None]:
        if not self.options.narrate:
            self.progress_cb("🎙️ Narration disabled; scenes get silent tracks")
            return [None] * len(script.scenes)

        self.progress_cb("🎙️ Generating narration...")
        voice = self.options.voice or self.config.tts_voice
        speed = self.options.speed if self.options.speed is not None else self.config.tts_speed
        tracks: list[Path | None] = []
        for i, scene in enumerate(script.scenes, 1):
            if not scene.narration_text:
                tracks.append(None)
                continue
            audio = work / f"scene_{i:03d}.mp3"
            request = NarrationRequest(scene.narration_text, voice, speed)
            stage = narration_stage(request, self.config, self.options.engine)
            self._run(stage, audio, f"narrate scene {scene.id}")
            self.progress_cb(f"  ✓ Scene {scene.id}")
            tracks.append(audio)
        return tracks

    def step_mux(self, clips: list[Path], tracks: list[Path | None], work: Path) -> list[Path]:
        self.progress_cb("🔊 Muxing audio...")
        muxed = []
        for i, (clip, audio) in enumerate(zip(clips, tracks), 1):
            out = work / f"scene_{i:03d}.av.mp4"
            self._run(mux_stage(clip, audio, self.options.volume, self.config.ffmpeg), out, f"mux scene {i}")
            muxed.append(out)
        return muxed

    def step_concat(self, script: Script, clips: list[Path], output_path: Path) -> StageResult:
        self.progress_cb(f"🎞️ Joining {len(clips)} clips...")
        fps = self.config.fps
        durations = [frame_count(s.duration_seconds, fps) / fps for s in script.scenes]
        stage = concat_stage(
            clips,
            transition=self.options.transition,
            durations=durations,
            ffmpeg=self.config.ffmpeg,
            ffprobe=self.config.ffprobe,
            fps=fps,
        )
        return self._run(stage, output_path, "concat")

    # -- driver --------------------------------------------------------------

    def run(self, script_path: Path, output_path: Path, unit_id: str | None = None) -> StageResult:
        """Run every step for one unit. Never raises for unit-level failures.

        The first failing step ends the unit; its error names the step and
        scene.
        """
        script_path, output_path = Path(script_path), Path(output_path)
        self._unit_id = unit_id or script_path.stem
        self.stage_results = []
        work = work_dir_for(output_path, self._unit_id)

        def _failed(error: str) -> StageResult:
            log.warning("[%s] unit failed: %s", self._unit_id, error)
            self.progress_cb(f"  ✗ {error}")
            return StageResult(
                unit_id=self._unit_id, succeeded=False, stage="pipeline",
                output_path=str(output_path), error=error,
            )

        try:
            script = self.step_load(script_path)
            self.step_subtitles(script, output_path)
            clips = self.step_render(script, work)
            tracks = self.step_narrate(script, work)
            muxed = self.step_mux(clips, tracks, work)
            result = self.step_concat(script, muxed, output_path)
        except ValidationError as e:
            return _failed(f"validate: {e}")
        except StageFailure as e:
            return _failed(e.cause)
        except PipelineCancelled as e:
            return _failed(str(e))
        except (SketchreelError, ValueError, OSError) as e:
            return _failed(f"{type(e).__name__}: {e}")
        finally:
            if not self.options.keep_work:
                shutil.rmtree(work, ignore_errors=True)

        size_mb = result.size_bytes / (1024 * 1024)
        self.progress_cb(f"✅ {output_path} ({size_mb:.2f} MB)")
        return result
