"""Command-line entry point: ``sketchreel <command> [options]``."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from .batch import SUMMARY_FILENAME, BatchSummary, BatchUnit, discover_units, format_report, run_all
from .config import (
    CONFIG_DIR,
    DEFAULT_TRANSITION,
    DEFAULT_VOLUME,
    TTS_SPEED_MAX,
    TTS_SPEED_MIN,
    VOLUME_MAX,
    Config,
)
from .errors import SketchreelError
from .media import concat_stage, mux_stage
from .narration import ENGINES, NarrationRequest, narration_stage
from .pipeline import Pipeline, UnitOptions
from .stages import StageResult, run_stage
from .subtitles import FORMATS, write_subtitles
from .timeline import PROFILES, compile_scene, compile_script
from .utils import save_json

log = logging.getLogger(__name__)


def _setup_logging(verbose: bool = False) -> None:
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        filename=str(CONFIG_DIR / "sketchreel.log"),
        level=logging.DEBUG,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if verbose:
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(logging.INFO)
        console.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        logging.getLogger().addHandler(console)


def _speed(value: str) -> float:
    speed = float(value)
    if not TTS_SPEED_MIN <= speed <= TTS_SPEED_MAX:
        raise argparse.ArgumentTypeError(f"speed must be between {TTS_SPEED_MIN} and {TTS_SPEED_MAX}")
    return speed


def _volume(value: str) -> float:
    volume = float(value)
    if not 0.0 <= volume <= VOLUME_MAX:
        raise argparse.ArgumentTypeError(f"volume must be between 0.0 and {VOLUME_MAX}")
    return volume


def _transition(value: str) -> float:
    seconds = float(value)
    if seconds < 0:
        raise argparse.ArgumentTypeError("transition must be >= 0")
    return seconds


def _missing(*paths: Path) -> bool:
    """Print an error for the first path that doesn't exist."""
    for path in paths:
        if not Path(path).exists():
            print(f"Error: file not found: {path}", file=sys.stderr)
            return True
    return False


def _progress(msg: str) -> None:
    print(msg)


def _report(results: list[StageResult]) -> int:
    summary = BatchSummary.from_results(results)
    print()
    print(format_report(summary))
    return 0 if summary.failed == 0 else 1


def _apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    if getattr(args, "project", None):
        config.project_dir = Path(args.project)
    if getattr(args, "profile", None):
        config.profile = args.profile
    if getattr(args, "fps", None):
        config.fps = args.fps
    if getattr(args, "engine", None):
        config.tts_engine = args.engine
    if getattr(args, "timeout", None):
        config.stage_timeout = args.timeout
    if getattr(args, "subtitle_format", None):
        config.subtitle_format = args.subtitle_format
    return config


def _unit_options(args: argparse.Namespace) -> UnitOptions:
    return UnitOptions(
        profile=args.profile,
        engine=args.engine,
        voice=args.voice,
        speed=args.speed,
        volume=args.volume,
        transition=args.transition,
        narrate=not args.no_narration,
        subtitles=not args.no_subtitles,
        keep_work=args.keep_work,
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_render(args: argparse.Namespace, config: Config) -> int:
    if _missing(args.script):
        return 2
    pipeline = Pipeline(config, _unit_options(args), progress_cb=_progress)
    result = pipeline.run(args.script, args.output, args.id)
    return _report([result])


def cmd_batch(args: argparse.Namespace, config: Config) -> int:
    if _missing(args.scripts):
        return 2
    if not Path(args.scripts).is_dir():
        print(f"Error: not a directory: {args.scripts}", file=sys.stderr)
        return 2
    output_dir = Path(args.output)
    units = discover_units(args.scripts, output_dir)
    if not units:
        print(f"No scripts found in {args.scripts}", file=sys.stderr)
        return 1

    options = _unit_options(args)

    def runner(unit: BatchUnit) -> StageResult:
        prefix = f"[{unit.unit_id}] "
        pipeline = Pipeline(config, options, progress_cb=lambda msg: print(prefix + msg))
        return pipeline.run(unit.script_path, unit.output_path, unit.unit_id)

    summary_path = Path(args.summary) if args.summary else output_dir / SUMMARY_FILENAME
    print(f"Found {len(units)} script(s); running with concurrency {args.concurrency}\n")
    try:
        results = run_all(units, runner, args.concurrency, summary_path, progress_cb=_progress)
    except KeyboardInterrupt:
        print(f"\nInterrupted. Partial summary written to {summary_path}", file=sys.stderr)
        return 130
    code = _report(results)
    print(f"Summary: {summary_path}")
    return code


def cmd_subtitles(args: argparse.Namespace, config: Config) -> int:
    from .script import load_script

    if _missing(args.script):
        return 2
    script = load_script(args.script)
    cues = write_subtitles(script, Path(args.output), args.format)
    print(f"✅ {len(cues)} captions -> {args.output}")
    return 0


def cmd_tts(args: argparse.Namespace, config: Config) -> int:
    request = NarrationRequest(args.text, args.voice or config.tts_voice, args.speed or config.tts_speed)
    result = run_stage(narration_stage(request, config, args.engine), "tts", Path(args.output), config.stage_timeout)
    if result.succeeded:
        print(f"✅ {args.output} ({result.size_bytes / 1024:.2f} KB)")
    return _report([result])


def cmd_merge_audio(args: argparse.Namespace, config: Config) -> int:
    if _missing(args.video, args.audio):
        return 2
    stage = mux_stage(Path(args.video), Path(args.audio), args.volume, config.ffmpeg)
    result = run_stage(stage, Path(args.output).stem, Path(args.output), config.stage_timeout)
    return _report([result])


def cmd_merge_videos(args: argparse.Namespace, config: Config) -> int:
    clips = [Path(c) for c in args.clips]
    if _missing(*clips):
        return 2
    stage = concat_stage(
        clips,
        transition=args.transition,
        with_audio=not args.no_audio,
        ffmpeg=config.ffmpeg,
        ffprobe=config.ffprobe,
        fps=config.fps,
    )
    result = run_stage(stage, Path(args.output).stem, Path(args.output), config.stage_timeout)
    return _report([result])


def cmd_timeline(args: argparse.Namespace, config: Config) -> int:
    from .script import load_script

    if _missing(args.script):
        return 2
    script = load_script(args.script)
    schedules = compile_script(script, config.fps, config.profile)
    compositions = [s.to_composition(config.width, config.height) for s in schedules]
    if args.output:
        save_json(Path(args.output), compositions)
        print(f"✅ {len(compositions)} compositions -> {args.output}")
    else:
        print(json.dumps(compositions, indent=2))
    for s in schedules:
        log.info("%s: %d frames", s.scene.id, s.total_frames)
    return 0


def cmd_preview(args: argparse.Namespace, config: Config) -> int:
    from .preview import render_preview
    from .script import load_script

    if _missing(args.script):
        return 2
    script = load_script(args.script)
    scene = next((s for s in script.scenes if s.id == args.scene), None) if args.scene else script.scenes[0]
    if scene is None:
        print(f"Error: no scene {args.scene!r} in {args.script}", file=sys.stderr)
        return 2
    schedule = compile_scene(scene, config.fps, config.profile)
    frame = schedule.total_frames - 1 if args.frame is None else args.frame
    render_preview(
        schedule, frame, Path(args.output),
        width=args.width, height=args.width * config.height // config.width,
        source_size=(config.width, config.height),
    )
    print(f"✅ {scene.id} frame {frame} -> {args.output}")
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sketchreel", description="Compile video scripts into narrated videos")
    parser.add_argument("--config", type=Path, default=None, help="Config file (default ~/.sketchreel/config.json)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Echo log messages to stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    timing = argparse.ArgumentParser(add_help=False)
    timing.add_argument("--profile", choices=sorted(PROFILES), default=None, help="Animation profile")
    timing.add_argument("--fps", type=int, default=None)

    unit = argparse.ArgumentParser(add_help=False)
    unit.add_argument("--project", default=None, help="Remotion project directory")
    unit.add_argument("--engine", choices=ENGINES, default=None, help="TTS engine")
    unit.add_argument("--voice", default=None, help="Voice name or backend voice id")
    unit.add_argument("--speed", type=_speed, default=None, help=f"Speech speed {TTS_SPEED_MIN}-{TTS_SPEED_MAX}")
    unit.add_argument("--volume", type=_volume, default=DEFAULT_VOLUME, help=f"Narration volume 0.0-{VOLUME_MAX}")
    unit.add_argument("--transition", type=_transition, default=DEFAULT_TRANSITION, help="Cross-fade seconds")
    unit.add_argument("--no-narration", action="store_true", help="Skip narration; scenes get silent tracks")
    unit.add_argument("--no-subtitles", action="store_true", help="Skip the subtitle sidecar")
    unit.add_argument("--subtitle-format", choices=sorted(FORMATS), default=None)
    unit.add_argument("--keep-work", action="store_true", help="Keep intermediate clips")
    unit.add_argument("--timeout", type=float, default=None, help="Per-stage timeout in seconds")

    p = sub.add_parser("render", parents=[timing, unit], help="Render one script to a video")
    p.add_argument("--script", required=True)
    p.add_argument("--output", required=True)
    p.add_argument("--id", default=None, help="Unit id (default: script file stem)")
    p.set_defaults(func=cmd_render)

    p = sub.add_parser("batch", parents=[timing, unit], help="Render every script in a directory")
    p.add_argument("--scripts", required=True, help="Directory of *.json scripts")
    p.add_argument("--output", required=True, help="Output directory")
    p.add_argument("--concurrency", type=int, default=1)
    p.add_argument("--summary", default=None, help=f"Summary path (default <output>/{SUMMARY_FILENAME})")
    p.set_defaults(func=cmd_batch)

    p = sub.add_parser("subtitles", help="Write a subtitle file for a script")
    p.add_argument("--script", required=True)
    p.add_argument("--output", required=True)
    p.add_argument("--format", default=None, help="srt, vtt or ass (default: from the output suffix)")
    p.set_defaults(func=cmd_subtitles)

    p = sub.add_parser("tts", help="Synthesize narration audio")
    p.add_argument("--text", required=True)
    p.add_argument("--output", required=True)
    p.add_argument("--engine", choices=ENGINES, default=None)
    p.add_argument("--voice", default=None)
    p.add_argument("--speed", type=_speed, default=None)
    p.add_argument("--timeout", type=float, default=None)
    p.set_defaults(func=cmd_tts)

    p = sub.add_parser("merge-audio", help="Mux an audio track into a video")
    p.add_argument("--video", required=True)
    p.add_argument("--audio", required=True)
    p.add_argument("--output", required=True)
    p.add_argument("--volume", type=_volume, default=DEFAULT_VOLUME)
    p.add_argument("--timeout", type=float, default=None)
    p.set_defaults(func=cmd_merge_audio)

    p = sub.add_parser("merge-videos", help="Concatenate clips")
    p.add_argument("clips", nargs="+")
    p.add_argument("--output", required=True)
    p.add_argument("--transition", type=_transition, default=DEFAULT_TRANSITION)
    p.add_argument("--no-audio", action="store_true", help="Clips carry no audio")
    p.add_argument("--fps", type=int, default=None)
    p.add_argument("--timeout", type=float, default=None)
    p.set_defaults(func=cmd_merge_videos)

    p = sub.add_parser("timeline", parents=[timing], help="Print or write the composition manifest")
    p.add_argument("--script", required=True)
    p.add_argument("--output", default=None)
    p.set_defaults(func=cmd_timeline)

    p = sub.add_parser("preview", parents=[timing], help="Draw one frame of a scene as an image")
    p.add_argument("--script", required=True)
    p.add_argument("--output", required=True)
    p.add_argument("--scene", default=None, help="Scene id (default: first scene)")
    p.add_argument("--frame", type=int, default=None, help="Frame index (default: last frame)")
    p.add_argument("--width", type=int, default=960)
    p.set_defaults(func=cmd_preview)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    config = _apply_overrides(Config.load(args.config), args)
    try:
        return args.func(args, config)
    except (SketchreelError, ValueError, OSError) as e:
        log.error("%s failed: %s", args.command, e)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
