"""Renderer hand-off: composition manifest plus one render stage per scene.

The renderer is an external Remotion project. For each unit we write, into
the unit's own work directory:

    script.json          the validated script, defaults filled in
    compositions.json    one composition entry per scene
    <scene>.props.json   the props for that scene's composition

Each props file carries the scene's ``defaultProps`` together with the
composition metadata (``component``, ``durationInFrames``, ``fps``,
``width``, ``height``) so the project's root can size the composition from
its input props. The frame range and output size are also passed as flags:

    <render_command> render <entry> <scene id> <out> --props=<props file>
        --frames=0-<N-1> --width=<w> --height=<h>

run from inside the project directory.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from .config import Config
from .errors import ConfigurationError
from .script import Script
from .stages import CommandStage
from .timeline import AnimationProfile, compile_script
from .utils import save_json

log = logging.getLogger(__name__)

COMPOSITION_KEYS = ("component", "durationInFrames", "fps", "width", "height")


@dataclass(frozen=True)
class RenderJob:
    """One scene's composition entry and the props file written for it."""
    composition: dict
    props_file: Path

    @property
    def id(self) -> str:
        return self.composition["id"]

    @property
    def frames(self) -> int:
        return self.composition["durationInFrames"]


def build_compositions(script: Script, config: Config, profile: AnimationProfile | str | None = None) -> list[dict]:
    schedules = compile_script(script, config.fps, profile or config.profile)
    return [s.to_composition(config.width, config.height) for s in schedules]


def input_props(composition: dict) -> dict:
    """Props passed to the renderer: ``defaultProps`` plus the composition metadata."""
    props = dict(composition["defaultProps"])
    props.update({key: composition[key] for key in COMPOSITION_KEYS})
    return props


def write_manifest(
    script: Script,
    manifest_dir: Path,
    config: Config,
    profile: AnimationProfile | str | None = None,
) -> dict[str, RenderJob]:
    """Write script, compositions and per-scene props; return ``{scene id: job}``."""
    manifest_dir = Path(manifest_dir)
    compositions = build_compositions(script, config, profile)

    save_json(manifest_dir / "script.json", script.to_dict())
    save_json(manifest_dir / "compositions.json", compositions)

    jobs: dict[str, RenderJob] = {}
    for comp in compositions:
        props = manifest_dir / f"{comp['id']}.props.json"
        save_json(props, input_props(comp))
        jobs[comp["id"]] = RenderJob(comp, props.resolve())
    log.debug("Manifest for %s: %d compositions in %s", script.id, len(compositions), manifest_dir)
    return jobs


def render_command(config: Config, job: RenderJob, output: Path) -> list[str]:
    if not config.render_command:
        raise ConfigurationError("render_command is empty; set it in ~/.sketchreel/config.json")
    comp = job.composition
    return [
        *config.render_command,
        "render",
        config.render_entry,
        job.id,
        str(Path(output).resolve()),
        f"--props={Path(job.props_file).resolve()}",
        f"--frames=0-{job.frames - 1}",
        f"--width={comp['width']}",
        f"--height={comp['height']}",
    ]


def render_stage(job: RenderJob, config: Config) -> CommandStage:
    """Stage that renders one composition of the configured Remotion project."""

    def _argv(out: Path) -> list[str]:
        if config.project_dir is None:
            raise ConfigurationError(
                "no renderer project configured: pass --project or set project_dir in ~/.sketchreel/config.json"
            )
        if not Path(config.project_dir).is_dir():
            raise ConfigurationError(f"renderer project not found: {config.project_dir}")
        return render_command(config, job, out)

    return CommandStage(
        name="render",
        argv=_argv,
        inputs=[Path(job.props_file)],
        cwd=Path(config.project_dir) if config.project_dir else None,
    )
