"""Timeline compiler: frame counts, opacity ramps and spring-driven scale.

Everything here is a pure function of ``(scene, fps, profile, frame)``.
Compiling the same scene twice and asking for the same frame always returns
the same :class:`FrameState`; the renderer and the preview stills rely on it.
"""
from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, replace
from decimal import Decimal
from typing import Iterator

from .config import ELEMENT_FADE_FRAMES, FPS, HEIGHT, MIN_ELEMENT_SCALE, SCENE_FADE_FRAMES, WIDTH
from .errors import CompilationError
from .script import Scene, Script

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpringConfig:
    damping: float = 10.0
    mass: float = 1.0
    stiffness: float = 100.0

    def __post_init__(self) -> None:
        if self.damping < 10:
            raise ValueError(f"spring damping must be >= 10, got {self.damping}")
        if self.stiffness < 100:
            raise ValueError(f"spring stiffness must be >= 100, got {self.stiffness}")
        if self.mass <= 0:
            raise ValueError(f"spring mass must be positive, got {self.mass}")


@dataclass(frozen=True)
class AnimationProfile:
    """Per-style animation constants.

    Attributes:
        stagger_frames:      Delay between consecutive elements' entrances.
        scene_fade_frames:   Length of the scene-level fade-in.
        element_fade_frames: Length of each element's own fade-in.
        element_spring:      Spring driving each element's scale.
        container_spring:    Optional spring scaling the whole element layer.
        component:           Renderer component that draws the scene.
    """
    name: str
    stagger_frames: int
    scene_fade_frames: int = SCENE_FADE_FRAMES
    element_fade_frames: int = ELEMENT_FADE_FRAMES
    element_spring: SpringConfig = SpringConfig(damping=15)
    container_spring: SpringConfig | None = None
    component: str = "WhiteboardScene"


PROFILES: dict[str, AnimationProfile] = {
    "video": AnimationProfile(
        name="video",
        stagger_frames=5,
        element_spring=SpringConfig(damping=15, stiffness=100),
        container_spring=SpringConfig(damping=10, stiffness=100),
        component="VideoScene",
    ),
    "whiteboard": AnimationProfile(
        name="whiteboard",
        stagger_frames=10,
        element_spring=SpringConfig(damping=15, stiffness=200),
        component="WhiteboardScene",
    ),
}


def get_profile(name: str, stagger_frames: int | None = None) -> AnimationProfile:
    try:
        profile = PROFILES[name.lower()]
    except KeyError:
        raise ValueError(f"unknown animation profile {name!r} (choose from {', '.join(PROFILES)})")
    if stagger_frames is not None:
        if stagger_frames < 0:
            raise ValueError("stagger_frames must be >= 0")
        profile = replace(profile, stagger_frames=stagger_frames)
    return profile


# ---------------------------------------------------------------------------
# Curves
# ---------------------------------------------------------------------------

def frame_count(duration_seconds: float, fps: float) -> int:
    """Frames needed for *duration_seconds* at *fps*, truncated toward zero.

    Done in decimal so values like 2.3 s @ 30 fps give 69, not 68.
    """
    if duration_seconds <= 0 or fps <= 0:
        raise CompilationError(f"duration and fps must be positive (got {duration_seconds}, {fps})")
    return int(Decimal(str(duration_seconds)) * Decimal(str(fps)))


def ramp(frame: float, start: float, length: float) -> float:
    """Linear 0 -> 1 over ``[start, start + length]``, clamped on both sides."""
    if frame <= start:
        return 0.0
    if length <= 0 or frame >= start + length:
        return 1.0
    return (frame - start) / length


def spring(frame: float, fps: float, config: SpringConfig) -> float:
    """Position of a spring released at rest from 0 toward 1, *frame* frames in.

    Frames at or before 0 report the initial value 0.
    """
    if frame <= 0:
        return 0.0
    t = frame / fps
    omega0 = math.sqrt(config.stiffness / config.mass)
    zeta = config.damping / (2 * math.sqrt(config.stiffness * config.mass))

    if zeta < 1:
        omega1 = omega0 * math.sqrt(1 - zeta ** 2)
        envelope = math.exp(-zeta * omega0 * t)
        displacement = envelope * (
            math.cos(omega1 * t) + (zeta * omega0 / omega1) * math.sin(omega1 * t)
        )
    elif zeta == 1:
        displacement = math.exp(-omega0 * t) * (1 + omega0 * t)
    else:
        root = omega0 * math.sqrt(zeta ** 2 - 1)
        r1 = -zeta * omega0 + root
        r2 = -zeta * omega0 - root
        displacement = (r1 * math.exp(r2 * t) - r2 * math.exp(r1 * t)) / (r1 - r2)
    return max(0.0, 1.0 - displacement)


# ---------------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AnimationState:
    opacity: float
    scale: float

    @property
    def transform_scale(self) -> float:
        """Scale to apply as a transform; never below the collapse floor."""
        return max(MIN_ELEMENT_SCALE, self.scale)


@dataclass(frozen=True)
class FrameState:
    frame: int
    opacity: float
    container_scale: float
    elements: tuple[AnimationState, ...]


@dataclass(frozen=True)
class FrameSchedule:
    scene: Scene
    fps: int
    profile: AnimationProfile
    total_frames: int

    def element_delay(self, index: int) -> int:
        return index * self.profile.stagger_frames

    def scene_opacity(self, frame: int) -> float:
        return ramp(frame, 0, self.profile.scene_fade_frames)

    def container_scale(self, frame: int) -> float:
        if self.profile.container_spring is None:
            return 1.0
        return max(MIN_ELEMENT_SCALE, spring(frame, self.fps, self.profile.container_spring))

    def element_state(self, index: int, frame: int) -> AnimationState:
        delay = self.element_delay(index)
        return AnimationState(
            opacity=ramp(frame, delay, self.profile.element_fade_frames),
            scale=spring(frame - delay, self.fps, self.profile.element_spring),
        )

    def state_at(self, frame: int) -> FrameState:
        if not 0 <= frame < self.total_frames:
            raise CompilationError(
                f"frame {frame} outside scene {self.scene.id!r} (0..{self.total_frames - 1})"
            )
        return FrameState(
            frame=frame,
            opacity=self.scene_opacity(frame),
            container_scale=self.container_scale(frame),
            elements=tuple(self.element_state(i, frame) for i in range(len(self.scene.elements))),
        )

    def frames(self) -> Iterator[FrameState]:
        for frame in range(self.total_frames):
            yield self.state_at(frame)

    def to_composition(self, width: int = WIDTH, height: int = HEIGHT) -> dict:
        """Composition entry handed to the renderer for this scene."""
        p = self.profile
        animation = {
            "profile": p.name,
            "staggerFrames": p.stagger_frames,
            "sceneFadeFrames": p.scene_fade_frames,
            "elementFadeFrames": p.element_fade_frames,
            "elementSpring": asdict(p.element_spring),
            "minScale": MIN_ELEMENT_SCALE,
        }
        if p.container_spring is not None:
            animation["containerSpring"] = asdict(p.container_spring)
        return {
            "id": self.scene.id,
            "component": p.component,
            "durationInFrames": self.total_frames,
            "fps": self.fps,
            "width": width,
            "height": height,
            "defaultProps": {
                "title": self.scene.title or "",
                "narration": self.scene.narration_text,
                "elements": [el.to_dict() for el in self.scene.elements],
                "animation": animation,
            },
        }


def compile_scene(
    scene: Scene,
    fps: int = FPS,
    profile: AnimationProfile | str = "video",
) -> FrameSchedule:
    if isinstance(profile, str):
        profile = get_profile(profile)
    schedule = FrameSchedule(
        scene=scene,
        fps=fps,
        profile=profile,
        total_frames=frame_count(scene.duration_seconds, fps),
    )
    log.debug("Compiled scene %s: %d frames @ %d fps (%s)", scene.id, schedule.total_frames, fps, profile.name)
    return schedule


def compile_script(
    script: Script,
    fps: int = FPS,
    profile: AnimationProfile | str = "video",
) -> list[FrameSchedule]:
    return [compile_scene(scene, fps, profile) for scene in script.scenes]
