"""Script model: validates a video script and fills in its defaults.

A script is a JSON document::

    {
      "id": "intro",
      "scenes": [
        {
          "id": "scene1",
          "title": "Welcome",
          "durationSeconds": 5,
          "voiceover": "Hello and welcome to the course.",
          "elements": [
            {"type": "text", "content": "Start here", "x": 200, "y": 200},
            {"type": "rectangle", "x": 400, "y": 300},
            {"type": "arrow", "x1": 600, "y1": 350, "x2": 800, "y2": 350}
          ]
        }
      ]
    }

Elements are a tagged union on ``type``. Unknown element types and unknown
fields are kept as-is so they survive a parse/serialize round trip; the
compilers treat unknown elements as no-ops.
"""
from __future__ import annotations

import json
import logging
import math
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    field_validator,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from .config import DEFAULT_SCENE_DURATION
from .errors import ValidationError

log = logging.getLogger(__name__)

Number = Union[int, float]

ELEMENT_TYPES = ("text", "rectangle", "circle", "line", "arrow")


class _Model(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True, alias_generator=to_camel)

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True)


# ---------------------------------------------------------------------------
# Elements
# ---------------------------------------------------------------------------

class _ElementBase(_Model):
    x: Number = 0
    y: Number = 0
    color: str = "#000000"
    stroke_width: Number = 2


class TextElement(_ElementBase):
    type: Literal["text"] = "text"
    content: str = ""
    font_size: Number = 32


class RectangleElement(_ElementBase):
    type: Literal["rectangle"] = "rectangle"
    width: Number = 150
    height: Number = 100


class CircleElement(_ElementBase):
    type: Literal["circle"] = "circle"
    radius: Number = 50


class _SegmentElement(_ElementBase):
    x1: Optional[Number] = None
    y1: Optional[Number] = None
    x2: Optional[Number] = None
    y2: Optional[Number] = None

    @model_validator(mode="after")
    def _fill_endpoints(self):
        # start falls back to the anchor point, end to a fixed offset from the start
        if self.x1 is None:
            self.x1 = self.x
        if self.y1 is None:
            self.y1 = self.y
        if self.x2 is None:
            self.x2 = self.x1 + 100
        if self.y2 is None:
            self.y2 = self.y1 + 50
        return self


class LineElement(_SegmentElement):
    type: Literal["line"] = "line"


class ArrowElement(_SegmentElement):
    type: Literal["arrow"] = "arrow"


class UnknownElement(_Model):
    """An element type this version doesn't draw. Kept verbatim."""
    type: Optional[str] = None


def _element_tag(value: Any) -> str:
    if isinstance(value, Mapping):
        kind = value.get("type")
    else:
        kind = getattr(value, "type", None)
    return kind if kind in ELEMENT_TYPES else "unknown"


Element = Annotated[
    Union[
        Annotated[TextElement, Tag("text")],
        Annotated[RectangleElement, Tag("rectangle")],
        Annotated[CircleElement, Tag("circle")],
        Annotated[LineElement, Tag("line")],
        Annotated[ArrowElement, Tag("arrow")],
        Annotated[UnknownElement, Tag("unknown")],
    ],
    Discriminator(_element_tag),
]


# ---------------------------------------------------------------------------
# Scenes and scripts
# ---------------------------------------------------------------------------

class Scene(_Model):
    id: Optional[str] = None
    title: Optional[str] = None
    duration_seconds: float = Field(
        default=DEFAULT_SCENE_DURATION,
        validation_alias=AliasChoices("durationSeconds", "duration_seconds", "duration"),
        serialization_alias="durationSeconds",
    )
    narration: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("narration", "voiceover"),
        serialization_alias="narration",
    )
    elements: list[Element] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def _file_safe_id(cls, value: Optional[str]) -> Optional[str]:
        # scene ids name files in the unit's work dir
        if value and (value in (".", "..") or any(c in value for c in "/\\\0")):
            raise ValueError(f"scene id {value!r} must not contain path separators or be '.' or '..'")
        return value

    @field_validator("duration_seconds", mode="before")
    @classmethod
    def _default_duration(cls, value: Any) -> float:
        if value is None or value == "":
            return DEFAULT_SCENE_DURATION
        if isinstance(value, bool):
            raise ValueError("durationSeconds must be a number")
        try:
            seconds = float(value)
        except (TypeError, ValueError):
            raise ValueError(f"durationSeconds must be a number, got {value!r}")
        if not math.isfinite(seconds) or seconds <= 0:
            return DEFAULT_SCENE_DURATION
        return seconds

    @field_validator("elements", mode="before")
    @classmethod
    def _null_elements(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def narration_text(self) -> str:
        return (self.narration or "").strip()


class Script(_Model):
    id: Optional[str] = None
    title: Optional[str] = None
    scenes: list[Scene]

    @field_validator("scenes")
    @classmethod
    def _non_empty(cls, scenes: list[Scene]) -> list[Scene]:
        if not scenes:
            raise ValueError("script must contain at least one scene")
        return scenes

    @model_validator(mode="after")
    def _fill_scene_defaults(self):
        seen: set[str] = set()
        for number, scene in enumerate(self.scenes, 1):
            if not scene.id:
                scene.id = f"scene{number}"
            if not scene.title:
                scene.title = f"Scene {number}"
            if scene.id in seen:
                raise ValueError(f"duplicate scene id {scene.id!r}")
            seen.add(scene.id)
        return self

    @property
    def total_duration(self) -> float:
        return sum(s.duration_seconds for s in self.scenes)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


def _describe(exc: PydanticValidationError) -> str:
    problems = []
    for err in exc.errors():
        where = ".".join(str(p) for p in err["loc"]) or "script"
        problems.append(f"{where}: {err['msg']}")
    return "invalid script: " + "; ".join(problems)


def parse(raw: str | bytes | Mapping[str, Any], default_id: str | None = None) -> Script:
    """Validate *raw* (JSON text or a decoded mapping) into a :class:`Script`.

    Raises :class:`~sketchreel.errors.ValidationError` for invalid JSON, a
    non-object document, a missing or empty ``scenes`` array, or any field
    that fails validation.
    """
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValidationError(f"script is not valid JSON: {e}") from e
    else:
        data = raw

    if not isinstance(data, Mapping):
        raise ValidationError("script must be a JSON object")
    scenes = data.get("scenes")
    if not isinstance(scenes, list) or not scenes:
        raise ValidationError("script must contain a non-empty 'scenes' array")

    try:
        script = Script.model_validate(dict(data))
    except PydanticValidationError as e:
        raise ValidationError(_describe(e)) from e

    if not script.id and default_id:
        script.id = default_id
    log.debug("Parsed script %s: %d scenes, %.1fs", script.id, len(script.scenes), script.total_duration)
    return script


def load_script(path: Path) -> Script:
    """Read and parse a script file; the script id defaults to the file stem."""
    try:
        text = Path(path).read_text(encoding="utf-8-sig")
    except OSError as e:
        raise ValidationError(f"cannot read script {path}: {e}") from e
    return parse(text, default_id=Path(path).stem)
