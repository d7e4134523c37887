"""Preview stills: draw one frame of a scene with Pillow.

A quick check of a timeline without the external renderer. Shapes are
drawn at the frame's opacity (blended against the white canvas) and scaled
about their own centre by the element scale times the container scale.
"""
from __future__ import annotations

import logging
import math
from pathlib import Path

from PIL import Image, ImageColor, ImageDraw, ImageFont

from .config import HEIGHT, WIDTH
from .script import ArrowElement, CircleElement, LineElement, RectangleElement, TextElement
from .timeline import FrameSchedule

log = logging.getLogger(__name__)

BACKGROUND = (255, 255, 255)
TITLE_FONT_SIZE = 64
ARROW_HEAD = 15

_FONT_PATHS = [
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
]


def _font(size: float) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    size = max(1, round(size))
    for font_path in _FONT_PATHS:
        try:
            return ImageFont.truetype(font_path, size)
        except OSError:
            pass
    return ImageFont.load_default(size=size)


def _blend(color: str, alpha: float) -> tuple[int, int, int]:
    try:
        rgb = ImageColor.getrgb(color)[:3]
    except ValueError:
        log.debug("Unparseable color %r, drawing black", color)
        rgb = (0, 0, 0)
    alpha = min(1.0, max(0.0, alpha))
    return tuple(round(bg + (c - bg) * alpha) for c, bg in zip(rgb, BACKGROUND))


def _scale_about(point: tuple[float, float], centre: tuple[float, float], s: float) -> tuple[float, float]:
    return (centre[0] + (point[0] - centre[0]) * s, centre[1] + (point[1] - centre[1]) * s)


def _draw_arrow_head(draw: ImageDraw.ImageDraw, start, end, size: float, fill) -> None:
    angle = math.atan2(end[1] - start[1], end[0] - start[0])
    left = (end[0] - size * math.cos(angle - math.pi / 6), end[1] - size * math.sin(angle - math.pi / 6))
    right = (end[0] - size * math.cos(angle + math.pi / 6), end[1] - size * math.sin(angle + math.pi / 6))
    draw.polygon([end, left, right], fill=fill)


def render_preview(
    schedule: FrameSchedule,
    frame: int,
    output: Path,
    width: int = WIDTH // 2,
    height: int = HEIGHT // 2,
    source_size: tuple[int, int] = (WIDTH, HEIGHT),
) -> Path:
    """Draw *frame* of the scheduled scene to *output* (format from its suffix)."""
    state = schedule.state_at(frame)
    k = min(width / source_size[0], height / source_size[1])

    img = Image.new("RGB", (width, height), BACKGROUND)
    draw = ImageDraw.Draw(img)

    if schedule.scene.title:
        draw.text(
            (width / 2, 40 * k),
            schedule.scene.title,
            fill=_blend("#000000", state.opacity),
            font=_font(TITLE_FONT_SIZE * k),
            anchor="mt",
        )

    for element, anim in zip(schedule.scene.elements, state.elements):
        alpha = anim.opacity * state.opacity
        if alpha <= 0:
            continue
        s = anim.transform_scale * state.container_scale
        fill = _blend(getattr(element, "color", "#000000"), alpha)
        stroke = max(1, round(getattr(element, "stroke_width", 2) * k * s))

        if isinstance(element, TextElement):
            draw.text(
                (element.x * k, element.y * k),
                element.content,
                fill=fill,
                font=_font(element.font_size * k * s),
            )
        elif isinstance(element, RectangleElement):
            centre = ((element.x + element.width / 2) * k, (element.y + element.height / 2) * k)
            half_w, half_h = element.width * k * s / 2, element.height * k * s / 2
            draw.rectangle(
                [centre[0] - half_w, centre[1] - half_h, centre[0] + half_w, centre[1] + half_h],
                outline=fill,
                width=stroke,
            )
        elif isinstance(element, CircleElement):
            centre = ((element.x + element.radius) * k, (element.y + element.radius) * k)
            r = element.radius * k * s
            draw.ellipse([centre[0] - r, centre[1] - r, centre[0] + r, centre[1] + r], outline=fill, width=stroke)
        elif isinstance(element, (LineElement, ArrowElement)):
            p1 = (element.x1 * k, element.y1 * k)
            p2 = (element.x2 * k, element.y2 * k)
            mid = ((p1[0] + p2[0]) / 2, (p1[1] + p2[1]) / 2)
            p1, p2 = _scale_about(p1, mid, s), _scale_about(p2, mid, s)
            draw.line([p1, p2], fill=fill, width=stroke)
            if isinstance(element, ArrowElement):
                _draw_arrow_head(draw, p1, p2, ARROW_HEAD * k * s, fill)
        # unknown element types draw nothing

    output = Path(output)
    output.parent.mkdir(parents=True, exist_ok=True)
    img.save(output)
    log.info("Preview of %s frame %d -> %s", schedule.scene.id, frame, output)
    return output
