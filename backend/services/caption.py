"""
Contrast-adaptive caption drawing.

The caption sits near the top-left corner. Its font size is found with a
bounded linear search (150pt down to 10pt in 5pt steps) so the widest line
fits the image minus a margin. The area under the caption is averaged down to
a single pixel; bright backgrounds get black text with a white halo, dark ones
white text with a black halo. The halo is a second copy of the text drawn
first, offset by a few pixels.
"""
from __future__ import annotations

import logging
from typing import Optional, Tuple

from PIL import Image, ImageDraw, ImageFont

from domain.models import CaptionColor, CaptionPlan, MediaRecord
from services.geocoding import format_location

logger = logging.getLogger(__name__)

FONT_CEILING = 150
FONT_STEP = 5
FONT_FLOOR = 10
HORIZONTAL_MARGIN = 50
ANCHOR = (30, 30)
OUTLINE_OFFSET = 10
DEBUG_OUTLINE_WIDTH = 6

_RGB = {
    CaptionColor.BLACK: (0, 0, 0),
    CaptionColor.WHITE: (255, 255, 255),
}


class FontLoadError(RuntimeError):
    """Raised at startup when the caption font cannot be loaded."""


class CaptionFont:
    """A scalable font loaded once at startup.

    With no path, Pillow's bundled scalable default font is used.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path
        try:
            self.at_size(FONT_CEILING)
        except OSError as exc:
            raise FontLoadError(f"Couldn't load caption font {path!r}: {exc}") from exc

    def at_size(self, size: float) -> ImageFont.FreeTypeFont:
        if self.path:
            return ImageFont.truetype(self.path, size)
        return ImageFont.load_default(size=size)


def _measure(text: str, font: ImageFont.FreeTypeFont) -> Tuple[int, int]:
    dummy = ImageDraw.Draw(Image.new("RGB", (1, 1)))
    bbox = dummy.multiline_textbbox((0, 0), text, font=font)
    return bbox[2] - bbox[0], bbox[3] - bbox[1]


def caption_luminance(rgb: Tuple[int, int, int]) -> float:
    r, g, b = rgb[:3]
    return (0.299 * r + 0.587 * g + 0.114 * b) / 255


def caption_colors(luminance: float) -> Tuple[CaptionColor, CaptionColor]:
    """Return (main, outline). Only a strictly bright background (> 0.5) gets black text."""
    if luminance > 0.5:
        return CaptionColor.BLACK, CaptionColor.WHITE
    return CaptionColor.WHITE, CaptionColor.BLACK


def average_color(image: Image.Image, box: Tuple[int, int, int, int]) -> Tuple[int, int, int]:
    """Average color of `box` by downsampling the region to a single pixel."""
    region = image.crop(box).convert("RGB")
    pixel = region.resize((1, 1), Image.Resampling.BOX).getpixel((0, 0))
    return pixel[0], pixel[1], pixel[2]


def _clip_box(box: Tuple[int, int, int, int], width: int, height: int) -> Tuple[int, int, int, int]:
    left = max(0, min(width - 1, box[0]))
    top = max(0, min(height - 1, box[1]))
    right = max(left + 1, min(width, box[2]))
    bottom = max(top + 1, min(height, box[3]))
    return left, top, right, bottom


class CaptionCompositor:
    """Fits, colors and draws captions. Pure CPU work; one instance can serve all threads."""

    def __init__(self, font: CaptionFont):
        self.font = font

    def fit_font(
        self, text: str, max_width: float, start_size: float = FONT_CEILING
    ) -> Tuple[ImageFont.FreeTypeFont, float, Tuple[int, int]]:
        """Shrink from `start_size` in fixed steps until `text` is at most `max_width` wide."""
        size = max(float(start_size), float(FONT_FLOOR))
        while True:
            font = self.font.at_size(size)
            measured = _measure(text, font)
            if measured[0] <= max_width or size - FONT_STEP < FONT_FLOOR:
                return font, size, measured
            size -= FONT_STEP

    def plan(self, image: Image.Image, text: str, vertical_offset: int = 0) -> CaptionPlan:
        font, size, _ = self.fit_font(text, image.width - HORIZONTAL_MARGIN)
        anchor = (ANCHOR[0], ANCHOR[1] + vertical_offset)
        dummy = ImageDraw.Draw(Image.new("RGB", (1, 1)))
        box = dummy.multiline_textbbox(anchor, text, font=font)
        box = _clip_box((int(box[0]), int(box[1]), int(box[2]), int(box[3])), image.width, image.height)

        luminance = caption_luminance(average_color(image, box))
        main, outline = caption_colors(luminance)
        logger.info("Found luminance: %.3f for text: %s", luminance, text.replace("\n", " | "))
        return CaptionPlan(
            text=text,
            font_size=size,
            bounding_box=box,
            main_color=main,
            outline_color=outline,
            luminance=luminance,
        )

    def draw(self, image: Image.Image, plan: CaptionPlan, vertical_offset: int = 0, debug: bool = False) -> None:
        font = self.font.at_size(plan.font_size)
        draw = ImageDraw.Draw(image)
        if debug:
            draw.rectangle(plan.bounding_box, outline="coral", width=DEBUG_OUTLINE_WIDTH)
        x, y = ANCHOR[0], ANCHOR[1] + vertical_offset
        draw.multiline_text((x + OUTLINE_OFFSET, y + OUTLINE_OFFSET), plan.text, font=font, fill=_RGB[plan.outline_color])
        draw.multiline_text((x, y), plan.text, font=font, fill=_RGB[plan.main_color])

    def compose(self, image: Image.Image, text: str, vertical_offset: int = 0, debug: bool = False) -> CaptionPlan:
        """Draw `text` onto `image` in place and return the plan that was used."""
        plan = self.plan(image, text, vertical_offset)
        self.draw(image, plan, vertical_offset, debug)
        return plan


def build_caption(record: MediaRecord, debug: bool = False) -> str:
    """First line: id, folder and date. Second: the place. Debug adds the source path."""
    header = f"{record.media_id} - {record.parent_folder}"
    if record.created_at is not None and record.created_at.year > 1900:
        header += f" @ {record.created_at.strftime('%d/%b/%Y')}"
    lines = [header]
    if record.location:
        lines.append(format_location(record.location))
    if debug:
        lines.append(record.path)
    return "\n".join(lines)
