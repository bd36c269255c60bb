from __future__ import annotations

import io
from functools import lru_cache
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from PIL import Image, ImageDraw, ImageFont

from services.overlay_rules import (
    BadgeLayer,
    BorderKind,
    BorderLayer,
    GradientLayer,
    Layer,
    ScoreLayer,
    Slot,
    TitleLayer,
)
from utils import assets
from utils.assets import OverlayAssets
from utils.logger import get_logger

logger = get_logger(__name__)

CANVAS_SIZE = (2000, 3000)

MARGIN = 30
SPACING = 12

TITLE_FONT_SIZE = 250
TITLE_MAX_WIDTH_RATIO = 0.92
TITLE_LINE_HEIGHT_RATIO = 0.85
TITLE_BOTTOM_MARGIN = 430
TITLE_SHADOW_OFFSET = (5, 5)
TITLE_SHADOW_COLOR = (0, 0, 0, 220)
TITLE_COLOR = (255, 255, 255, 255)

SCORE_FONT_RATIO = 0.65
SCORE_COLOR = (0, 0, 0, 255)
SCORE_NUDGE_Y = 2


@lru_cache(maxsize=16)
def _load_font(path: str, size: int) -> ImageFont.FreeTypeFont:
    return ImageFont.truetype(path, size=size)


def standardize(image: Image.Image) -> Image.Image:
    """Force every poster onto the 2000x3000 RGBA canvas the layout margins assume."""
    return image.convert("RGBA").resize(CANVAS_SIZE, Image.Resampling.LANCZOS)


def decode_poster(data: bytes) -> Image.Image:
    with Image.open(io.BytesIO(data)) as img:
        img.load()
        return standardize(img)


def encode_jpeg(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.convert("RGB").save(buffer, "JPEG")
    return buffer.getvalue()


def wrap_title(text: str, font: ImageFont.FreeTypeFont, max_width: float) -> List[str]:
    """Greedy word wrap: a word moves to the next line once the line would exceed ``max_width``."""
    lines: List[str] = []
    current = ""
    for word in text.split():
        attempt = f"{current} {word}" if current else word
        if font.getlength(attempt) > max_width:
            if current:
                lines.append(current)
            current = word
        else:
            current = attempt
    if current:
        lines.append(current)
    return lines


def _open_overlay(path: Path) -> Image.Image:
    with Image.open(path) as img:
        return img.convert("RGBA")


def _blit(poster: Image.Image, overlay: Image.Image, x: int, y: int) -> None:
    """Alpha-composite ``overlay`` at (x, y), clipping whatever falls outside the canvas."""
    layer = Image.new("RGBA", poster.size, (0, 0, 0, 0))
    layer.paste(overlay, (x, y))
    poster.alpha_composite(layer)


def _scale_to_height(overlay: Image.Image, target_height: int) -> Image.Image:
    ratio = target_height / overlay.height
    target_width = max(1, int(overlay.width * ratio))
    return overlay.resize((target_width, target_height), Image.Resampling.LANCZOS)


class OverlayService:
    """
    Composites overlay layers onto a standardized poster.

    Every stage takes the poster and returns it; a missing asset logs a warning and leaves the
    poster unchanged.
    """

    def __init__(self, overlay_assets: OverlayAssets):
        self.assets = overlay_assets

    @classmethod
    def from_path(cls, overlay_base_path: Optional[str] = None) -> "OverlayService":
        return cls(OverlayAssets.discover(overlay_base_path))

    # ---- pipeline -------------------------------------------------------

    def compose(self, poster: Image.Image, layers: Iterable[Layer]) -> Image.Image:
        if poster.size != CANVAS_SIZE or poster.mode != "RGBA":
            poster = standardize(poster)

        top_left_x = MARGIN
        for layer in layers:
            if isinstance(layer, GradientLayer):
                poster = self.add_gradient_masks(poster)
            elif isinstance(layer, TitleLayer):
                poster = self.add_title(poster, layer.text)
            elif isinstance(layer, BadgeLayer):
                if layer.slot is Slot.TOP_LEFT:
                    poster, placed = self.add_badge(poster, layer.asset, top_left_x, layer.height_ratio)
                    if placed:
                        top_left_x += placed + SPACING
                else:
                    poster, _ = self.add_badge(poster, layer.asset, MARGIN, layer.height_ratio, align_bottom=True)
            elif isinstance(layer, ScoreLayer):
                poster = self.add_score_badge(poster, layer.asset, layer.rating, layer.height_ratio)
            elif isinstance(layer, BorderLayer):
                poster = self.add_border(poster, layer.choice.asset, fallback=layer.choice.kind is not BorderKind.INNER_GLOW)
            else:
                raise TypeError(f"Unknown overlay layer: {layer!r}")
        return poster

    def render(self, data: bytes, layers: Iterable[Layer]) -> bytes:
        """Decode, standardize, layer and re-encode as JPEG."""
        return encode_jpeg(self.compose(decode_poster(data), layers))

    # ---- stages ---------------------------------------------------------

    def add_gradient_masks(self, poster: Image.Image) -> Image.Image:
        width, height = poster.size

        top_path = self.assets.find(assets.GRADIENT_TOP, "Gradient top")
        if top_path:
            top = _open_overlay(top_path)
            top = top.resize((width, max(1, int(top.height * width / top.width))), Image.Resampling.LANCZOS)
            _blit(poster, top, 0, 0)

        bottom_path = self.assets.find(assets.GRADIENT_BOTTOM, "Gradient bottom")
        if bottom_path:
            bottom = _open_overlay(bottom_path)
            bottom = bottom.resize((width, max(1, int(bottom.height * width / bottom.width))), Image.Resampling.LANCZOS)
            _blit(poster, bottom, 0, height - bottom.height)

        return poster

    def add_title(self, poster: Image.Image, title: str) -> Image.Image:
        font_path = self.assets.find(assets.TITLE_FONT, "Title font")
        if not font_path:
            return poster

        font = _load_font(str(font_path), TITLE_FONT_SIZE)
        width, height = poster.size
        lines = wrap_title(title.upper(), font, width * TITLE_MAX_WIDTH_RATIO)
        if not lines:
            return poster

        line_height = TITLE_FONT_SIZE * TITLE_LINE_HEIGHT_RATIO
        start_y = int(height - TITLE_BOTTOM_MARGIN - len(lines) * line_height)

        layer = Image.new("RGBA", poster.size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(layer)
        for index, line in enumerate(lines):
            x = int((width - font.getlength(line)) // 2)
            y = start_y + int(index * line_height)
            draw.text((x + TITLE_SHADOW_OFFSET[0], y + TITLE_SHADOW_OFFSET[1]), line, font=font, fill=TITLE_SHADOW_COLOR)
            draw.text((x, y), line, font=font, fill=TITLE_COLOR)

        poster.alpha_composite(layer)
        return poster

    def add_badge(
        self,
        poster: Image.Image,
        relative: str,
        x: int,
        height_ratio: float,
        align_bottom: bool = False,
    ) -> Tuple[Image.Image, int]:
        """Paste a badge scaled to ``height_ratio`` of the poster height. Returns the placed width (0 if skipped)."""
        path = self.assets.find(relative, "Badge")
        target_height = int(poster.height * height_ratio)
        if not path or target_height <= 0:
            return poster, 0

        badge = _scale_to_height(_open_overlay(path), target_height)
        y = poster.height - badge.height - MARGIN if align_bottom else MARGIN
        _blit(poster, badge, x, y)
        return poster, badge.width

    def add_score_badge(self, poster: Image.Image, relative: str, rating: float, height_ratio: float) -> Image.Image:
        path = self.assets.find(relative, "Audience badge")
        target_height = int(poster.height * height_ratio)
        if not path or target_height <= 0:
            return poster

        badge = _scale_to_height(_open_overlay(path), target_height)
        badge_x = poster.width - badge.width - MARGIN
        badge_y = poster.height - badge.height - MARGIN
        _blit(poster, badge, badge_x, badge_y)

        font_path = self.assets.find(assets.SCORE_FONT, "Score font")
        if not font_path:
            return poster

        font = _load_font(str(font_path), max(1, int(target_height * SCORE_FONT_RATIO)))
        text = f"{rating:.1f}"
        layer = Image.new("RGBA", poster.size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(layer)
        left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
        text_x = badge_x + (badge.width - (right - left)) // 2 - left
        text_y = badge_y + (badge.height - (bottom - top)) // 2 - top + SCORE_NUDGE_Y
        draw.text((text_x, text_y), text, font=font, fill=SCORE_COLOR)
        poster.alpha_composite(layer)
        return poster

    def add_border(self, poster: Image.Image, relative: str, fallback: bool = True) -> Image.Image:
        """Stretch a full-canvas border over the poster; a missing status border falls back to the inner glow."""
        path = self.assets.find(relative, "Border")
        if not path:
            if fallback:
                logger.info("🔄 Using the inner glow border instead")
                return self.add_border(poster, assets.INNER_GLOW, fallback=False)
            return poster

        border = _open_overlay(path).resize(poster.size, Image.Resampling.LANCZOS)
        poster.alpha_composite(border)
        logger.debug(f"✅ Border '{relative}' applied")
        return poster
