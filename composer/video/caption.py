"""
Caption layer: word-reveal timing, greedy wrapping, outlined text.
"""
import logging
import math
import os
from functools import lru_cache
from typing import Callable, List, Optional, Tuple

from PIL import Image, ImageDraw, ImageFont

from composer.core.types import CaptionStyle
from composer.video import canvas

logger = logging.getLogger(__name__)

REVEAL_MODES = ("typewriter", "fade", "static")

# Tried in order when COMPOSER_FONT is unset; Pillow searches the system font dirs.
BOLD_FONT_CANDIDATES = ("DejaVuSans-Bold.ttf", "Arial Bold.ttf", "arialbd.ttf", "LiberationSans-Bold.ttf")
REGULAR_FONT_CANDIDATES = ("DejaVuSans.ttf", "Arial.ttf", "arial.ttf", "LiberationSans-Regular.ttf")


def visible_word_count(elapsed_ms: float, duration_ms: float, word_count: int, lead_in: int = 3) -> int:
    """
    Words shown at elapsed_ms: one more word every duration/word_count ms,
    plus lead_in words from the start. All words once elapsed >= duration.
    """
    if word_count <= 0:
        return 0
    if duration_ms <= 0 or elapsed_ms >= duration_ms:
        return word_count
    per_word = duration_ms / word_count
    shown = int(math.floor(max(elapsed_ms, 0.0) / per_word)) + lead_in
    return max(0, min(shown, word_count))


def reveal(text: str, elapsed_ms: float, duration_ms: float, mode: str = "typewriter", lead_in: int = 3, fade_ms: float = 500) -> Tuple[str, float]:
    """(visible text, opacity) for a reveal mode."""
    if mode == "typewriter":
        words = text.split()
        count = visible_word_count(elapsed_ms, duration_ms, len(words), lead_in)
        return " ".join(words[:count]), 1.0
    if mode == "fade":
        alpha = 1.0 if fade_ms <= 0 else min(max(elapsed_ms, 0.0) / fade_ms, 1.0)
        return text, alpha
    if mode == "static":
        return text, 1.0
    raise ValueError(f"Unknown text reveal mode: {mode!r}")


def wrap_text(text: str, measure: Callable[[str], float], max_width: float) -> List[str]:
    """Greedy fill: append the next word while the line stays narrower than max_width."""
    words = text.split()
    if not words:
        return []
    lines = []
    current = words[0]
    for word in words[1:]:
        candidate = f"{current} {word}"
        if measure(candidate) < max_width:
            current = candidate
        else:
            lines.append(current)
            current = word
    lines.append(current)
    return lines


@lru_cache(maxsize=16)
def load_font(size: int, bold: bool = True, path: Optional[str] = None) -> ImageFont.ImageFont:
    """
    TrueType font at size: explicit path, then COMPOSER_FONT, then common
    system fonts, then Pillow's built-in scalable default.
    """
    candidates = []
    if path:
        candidates.append(path)
    env_font = os.environ.get("COMPOSER_FONT")
    if env_font:
        candidates.append(env_font)
    candidates.extend(BOLD_FONT_CANDIDATES if bold else REGULAR_FONT_CANDIDATES)
    for candidate in candidates:
        try:
            return ImageFont.truetype(candidate, size)
        except OSError:
            continue
    logger.warning("No TrueType font found (tried %s); using Pillow default", ", ".join(candidates))
    return ImageFont.load_default(size=size)


class CaptionRenderer:
    def __init__(self, style: CaptionStyle, width: int, height: int, font_path: Optional[str] = None):
        self.style = style
        self.width = width
        self.height = height
        self.font = load_font(style.font_size, style.bold, font_path)

    @property
    def anchor(self) -> Tuple[float, float]:
        x = self.style.x if self.style.x is not None else self.width / 2.0
        return x, self.height - self.style.y_from_bottom

    def measure(self, text: str) -> float:
        return self.font.getlength(text)

    def layout(self, text: str) -> List[Tuple[str, Tuple[float, float]]]:
        """Wrapped lines with their baseline-centre positions."""
        x, y = self.anchor
        lines = wrap_text(text, self.measure, self.style.max_width)
        return [(line, (x, y + i * self.style.line_height)) for i, line in enumerate(lines)]

    def draw(self, frame: Image.Image, text: str, elapsed_ms: float, duration_ms: float, mode: str = "typewriter") -> None:
        visible, alpha = reveal(text, elapsed_ms, duration_ms, mode, self.style.lead_in_words, self.style.fade_ms)
        if not visible or alpha <= 0:
            return
        lines = self.layout(visible)
        draw = ImageDraw.Draw(frame, "RGBA")
        stroke = canvas.rgba(self.style.stroke_color, alpha)
        fill = canvas.rgba(self.style.color, alpha)
        # all strokes before any fill; stroke_width is the full line width, centred on the glyph edge
        if self.style.stroke_width > 0:
            for line, position in lines:
                draw.text(
                    position, line, font=self.font, fill=stroke, anchor="ms",
                    stroke_width=self.style.stroke_width // 2, stroke_fill=stroke,
                )
        for line, position in lines:
            draw.text(position, line, font=self.font, fill=fill, anchor="ms")
