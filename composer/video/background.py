"""
Background layers. Each layer renders a fresh RGB frame for a given
progress (elapsed / duration) and elapsed time; static layers cache their
pixels and hand out copies.
"""
import logging
import math
from io import BytesIO
from typing import Any, Dict, List, Optional, Union

import av
from av.error import FFmpegError
from PIL import Image, ImageDraw, ImageOps, UnidentifiedImageError

from composer.core.errors import DecodeError
from composer.video import canvas

logger = logging.getLogger(__name__)

DEFAULT_SOLID = "#0f0f1a"

LINES_BACKGROUND = "#0f0f1a"
LINES_COUNT = 15
LINES_SPACING = 140
LINES_SCROLL = 200
LINES_DROP = 80
SQUARE_COUNT = 5
SQUARE_COLOR = (79, 70, 229)

GRID_BACKGROUND = "#0a0a12"
GRID_SIZE = 60
GRID_COLOR = (6, 182, 212)

TYPE_ALIASES = {
    "dark-pattern": "lines",
    "tech-grid": "grid",
}
PATTERN_ALIASES = {"geometric": "lines"}


class BackgroundLayer:
    def render(self, progress: float, elapsed_ms: float) -> Image.Image:
        raise NotImplementedError

    def close(self) -> None:
        pass


class StaticBackground(BackgroundLayer):
    """Pixels computed once, copied per frame."""

    def __init__(self, image: Image.Image):
        self._image = image.convert("RGB")

    @property
    def size(self):
        return self._image.size

    def render(self, progress: float, elapsed_ms: float) -> Image.Image:
        return self._image.copy()


def solid(color: str, width: int, height: int) -> StaticBackground:
    return StaticBackground(Image.new("RGB", (width, height), canvas.rgb(color)))


def gradient(colors: List[str], width: int, height: int) -> StaticBackground:
    """Vertical gradient through evenly spaced stops."""
    return StaticBackground(Image.fromarray(canvas.vertical_gradient(width, height, colors), "RGB"))


def image(source: Union[str, bytes], width: int, height: int) -> StaticBackground:
    """Still image scaled to cover the frame (centre crop)."""
    if source is None:
        raise DecodeError("Image background needs a path or data")
    try:
        with Image.open(BytesIO(source) if isinstance(source, (bytes, bytearray)) else source) as img:
            fitted = ImageOps.fit(img.convert("RGB"), (width, height), method=Image.Resampling.BILINEAR)
    except (UnidentifiedImageError, OSError) as exc:
        raise DecodeError(f"Cannot decode background image: {exc}") from exc
    return StaticBackground(fitted)


class LinesPattern(BackgroundLayer):
    """Dark field with scrolling diagonal lines and pulsing outlined squares."""

    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height
        self._base = solid(LINES_BACKGROUND, width, height)

    def render(self, progress: float, elapsed_ms: float) -> Image.Image:
        frame = self._base.render(progress, elapsed_ms)
        draw = ImageDraw.Draw(frame, "RGBA")
        w, h = self.width, self.height
        for i in range(LINES_COUNT):
            y = ((i * LINES_SPACING + progress * LINES_SCROLL) % (h + 200)) - 100
            draw.line((0, y, w, y + LINES_DROP), fill=(255, 255, 255, 13), width=2)
        for i in range(SQUARE_COUNT):
            x = (i * 250 + 100) % w
            y = (i * 350 + 200) % h
            size = 50 + math.sin(progress * 2 * math.pi + i) * 20
            draw.rectangle(
                (x - size / 2, y - size / 2, x + size / 2, y + size / 2),
                outline=SQUARE_COLOR + (26,),
                width=3,
            )
        return frame


class GridPattern(BackgroundLayer):
    """Scrolling cyan grid with pulsing dots every third intersection."""

    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height
        self._base = solid(GRID_BACKGROUND, width, height)

    def render(self, progress: float, elapsed_ms: float) -> Image.Image:
        frame = self._base.render(progress, elapsed_ms)
        draw = ImageDraw.Draw(frame, "RGBA")
        w, h = self.width, self.height
        line = GRID_COLOR + (38,)
        for x in range(0, w + 1, GRID_SIZE):
            draw.line((x, 0, x, h), fill=line, width=1)
        for y in range(0, h + 1, GRID_SIZE):
            offset = (y + progress * GRID_SIZE) % h
            draw.line((0, offset, w, offset), fill=line, width=1)
        for x in range(GRID_SIZE, w, GRID_SIZE * 3):
            for y in range(GRID_SIZE, h, GRID_SIZE * 3):
                pulse = math.sin(progress * 4 * math.pi + x * 0.01 + y * 0.01) * 0.5 + 0.5
                radius = 4 * pulse
                if radius < 0.5:
                    continue
                # node fill is 0.3 alpha, further scaled by the pulse alpha
                alpha = 0.3 * (0.2 + pulse * 0.3)
                draw.ellipse((x - radius, y - radius, x + radius, y + radius), fill=canvas.rgba(GRID_COLOR, alpha))
        return frame


class VideoBackground(BackgroundLayer):
    """
    Decoded video frames, cover-fitted and looped. Frames are pulled
    sequentially; a request earlier than the current frame restarts the
    decoder.
    """

    def __init__(self, source: Union[str, bytes], width: int, height: int):
        self.width = width
        self.height = height
        self._source = source
        self._container = None
        self._frames = None
        self._current: Optional[Image.Image] = None
        self._current_time = -1.0
        self._pending = None
        self.duration = self._probe()

    def _open(self):
        source = BytesIO(self._source) if isinstance(self._source, (bytes, bytearray)) else self._source
        try:
            return av.open(source)
        except (FFmpegError, OSError) as exc:
            raise DecodeError(f"Cannot open background video: {exc}") from exc

    def _probe(self) -> float:
        container = self._open()
        try:
            if not container.streams.video:
                raise DecodeError("Background video has no video stream")
            stream = container.streams.video[0]
            if stream.duration is not None and stream.time_base is not None:
                return float(stream.duration * stream.time_base)
            if container.duration is not None:
                return float(container.duration) / av.time_base
            raise DecodeError("Background video has unknown duration")
        finally:
            container.close()

    def _restart(self) -> None:
        self.close()
        self._container = self._open()
        self._frames = self._container.decode(video=0)
        self._current = None
        self._current_time = -1.0
        self._pending = None

    def _next(self):
        if self._pending is not None:
            frame, self._pending = self._pending, None
            return frame
        try:
            return next(self._frames)
        except StopIteration:
            return None
        except FFmpegError as exc:
            raise DecodeError(f"Background video decode failed: {exc}") from exc

    def render(self, progress: float, elapsed_ms: float) -> Image.Image:
        t = (elapsed_ms / 1000.0) % self.duration if self.duration > 0 else 0.0
        if self._frames is None or t < self._current_time:
            logger.debug("Background video decode (re)started at %.3fs", t)
            self._restart()
        while True:
            frame = self._next()
            if frame is None:
                break
            frame_time = float(frame.time or 0.0)
            if frame_time > t and self._current is not None:
                self._pending = frame
                break
            self._current = ImageOps.fit(frame.to_image(), (self.width, self.height), method=Image.Resampling.BILINEAR)
            self._current_time = frame_time
        if self._current is None:
            raise DecodeError("Background video produced no frames")
        return self._current.copy()

    def close(self) -> None:
        if self._container is not None:
            self._container.close()
            self._container = None
            self._frames = None


def create_background(spec: Optional[Dict[str, Any]], width: int, height: int) -> BackgroundLayer:
    """
    Build a layer from a descriptor:
      {"type": "solid", "color": "#112233"}
      {"type": "gradient", "colors": ["#4f46e5", "#06b6d4"]}
      {"type": "pattern", "pattern": "lines" | "grid"}
      {"type": "image", "path": ... | "data": bytes}
      {"type": "video", "path": ... | "data": bytes}
    "dark-pattern" / "tech-grid" are accepted as pattern shorthands.
    """
    spec = dict(spec or {})
    kind = str(spec.get("type", "solid")).lower()
    if kind in TYPE_ALIASES:
        spec.setdefault("pattern", TYPE_ALIASES[kind])
        kind = "pattern"

    if kind in ("solid", "color"):
        return solid(spec.get("color") or spec.get("value") or DEFAULT_SOLID, width, height)
    if kind == "gradient":
        colors = spec.get("colors") or spec.get("value") or [DEFAULT_SOLID]
        return gradient(list(colors), width, height)
    if kind == "pattern":
        pattern = str(spec.get("pattern", "lines")).lower()
        pattern = PATTERN_ALIASES.get(pattern, pattern)
        if pattern == "grid":
            return GridPattern(width, height)
        if pattern == "lines":
            return LinesPattern(width, height)
        raise ValueError(f"Unknown background pattern: {pattern!r}")
    if kind == "image":
        return image(spec.get("data") or spec.get("path"), width, height)
    if kind == "video":
        return VideoBackground(spec.get("data") or spec.get("path"), width, height)
    raise ValueError(f"Unknown background type: {kind!r}")
