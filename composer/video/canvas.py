"""
Drawing helpers on top of Pillow.
Frames are RGB images; translucent shapes go through ImageDraw in "RGBA"
blend mode, and gradients/glows are built as float RGBA patches in numpy and
alpha-blended onto the frame.
"""
import math
from typing import Callable, List, Sequence, Tuple, Union

import numpy as np
from PIL import Image, ImageColor, ImageDraw, ImageFilter

Color = Union[str, Tuple[int, int, int], Tuple[int, int, int, int]]
# (offset in [0, 1], (r, g, b), alpha in [0, 1])
ColorStop = Tuple[float, Tuple[int, int, int], float]


def rgb(color: Color) -> Tuple[int, int, int]:
    if isinstance(color, str):
        return ImageColor.getrgb(color)[:3]
    return tuple(int(c) for c in color[:3])


def rgba(color: Color, alpha: float) -> Tuple[int, int, int, int]:
    """Color with alpha given as a float in [0, 1]."""
    r, g, b = rgb(color)
    return r, g, b, int(round(max(0.0, min(1.0, alpha)) * 255))


def blend_patch(frame: Image.Image, patch: np.ndarray, x0: int, y0: int) -> None:
    """
    Alpha-blend a float RGBA patch (h, w, 4; colour 0..255, alpha 0..1) onto
    frame with its top-left at (x0, y0). Parts outside the frame are clipped.
    """
    h, w = patch.shape[:2]
    fx0, fy0 = max(0, x0), max(0, y0)
    fx1, fy1 = min(frame.width, x0 + w), min(frame.height, y0 + h)
    if fx1 <= fx0 or fy1 <= fy0:
        return
    sub = patch[fy0 - y0:fy1 - y0, fx0 - x0:fx1 - x0]
    box = (fx0, fy0, fx1, fy1)
    region = np.asarray(frame.crop(box), dtype=np.float32)
    alpha = sub[..., 3:4]
    out = region * (1.0 - alpha) + sub[..., :3] * alpha
    frame.paste(Image.fromarray(np.clip(out + 0.5, 0, 255).astype(np.uint8), "RGB"), box)


def _grid(width: int, height: int, cx: float, cy: float) -> np.ndarray:
    ys, xs = np.mgrid[0:height, 0:width].astype(np.float32)
    return np.hypot(xs + 0.5 - cx, ys + 0.5 - cy)


def radial_gradient(
    width: int,
    height: int,
    cx: float,
    cy: float,
    r0: float,
    r1: float,
    stops: Sequence[ColorStop],
) -> np.ndarray:
    """
    Float RGBA patch of a radial gradient centred at (cx, cy) in patch
    coordinates: first stop inside r0, last stop beyond r1.
    """
    d = _grid(width, height, cx, cy)
    t = np.clip((d - r0) / max(r1 - r0, 1e-6), 0.0, 1.0)
    offsets = [s[0] for s in stops]
    patch = np.empty((height, width, 4), dtype=np.float32)
    for channel in range(3):
        patch[..., channel] = np.interp(t, offsets, [s[1][channel] for s in stops])
    patch[..., 3] = np.interp(t, offsets, [s[2] for s in stops])
    return patch


def circle_mask(width: int, height: int, cx: float, cy: float, radius: float) -> np.ndarray:
    """Anti-aliased disc coverage in [0, 1]."""
    return np.clip(radius - _grid(width, height, cx, cy) + 0.5, 0.0, 1.0)


def fill_radial(
    frame: Image.Image,
    cx: float,
    cy: float,
    extent: float,
    r0: float,
    r1: float,
    stops: Sequence[ColorStop],
    clip_radius: float = None,
    clip_center: Tuple[float, float] = None,
) -> None:
    """
    Paint a radial gradient over the square of half-size extent around
    (cx, cy); optionally clipped to a disc (defaults to the same centre).
    """
    size = int(math.ceil(extent * 2)) + 2
    x0 = int(math.floor(cx - size / 2))
    y0 = int(math.floor(cy - size / 2))
    patch = radial_gradient(size, size, cx - x0, cy - y0, r0, r1, stops)
    if clip_radius is not None:
        mx, my = clip_center if clip_center is not None else (cx, cy)
        patch[..., 3] *= circle_mask(size, size, mx - x0, my - y0, clip_radius)
    blend_patch(frame, patch, x0, y0)


def ellipse_points(
    cx: float,
    cy: float,
    rx: float,
    ry: float,
    rotation: float = 0.0,
    segments: int = 48,
) -> List[Tuple[float, float]]:
    """Closed polyline of a rotated ellipse (first point repeated at the end)."""
    theta = np.linspace(0.0, 2 * math.pi, segments + 1)
    x = rx * np.cos(theta)
    y = ry * np.sin(theta)
    cos_r, sin_r = math.cos(rotation), math.sin(rotation)
    px = cx + x * cos_r - y * sin_r
    py = cy + x * sin_r + y * cos_r
    return list(zip(px.tolist(), py.tolist()))


def stroke_circle(draw: ImageDraw.ImageDraw, cx: float, cy: float, radius: float, fill, width: float) -> None:
    if radius <= 0:
        return
    draw.ellipse(
        (cx - radius, cy - radius, cx + radius, cy + radius),
        outline=fill,
        width=max(1, int(round(width))),
    )


def glow(
    frame: Image.Image,
    cx: float,
    cy: float,
    extent: float,
    paint: Callable[[ImageDraw.ImageDraw, float, float], None],
    blur: float,
) -> None:
    """
    Blurred copy of whatever paint() draws, blended under subsequent strokes.
    paint(draw, ox, oy) receives the patch-local position of (cx, cy).
    """
    pad = int(math.ceil(blur * 2))
    size = int(math.ceil(extent * 2)) + pad * 2
    x0 = int(math.floor(cx - size / 2))
    y0 = int(math.floor(cy - size / 2))
    layer = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    paint(ImageDraw.Draw(layer), cx - x0, cy - y0)
    if blur > 0:
        layer = layer.filter(ImageFilter.GaussianBlur(blur / 2.0))
    arr = np.asarray(layer, dtype=np.float32)
    patch = np.concatenate([arr[..., :3], arr[..., 3:4] / 255.0], axis=-1)
    blend_patch(frame, patch, x0, y0)


def vertical_gradient(width: int, height: int, colors: Sequence[Color]) -> np.ndarray:
    """(height, width, 3) uint8 linear gradient top to bottom through evenly spaced stops."""
    stops = [rgb(c) for c in colors] or [(0, 0, 0)]
    if len(stops) == 1:
        stops = stops * 2
    offsets = np.linspace(0.0, 1.0, len(stops))
    t = np.linspace(0.0, 1.0, height)
    column = np.stack([np.interp(t, offsets, [s[c] for s in stops]) for c in range(3)], axis=-1)
    return np.repeat(np.round(column)[:, np.newaxis, :], width, axis=1).astype(np.uint8)
