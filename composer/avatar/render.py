"""
Draw an AvatarEngine's current state onto a frame.
Layer order: glow, particles, sphere, lattice, emblem, ripples, spikes,
speaking ring. Nothing here mutates the engine.
"""
import math
from typing import Tuple

from PIL import Image, ImageDraw

from composer.avatar.engine import AvatarEngine
from composer.avatar.states import ACCENT_COLOR, BASE_COLOR, SECONDARY_COLOR, SPEAKING_RING_COLOR
from composer.video import canvas

_BASE = canvas.rgb(BASE_COLOR)
_SECONDARY = canvas.rgb(SECONDARY_COLOR)
_ACCENT = canvas.rgb(ACCENT_COLOR)

SPIKE_COUNT = 8
LATITUDE_COUNT = 3
LONGITUDE_COUNT = 6


def _rotate(x: float, y: float, angle: float) -> Tuple[float, float]:
    c, s = math.cos(angle), math.sin(angle)
    return x * c - y * s, x * s + y * c


def _draw_glow(frame: Image.Image, cx: float, cy: float, r: float, pulse: float, intensity: float) -> None:
    glow_size = r * (1.5 + pulse * 0.5)
    alpha = intensity * (0.3 + pulse * 0.4)
    stops = [
        (0.0, _BASE, alpha),
        (0.5, _SECONDARY, alpha * 0.5),
        (1.0, _SECONDARY, 0.0),
    ]
    canvas.fill_radial(frame, cx, cy, glow_size, r * 0.5, glow_size, stops)


def _draw_particles(draw: ImageDraw.ImageDraw, frame: Image.Image, avatar: AvatarEngine, cx: float, cy: float) -> None:
    time = avatar.motion.time
    for p in avatar.particles.active():
        px = cx + math.cos(p.angle) * p.distance
        py = cy + math.sin(p.angle) * p.distance
        twinkle = (math.sin(time * 5 + p.phase) + 1.0) / 2.0
        alpha = 0.4 + twinkle * 0.6
        halo = p.size * 3
        canvas.fill_radial(frame, px, py, halo, 0.0, halo, [(0.0, _BASE, alpha * 0.5), (1.0, _BASE, 0.0)])
        draw.ellipse((px - p.size, py - p.size, px + p.size, py + p.size), fill=canvas.rgba(_ACCENT, alpha))


def _draw_sphere(draw: ImageDraw.ImageDraw, frame: Image.Image, cx: float, cy: float, r: float, pulse: float) -> None:
    body = [
        (0.0, (200, 255, 255), 0.4),
        (0.3, (0, 229, 255), 0.2),
        (0.7, (0, 136, 170), 0.3),
        (1.0, (0, 80, 100), 0.5),
    ]
    canvas.fill_radial(frame, cx - r * 0.3, cy - r * 0.3, r * 1.4, 0.0, r, body, clip_radius=r, clip_center=(cx, cy))

    hx, hy = cx - r * 0.4, cy - r * 0.4
    highlight = [(0.0, (255, 255, 255), 0.6), (1.0, (255, 255, 255), 0.0)]
    canvas.fill_radial(
        frame, hx, hy, r * 0.5, 0.0, r * 0.5, highlight,
        clip_radius=r * 0.25, clip_center=(cx - r * 0.3, cy - r * 0.3),
    )

    canvas.stroke_circle(draw, cx, cy, r, canvas.rgba(_BASE, 0.3 + pulse * 0.3), 1.5)
    canvas.stroke_circle(draw, cx, cy, r * 0.92, canvas.rgba(_ACCENT, 0.1 + pulse * 0.2), 1)


def _draw_lattice(draw: ImageDraw.ImageDraw, cx: float, cy: float, r: float, rotation: float, pulse: float, brightness: float) -> None:
    color = canvas.rgba(_BASE, brightness * (0.4 + pulse * 0.4))
    for i in range(1, LATITUDE_COUNT + 1):
        ri = r * 0.85 * i / (LATITUDE_COUNT + 1)
        draw.line(canvas.ellipse_points(cx, cy, ri * 1.5, ri, rotation), fill=color, width=1)
    for i in range(LONGITUDE_COUNT):
        angle = rotation + 2 * math.pi * i / LONGITUDE_COUNT
        draw.line(canvas.ellipse_points(cx, cy, r * 0.4, r * 0.85, angle), fill=color, width=1)


def _emblem_strokes(k: float, angle: float, scale: float, ox: float, oy: float):
    segments = [
        ((-0.3, -0.6), (-0.3, 0.6)),
        ((-0.3, 0.0), (0.4, -0.6)),
        ((-0.1, -0.1), (0.4, 0.6)),
    ]
    for (x0, y0), (x1, y1) in segments:
        ax, ay = _rotate(x0 * k * scale, y0 * k * scale, angle)
        bx, by = _rotate(x1 * k * scale, y1 * k * scale, angle)
        yield (ox + ax, oy + ay, ox + bx, oy + by)


def _draw_emblem(frame: Image.Image, cx: float, cy: float, r: float, rotation: float, pulse: float) -> None:
    k = r * 0.5
    angle = rotation * 0.5
    scale = 1.0 + pulse * 0.05

    def paint(draw, ox, oy):
        for line in _emblem_strokes(k, angle, scale, ox, oy):
            draw.line(line, fill=canvas.rgba(_BASE, 1.0), width=3)

    canvas.glow(frame, cx, cy, k * 1.2, paint, blur=8 + pulse * 8)
    draw = ImageDraw.Draw(frame, "RGBA")
    for line in _emblem_strokes(k, angle, scale, cx, cy):
        draw.line(line, fill=canvas.rgba(_BASE, 1.0), width=3)
    for line in _emblem_strokes(k, angle, scale, cx, cy):
        draw.line(line, fill=canvas.rgba(_ACCENT, 0.3 + pulse * 0.3), width=1)


def _draw_ripples(draw: ImageDraw.ImageDraw, avatar: AvatarEngine, cx: float, cy: float) -> None:
    for ripple in avatar.ripples:
        if ripple.is_spike:
            continue
        canvas.stroke_circle(draw, cx, cy, ripple.radius, canvas.rgba(_BASE, ripple.opacity * 0.6), 2)
        canvas.stroke_circle(draw, cx, cy, ripple.radius * 0.8, canvas.rgba(_ACCENT, ripple.opacity * 0.3), 1)


def _draw_spikes(frame: Image.Image, cx: float, cy: float, r: float, rotation: float, pulse_phase: float) -> None:
    wobble = math.sin(pulse_phase)
    length = r * (0.3 + wobble * 0.2)
    color = canvas.rgba(_BASE, 0.6 + wobble * 0.4)
    base_angle = rotation * 2

    def spikes(ox, oy):
        for i in range(SPIKE_COUNT):
            a = base_angle + 2 * math.pi * i / SPIKE_COUNT
            c, s = math.cos(a), math.sin(a)
            yield (ox + c * r, oy + s * r, ox + c * (r + length), oy + s * (r + length))

    def paint(draw, ox, oy):
        for line in spikes(ox, oy):
            draw.line(line, fill=color, width=2)

    canvas.glow(frame, cx, cy, r + length, paint, blur=10)
    draw = ImageDraw.Draw(frame, "RGBA")
    for line in spikes(cx, cy):
        draw.line(line, fill=color, width=2)


def draw_avatar(frame: Image.Image, avatar: AvatarEngine, center: Tuple[float, float]) -> None:
    """Paint avatar centred at center (pixels) onto an RGB frame in place."""
    cx, cy = center
    r = avatar.radius
    config = avatar.config
    motion = avatar.motion
    pulse = motion.pulse

    _draw_glow(frame, cx, cy, r, pulse, config.glow_intensity)
    draw = ImageDraw.Draw(frame, "RGBA")
    _draw_particles(draw, frame, avatar, cx, cy)
    _draw_sphere(draw, frame, cx, cy, r, pulse)
    _draw_lattice(draw, cx, cy, r, motion.rotation, pulse, config.lattice_brightness)
    _draw_emblem(frame, cx, cy, r, motion.rotation, pulse)

    draw = ImageDraw.Draw(frame, "RGBA")
    _draw_ripples(draw, avatar, cx, cy)
    if config.energy_spikes:
        _draw_spikes(frame, cx, cy, r, motion.rotation, motion.pulse_phase)

    if avatar.is_speaking:
        draw = ImageDraw.Draw(frame, "RGBA")
        canvas.stroke_circle(draw, cx, cy, avatar.size / 2.0 + 5, canvas.rgba(SPEAKING_RING_COLOR, 1.0), 3)
