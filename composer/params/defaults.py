"""
Canonical defaults: single source for composition, caption, mixer and avatar settings.
resolve_config() merges inbound requests over DEFAULT_CONFIG.
"""
from typing import Any, Dict

from composer.audio.ducking import DEFAULT_ATTACK_S, DEFAULT_RELEASE_S, DEFAULT_THRESHOLD
from composer.audio.mixer import DEFAULT_VOLUMES

DEFAULT_CAPTION_STYLE: Dict[str, Any] = {
    "font_size": 52,
    "bold": True,
    "color": "#FFFFFF",
    "stroke_color": "#000000",
    "stroke_width": 10,
    "line_height": 70,
    "max_width": 950,
    "x": None,
    "y_from_bottom": 350,
    "lead_in_words": 3,
    "fade_ms": 500.0,
}

DEFAULT_DUCKING: Dict[str, float] = {
    "attack": DEFAULT_ATTACK_S,
    "release": DEFAULT_RELEASE_S,
    "threshold": DEFAULT_THRESHOLD,
}

DEFAULT_AVATAR: Dict[str, Any] = {
    "show": True,
    "size": 80,
    "margin": 20,
    "state": "idle",
}

DEFAULT_CONFIG: Dict[str, Any] = {
    "caption_text": "",
    "background": {"type": "solid", "color": "#0f0f1a"},
    "music": None,
    "duration_ms": 5000.0,
    "fps": 30,
    "width": 1080,
    "height": 1920,
    "text_reveal": "typewriter",
    "caption_style": DEFAULT_CAPTION_STYLE,
    "seed": 0,
    "speech_duration_ms": None,
    "avatar": DEFAULT_AVATAR,
    "volumes": dict(DEFAULT_VOLUMES),
    "ducking": DEFAULT_DUCKING,
}

# Bounds applied after merging: key -> (min, max)
CONFIG_BOUNDS = {
    "duration_ms": (1.0, 600000.0),
    "fps": (1, 120),
    "width": (16, 4096),
    "height": (16, 4096),
    "avatar.size": (16, 512),
    "avatar.margin": (0, 512),
    "caption_style.font_size": (8, 400),
    "caption_style.stroke_width": (0, 100),
}
