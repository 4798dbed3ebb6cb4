"""
Request resolution: normalize inbound keys (camelCase accepted), deep-merge
over DEFAULT_CONFIG, clamp, and build a frozen CompositionConfig.
Incoming values override defaults at any nesting level.
"""
import copy
import logging
import re
from typing import Any, Dict, Optional

from composer.core.params import clamp_if_bounds, get_param
from composer.core.types import CaptionStyle, CompositionConfig
from composer.params.defaults import CONFIG_BOUNDS, DEFAULT_CONFIG
from composer.video.caption import REVEAL_MODES

logger = logging.getLogger(__name__)

# Request names that do not map to their field by case conversion alone
REQUEST_ALIASES = {
    "background_spec": "background",
    "music_reference": "music",
    "text_reveal_mode": "text_reveal",
    "text_animation": "text_reveal",
    "caption": "caption_text",
}

# Values under these keys are payloads, not settings; their keys are kept verbatim
OPAQUE_KEYS = {"music"}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


def to_snake(key: str) -> str:
    return _CAMEL_BOUNDARY.sub(r"_\1", key).lower()


def normalize_keys(request: Dict[str, Any], top_level: bool = True) -> Dict[str, Any]:
    """camelCase -> snake_case at every nesting level, plus top-level aliases."""
    result = {}
    for key, value in request.items():
        name = to_snake(str(key))
        if top_level:
            name = REQUEST_ALIASES.get(name, name)
        if isinstance(value, dict) and name not in OPAQUE_KEYS:
            value = normalize_keys(value, top_level=False)
        result[name] = value
    return result


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """New dict with override applied over base; nested dicts merge recursively."""
    result = dict(base)
    for key, value in override.items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _set_nested(params: Dict[str, Any], name: str, value: Any) -> None:
    keys = name.split(".")
    current = params
    for key in keys[:-1]:
        current = current[key]
    current[keys[-1]] = value


def _apply_bounds(params: Dict[str, Any]) -> Dict[str, Any]:
    for name, (lo, hi) in CONFIG_BOUNDS.items():
        raw = get_param(params, name)
        if raw is None:
            continue
        value = clamp_if_bounds(raw, lo, hi)
        if isinstance(lo, int) and isinstance(value, float):
            value = int(round(value))
        if value != raw:
            logger.debug("Clamped %s: %r -> %r", name, raw, value)
        _set_nested(params, name, value)
    return params


def resolve_request(request: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Fully resolved, clamped settings dict for a (possibly partial) request."""
    incoming = normalize_keys(request or {})
    # "duration" in seconds, as older sample configs carry it
    if "duration" in incoming:
        seconds = incoming.pop("duration")
        incoming.setdefault("duration_ms", float(seconds) * 1000.0)
    merged = _deep_merge(copy.deepcopy(DEFAULT_CONFIG), incoming)
    # "background": "#112233" shorthand for a solid fill
    if isinstance(merged.get("background"), str):
        merged["background"] = {"type": "solid", "color": merged["background"]}
    return _apply_bounds(merged)


def resolve_config(request: Optional[Dict[str, Any]]) -> CompositionConfig:
    """
    Build a CompositionConfig from an inbound request such as
    {captionText, backgroundSpec, musicReference, durationMs, fps, textRevealMode}.
    Unknown reveal modes raise ValueError.
    """
    params = resolve_request(request)
    reveal = str(params["text_reveal"]).lower()
    if reveal not in REVEAL_MODES:
        raise ValueError(f"Unknown text reveal mode {reveal!r}; expected one of {', '.join(REVEAL_MODES)}")

    style_fields = set(CaptionStyle.__dataclass_fields__)
    style = CaptionStyle(**{k: v for k, v in params["caption_style"].items() if k in style_fields})
    avatar = params["avatar"]

    return CompositionConfig(
        caption_text=str(params["caption_text"] or ""),
        background=params["background"],
        music=params["music"],
        duration_ms=float(params["duration_ms"]),
        fps=int(params["fps"]),
        width=int(params["width"]),
        height=int(params["height"]),
        text_reveal=reveal,
        caption_style=style,
        seed=int(params["seed"]),
        speech_duration_ms=params["speech_duration_ms"],
        show_avatar=bool(avatar.get("show", True)),
        avatar_size=int(avatar["size"]),
        avatar_margin=int(avatar["margin"]),
        avatar_state=str(avatar.get("state", "idle")),
        volumes=dict(params["volumes"]),
        ducking=dict(params["ducking"]),
    )
