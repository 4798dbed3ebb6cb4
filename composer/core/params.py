"""
Dict parameter helpers shared by config resolution and the control surfaces.
Lookups accept dotted keys for nested dicts ("caption.style.font_size").
"""
from typing import Any, Optional


def get_param(params: dict, name: str, default: Any = None) -> Any:
    """
    Read a value from params, supporting dotted keys for nested dicts.
    If any intermediate key is missing or not a dict, returns default.
    """
    if not params or not name:
        return default
    keys = name.split(".")
    current = params
    for key in keys[:-1]:
        next_val = current.get(key)
        if next_val is None or not isinstance(next_val, dict):
            return default
        current = next_val
    return current.get(keys[-1], default)


def get_float(params: dict, name: str, default: float) -> float:
    """get_param coerced to float; unparseable values fall back to default."""
    raw = get_param(params, name, default)
    try:
        return float(raw)
    except (TypeError, ValueError):
        return float(default)


def clamp_if_bounds(
    value: float,
    min: Optional[float] = None,
    max: Optional[float] = None,
) -> float:
    """
    Clamp value to [min, max] when bounds are not None.
    If both are None, returns value unchanged.
    """
    try:
        v = float(value)
    except (TypeError, ValueError):
        return value
    if min is not None and v < min:
        return min
    if max is not None and v > max:
        return max
    return v
