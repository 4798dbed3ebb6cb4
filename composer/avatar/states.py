"""
Avatar modes and their fixed animation parameter bundles.
Rate constants (rotation_speed, particle_speed, ripple expansion) are per
60 Hz frame; the steppers scale them by dt * 60.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Union

from composer.core.errors import UnknownState


class AvatarMode(str, Enum):
    IDLE = "idle"
    TALKING = "talking"
    EXECUTING = "executing"


@dataclass(frozen=True)
class StateConfig:
    rotation_speed: float
    pulse_duration_ms: float
    particle_count: int
    particle_speed: float
    glow_intensity: float
    lattice_brightness: float
    energy_spikes: bool


STATE_CONFIGS: Dict[AvatarMode, StateConfig] = {
    AvatarMode.IDLE: StateConfig(
        rotation_speed=0.005,
        pulse_duration_ms=4200,
        particle_count=12,
        particle_speed=0.3,
        glow_intensity=0.4,
        lattice_brightness=0.6,
        energy_spikes=False,
    ),
    AvatarMode.TALKING: StateConfig(
        rotation_speed=0.015,
        pulse_duration_ms=1800,
        particle_count=20,
        particle_speed=0.8,
        glow_intensity=0.8,
        lattice_brightness=1.0,
        energy_spikes=False,
    ),
    AvatarMode.EXECUTING: StateConfig(
        rotation_speed=0.035,
        pulse_duration_ms=900,
        particle_count=35,
        particle_speed=1.5,
        glow_intensity=1.0,
        lattice_brightness=1.0,
        energy_spikes=True,
    ),
}

# Arena capacity: switching modes never needs new particle slots
MAX_PARTICLES = max(c.particle_count for c in STATE_CONFIGS.values())

BASE_COLOR = "#00E5FF"
SECONDARY_COLOR = "#0088AA"
ACCENT_COLOR = "#CCFFFF"
SPEAKING_RING_COLOR = "#4a90d9"


def parse_mode(value: Union[str, AvatarMode]) -> AvatarMode:
    """Accepts a mode or its name (case-insensitive). Raises UnknownState otherwise."""
    if isinstance(value, AvatarMode):
        return value
    try:
        return AvatarMode(str(value).strip().lower())
    except ValueError:
        raise UnknownState(value) from None
