"""
Ducking control loop state and its pure per-tick step.
The mixer owns the gain node; this module only decides which smoothed
target to issue next.
"""
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from composer.core.params import clamp_if_bounds, get_float

TICK_S = 0.05
DEFAULT_ATTACK_S = 0.05
DEFAULT_RELEASE_S = 0.3
DEFAULT_THRESHOLD = 0.01
MIN_TIME_CONSTANT_S = 0.01

# (target gain, time constant) to hand to GainNode.set_target_at
GainCommand = Tuple[float, float]


@dataclass(frozen=True)
class DuckingState:
    attack: float = DEFAULT_ATTACK_S
    release: float = DEFAULT_RELEASE_S
    threshold: float = DEFAULT_THRESHOLD
    active: bool = False
    loudness: float = 0.0
    voice_detected: bool = False
    target: Optional[float] = None

    def with_settings(self, settings: dict) -> "DuckingState":
        """Apply {"attack", "release", "threshold"}; time constants floor at 10 ms, threshold at 0."""
        attack = clamp_if_bounds(get_float(settings, "attack", self.attack), min=MIN_TIME_CONSTANT_S)
        release = clamp_if_bounds(get_float(settings, "release", self.release), min=MIN_TIME_CONSTANT_S)
        threshold = clamp_if_bounds(get_float(settings, "threshold", self.threshold), min=0.0)
        return replace(self, attack=attack, release=release, threshold=threshold)


def step(
    state: DuckingState,
    energy: float,
    current_gain: float,
    speech_level: float,
    idle_level: float,
) -> Tuple[DuckingState, Optional[GainCommand]]:
    """
    One analysis tick. Voice above threshold pulls the track toward the speech
    level with the attack constant; silence lets it recover toward idle with
    the release constant. Returns no command when already past the target.
    """
    if not state.active:
        return state, None

    voice = energy > state.threshold
    command = None
    if voice and current_gain > speech_level:
        command = (speech_level, state.attack)
    elif not voice and current_gain < idle_level:
        command = (idle_level, state.release)

    target = command[0] if command else state.target
    return replace(state, loudness=energy, voice_detected=voice, target=target), command


def start(state: DuckingState) -> DuckingState:
    return replace(state, active=True, loudness=0.0, voice_detected=False, target=None)


def finish(state: DuckingState, idle_level: float) -> Tuple[DuckingState, GainCommand]:
    """Speech ended: stop analysing and release the track back to idle."""
    return (
        replace(state, active=False, voice_detected=False, loudness=0.0, target=idle_level),
        (idle_level, state.release),
    )
