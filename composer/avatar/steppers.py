"""
Pure per-tick steppers for the avatar: each takes the previous value plus dt
and returns a new one. The engine composes them in a fixed order.
"""
import math
import random
from dataclasses import dataclass, replace
from typing import Tuple

from composer.avatar.states import MAX_PARTICLES, AvatarMode, StateConfig

TWO_PI = 2 * math.pi

TALKING_RIPPLE_CHANCE = 0.05
SPIKE_RIPPLE_CHANCE = 0.1
RIPPLE_FADE_PER_FRAME = 0.02


def frames60(dt: float) -> float:
    """dt seconds expressed in 60 Hz frames."""
    return dt * 60.0


# -----------------------------------------------------------------------------
# Global motion: time, rotation, pulse phase
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class Motion:
    time: float = 0.0        # seconds since the engine started
    rotation: float = 0.0    # radians
    pulse_phase: float = 0.0  # radians, kept in [0, 2*pi)

    @property
    def pulse(self) -> float:
        """Breathing value in [0, 1]."""
        return (math.sin(self.pulse_phase) + 1.0) / 2.0


def advance_motion(motion: Motion, config: StateConfig, dt: float) -> Motion:
    pulse_step = dt * 1000.0 / config.pulse_duration_ms * TWO_PI
    return Motion(
        time=motion.time + dt,
        rotation=motion.rotation + config.rotation_speed * frames60(dt),
        pulse_phase=(motion.pulse_phase + pulse_step) % TWO_PI,
    )


# -----------------------------------------------------------------------------
# Particles: fixed-capacity arena with liveness flags
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class Particle:
    angle: float
    distance: float
    speed: float
    size: float
    phase: float
    alive: bool = False


@dataclass(frozen=True)
class ParticleArena:
    slots: Tuple[Particle, ...]

    @property
    def capacity(self) -> int:
        return len(self.slots)

    @property
    def alive_count(self) -> int:
        return sum(1 for p in self.slots if p.alive)

    def active(self) -> Tuple[Particle, ...]:
        return tuple(p for p in self.slots if p.alive)


def init_arena(radius: float, rng: random.Random, capacity: int = MAX_PARTICLES) -> ParticleArena:
    """Evenly spaced orbit angles, randomized distance/speed/size/phase. All slots start parked."""
    slots = []
    for i in range(capacity):
        slots.append(
            Particle(
                angle=TWO_PI * i / capacity,
                distance=radius * (1.1 + rng.random() * 0.4),
                speed=0.02 + rng.random() * 0.03,
                size=1.0 + rng.random() * 2.0,
                phase=rng.random() * TWO_PI,
            )
        )
    return ParticleArena(tuple(slots))


def advance_particles(
    arena: ParticleArena,
    config: StateConfig,
    time: float,
    radius: float,
    dt: float,
) -> ParticleArena:
    """
    The first particle_count slots are alive and orbit; the rest stay parked
    with their last position so re-activating them is seamless.
    """
    count = min(config.particle_count, arena.capacity)
    step = frames60(dt) * config.particle_speed
    slots = []
    for i, p in enumerate(arena.slots):
        if i < count:
            slots.append(
                replace(
                    p,
                    angle=(p.angle + p.speed * step) % TWO_PI,
                    distance=radius * (1.1 + math.sin(time + p.phase) * 0.15),
                    alive=True,
                )
            )
        else:
            slots.append(replace(p, alive=False) if p.alive else p)
    return ParticleArena(tuple(slots))


# -----------------------------------------------------------------------------
# Ripples: spawn / expire queue
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class Ripple:
    radius: float
    opacity: float
    expansion: float
    is_spike: bool = False


def spawn_ripples(
    ripples: Tuple[Ripple, ...],
    mode: AvatarMode,
    config: StateConfig,
    radius: float,
    rng: random.Random,
) -> Tuple[Ripple, ...]:
    spawned = list(ripples)
    if mode == AvatarMode.TALKING and rng.random() < TALKING_RIPPLE_CHANCE:
        spawned.append(Ripple(radius=radius, opacity=1.0, expansion=2.0))
    if config.energy_spikes and rng.random() < SPIKE_RIPPLE_CHANCE:
        spawned.append(Ripple(radius=radius, opacity=0.8, expansion=4.0, is_spike=True))
    return tuple(spawned)


def advance_ripples(ripples: Tuple[Ripple, ...], dt: float) -> Tuple[Ripple, ...]:
    """Expand and fade linearly; ripples are dropped once opacity reaches zero."""
    frames = frames60(dt)
    advanced = (
        replace(r, radius=r.radius + r.expansion * frames, opacity=r.opacity - RIPPLE_FADE_PER_FRAME * frames)
        for r in ripples
    )
    return tuple(r for r in advanced if r.opacity > 0)
