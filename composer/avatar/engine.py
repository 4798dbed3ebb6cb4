"""
Avatar state machine: a discrete mode (idle/talking/executing) plus an
independent speaking overlay. update() composes the pure steppers.
"""
import logging
import random
from typing import Optional, Tuple, Union

from composer.avatar import steppers
from composer.avatar.states import STATE_CONFIGS, AvatarMode, StateConfig, parse_mode
from composer.core.errors import UnknownState

logger = logging.getLogger(__name__)

DEFAULT_SIZE = 80


class AvatarEngine:
    def __init__(self, size: int = DEFAULT_SIZE, seed: Optional[int] = None):
        self.size = int(size)
        self.radius = self.size / 2.0
        self._rng = random.Random(seed)
        self.mode = AvatarMode.IDLE
        self.speaking = False
        self.motion = steppers.Motion()
        self.particles = steppers.init_arena(self.radius, self._rng)
        self.ripples: Tuple[steppers.Ripple, ...] = ()

    @property
    def config(self) -> StateConfig:
        return STATE_CONFIGS[self.mode]

    def set_state(self, state: Union[str, AvatarMode]) -> None:
        """Switch mode immediately; the pulse restarts from phase 0. Raises UnknownState."""
        try:
            mode = parse_mode(state)
        except UnknownState:
            logger.warning("Unknown avatar state: %r", state)
            raise
        if mode != self.mode:
            logger.debug("Avatar state %s -> %s", self.mode.value, mode.value)
        self.mode = mode
        self.motion = steppers.Motion(time=self.motion.time, rotation=self.motion.rotation, pulse_phase=0.0)

    def get_state(self) -> str:
        return self.mode.value

    def set_speaking(self, speaking: bool) -> None:
        self.speaking = bool(speaking)

    @property
    def is_speaking(self) -> bool:
        return self.speaking

    def update(self, dt: float) -> None:
        """Advance by dt seconds: motion, particles, ripple spawns, ripple decay."""
        if dt <= 0:
            return
        config = self.config
        self.motion = steppers.advance_motion(self.motion, config, dt)
        self.particles = steppers.advance_particles(self.particles, config, self.motion.time, self.radius, dt)
        self.ripples = steppers.spawn_ripples(self.ripples, self.mode, config, self.radius, self._rng)
        self.ripples = steppers.advance_ripples(self.ripples, dt)
