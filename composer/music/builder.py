"""
Stereo track assembly for procedural music beds.
Notes are synthesized with the dsp primitives and summed into private
left/right accumulators; build() returns an immutable AudioBuffer.
"""
import math
import random
from typing import Optional

import torch

from composer.core.types import AudioBuffer
from composer.dsp.envelopes import Envelope
from composer.dsp.filters import Filter
from composer.dsp.mixer import accumulate_, normalize
from composer.dsp.noise import Noise
from composer.dsp.oscillators import Oscillator

CHANNEL_CEILING = 0.9


class TrackBuilder:
    def __init__(self, duration: float, sample_rate: int, seed: int = 0):
        self.duration = float(duration)
        self.sample_rate = int(sample_rate)
        n = int(math.floor(self.duration * self.sample_rate))
        self._left = torch.zeros(n)
        self._right = torch.zeros(n)
        self.rng = random.Random(seed)
        self._noise = torch.Generator().manual_seed(int(seed))

    # Generators bound to this track's sample rate

    def sine(self, freq: float, duration: float) -> torch.Tensor:
        return Oscillator.sine(freq, duration, self.sample_rate)

    def triangle(self, freq: float, duration: float) -> torch.Tensor:
        return Oscillator.triangle(freq, duration, self.sample_rate)

    def saw(self, freq: float, duration: float) -> torch.Tensor:
        return Oscillator.saw(freq, duration, self.sample_rate)

    def square(self, freq: float, duration: float) -> torch.Tensor:
        return Oscillator.square(freq, duration, self.sample_rate)

    def noise(self, duration: float) -> torch.Tensor:
        return Noise.white(duration, self.sample_rate, generator=self._noise)

    def lowpass(self, signal: torch.Tensor, cutoff: float) -> torch.Tensor:
        return Filter.lowpass(signal, self.sample_rate, cutoff)

    def env(self, signal: torch.Tensor, attack: float, decay: float, sustain: float, release: float) -> torch.Tensor:
        return Envelope.apply(signal, attack, decay, sustain, release, self.sample_rate)

    def add(self, note: torch.Tensor, time: float, gain_left: float, gain_right: Optional[float] = None) -> None:
        """Place note at time seconds; gain_right defaults to gain_left."""
        if gain_right is None:
            gain_right = gain_left
        start = int(math.floor(time * self.sample_rate))
        accumulate_(self._left, note, start, gain_left)
        accumulate_(self._right, note, start, gain_right)

    def build(self, ceiling: float = CHANNEL_CEILING) -> AudioBuffer:
        """Normalize each channel independently to ceiling."""
        return AudioBuffer.from_channels(
            [normalize(self._left, ceiling), normalize(self._right, ceiling)],
            self.sample_rate,
        )
