"""
Primitive waveform generators.
Length is floor(duration * sample_rate); phase is computed per sample index so
every oscillator starts at phase 0 and renders identically on every call.
No anti-aliasing: band-limit afterwards with Filter.lowpass when needed.
"""

import math

import torch


def _num_samples(duration: float, sample_rate: int) -> int:
    return max(0, int(math.floor(duration * sample_rate)))


def _phase(frequency: float, duration: float, sample_rate: int) -> torch.Tensor:
    """Normalized phase in [0, 1): (i mod period) / period with period = sr / f."""
    n = _num_samples(duration, sample_rate)
    if frequency <= 0:
        raise ValueError(f"frequency must be positive, got {frequency}")
    period = sample_rate / float(frequency)
    i = torch.arange(n, dtype=torch.float64)
    return torch.remainder(i, period) / period


class Oscillator:
    @staticmethod
    def sine(frequency: float, duration: float, sample_rate: int) -> torch.Tensor:
        """sin(2*pi*f*i/sr)."""
        n = _num_samples(duration, sample_rate)
        i = torch.arange(n, dtype=torch.float64)
        return torch.sin(2 * math.pi * float(frequency) * i / sample_rate).float()

    @staticmethod
    def triangle(frequency: float, duration: float, sample_rate: int) -> torch.Tensor:
        """2|2p - 1| - 1: starts at +1, reaches -1 at half period."""
        p = _phase(frequency, duration, sample_rate)
        return (2 * torch.abs(2 * p - 1) - 1).float()

    @staticmethod
    def saw(frequency: float, duration: float, sample_rate: int) -> torch.Tensor:
        """Rising ramp 2p - 1."""
        p = _phase(frequency, duration, sample_rate)
        return (2 * p - 1).float()

    @staticmethod
    def square(frequency: float, duration: float, sample_rate: int) -> torch.Tensor:
        """+1 for the first half period, -1 for the second."""
        p = _phase(frequency, duration, sample_rate)
        return torch.where(p < 0.5, torch.ones_like(p), -torch.ones_like(p)).float()
