"""
One-pole low-pass, the only band-limiting the synthesizer applies.
Runs through torchaudio's IIR lfilter instead of a Python sample loop.
"""

import math

import torch
import torchaudio.functional as F


class Filter:
    @staticmethod
    def one_pole_alpha(cutoff_freq: float, sample_rate: int) -> float:
        """alpha = dt / (rc + dt), rc = 1 / (2*pi*fc)."""
        rc = 1.0 / (2 * math.pi * cutoff_freq)
        dt = 1.0 / sample_rate
        return dt / (rc + dt)

    @staticmethod
    def lowpass(waveform: torch.Tensor, sample_rate: int, cutoff_freq: float) -> torch.Tensor:
        """
        y[0] = x[0]; y[i] = y[i-1] + alpha * (x[i] - y[i-1]).
        Returns a new tensor; the input is not modified.
        """
        if waveform.shape[-1] == 0:
            return waveform.clone()
        if cutoff_freq <= 0:
            raise ValueError(f"cutoff must be positive, got {cutoff_freq}")
        alpha = Filter.one_pole_alpha(cutoff_freq, sample_rate)

        x = waveform.to(torch.float64)
        # lfilter starts from zero state; offsetting by x[0] makes y[0] == x[0]
        x0 = x[..., :1]
        a_coeffs = torch.tensor([1.0, -(1.0 - alpha)], dtype=torch.float64)
        b_coeffs = torch.tensor([alpha, 0.0], dtype=torch.float64)
        y = F.lfilter(x - x0, a_coeffs, b_coeffs, clamp=False) + x0
        return y.to(waveform.dtype)
