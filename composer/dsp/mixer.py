"""
Buffer-level mixing primitives: weighted sum, peak normalization and
placing a note into a longer track. All return new tensors.
"""
import math
from typing import Optional, Sequence

import torch

from composer.core.errors import LengthMismatch


def mix(buffers: Sequence[torch.Tensor], gains: Optional[Sequence[float]] = None) -> torch.Tensor:
    """
    Sample-wise weighted sum of equal-length buffers.
    Gains default to 1.0 each. Raises LengthMismatch on unequal lengths.
    """
    if not buffers:
        return torch.tensor([], dtype=torch.float32)
    lengths = [b.shape[-1] for b in buffers]
    if len(set(lengths)) > 1:
        raise LengthMismatch(lengths)
    if gains is None:
        gains = [1.0] * len(buffers)
    if len(gains) != len(buffers):
        raise ValueError(f"expected {len(buffers)} gains, got {len(gains)}")

    result = torch.zeros_like(buffers[0])
    for buf, gain in zip(buffers, gains):
        result = result + buf * gain
    return result


def normalize(buffer: torch.Tensor, target: float = 0.95) -> torch.Tensor:
    """Scale so the peak absolute sample equals target. All-zero input is returned as a copy."""
    if buffer.numel() == 0:
        return buffer.clone()
    peak = float(torch.max(torch.abs(buffer)))
    if peak == 0.0:
        return buffer.clone()
    return buffer * (target / peak)


def add_at(
    track: torch.Tensor,
    note: torch.Tensor,
    start_s: float,
    sample_rate: int,
    gain: float = 1.0,
) -> torch.Tensor:
    """
    Sum note * gain into a copy of track starting at floor(start_s * sr).
    Whatever falls past the end of the track is dropped.
    """
    out = track.clone()
    accumulate_(out, note, int(math.floor(start_s * sample_rate)), gain)
    return out


def accumulate_(track: torch.Tensor, note: torch.Tensor, start: int, gain: float = 1.0) -> None:
    """In-place add_at on a sample offset. Only for buffers the caller owns exclusively."""
    if start >= track.shape[-1] or note.shape[-1] == 0:
        return
    skip = max(0, -start)
    start = max(0, start)
    end = min(track.shape[-1], start + note.shape[-1] - skip)
    if end <= start:
        return
    track[..., start:end] += note[..., skip:skip + end - start] * gain
