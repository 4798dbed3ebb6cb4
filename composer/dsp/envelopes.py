import math
from typing import Union

import torch


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def db_to_lin(db: float) -> float:
    """Convert decibels to linear gain. 0 dB -> 1.0."""
    return 10.0 ** (db / 20.0)


def ms_to_s(ms: float) -> float:
    """Convert milliseconds to seconds."""
    return ms / 1000.0


def clamp01(x: Union[float, torch.Tensor]) -> Union[float, torch.Tensor]:
    """Clamp value(s) to [0, 1]. Accepts scalar or tensor."""
    if isinstance(x, torch.Tensor):
        return torch.clamp(x, 0.0, 1.0)
    return max(0.0, min(1.0, float(x)))


# -----------------------------------------------------------------------------
# Linear ADSR
# -----------------------------------------------------------------------------

class Envelope:
    @staticmethod
    def stage_lengths(
        attack: float,
        decay: float,
        release: float,
        duration: float,
        sample_rate: int,
    ) -> tuple:
        """
        Sample counts (attack, decay, sustain, release).
        Each timed stage is floor(seconds * sr); sustain absorbs the remainder so
        the four always sum to floor(duration * sr).
        """
        total = int(math.floor(duration * sample_rate))
        n_attack = int(math.floor(attack * sample_rate))
        n_decay = int(math.floor(decay * sample_rate))
        n_release = int(math.floor(release * sample_rate))
        n_sustain = total - n_attack - n_decay - n_release
        if n_sustain < 0:
            raise ValueError(
                f"attack + decay + release ({attack + decay + release:.4f}s) exceeds duration ({duration:.4f}s)"
            )
        return n_attack, n_decay, n_sustain, n_release

    @staticmethod
    def adsr(
        attack: float,
        decay: float,
        sustain: float,
        release: float,
        duration: float,
        sample_rate: int,
    ) -> torch.Tensor:
        """
        Per-sample amplitude curve: 0->1 over attack, 1->sustain over decay,
        flat sustain, sustain->0 over release. All ramps are linear.
        """
        sustain = float(clamp01(sustain))
        n_attack, n_decay, n_sustain, n_release = Envelope.stage_lengths(
            attack, decay, release, duration, sample_rate
        )

        # Ramps use i / n so each stage hands over to the next within one step
        attack_env = torch.arange(n_attack, dtype=torch.float64) / max(n_attack, 1)
        decay_env = 1.0 - (1.0 - sustain) * torch.arange(n_decay, dtype=torch.float64) / max(n_decay, 1)
        sustain_env = torch.full((n_sustain,), sustain, dtype=torch.float64)
        release_env = sustain * (1.0 - torch.arange(n_release, dtype=torch.float64) / max(n_release, 1))

        env = torch.cat([attack_env, decay_env, sustain_env, release_env])
        return torch.clamp(env, min=0.0).float()

    @staticmethod
    def apply(
        signal: torch.Tensor,
        attack: float,
        decay: float,
        sustain: float,
        release: float,
        sample_rate: int,
    ) -> torch.Tensor:
        """Shape signal with an ADSR spanning its full length. Returns a new tensor."""
        duration = signal.shape[-1] / float(sample_rate)
        n = signal.shape[-1]
        # Stage lengths are floored, so a note shorter than its stages gets them scaled down
        stages = attack + decay + release
        if stages > duration and stages > 0:
            scale = duration / stages
            attack, decay, release = attack * scale, decay * scale, release * scale
        env = Envelope.adsr(attack, decay, sustain, release, duration, sample_rate)
        if env.shape[-1] < n:
            env = torch.nn.functional.pad(env, (0, n - env.shape[-1]))
        return signal * env[:n]
