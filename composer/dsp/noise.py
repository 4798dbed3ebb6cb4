from typing import Optional

import torch


class Noise:
    @staticmethod
    def white(
        duration: float,
        sample_rate: int,
        seed: Optional[int] = None,
        generator: Optional[torch.Generator] = None,
    ) -> torch.Tensor:
        """
        Uniform white noise in [-1, 1).
        Pass seed (or a shared generator) for reproducible output.
        """
        num_samples = max(0, int(duration * sample_rate))
        if generator is None and seed is not None:
            generator = torch.Generator().manual_seed(int(seed))
        return torch.rand(num_samples, generator=generator) * 2.0 - 1.0
