"""
Voice-activity energy from frequency-bin magnitudes.
Mirrors a browser AnalyserNode: Blackman window, FFT magnitude smoothed over
time with smoothing_time_constant, converted to dB, mapped from
[min_db, max_db] onto byte values 0..255, then averaged and scaled to [0, 1].
"""
import numpy as np
import torch

FFT_SIZE = 256
MIN_DB = -100.0
MAX_DB = -30.0
SMOOTHING_TIME_CONSTANT = 0.8


class SpectrumAnalyser:
    def __init__(
        self,
        fft_size: int = FFT_SIZE,
        min_db: float = MIN_DB,
        max_db: float = MAX_DB,
        smoothing_time_constant: float = SMOOTHING_TIME_CONSTANT,
    ):
        if fft_size < 2 or fft_size & (fft_size - 1):
            raise ValueError(f"fft_size must be a power of two, got {fft_size}")
        if max_db <= min_db:
            raise ValueError("max_db must be greater than min_db")
        if not 0.0 <= smoothing_time_constant <= 1.0:
            raise ValueError(f"smoothing_time_constant must be in [0, 1], got {smoothing_time_constant}")
        self.fft_size = fft_size
        self.min_db = min_db
        self.max_db = max_db
        self.smoothing_time_constant = smoothing_time_constant
        self._window = torch.blackman_window(fft_size, periodic=False, dtype=torch.float64)
        self._previous = torch.zeros(self.bin_count, dtype=torch.float64)

    @property
    def bin_count(self) -> int:
        return self.fft_size // 2

    def reset(self) -> None:
        """Forget the smoothed magnitudes of earlier calls."""
        self._previous = torch.zeros(self.bin_count, dtype=torch.float64)

    def byte_frequency_data(self, block: np.ndarray) -> np.ndarray:
        """
        Byte-scaled magnitudes (uint8, bin_count values) of the last fft_size samples.
        Shorter blocks are zero-padded at the front. Each call blends into the
        magnitudes kept from the previous call.
        """
        x = np.asarray(block, dtype=np.float64).reshape(-1)[-self.fft_size:]
        if x.shape[0] < self.fft_size:
            x = np.concatenate([np.zeros(self.fft_size - x.shape[0]), x])
        frame = torch.from_numpy(x) * self._window
        spectrum = torch.fft.rfft(frame)[: self.bin_count]
        magnitude = torch.abs(spectrum) / self.fft_size
        tau = self.smoothing_time_constant
        magnitude = tau * self._previous + (1.0 - tau) * magnitude
        self._previous = magnitude
        db = 20.0 * torch.log10(magnitude + 1e-12)
        scaled = (db - self.min_db) / (self.max_db - self.min_db) * 255.0
        return torch.clamp(torch.floor(scaled), 0, 255).to(torch.uint8).numpy()

    def energy(self, block: np.ndarray) -> float:
        """Average of the byte bins divided by 255: 0 for silence, up to 1."""
        data = self.byte_frequency_data(block)
        return float(np.sum(data, dtype=np.int64)) / len(data) / 255.0
