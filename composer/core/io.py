"""
Audio decode and the canonical PCM container.
Decoding goes through soundfile (WAV/FLAC/OGG/MP3); encoding writes the
44-byte RIFF/WAVE header by hand so the layout is bit-exact.
"""
import io
import logging
import struct
from pathlib import Path
from typing import Optional, Union

import numpy as np
import soundfile as sf
import torch
import torchaudio.functional as AF

from composer.core.errors import DecodeError
from composer.core.types import AudioBuffer

logger = logging.getLogger(__name__)

WAV_HEADER_SIZE = 44
PCM_CHANNELS = 2
PCM_BITS = 16
PCM_SCALE = 32768.0


def pcm16_header(num_frames: int, sample_rate: int) -> bytes:
    """RIFF/WAVE header for 16-bit stereo linear PCM, little-endian."""
    block_align = PCM_CHANNELS * PCM_BITS // 8
    data_size = num_frames * block_align
    return struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        36 + data_size,
        b"WAVE",
        b"fmt ",
        16,                          # fmt chunk size
        1,                           # PCM
        PCM_CHANNELS,
        sample_rate,
        sample_rate * block_align,   # byte rate
        block_align,
        PCM_BITS,
        b"data",
        data_size,
    )


def quantize_pcm16(samples: np.ndarray) -> np.ndarray:
    """Clamp to [-1, 1] first so out-of-range floats never wrap around."""
    clamped = np.clip(samples, -1.0, 1.0)
    return np.clip(np.round(clamped * PCM_SCALE), -32768, 32767).astype("<i2")


class AudioIO:
    @staticmethod
    def decode(data: Union[bytes, bytearray], target_rate: Optional[int] = None) -> AudioBuffer:
        """
        Decode encoded audio bytes to an AudioBuffer.
        Resamples to target_rate when given. Raises DecodeError on malformed input.
        """
        if not data:
            raise DecodeError("No audio data")
        try:
            samples, sample_rate = sf.read(io.BytesIO(bytes(data)), dtype="float32", always_2d=True)
        except (RuntimeError, ValueError, TypeError) as e:
            raise DecodeError(f"Could not decode audio: {e}") from e
        if samples.shape[0] == 0:
            raise DecodeError("Decoded audio contains no frames")

        buffer = AudioBuffer(samples.T, sample_rate)
        if target_rate is not None and target_rate != sample_rate:
            buffer = AudioIO.resample(buffer, target_rate)
        logger.debug(
            "Decoded %d ch x %d frames @ %d Hz",
            buffer.num_channels, buffer.num_frames, buffer.sample_rate,
        )
        return buffer

    @staticmethod
    def read(path: Union[str, Path], target_rate: Optional[int] = None) -> AudioBuffer:
        with open(path, "rb") as f:
            return AudioIO.decode(f.read(), target_rate)

    @staticmethod
    def resample(buffer: AudioBuffer, target_rate: int) -> AudioBuffer:
        waveform = torch.from_numpy(np.array(buffer.samples))
        out = AF.resample(waveform, buffer.sample_rate, target_rate)
        return AudioBuffer.from_tensor(out, target_rate)

    @staticmethod
    def to_wav_bytes(buffer: AudioBuffer) -> bytes:
        """
        Encode as 16-bit stereo PCM with the standard 44-byte header.
        Samples are interleaved left, right, left, right...
        """
        stereo = buffer.to_stereo()
        pcm = quantize_pcm16(stereo.samples)
        interleaved = pcm.T.reshape(-1)
        return pcm16_header(stereo.num_frames, stereo.sample_rate) + interleaved.tobytes()

    @staticmethod
    def save_wav(buffer: AudioBuffer, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.write_bytes(AudioIO.to_wav_bytes(buffer))
        return path
