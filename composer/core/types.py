from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Union

import numpy as np
import torch


@dataclass(frozen=True)
class AudioBuffer:
    """
    Immutable multi-channel audio. samples is a read-only float32 array shaped
    (channels, frames); derived buffers are always new allocations.
    """
    samples: np.ndarray
    sample_rate: int

    def __post_init__(self):
        data = np.array(self.samples, dtype=np.float32)
        if data.ndim == 1:
            data = data[np.newaxis, :]
        if data.ndim != 2:
            raise ValueError(f"AudioBuffer expects (channels, frames), got shape {data.shape}")
        data.setflags(write=False)
        object.__setattr__(self, "samples", data)
        object.__setattr__(self, "sample_rate", int(self.sample_rate))

    @property
    def num_channels(self) -> int:
        return self.samples.shape[0]

    @property
    def num_frames(self) -> int:
        return self.samples.shape[1]

    @property
    def duration(self) -> float:
        """Duration in seconds (frames / sample_rate)."""
        return self.num_frames / float(self.sample_rate)

    @property
    def peak(self) -> float:
        if self.num_frames == 0:
            return 0.0
        return float(np.max(np.abs(self.samples)))

    def channel(self, index: int) -> torch.Tensor:
        """Copy of one channel as a 1-D tensor."""
        return torch.tensor(self.samples[index])

    def to_stereo(self) -> "AudioBuffer":
        """Mono is duplicated to both sides; more than two channels keep the first pair."""
        if self.num_channels == 2:
            return self
        if self.num_channels == 1:
            return AudioBuffer(np.repeat(self.samples, 2, axis=0), self.sample_rate)
        return AudioBuffer(self.samples[:2], self.sample_rate)

    @classmethod
    def from_tensor(cls, tensor: torch.Tensor, sample_rate: int) -> "AudioBuffer":
        return cls(tensor.detach().cpu().numpy(), sample_rate)

    @classmethod
    def from_channels(
        cls,
        channels: Sequence[Union[torch.Tensor, np.ndarray]],
        sample_rate: int,
    ) -> "AudioBuffer":
        arrays = [
            c.detach().cpu().numpy() if isinstance(c, torch.Tensor) else np.asarray(c)
            for c in channels
        ]
        lengths = {a.shape[-1] for a in arrays}
        if len(lengths) > 1:
            raise ValueError(f"channel lengths differ: {sorted(lengths)}")
        return cls(np.stack(arrays), sample_rate)

    @classmethod
    def silence(cls, duration: float, sample_rate: int, channels: int = 2) -> "AudioBuffer":
        return cls(np.zeros((channels, int(duration * sample_rate)), dtype=np.float32), sample_rate)


@dataclass(frozen=True)
class CaptionStyle:
    """Caption look and layout. y_from_bottom positions the first line's baseline."""
    font_size: int = 52
    bold: bool = True
    color: str = "#FFFFFF"
    stroke_color: str = "#000000"
    stroke_width: int = 10
    line_height: int = 70
    max_width: int = 950
    x: Optional[int] = None  # None -> horizontally centred
    y_from_bottom: int = 350
    lead_in_words: int = 3
    fade_ms: float = 500.0


@dataclass(frozen=True)
class CompositionConfig:
    caption_text: str = ""
    background: Dict[str, Any] = field(default_factory=lambda: {"type": "solid", "color": "#0f0f1a"})
    music: Any = None  # preset name, file path, raw bytes or AudioBuffer
    duration_ms: float = 5000.0
    fps: int = 30
    width: int = 1080
    height: int = 1920
    text_reveal: str = "typewriter"  # "typewriter", "fade", "static"
    caption_style: CaptionStyle = field(default_factory=CaptionStyle)
    seed: int = 0
    speech_duration_ms: Optional[float] = None
    show_avatar: bool = True
    avatar_size: int = 80
    avatar_margin: int = 20
    avatar_state: str = "idle"  # mode outside the speech window
    volumes: Dict[str, float] = field(default_factory=dict)  # overrides for AudioMixer.set_volumes
    ducking: Dict[str, float] = field(default_factory=dict)  # overrides for AudioMixer.set_ducking

    @property
    def duration_s(self) -> float:
        return self.duration_ms / 1000.0

    @property
    def frame_count(self) -> int:
        return int(round(self.duration_ms * self.fps / 1000.0))


@dataclass(frozen=True)
class RenderArtifact:
    data: bytes
    media_type: str
    width: int
    height: int
    duration_ms: float
    fps: int = 0
    frame_count: int = 0

    def metadata(self) -> Dict[str, Any]:
        return {
            "media_type": self.media_type,
            "width": self.width,
            "height": self.height,
            "duration_ms": self.duration_ms,
            "fps": self.fps,
            "frame_count": self.frame_count,
            "size_bytes": len(self.data),
        }
