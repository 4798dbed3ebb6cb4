"""
Per-frame assembly: background -> caption -> avatar.
The compositor never advances the avatar; the orchestrator owns its clock.
"""
import logging
from typing import Optional, Tuple

import numpy as np
from PIL import Image

from composer.avatar import AvatarEngine, draw_avatar
from composer.core.types import CompositionConfig
from composer.video.background import BackgroundLayer, create_background
from composer.video.caption import CaptionRenderer

logger = logging.getLogger(__name__)


class FrameCompositor:
    def __init__(self, config: CompositionConfig, avatar: Optional[AvatarEngine] = None, font_path: Optional[str] = None):
        self.config = config
        self.avatar = avatar
        self.background: BackgroundLayer = create_background(config.background, config.width, config.height)
        self.caption = CaptionRenderer(config.caption_style, config.width, config.height, font_path)

    @property
    def size(self) -> Tuple[int, int]:
        return self.config.width, self.config.height

    @property
    def avatar_anchor(self) -> Tuple[float, float]:
        """Centre of the avatar in the upper-right safe area."""
        size = self.avatar.size if self.avatar is not None else self.config.avatar_size
        half = size / 2.0
        margin = self.config.avatar_margin
        return self.config.width - half - margin, half + margin

    def progress(self, elapsed_ms: float) -> float:
        if self.config.duration_ms <= 0:
            return 1.0
        return min(max(elapsed_ms / self.config.duration_ms, 0.0), 1.0)

    def render_frame(self, elapsed_ms: float) -> Image.Image:
        frame = self.background.render(self.progress(elapsed_ms), elapsed_ms)
        if frame.size != self.size:
            frame = frame.resize(self.size)
        if self.config.caption_text:
            self.caption.draw(frame, self.config.caption_text, elapsed_ms, self.config.duration_ms, self.config.text_reveal)
        if self.avatar is not None and self.config.show_avatar:
            draw_avatar(frame, self.avatar, self.avatar_anchor)
        return frame

    def render_array(self, elapsed_ms: float) -> np.ndarray:
        """(height, width, 3) uint8 frame, as encoders expect."""
        return np.asarray(self.render_frame(elapsed_ms), dtype=np.uint8)

    def close(self) -> None:
        self.background.close()
