"""
Resolves a composition's music reference to a decoded bed.
A reference is a preset name, a path to an audio file, raw encoded bytes, or
an AudioBuffer. Preset renders are cached per (name, sample_rate, seed).
"""
import functools
import logging
from pathlib import Path
from typing import Any, Optional

from composer.core.errors import DecodeError
from composer.core.io import AudioIO
from composer.core.types import AudioBuffer
from composer.music.presets import PRESETS, render_track

logger = logging.getLogger(__name__)


@functools.lru_cache(maxsize=8)
def _cached_preset(name: str, sample_rate: int, seed: int) -> AudioBuffer:
    return render_track(name, sample_rate=sample_rate, seed=seed)


def resolve_music(reference: Any, sample_rate: int, seed: int = 0) -> Optional[AudioBuffer]:
    """Returns None when there is no music. Unresolvable references raise DecodeError."""
    if reference is None or reference == "":
        return None
    if isinstance(reference, AudioBuffer):
        return reference
    if isinstance(reference, (bytes, bytearray)):
        return AudioIO.decode(reference, target_rate=sample_rate)
    if isinstance(reference, str) and reference in PRESETS:
        return _cached_preset(reference, sample_rate, seed)

    path = Path(str(reference))
    if not path.is_file():
        raise DecodeError(f"Music reference is neither a preset nor a file: {reference!r}")
    logger.debug("Loading music from %s", path)
    return AudioIO.read(path, target_rate=sample_rate)
