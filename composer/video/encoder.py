"""
Turning frames into a container.
FFmpegEncoder: batch mode, PNG sequence (+ optional WAV) through the ffmpeg CLI.
PyAVCapture: live mode, frames and audio blocks muxed in memory as they arrive.
"""
import logging
import os
import subprocess
from fractions import Fraction
from io import BytesIO
from pathlib import Path
from typing import List, Optional, Sequence, Union

import av
import numpy as np
from av.error import FFmpegError
from PIL import Image

from composer.core.errors import RenderError

logger = logging.getLogger(__name__)

FRAME_PATTERN = "frame_%05d.png"
MP4_MEDIA_TYPE = "video/mp4"
STDERR_TAIL_CHARS = 2000


def ffmpeg_binary() -> str:
    return os.environ.get("COMPOSER_FFMPEG", "ffmpeg")


def frame_filename(index: int) -> str:
    return FRAME_PATTERN % index


def run_ffmpeg(args: Sequence[str], binary: Optional[str] = None) -> subprocess.CompletedProcess:
    """Run ffmpeg -y <args>. Missing binary or non-zero exit raises RenderError with the stderr tail."""
    cmd = [binary or ffmpeg_binary(), "-y", *[str(a) for a in args]]
    logger.debug("ffmpeg: %s", " ".join(cmd))
    try:
        return subprocess.run(cmd, capture_output=True, check=True)
    except FileNotFoundError as exc:
        raise RenderError(f"ffmpeg not found: {cmd[0]}") from exc
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or b"").decode("utf-8", errors="replace")[-STDERR_TAIL_CHARS:]
        logger.warning("ffmpeg exited with %d:\n%s", exc.returncode, stderr)
        raise RenderError(f"ffmpeg exited with status {exc.returncode}", stderr=stderr) from exc


class FFmpegEncoder:
    media_type = MP4_MEDIA_TYPE

    def __init__(
        self,
        binary: Optional[str] = None,
        crf: int = 23,
        preset: str = "medium",
        audio_bitrate: str = "192k",
    ):
        self.binary = binary
        self.crf = crf
        self.preset = preset
        self.audio_bitrate = audio_bitrate

    def command(self, frame_dir: Path, fps: int, output_path: Path, audio_path: Optional[Path] = None) -> List[str]:
        args = ["-framerate", str(fps), "-i", str(Path(frame_dir) / FRAME_PATTERN)]
        if audio_path is not None:
            args += ["-i", str(audio_path)]
        args += [
            "-c:v", "libx264",
            "-pix_fmt", "yuv420p",
            "-preset", self.preset,
            "-crf", str(self.crf),
            "-r", str(fps),
            "-movflags", "+faststart",
        ]
        if audio_path is not None:
            args += ["-c:a", "aac", "-b:a", self.audio_bitrate]
        args.append(str(output_path))
        return args

    def encode(self, frame_dir: Path, fps: int, output_path: Path, audio_path: Optional[Path] = None) -> bytes:
        run_ffmpeg(self.command(frame_dir, fps, output_path, audio_path), self.binary)
        return Path(output_path).read_bytes()


class PyAVCapture:
    """
    In-memory MP4 capture. Video uses a millisecond time base so wall-clock
    frame times survive jitter; audio pts count samples.
    """
    media_type = MP4_MEDIA_TYPE

    def __init__(
        self,
        width: int,
        height: int,
        fps: int,
        sample_rate: int = 44100,
        video_codec: str = "libx264",
        audio_codec: str = "aac",
        with_audio: bool = True,
    ):
        self.width = width
        self.height = height
        self.fps = fps
        self.sample_rate = sample_rate
        self.video_codec = video_codec
        self.audio_codec = audio_codec
        self.with_audio = with_audio
        self._buffer: Optional[BytesIO] = None
        self._container = None
        self._video = None
        self._audio = None
        self._last_pts = -1
        self._audio_samples = 0
        self.frames_written = 0

    @property
    def active(self) -> bool:
        return self._container is not None

    def start(self) -> None:
        if self._container is not None:
            return
        self._buffer = BytesIO()
        try:
            self._container = av.open(self._buffer, mode="w", format="mp4")
            self._video = self._container.add_stream(self.video_codec, rate=self.fps)
            self._video.width = self.width
            self._video.height = self.height
            self._video.pix_fmt = "yuv420p"
            self._video.codec_context.time_base = Fraction(1, 1000)
            if self.with_audio:
                self._audio = self._container.add_stream(self.audio_codec, rate=self.sample_rate, layout="stereo")
        except (FFmpegError, ValueError) as exc:
            self.stop()
            raise RenderError(f"Cannot start capture: {exc}") from exc
        logger.info("Capture started: %dx%d @ %d fps", self.width, self.height, self.fps)

    def _mux(self, stream, frame) -> None:
        try:
            for packet in stream.encode(frame):
                self._container.mux(packet)
        except FFmpegError as exc:
            raise RenderError(f"Encoding failed: {exc}") from exc

    def add_frame(self, frame: Union[Image.Image, np.ndarray], timestamp: float) -> None:
        """Append a frame shown at timestamp seconds; timestamps must increase."""
        if self._container is None:
            raise RenderError("Capture is not running")
        arr = np.asarray(frame.convert("RGB") if isinstance(frame, Image.Image) else frame, dtype=np.uint8)
        pts = int(round(timestamp * 1000))
        if pts <= self._last_pts:
            pts = self._last_pts + 1
        video_frame = av.VideoFrame.from_ndarray(arr, format="rgb24")
        video_frame.pts = pts
        video_frame.time_base = Fraction(1, 1000)
        self._last_pts = pts
        self._mux(self._video, video_frame)
        self.frames_written += 1

    def add_audio(self, block: np.ndarray) -> None:
        """Append a (2, n) float block directly after the previous one."""
        if self._container is None:
            raise RenderError("Capture is not running")
        if self._audio is None or block.shape[-1] == 0:
            return
        planar = np.ascontiguousarray(np.clip(block, -1.0, 1.0), dtype=np.float32)
        audio_frame = av.AudioFrame.from_ndarray(planar, format="fltp", layout="stereo")
        audio_frame.sample_rate = self.sample_rate
        audio_frame.pts = self._audio_samples
        audio_frame.time_base = Fraction(1, self.sample_rate)
        self._audio_samples += planar.shape[-1]
        self._mux(self._audio, audio_frame)

    def finish(self) -> bytes:
        """Flush encoders, close the container and return the MP4 bytes."""
        if self._container is None:
            raise RenderError("Capture is not running")
        self._mux(self._video, None)
        if self._audio is not None:
            self._mux(self._audio, None)
        self._container.close()
        self._container = None
        data = self._buffer.getvalue()
        self._buffer = None
        logger.info("Capture finished: %d frames, %d bytes", self.frames_written, len(data))
        return data

    def stop(self) -> None:
        """Abort without producing output. Safe to call repeatedly."""
        if self._container is not None:
            try:
                self._container.close()
            except FFmpegError as exc:
                logger.debug("Ignoring error while aborting capture: %s", exc)
            self._container = None
        self._buffer = None
