import io
import json
import logging
import tempfile
import zipfile
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Union

from composer.core.types import RenderArtifact
from composer.video.encoder import run_ffmpeg

logger = logging.getLogger(__name__)

MEDIA_EXTENSIONS = {
    "video/mp4": "mp4",
    "video/webm": "webm",
    "audio/wav": "wav",
    "audio/mpeg": "mp3",
    "audio/ogg": "ogg",
    "audio/aac": "m4a",
}

TRANSCODE_FORMATS = {
    # fmt: (extension, ffmpeg audio codec, media type)
    "mp3": ("mp3", "libmp3lame", "audio/mpeg"),
    "ogg": ("ogg", "libvorbis", "audio/ogg"),
    "aac": ("m4a", "aac", "audio/aac"),
}


def extension_for(media_type: str) -> str:
    return MEDIA_EXTENSIONS.get(media_type, "bin")


def transcode(wav_bytes: bytes, fmt: str = "mp3", bitrate_k: int = 128, binary: Optional[str] = None) -> bytes:
    """
    Lossy post-step for an exported mix. The PCM container is written
    untouched to a temp file; ffmpeg does the only encode.
    """
    if fmt not in TRANSCODE_FORMATS:
        raise ValueError(f"Unsupported transcode format {fmt!r}; expected one of {', '.join(TRANSCODE_FORMATS)}")
    ext, codec, _ = TRANSCODE_FORMATS[fmt]
    with tempfile.TemporaryDirectory(prefix="composer-transcode-") as tmp:
        src = Path(tmp) / "mix.wav"
        dst = Path(tmp) / f"mix.{ext}"
        src.write_bytes(wav_bytes)
        run_ffmpeg(["-i", str(src), "-c:a", codec, "-b:a", f"{int(bitrate_k)}k", str(dst)], binary)
        data = dst.read_bytes()
    logger.info("Transcoded %d bytes of PCM to %s (%d bytes)", len(wav_bytes), fmt, len(data))
    return data


class DirectoryStore:
    """
    Persistence hook writing <name>.<ext> plus a <name>.json metadata sidecar.
    Names default to a timestamp.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def save(self, artifact: RenderArtifact, name: Optional[str] = None) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        name = name or datetime.now().strftime("render_%Y%m%d_%H%M%S_%f")
        path = self.root / f"{name}.{extension_for(artifact.media_type)}"
        path.write_bytes(artifact.data)
        meta = dict(artifact.metadata(), file=path.name, created_at=datetime.now().isoformat())
        (self.root / f"{name}.json").write_text(json.dumps(meta, indent=2))
        logger.info("Saved %s (%d bytes)", path, len(artifact.data))
        return path


class Exporter:
    @staticmethod
    def create_bundle(artifacts: Dict[str, RenderArtifact], name: str = "composition") -> bytes:
        """
        Zip several artifacts, e.g. {"video": ..., "mix": ...}, with a
        manifest.json listing each entry's metadata.
        """
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zip_file:
            manifest = {"name": name, "created_at": datetime.now().isoformat(), "entries": {}}
            for key, artifact in artifacts.items():
                filename = f"{key}.{extension_for(artifact.media_type)}"
                zip_file.writestr(filename, artifact.data)
                manifest["entries"][key] = dict(artifact.metadata(), file=filename)
            zip_file.writestr("manifest.json", json.dumps(manifest, indent=2))
        return buffer.getvalue()
