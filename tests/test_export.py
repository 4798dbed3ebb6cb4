"""
Tests for artifact persistence and bundling in composer/export.
Run from project root: python -m pytest tests/test_export.py -v
Or: python tests/test_export.py
"""
import sys
import os
import io
import json
import zipfile

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest
from composer.core.types import RenderArtifact
from composer.export import DirectoryStore, Exporter, transcode


def _artifact(media_type="video/mp4", data=b"\x00\x00\x00\x18ftypmp42"):
    return RenderArtifact(data=data, media_type=media_type, width=1080, height=1920, duration_ms=5000.0, fps=30, frame_count=150)


def test_directory_store_writes_file_and_sidecar(tmp_path):
    store = DirectoryStore(tmp_path / "out")
    path = store.save(_artifact(), "clip")
    assert path == tmp_path / "out" / "clip.mp4"
    assert path.read_bytes() == _artifact().data
    meta = json.loads((tmp_path / "out" / "clip.json").read_text())
    assert meta["media_type"] == "video/mp4"
    assert meta["frame_count"] == 150
    assert meta["file"] == "clip.mp4"
    assert "created_at" in meta


def test_directory_store_default_name(tmp_path):
    path = DirectoryStore(tmp_path).save(_artifact("audio/wav", b"RIFF"))
    assert path.suffix == ".wav"
    assert path.name.startswith("render_")


def test_bundle_contains_manifest():
    bundle = Exporter.create_bundle({"video": _artifact(), "mix": _artifact("audio/wav", b"RIFF....")}, "demo")
    with zipfile.ZipFile(io.BytesIO(bundle)) as zf:
        names = set(zf.namelist())
        assert names == {"video.mp4", "mix.wav", "manifest.json"}
        manifest = json.loads(zf.read("manifest.json"))
        assert zf.read("mix.wav") == b"RIFF...."
    assert manifest["name"] == "demo"
    assert manifest["entries"]["video"]["file"] == "video.mp4"
    assert manifest["entries"]["mix"]["size_bytes"] == 8


def test_transcode_rejects_unknown_format():
    with pytest.raises(ValueError):
        transcode(b"RIFF", "flac")


if __name__ == "__main__":
    test_bundle_contains_manifest()
    test_transcode_rejects_unknown_format()
    print("All export tests passed.")
