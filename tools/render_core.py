"""
Core CLI utilities: fingerprinting, unique output dirs and debug JSON.
Used by the render.py tool.
"""
import sys
import os
import json
import hashlib
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import numpy as np
import torch

from composer.core.types import AudioBuffer


def _get_git_hash() -> str:
    """Get short git commit hash."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],
            capture_output=True,
            text=True,
            cwd=os.path.abspath(os.path.join(os.path.dirname(__file__), "..")),
        )
    except OSError:
        return "unknown"
    if result.returncode == 0:
        return result.stdout.strip()
    return "unknown"


def fingerprint_bytes(data: bytes) -> Dict[str, Any]:
    """SHA256 and size of an encoded artifact."""
    return {"sha256": hashlib.sha256(data).hexdigest(), "size_bytes": len(data)}


def fingerprint_audio(buffer: AudioBuffer) -> Dict[str, Any]:
    """Fingerprint a mix: SHA256 of the float samples, peak, RMS, band energies."""
    samples = torch.from_numpy(np.ascontiguousarray(buffer.samples))
    mono = samples.mean(dim=0)
    sha256 = hashlib.sha256(samples.numpy().tobytes()).hexdigest()
    peak = float(torch.max(torch.abs(samples))) if samples.numel() else 0.0
    rms = float(torch.sqrt(torch.mean(samples ** 2) + 1e-12)) if samples.numel() else 0.0

    bands = {"low_energy": 0.0, "mid_energy": 0.0, "high_energy": 0.0}
    n = mono.numel()
    if n >= 2:
        n_fft = 2 ** int(np.ceil(np.log2(n)))
        magnitude = torch.abs(torch.fft.rfft(mono, n=n_fft))
        freqs = torch.fft.rfftfreq(n_fft, 1.0 / buffer.sample_rate)
        # Low: 20-200Hz, Mid: 200-5000Hz, High: 5000Hz-Nyquist
        edges = {"low_energy": (20.0, 200.0), "mid_energy": (200.0, 5000.0), "high_energy": (5000.0, buffer.sample_rate / 2.0)}
        for key, (lo, hi) in edges.items():
            mask = (freqs >= lo) & (freqs <= hi)
            bands[key] = float(torch.sum(magnitude[mask] ** 2))

    return {"sha256": sha256, "peak": peak, "rms": rms, "duration_s": buffer.duration, **bands}


def get_unique_output_dir(base_name: str) -> Path:
    """
    Generate unique output directory: renders/{base_name}/YYYYMMDD_HHMMSS_{gitshort}/
    """
    now = datetime.now()
    git_hash = _get_git_hash()
    short_hash = git_hash[:8] if git_hash != "unknown" else "unknown"
    return Path("renders") / base_name / f"{now.strftime('%Y%m%d')}_{now.strftime('%H%M%S')}_{short_hash}"


def write_debug_json(output_dir: Path, filename: str, script_name: str, **fields) -> Path:
    """Save {filename}.resolved.json with the run context and any extra fields."""
    output_dir.mkdir(parents=True, exist_ok=True)
    info = {
        "script_name": script_name,
        "timestamp": datetime.now().isoformat(),
        "git_hash": _get_git_hash(),
        **fields,
    }
    json_path = output_dir / f"{filename}.resolved.json"
    with open(json_path, "w") as f:
        json.dump(info, f, indent=2, default=str)
    return json_path
