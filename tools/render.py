#!/usr/bin/env python3
"""
Composition renderer tool with debug outputs and fingerprinting.

Usage:
    python tools/render.py <subcommand> [options]

Subcommands:
    compose <request_json>           Render a composition (batch mode, or --live)
    music <preset>                   Render a procedural music bed to WAV
    mix --track <ref> --speech <f>   Offline ducked mix of a bed and a speech file
    frame <request_json> --at-ms N   Render a single preview frame to PNG

Options:
    --seed <int>          Fixed seed (default: from request, else 0)
    --debug               Save resolved.json with the resolved settings
    --output-dir <path>   Output directory (default: unique timestamped dir)
"""
import sys
import os
import json
import asyncio
import logging
import argparse
from pathlib import Path

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from tools.render_core import fingerprint_audio, fingerprint_bytes, get_unique_output_dir, write_debug_json
from composer.audio.mixer import AudioMixer
from composer.avatar import AvatarEngine
from composer.core.errors import ComposerError
from composer.core.io import AudioIO
from composer.export import DirectoryStore, transcode
from composer.music import list_tracks, render_track, resolve_music
from composer.params import resolve_config, resolve_request
from composer.render import Orchestrator
from composer.video.compositor import FrameCompositor


def _load_request(path: str, seed) -> dict:
    with open(path, "r") as f:
        request = json.load(f)
    if seed is not None:
        request["seed"] = seed
    return request


def cmd_compose(args):
    """Render a composition to MP4."""
    request = _load_request(args.request_json, args.seed)
    config = resolve_config(request)
    output_dir = Path(args.output_dir) if args.output_dir else get_unique_output_dir("compose")
    name = args.filename or Path(args.request_json).stem

    mixer = None
    if args.speech:
        mixer = AudioMixer(volumes=config.volumes or None, ducking_settings=config.ducking or None)
        mixer.load_speech(Path(args.speech).read_bytes())

    store = DirectoryStore(output_dir)
    orchestrator = Orchestrator(config, mixer=mixer)

    def progress(value):
        if args.verbose:
            print(f"\r  {value * 100:5.1f}%", end="", flush=True)

    try:
        if args.live:
            artifact = asyncio.run(orchestrator.render_live(on_progress=progress))
        else:
            frames_dir = output_dir / f"{name}_frames" if args.keep_frames else None
            artifact = orchestrator.render_batch(output_dir=frames_dir, on_progress=progress)
    finally:
        orchestrator.dispose()
    path = store.save(artifact, name)

    if args.debug:
        json_path = write_debug_json(output_dir, name, "render.py compose", request=request, resolved=resolve_request(request))
        print(f"Debug JSON: {json_path}")

    fp = fingerprint_bytes(artifact.data)
    print(f"\n=== Render Complete ===")
    print(f"Output: {path}")
    print(f"Mode: {'live' if args.live else 'batch'}")
    print(f"Media: {artifact.media_type} {artifact.width}x{artifact.height} @ {artifact.fps} fps")
    print(f"Duration: {artifact.duration_ms:.0f} ms ({artifact.frame_count} frames)")
    print(f"Fingerprint SHA256: {fp['sha256'][:16]}... ({fp['size_bytes']} bytes)")
    return 0


def cmd_music(args):
    """Render a preset music bed."""
    output_dir = Path(args.output_dir) if args.output_dir else get_unique_output_dir("music")
    output_dir.mkdir(parents=True, exist_ok=True)
    seed = args.seed if args.seed is not None else 0

    track = render_track(args.preset, seed=seed, duration=args.duration)
    wav = AudioIO.to_wav_bytes(track)
    wav_path = output_dir / f"{args.preset}.wav"
    wav_path.write_bytes(wav)

    fp = fingerprint_audio(track)
    print(f"\n=== Music Bed ===")
    print(f"Preset: {args.preset}")
    print(f"Output: {wav_path}")
    print(f"Seed: {seed}")
    print(f"Fingerprint SHA256: {fp['sha256'][:16]}...")
    print(f"Peak: {fp['peak']:.4f}, RMS: {fp['rms']:.4f}, Duration: {fp['duration_s']:.2f}s")

    if args.format != "wav":
        lossy_path = output_dir / f"{args.preset}.{args.format}"
        lossy_path.write_bytes(transcode(wav, args.format, args.bitrate))
        print(f"Transcoded: {lossy_path}")
    return 0


def cmd_mix(args):
    """Offline ducked mix of a bed (preset or file) and a speech file."""
    output_dir = Path(args.output_dir) if args.output_dir else get_unique_output_dir("mix")
    output_dir.mkdir(parents=True, exist_ok=True)
    volumes = json.loads(args.volumes) if args.volumes else None

    mixer = AudioMixer(volumes=volumes, ducking_settings={"release": args.release} if args.release else None)
    mixer.load_track(resolve_music(args.track, mixer.sample_rate, args.seed or 0))
    if args.speech:
        mixer.load_speech(Path(args.speech).read_bytes())

    options = {"duration": args.duration, "normalize": args.normalize}
    mix = mixer.render_offline(options)
    wav_path = output_dir / (args.filename or "mix")
    wav_path = wav_path.with_suffix(".wav")
    wav_path.write_bytes(AudioIO.to_wav_bytes(mix))

    fp = fingerprint_audio(mix)
    print(f"\n=== Mix Complete ===")
    print(f"Output: {wav_path}")
    print(f"Speech: {'yes' if args.speech else 'no'} | Volumes: {mixer.volumes}")
    print(f"Fingerprint SHA256: {fp['sha256'][:16]}...")
    print(f"Peak: {fp['peak']:.4f}, RMS: {fp['rms']:.4f}, Duration: {fp['duration_s']:.2f}s")
    return 0


def cmd_frame(args):
    """Render one preview frame."""
    request = _load_request(args.request_json, args.seed)
    config = resolve_config(request)
    output_dir = Path(args.output_dir) if args.output_dir else get_unique_output_dir("frame")
    output_dir.mkdir(parents=True, exist_ok=True)

    avatar = AvatarEngine(size=config.avatar_size, seed=config.seed)
    avatar.set_state(args.state)
    # Step the avatar up to the requested time at the composition frame rate
    steps = int(args.at_ms * config.fps / 1000.0) + 1
    for _ in range(steps):
        avatar.update(1.0 / config.fps)

    compositor = FrameCompositor(config, avatar)
    try:
        frame = compositor.render_frame(args.at_ms)
    finally:
        compositor.close()
    png_path = output_dir / f"{Path(args.request_json).stem}_{int(args.at_ms):06d}ms.png"
    frame.save(png_path)

    print(f"\n=== Frame ===")
    print(f"Output: {png_path}")
    print(f"Size: {frame.width}x{frame.height}, t={args.at_ms:.0f} ms, avatar={avatar.get_state()}")
    print(f"Fingerprint SHA256: {fingerprint_bytes(frame.tobytes())['sha256'][:16]}...")
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Composition renderer tool with debug outputs and fingerprinting"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging and progress output")

    subparsers = parser.add_subparsers(dest="command", help="Subcommand")

    # Common arguments
    def add_common_args(p):
        p.add_argument("--seed", type=int, default=None, help="Fixed seed")
        p.add_argument("--debug", action="store_true", help="Save resolved.json with the resolved settings")
        p.add_argument("--output-dir", type=str, help="Output directory (default: unique timestamped)")
        p.add_argument("--filename", type=str, help="Output filename (without extension)")

    # compose subcommand
    p_compose = subparsers.add_parser("compose", help="Render a composition")
    p_compose.add_argument("request_json", help="JSON file with the composition request")
    p_compose.add_argument("--speech", type=str, help="Speech audio file (drives ducking and the talking avatar)")
    p_compose.add_argument("--live", action="store_true", help="Live mode: real-time scheduler and in-memory capture")
    p_compose.add_argument("--keep-frames", action="store_true", help="Keep the PNG frame sequence (batch mode)")
    add_common_args(p_compose)

    # music subcommand
    p_music = subparsers.add_parser("music", help="Render a music bed")
    p_music.add_argument("preset", choices=list_tracks())
    p_music.add_argument("--duration", type=float, default=None, help="Seconds (default: preset length)")
    p_music.add_argument("--format", choices=["wav", "mp3", "ogg", "aac"], default="wav")
    p_music.add_argument("--bitrate", type=int, default=128, help="Lossy bitrate in kbps")
    add_common_args(p_music)

    # mix subcommand
    p_mix = subparsers.add_parser("mix", help="Offline ducked mix")
    p_mix.add_argument("--track", required=True, help="Preset name or audio file for the bed")
    p_mix.add_argument("--speech", type=str, help="Speech audio file")
    p_mix.add_argument("--duration", type=float, default=None, help="Seconds (default: speech, else one loop)")
    p_mix.add_argument("--volumes", type=str, help='JSON, e.g. \'{"music": 0.2, "musicIdle": 0.7, "tts": 1.0}\'')
    p_mix.add_argument("--release", type=float, default=None, help="Ducking release time constant (s)")
    p_mix.add_argument("--normalize", action="store_true", help="Rescale to 0.99 if the mix clips")
    add_common_args(p_mix)

    # frame subcommand
    p_frame = subparsers.add_parser("frame", help="Render a single preview frame")
    p_frame.add_argument("request_json", help="JSON file with the composition request")
    p_frame.add_argument("--at-ms", type=float, default=0.0, help="Elapsed time of the frame")
    p_frame.add_argument("--state", choices=["idle", "talking", "executing"], default="idle")
    add_common_args(p_frame)

    args = parser.parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    if not args.command:
        parser.print_help()
        return 1

    commands = {
        "compose": cmd_compose,
        "music": cmd_music,
        "mix": cmd_mix,
        "frame": cmd_frame,
    }
    try:
        return commands[args.command](args)
    except ComposerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
