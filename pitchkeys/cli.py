"""Command-line entry point: ``pitchkeys``.

Sing or hum into the microphone and the mapped keys are pressed in the
focused window::

    pitchkeys                       # default key table, default mic
    pitchkeys --list-devices
    pitchkeys --device 3 --config mgba.json -v
    pitchkeys --dry-run             # detect and log, send nothing
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from typing import Optional, Sequence, Union

import sounddevice as sd

from .config import PitchKeysConfig, load_config
from .constants import CONFIG_ENV_VAR
from .errors import ConfigError, PitchKeysError
from .pipeline import PitchKeyPipeline

logger = logging.getLogger("pitchkeys")


def _device(value: str) -> Union[int, str]:
    return int(value) if value.isdigit() else value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pitchkeys",
        description="Turn sustained sung pitches into keyboard presses.",
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        help=f"JSON configuration file (default: ${CONFIG_ENV_VAR})",
    )
    parser.add_argument("--list-devices", action="store_true", help="list audio input devices and exit")
    parser.add_argument("--device", type=_device, help="input device index or name")

    audio = parser.add_argument_group("audio")
    audio.add_argument("--sample-rate", type=int, help="capture rate in Hz (default: device rate)")
    audio.add_argument("--window-size", type=int, help="samples per analysis window")
    audio.add_argument("--hop-size", type=int, help="samples between windows")
    audio.add_argument("--method", dest="pitch_method", help='aubio method (e.g. "yinfft", "yin") or "fft"')
    audio.add_argument("--noise-gate", action="store_true", default=None, help="calibrate and apply an adaptive noise gate")

    detection = parser.add_argument_group("detection")
    detection.add_argument("--clarity", dest="clarity_threshold", type=float, help="minimum clarity 0-1")
    detection.add_argument("--sensitivity", type=float, help="minimum window RMS level")

    debounce = parser.add_argument_group("debounce")
    debounce.add_argument("--sustain", dest="min_sustain_cycles", type=int, metavar="N", help="cycles before a press")
    debounce.add_argument("--release", dest="release_confirm_cycles", type=int, metavar="M", help="cycles before a release")
    debounce.add_argument("--min-hold", dest="min_hold_seconds", type=float, metavar="SECONDS", help="minimum key hold time")

    parser.add_argument("--dry-run", action="store_true", help="detect and log without sending keys")
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="count", default=0, help="more logging (-vv for per-window detail)")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="only log warnings and errors")
    return parser


def apply_overrides(config: PitchKeysConfig, args: argparse.Namespace) -> PitchKeysConfig:
    """Return ``config`` with every flag given on the command line applied."""

    def changes(section: object) -> dict:
        names = {f.name for f in dataclasses.fields(section)}
        return {
            name: value
            for name, value in vars(args).items()
            if name in names and value is not None
        }

    audio = changes(config.audio)
    # Chunked windows stay chunked when only the window size changes
    if "window_size" in audio and "hop_size" not in audio:
        if config.audio.hop_size == config.audio.window_size:
            audio["hop_size"] = audio["window_size"]

    return dataclasses.replace(
        config,
        audio=dataclasses.replace(config.audio, **audio),
        detection=dataclasses.replace(config.detection, **changes(config.detection)),
        debounce=dataclasses.replace(config.debounce, **changes(config.debounce)),
    )


def setup_logging(verbose: int = 0, quiet: bool = False) -> None:
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )
    # Per-window detail only with -vv
    if verbose < 2:
        logging.getLogger("pitchkeys.windowing").setLevel(max(level, logging.INFO))


def list_input_devices() -> None:
    for idx, dev in enumerate(sd.query_devices()):
        if dev["max_input_channels"] > 0:
            print(f"{idx:3d}  {dev['name']}  ({int(dev['default_samplerate'])} Hz)")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose, args.quiet)

    if args.list_devices:
        list_input_devices()
        return 0

    try:
        config = apply_overrides(load_config(args.config), args)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        return 2

    logger.info("Starting up pitch-to-key program...")
    for interval in config.keys:
        logger.info("  %s", interval)

    try:
        pipeline = PitchKeyPipeline(config, send_enabled=not args.dry_run)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        return 2
    except PitchKeysError as exc:
        logger.error("%s", exc)
        return 1

    logger.info("Listening for pitch... (sing into your mic)")
    logger.info("Ensure the target application is the active window. Ctrl+C to quit.")
    try:
        pipeline.run()
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")
    except PitchKeysError as exc:
        logger.error("Stopped: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
