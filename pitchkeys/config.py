"""Configuration structures and loading.

Settings are grouped by the component that consumes them and are
frozen once loaded; nothing mutates them at runtime.  Values come from
three layers, later layers winning:

1. the defaults in :mod:`pitchkeys.constants`;
2. an optional JSON file (``--config`` or ``$PITCHKEYS_CONFIG``);
3. command-line overrides applied with :func:`dataclasses.replace`.

Example file::

    {
      "audio": {"device": 2, "window_size": 2048},
      "detection": {"clarity_threshold": 0.8},
      "debounce": {"min_sustain_cycles": 3, "release_confirm_cycles": 3},
      "keys": [
        {"low": 100.0, "high": 115.0, "key": "down"},
        {"low": 115.1, "high": 130.0, "key": "left"}
      ]
    }
"""

from __future__ import annotations

import dataclasses
import json
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from .constants import (
    CLARITY_THRESHOLD,
    CONFIG_ENV_VAR,
    HOP_SIZE,
    HP_FILTER_CUTOFF,
    MIN_HOLD_SECONDS,
    MIN_SUSTAIN_CYCLES,
    NOISE_GATE_CALIBRATION_TIME,
    NOISE_GATE_MARGIN,
    PITCH_METHOD,
    PITCH_METHODS,
    RELEASE_CONFIRM_CYCLES,
    SENSITIVITY,
    WINDOW_SIZE,
)
from .errors import ConfigError
from .key_sender import validate_key_name
from .mapping import KeyMappingTable


def _check_finite(name: str, value: float) -> None:
    if not math.isfinite(value):
        raise ConfigError(f"{name} must be a finite number, got {value}")


@dataclass(frozen=True)
class AudioSettings:
    """Capture and windowing parameters.

    ``device`` is a PortAudio device index or name (``None`` selects the
    system default input).  ``sample_rate`` of ``None`` means "use the
    device's default rate".
    """

    device: Optional[Union[int, str]] = None
    sample_rate: Optional[int] = None
    channels: int = 1
    window_size: int = WINDOW_SIZE
    hop_size: int = HOP_SIZE
    hp_cutoff: float = HP_FILTER_CUTOFF
    pitch_method: str = PITCH_METHOD
    noise_gate: bool = False
    noise_gate_duration: float = NOISE_GATE_CALIBRATION_TIME
    noise_gate_margin: float = NOISE_GATE_MARGIN

    def __post_init__(self) -> None:
        if self.sample_rate is not None and self.sample_rate <= 0:
            raise ConfigError(f"sample_rate must be positive, got {self.sample_rate}")
        if self.channels < 1:
            raise ConfigError(f"channels must be at least 1, got {self.channels}")
        if self.window_size < 32:
            raise ConfigError(f"window_size must be at least 32, got {self.window_size}")
        if not 1 <= self.hop_size <= self.window_size:
            raise ConfigError(
                f"hop_size must be between 1 and window_size ({self.window_size}), "
                f"got {self.hop_size}"
            )
        _check_finite("hp_cutoff", self.hp_cutoff)
        if self.hp_cutoff < 0:
            raise ConfigError(f"hp_cutoff must not be negative, got {self.hp_cutoff}")
        if self.pitch_method.lower().strip() not in PITCH_METHODS:
            raise ConfigError(
                f"unknown pitch_method {self.pitch_method!r} "
                f"(expected one of: {', '.join(PITCH_METHODS)})"
            )
        _check_finite("noise_gate_duration", self.noise_gate_duration)
        _check_finite("noise_gate_margin", self.noise_gate_margin)
        if self.noise_gate_duration < 0:
            raise ConfigError("noise_gate_duration must not be negative")
        if self.noise_gate_margin <= 0:
            raise ConfigError("noise_gate_margin must be positive")


@dataclass(frozen=True)
class DetectionSettings:
    """Clarity gate parameters passed to the pitch estimator."""

    clarity_threshold: float = CLARITY_THRESHOLD
    sensitivity: float = SENSITIVITY

    def __post_init__(self) -> None:
        if not 0.0 <= self.clarity_threshold <= 1.0:
            raise ConfigError(
                f"clarity_threshold must be within [0, 1], got {self.clarity_threshold}"
            )
        _check_finite("sensitivity", self.sensitivity)
        if self.sensitivity < 0.0:
            raise ConfigError(f"sensitivity must not be negative, got {self.sensitivity}")


@dataclass(frozen=True)
class DebounceSettings:
    """Cycle counts and hold floor used by the debounce controller."""

    min_sustain_cycles: int = MIN_SUSTAIN_CYCLES
    release_confirm_cycles: int = RELEASE_CONFIRM_CYCLES
    min_hold_seconds: float = MIN_HOLD_SECONDS

    def __post_init__(self) -> None:
        if self.min_sustain_cycles < 1:
            raise ConfigError(
                f"min_sustain_cycles must be at least 1, got {self.min_sustain_cycles}"
            )
        if self.release_confirm_cycles < 1:
            raise ConfigError(
                "release_confirm_cycles must be at least 1, "
                f"got {self.release_confirm_cycles}"
            )
        _check_finite("min_hold_seconds", self.min_hold_seconds)
        if self.min_hold_seconds < 0:
            raise ConfigError(
                f"min_hold_seconds must not be negative, got {self.min_hold_seconds}"
            )


@dataclass(frozen=True)
class PitchKeysConfig:
    audio: AudioSettings = field(default_factory=AudioSettings)
    detection: DetectionSettings = field(default_factory=DetectionSettings)
    debounce: DebounceSettings = field(default_factory=DebounceSettings)
    keys: KeyMappingTable = field(default_factory=KeyMappingTable.default)

    def __post_init__(self) -> None:
        for key in sorted(self.keys.keys):
            validate_key_name(key)


# ─── Loading ──────────────────────────────────────────────────────────────

_SECTIONS: dict[str, type] = {
    "audio": AudioSettings,
    "detection": DetectionSettings,
    "debounce": DebounceSettings,
}

# JSON types accepted for each field (``int`` is accepted wherever a float is).
_FIELD_TYPES: dict[str, tuple[type, ...]] = {
    "device": (int, str, type(None)),
    "sample_rate": (int, type(None)),
    "channels": (int,),
    "window_size": (int,),
    "hop_size": (int,),
    "hp_cutoff": (int, float),
    "pitch_method": (str,),
    "noise_gate": (bool,),
    "noise_gate_duration": (int, float),
    "noise_gate_margin": (int, float),
    "clarity_threshold": (int, float),
    "sensitivity": (int, float),
    "min_sustain_cycles": (int,),
    "release_confirm_cycles": (int,),
    "min_hold_seconds": (int, float),
}


def _build_section(name: str, values: Any) -> Any:
    cls = _SECTIONS[name]
    if not isinstance(values, Mapping):
        raise ConfigError(f"section {name!r} must be an object")
    known = {f.name for f in dataclasses.fields(cls)}
    unknown = set(values) - known
    if unknown:
        raise ConfigError(f"unknown field(s) in {name!r}: {', '.join(sorted(unknown))}")
    for key, value in values.items():
        allowed = _FIELD_TYPES[key]
        # bool is an int subclass; only accept it where bool is expected
        if (isinstance(value, bool) and bool not in allowed) or not isinstance(
            value, allowed
        ):
            raise ConfigError(f"{name}.{key} has invalid value {value!r}")
    return cls(**values)


def config_from_dict(data: Mapping[str, Any]) -> PitchKeysConfig:
    """Build a :class:`PitchKeysConfig` from parsed JSON data."""
    if not isinstance(data, Mapping):
        raise ConfigError("configuration root must be an object")
    unknown = set(data) - set(_SECTIONS) - {"keys"}
    if unknown:
        raise ConfigError(f"unknown configuration section(s): {', '.join(sorted(unknown))}")

    sections = {
        name: _build_section(name, data[name]) for name in _SECTIONS if name in data
    }
    if "keys" in data:
        rows = data["keys"]
        if not isinstance(rows, list) or not rows:
            raise ConfigError("keys must be a non-empty list of intervals")
        sections["keys"] = KeyMappingTable.from_config(rows)
    return PitchKeysConfig(**sections)


def load_config(path: Optional[Union[str, Path]] = None) -> PitchKeysConfig:
    """Load configuration from ``path`` (or ``$PITCHKEYS_CONFIG``).

    With neither given the built-in defaults are returned.

    Raises:
        ConfigError: if the file cannot be read, is not valid JSON or
            contains invalid settings.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or None
    if path is None:
        return PitchKeysConfig()
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"cannot read config file {path}: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise ConfigError(f"config file {path} is not valid UTF-8: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"invalid JSON in {path}: {exc}") from exc
    return config_from_dict(data)


__all__ = [
    "AudioSettings",
    "DetectionSettings",
    "DebounceSettings",
    "PitchKeysConfig",
    "config_from_dict",
    "load_config",
]
