"""Exception hierarchy shared across the PitchKeys pipeline."""

from __future__ import annotations


class PitchKeysError(Exception):
    """Base class for all errors raised by PitchKeys."""


class ConfigError(PitchKeysError, ValueError):
    """Invalid configuration: malformed or overlapping key intervals,
    out-of-range settings, unknown key names or unreadable files.

    Always raised at load time, before any audio is captured.
    """


class AudioDeviceError(PitchKeysError):
    """The audio input failed (no device, stream error, disconnect)."""


class InjectionError(PitchKeysError):
    """Synthetic key events could not be delivered to the OS."""


class InvariantViolation(PitchKeysError, RuntimeError):
    """Press/release bookkeeping went wrong; indicates a debounce bug."""


__all__ = [
    "PitchKeysError",
    "ConfigError",
    "AudioDeviceError",
    "InjectionError",
    "InvariantViolation",
]
