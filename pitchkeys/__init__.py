"""PitchKeys package."""

from .config import PitchKeysConfig, load_config
from .debounce import DebounceController, KeyEvent
from .emitter import EventEmitter
from .errors import (
    AudioDeviceError,
    ConfigError,
    InjectionError,
    InvariantViolation,
    PitchKeysError,
)
from .mapping import KeyInterval, KeyMappingTable, classify
from .pitch import PitchEstimate

try:  # sounddevice needs the PortAudio library at import time
    from .pipeline import PitchKeyPipeline
except (ImportError, OSError):  # pragma: no cover - PortAudio missing
    PitchKeyPipeline = None  # type: ignore

__all__ = [
    "AudioDeviceError",
    "ConfigError",
    "DebounceController",
    "EventEmitter",
    "InjectionError",
    "InvariantViolation",
    "KeyEvent",
    "KeyInterval",
    "KeyMappingTable",
    "PitchEstimate",
    "PitchKeyPipeline",
    "PitchKeysConfig",
    "PitchKeysError",
    "classify",
    "load_config",
]
