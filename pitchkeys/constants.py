"""Application-wide defaults for pitch detection and key emission.

The values in this module configure the audio pipeline (sample rate,
window sizes, filtering), the clarity gate in front of the classifier
and the debounce counts that turn per-window classifications into
key presses.  Centralising the configuration avoids magic numbers
spread throughout the code base and makes it easy to tune the
behaviour in one place; every value can be overridden from a JSON
configuration file or the command line.
"""

from __future__ import annotations

# ─── Audio configuration ────────────────────────────────────────────────────

# Fallback sampling frequency used when the input device does not report a
# default rate.  Normally the device's own default rate is used.
SAMPLE_RATE: int = 44_100

# Number of samples handed to the pitch estimator per analysis cycle.  At
# 44.1 kHz a 2048 sample window covers roughly 46 ms.
WINDOW_SIZE: int = 2048

# Number of samples the window advances between cycles.  Equal to
# ``WINDOW_SIZE`` the buffer is consumed in chunks; smaller values give
# overlapping (sliding) windows and more cycles per second.
HOP_SIZE: int = WINDOW_SIZE

# Block size requested from PortAudio for each callback invocation.
BLOCK_SIZE: int = 512

# Cutoff frequency for the high‑pass filter used to remove low‑frequency
# rumble and hum (e.g. mains hum at 50/60 Hz).  The lowest default key
# sits at 100 Hz so this leaves the voice band untouched.
HP_FILTER_CUTOFF: float = 60.0

# Pitch detection algorithm.  Any aubio method name (``"yin"``,
# ``"yinfft"``, ``"mcomb"`` …) or ``"fft"`` for the numpy peak finder.
PITCH_METHOD: str = "yinfft"

# Names accepted for ``pitch_method``.  ``"aubio"`` is an alias for aubio's
# ``"default"`` method.
PITCH_METHODS: tuple[str, ...] = (
    "default",
    "yin",
    "yinfft",
    "yinfast",
    "mcomb",
    "fcomb",
    "schmitt",
    "specacf",
    "aubio",
    "fft",
)

# ─── Clarity gate ─────────────────────────────────────────────────────────

# Minimum clarity (0–1) an estimate needs before it reaches the
# classifier.  Higher values are stricter.
CLARITY_THRESHOLD: float = 0.7

# Minimum RMS level of a window before the estimator will report a pitch.
# Quieter windows are treated as silence.
SENSITIVITY: float = 0.01

# ─── Noise gating defaults ────────────────────────────────────────────────

# Seconds of ambient audio sampled to estimate the noise floor when the
# optional adaptive noise gate is enabled.
NOISE_GATE_CALIBRATION_TIME: float = 1.0  # seconds

# Safety margin applied to the estimated noise floor.  Larger values make
# the gate more conservative.
NOISE_GATE_MARGIN: float = 1.5

# ─── Debounce defaults ────────────────────────────────────────────────────

# Consecutive windows a key must be heard before it is pressed.
MIN_SUSTAIN_CYCLES: int = 2

# Consecutive windows a change (other key or silence) must persist before
# the held key is released.
RELEASE_CONFIRM_CYCLES: int = 3

# Minimum time a key stays down so the target application registers it
# even when detection drops out for a moment.
MIN_HOLD_SECONDS: float = 0.05

# ─── Default key table ────────────────────────────────────────────────────

# (low Hz, high Hz, key name).  Closed intervals; the 0.1 Hz gaps between
# neighbours keep every boundary unambiguous.  The layout targets a Game
# Boy emulator: arrows, B/A on ``z``/``x``, L/R on ``a``/``s``, select on
# backspace and start on enter.
DEFAULT_KEY_TABLE: tuple[tuple[float, float, str], ...] = (
    (100.0, 115.0, "down"),
    (115.1, 130.0, "left"),
    (130.1, 145.0, "right"),
    (145.1, 160.0, "up"),
    (160.1, 175.0, "backspace"),
    (175.1, 200.0, "x"),
    (200.1, 230.0, "z"),
    (230.1, 270.0, "a"),
    (270.1, 305.0, "s"),
    (305.1, 338.0, "enter"),
)

# Environment variable naming a JSON configuration file.
CONFIG_ENV_VAR: str = "PITCHKEYS_CONFIG"

__all__ = [
    "SAMPLE_RATE",
    "WINDOW_SIZE",
    "HOP_SIZE",
    "BLOCK_SIZE",
    "HP_FILTER_CUTOFF",
    "PITCH_METHOD",
    "PITCH_METHODS",
    "CLARITY_THRESHOLD",
    "SENSITIVITY",
    "NOISE_GATE_CALIBRATION_TIME",
    "NOISE_GATE_MARGIN",
    "MIN_SUSTAIN_CYCLES",
    "RELEASE_CONFIRM_CYCLES",
    "MIN_HOLD_SECONDS",
    "DEFAULT_KEY_TABLE",
    "CONFIG_ENV_VAR",
]
