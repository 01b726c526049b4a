"""Pitch estimator collaborators.

The pipeline only depends on the :class:`PitchEstimator` protocol::

    get_pitch(window, sample_rate, clarity_threshold, sensitivity)
        -> PitchEstimate | None

Two implementations are provided.  :class:`AubioPitchEstimator` wraps
:func:`aubio.pitch` and reports aubio's confidence as the clarity.
:class:`FftPitchEstimator` is a dependency-free FFT peak finder whose
clarity is the share of in-band spectral energy concentrated around the
peak; it is less accurate but useful on systems where aubio struggles
and in tests.
"""

from __future__ import annotations

import logging
from typing import NamedTuple, Optional, Protocol

import numpy as np

from .constants import PITCH_METHODS
from .errors import ConfigError

logger = logging.getLogger(__name__)

# Plausible range for sung or hummed fundamentals
MIN_FREQUENCY: float = 50.0
MAX_FREQUENCY: float = 2000.0


class PitchEstimate(NamedTuple):
    """Result of one analysis cycle."""

    frequency: float
    clarity: float


class PitchEstimator(Protocol):
    def get_pitch(
        self,
        window: np.ndarray,
        sample_rate: int,
        clarity_threshold: float,
        sensitivity: float,
    ) -> Optional[PitchEstimate]: ...


def rms(samples: np.ndarray) -> float:
    """Root-mean-square level of ``samples`` (``0.0`` when empty)."""
    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(samples, dtype=np.float64))))


class AubioPitchEstimator:
    """Pitch estimation backed by :mod:`aubio`.

    Args:
        method: Aubio detection method, e.g. ``"yinfft"`` (aubio's
            default), ``"yin"``, ``"yinfast"`` or ``"mcomb"``.
        window_size: Number of samples per analysis window.  Every
            window passed to :meth:`get_pitch` must have this length.
        sample_rate: Sampling rate in hertz.
        tolerance: Optional yin tolerance forwarded to aubio.
    """

    def __init__(
        self,
        method: str = "yinfft",
        window_size: int = 2048,
        sample_rate: int = 44_100,
        tolerance: Optional[float] = None,
    ) -> None:
        import aubio  # type: ignore

        self.method = method
        self.window_size = window_size
        self.sample_rate = sample_rate
        # Window and hop are equal: the windower already decides how
        # windows overlap, aubio just analyses what it is given.
        try:
            self._pitch_o = aubio.pitch(
                method=method,
                buf_size=window_size,
                hop_size=window_size,
                samplerate=sample_rate,
            )
        except (RuntimeError, ValueError) as exc:
            raise ConfigError(
                f"cannot create aubio pitch detector (method={method!r}, "
                f"window={window_size}, rate={sample_rate}): {exc}"
            ) from exc
        self._pitch_o.set_unit("Hz")
        # Gating is done on RMS and clarity here, not by aubio
        self._pitch_o.set_silence(-90)
        if tolerance is not None:
            self._pitch_o.set_tolerance(tolerance)

    def get_pitch(
        self,
        window: np.ndarray,
        sample_rate: int,
        clarity_threshold: float,
        sensitivity: float,
    ) -> Optional[PitchEstimate]:
        if sample_rate != self.sample_rate:
            raise ValueError(
                f"estimator configured for {self.sample_rate} Hz, got {sample_rate} Hz"
            )
        if rms(window) < sensitivity:
            return None
        samples = np.ascontiguousarray(window, dtype=np.float32)
        freq = float(self._pitch_o(samples)[0])
        clarity = float(np.clip(self._pitch_o.get_confidence(), 0.0, 1.0))
        if freq <= 0.0 or clarity < clarity_threshold:
            return None
        return PitchEstimate(freq, clarity)


class FftPitchEstimator:
    """Estimate pitch from the dominant FFT peak of a Hann-windowed block.

    The magnitude spectrum is scanned for the highest peak within
    ``min_frequency``–``max_frequency``; the peak position is refined by
    parabolic interpolation over its neighbouring bins.  Clarity is the
    fraction of in-band power held by the peak bin and its two
    neighbours, so a clean tone scores close to one and broadband noise
    close to zero.
    """

    def __init__(
        self,
        min_frequency: float = MIN_FREQUENCY,
        max_frequency: float = MAX_FREQUENCY,
    ) -> None:
        self.min_frequency = min_frequency
        self.max_frequency = max_frequency

    def get_pitch(
        self,
        window: np.ndarray,
        sample_rate: int,
        clarity_threshold: float,
        sensitivity: float,
    ) -> Optional[PitchEstimate]:
        if window.size < 4 or rms(window) < sensitivity:
            return None
        samples = window.astype(np.float64) * np.hanning(window.size)
        power = np.abs(np.fft.rfft(samples)) ** 2
        freqs = np.fft.rfftfreq(window.size, d=1.0 / sample_rate)
        band = np.flatnonzero((freqs >= self.min_frequency) & (freqs <= self.max_frequency))
        if band.size == 0:
            return None
        total = float(power[band].sum())
        if total <= 0.0:
            return None

        peak = int(band[np.argmax(power[band])])
        lo, hi = max(peak - 1, band[0]), min(peak + 1, band[-1])
        clarity = float(power[lo : hi + 1].sum() / total)

        offset = 0.0
        if 0 < peak < power.size - 1:
            # Parabolic interpolation on log magnitude
            a, b, c = np.log(power[peak - 1 : peak + 2] + 1e-20)
            denom = a - 2.0 * b + c
            if denom != 0.0:
                offset = float(np.clip(0.5 * (a - c) / denom, -0.5, 0.5))
        freq = (peak + offset) * sample_rate / window.size

        if freq <= 0.0 or clarity < clarity_threshold:
            return None
        return PitchEstimate(freq, min(clarity, 1.0))


def make_estimator(method: str, window_size: int, sample_rate: int) -> PitchEstimator:
    """Create the estimator named by ``method`` (``"fft"`` or an aubio method).

    Raises:
        ConfigError: if ``method`` is not a known estimator name.
    """
    method = (method or "yinfft").lower().strip()
    if method not in PITCH_METHODS:
        raise ConfigError(f"unknown pitch method {method!r}")
    if method == "fft":
        logger.info("Using FFT peak pitch estimator")
        return FftPitchEstimator()
    if method == "aubio":
        method = "default"
    logger.info("Using aubio pitch estimator (method=%s)", method)
    return AubioPitchEstimator(method, window_size=window_size, sample_rate=sample_rate)


__all__ = [
    "PitchEstimate",
    "PitchEstimator",
    "AubioPitchEstimator",
    "FftPitchEstimator",
    "make_estimator",
    "rms",
]
