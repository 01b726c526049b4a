"""Windowing & clarity gate.

:class:`PitchWindower` turns the irregular blocks delivered by the audio
callback into fixed-size analysis windows.  Each complete window is
handed to the pitch estimator and the result is gated on clarity before
it goes any further:

* down‑mix multichannel input to mono;
* apply a streaming high‑pass filter to attenuate rumble and mains hum;
* append to a rolling buffer and cut ``window_size`` windows from it,
  advancing by ``hop_size`` samples each time;
* optionally consult an :class:`~pitchkeys.noise_gate.AdaptiveNoiseGate`
  and skip estimation for windows that are below the noise floor;
* forward the :class:`~pitchkeys.pitch.PitchEstimate` only if its
  clarity reaches the threshold, otherwise ``None`` ("no pitch").

The windower owns its buffer and filter state and touches nothing else.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np
from scipy.signal import butter, sosfilt, sosfilt_zi

from .config import AudioSettings, DetectionSettings
from .noise_gate import AdaptiveNoiseGate
from .pitch import PitchEstimate, PitchEstimator

logger = logging.getLogger(__name__)


class PitchWindower:
    """Assemble analysis windows and gate pitch estimates on clarity.

    Args:
        estimator: Pitch estimator collaborator.
        sample_rate: Sampling rate of the incoming audio in hertz.
        window_size: Samples per analysis window.
        hop_size: Samples the window advances per cycle.  Defaults to
            ``window_size`` (non-overlapping chunks).
        clarity_threshold: Minimum clarity for an estimate to pass.
        sensitivity: Secondary estimator parameter (minimum RMS level).
        hp_cutoff: High‑pass cutoff in hertz; ``0`` disables the filter.
        noise_gate: Optional adaptive gate consulted before estimation.
    """

    def __init__(
        self,
        estimator: PitchEstimator,
        sample_rate: int,
        window_size: int,
        hop_size: Optional[int] = None,
        *,
        clarity_threshold: float,
        sensitivity: float,
        hp_cutoff: float = 0.0,
        noise_gate: Optional[AdaptiveNoiseGate] = None,
    ) -> None:
        hop_size = window_size if hop_size is None else hop_size
        if not 1 <= hop_size <= window_size:
            raise ValueError(f"hop_size must be within 1..{window_size}, got {hop_size}")
        self.estimator = estimator
        self.sample_rate = sample_rate
        self.window_size = window_size
        self.hop_size = hop_size
        self.clarity_threshold = clarity_threshold
        self.sensitivity = sensitivity
        self.noise_gate = noise_gate
        self._buffer = np.zeros(0, dtype=np.float32)

        # High‑pass filter as second‑order sections for numerical
        # stability.  The cutoff is normalised against Nyquist and clamped.
        self._hp_sos: Optional[np.ndarray] = None
        self._hp_zi: Optional[np.ndarray] = None
        if hp_cutoff > 0.0:
            nyquist = sample_rate / 2.0
            normalised_cutoff = max(min(hp_cutoff / nyquist, 0.99), 0.001)
            self._hp_sos = butter(2, normalised_cutoff, btype="highpass", output="sos")

    @classmethod
    def from_settings(
        cls,
        estimator: PitchEstimator,
        sample_rate: int,
        audio: AudioSettings,
        detection: DetectionSettings,
    ) -> "PitchWindower":
        gate = None
        if audio.noise_gate:
            gate = AdaptiveNoiseGate(
                duration=audio.noise_gate_duration,
                margin=audio.noise_gate_margin,
                sample_rate=sample_rate,
                window_size=audio.window_size,
            )
        return cls(
            estimator,
            sample_rate,
            audio.window_size,
            audio.hop_size,
            clarity_threshold=detection.clarity_threshold,
            sensitivity=detection.sensitivity,
            hp_cutoff=audio.hp_cutoff,
            noise_gate=gate,
        )

    # ------------------------------------------------------------------
    @property
    def buffered(self) -> int:
        """Number of samples waiting for the next window."""
        return int(self._buffer.size)

    def reset(self) -> None:
        self._buffer = np.zeros(0, dtype=np.float32)
        self._hp_zi = None

    def _filter(self, samples: np.ndarray) -> np.ndarray:
        if self._hp_sos is None or samples.size == 0:
            return samples
        if self._hp_zi is None:
            # Start the filter in steady state for the first sample to
            # avoid a transient click at the beginning of the stream.
            self._hp_zi = sosfilt_zi(self._hp_sos) * samples[0]
        filtered, self._hp_zi = sosfilt(self._hp_sos, samples, zi=self._hp_zi)
        return filtered.astype(np.float32)

    def analyse(self, window: np.ndarray) -> Optional[PitchEstimate]:
        """Estimate and gate a single complete window."""
        if self.noise_gate is not None and not self.noise_gate.is_open(window):
            logger.debug("Window below noise gate")
            return None
        estimate = self.estimator.get_pitch(
            window, self.sample_rate, self.clarity_threshold, self.sensitivity
        )
        if estimate is None:
            logger.debug("No clear pitch in window")
            return None
        if estimate.clarity < self.clarity_threshold:
            logger.debug(
                "Pitch %.2f Hz rejected (clarity %.2f < %.2f)",
                estimate.frequency,
                estimate.clarity,
                self.clarity_threshold,
            )
            return None
        logger.debug(
            "Detected pitch %.2f Hz (clarity %.2f)", estimate.frequency, estimate.clarity
        )
        return estimate

    def push(self, samples: np.ndarray) -> list[Optional[PitchEstimate]]:
        """Add a block of audio and analyse every window it completes.

        Args:
            samples: Audio block of shape ``(frames,)`` or
                ``(frames, channels)``.

        Returns:
            One entry per completed window, in order: the gated estimate
            or ``None`` for "no pitch".  Empty when no window completed.
        """
        if samples.ndim == 2 and samples.shape[1] > 1:
            mono = samples.mean(axis=1).astype(np.float32)
        else:
            mono = samples.reshape(-1).astype(np.float32)
        mono = self._filter(mono)
        self._buffer = np.concatenate((self._buffer, mono))

        results: list[Optional[PitchEstimate]] = []
        while self._buffer.size >= self.window_size:
            window = self._buffer[: self.window_size].copy()
            self._buffer = self._buffer[self.hop_size :]
            results.append(self.analyse(window))
        return results


__all__ = ["PitchWindower"]
