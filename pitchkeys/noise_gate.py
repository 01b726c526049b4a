"""Adaptive noise gating in front of the pitch estimator.

The :class:`AdaptiveNoiseGate` measures the ambient noise level during
an initial calibration period.  Windows whose RMS falls below the noise
floor multiplied by a safety margin are treated as silence by
:class:`~pitchkeys.windowing.PitchWindower`, which then skips the pitch
estimator entirely for that window.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from .constants import NOISE_GATE_CALIBRATION_TIME, NOISE_GATE_MARGIN, SAMPLE_RATE, WINDOW_SIZE
from .pitch import rms

logger = logging.getLogger(__name__)


class AdaptiveNoiseGate:
    """Adaptive noise gating based on a measured background noise floor.

    Parameters
    ----------
    duration:
        Seconds of audio used to estimate the noise floor.
    margin:
        Multiplier applied to the measured noise floor when checking for
        silence.
    sample_rate:
        Sampling frequency in hertz.
    window_size:
        Number of samples per analysed window; together with
        ``sample_rate`` this sets how many windows calibration takes.
    preset_noise_floor:
        Optional pre‑computed noise floor.  When provided the gate skips
        calibration and uses this value directly.
    """

    def __init__(
        self,
        duration: float = NOISE_GATE_CALIBRATION_TIME,
        margin: float = NOISE_GATE_MARGIN,
        sample_rate: int = SAMPLE_RATE,
        window_size: int = WINDOW_SIZE,
        preset_noise_floor: Optional[float] = None,
    ) -> None:
        frames = int((duration * sample_rate) / window_size)
        self.calibration_frames: int = max(frames, 1)
        self.margin: float = margin
        self.rms_values: list[float] = []
        self.noise_floor: Optional[float] = None
        self._preset: Optional[float] = None
        if preset_noise_floor is not None:
            self._preset = max(float(preset_noise_floor), 1e-12)
            self.noise_floor = self._preset

    @property
    def calibrated(self) -> bool:
        return self.noise_floor is not None

    @property
    def threshold(self) -> Optional[float]:
        if self.noise_floor is None:
            return None
        return self.noise_floor * self.margin

    def update(self, samples: np.ndarray) -> float:
        """Record the RMS of ``samples`` and, while calibrating, the noise floor.

        Returns the RMS level of ``samples``.
        """
        level = rms(samples)
        if self.noise_floor is None:
            self.rms_values.append(level)
            if len(self.rms_values) >= self.calibration_frames:
                self.noise_floor = max(float(np.median(self.rms_values)), 1e-12)
                self.rms_values.clear()
                logger.info(
                    "Noise floor calibrated: %.5f (gate threshold %.5f)",
                    self.noise_floor,
                    self.threshold,
                )
        return level

    def is_open(self, samples: np.ndarray) -> bool:
        """Feed ``samples`` to the gate and report whether they carry signal.

        The gate stays closed during calibration so that the ambient
        noise being measured never reaches the classifier.
        """
        level = self.update(samples)
        threshold = self.threshold
        return threshold is not None and level >= threshold

    def reset(self) -> None:
        """Forget the measured floor; calibrate again unless a floor was preset."""
        self.rms_values.clear()
        self.noise_floor = self._preset


__all__ = ["AdaptiveNoiseGate"]
