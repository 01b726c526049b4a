"""Tests for :class:`pitchkeys.windowing.PitchWindower`."""

from __future__ import annotations

from typing import Optional

import numpy as np
import pytest

from pitchkeys.config import AudioSettings, DetectionSettings
from pitchkeys.noise_gate import AdaptiveNoiseGate
from pitchkeys.pitch import FftPitchEstimator, PitchEstimate
from pitchkeys.windowing import PitchWindower


class ScriptedEstimator:
    """Return a fixed estimate and record every call."""

    def __init__(self, result: Optional[PitchEstimate] = PitchEstimate(110.0, 0.95)) -> None:
        self.result = result
        self.calls: list[tuple[np.ndarray, int, float, float]] = []

    def get_pitch(self, window, sample_rate, clarity_threshold, sensitivity):
        self.calls.append((window.copy(), sample_rate, clarity_threshold, sensitivity))
        return self.result


def _windower(estimator, window: int = 256, hop: Optional[int] = None, **kwargs) -> PitchWindower:
    kwargs.setdefault("clarity_threshold", 0.7)
    kwargs.setdefault("sensitivity", 0.01)
    return PitchWindower(estimator, 8000, window, hop, **kwargs)


def test_chunked_windows() -> None:
    est = ScriptedEstimator()
    win = _windower(est)

    assert win.push(np.zeros(200, dtype=np.float32)) == []
    results = win.push(np.arange(400, dtype=np.float32))
    assert len(results) == 2
    assert win.buffered == 600 - 2 * 256
    assert [len(c[0]) for c in est.calls] == [256, 256]
    # Second window starts where the first ended
    assert est.calls[1][0][0] == pytest.approx(256 - 200)


def test_sliding_windows() -> None:
    est = ScriptedEstimator()
    win = _windower(est, window=256, hop=128)
    results = win.push(np.arange(512, dtype=np.float32))
    assert len(results) == 3
    assert win.buffered == 128
    assert [c[0][0] for c in est.calls] == [0.0, 128.0, 256.0]


def test_estimator_receives_gate_parameters() -> None:
    est = ScriptedEstimator()
    win = _windower(est, clarity_threshold=0.8, sensitivity=0.05)
    win.push(np.ones(256, dtype=np.float32))
    _, sample_rate, clarity, sensitivity = est.calls[0]
    assert (sample_rate, clarity, sensitivity) == (8000, 0.8, 0.05)


def test_clear_estimate_is_forwarded() -> None:
    win = _windower(ScriptedEstimator(PitchEstimate(110.0, 0.95)))
    assert win.push(np.ones(256, dtype=np.float32)) == [PitchEstimate(110.0, 0.95)]


def test_low_clarity_becomes_no_pitch() -> None:
    win = _windower(ScriptedEstimator(PitchEstimate(110.0, 0.5)))
    assert win.push(np.ones(256, dtype=np.float32)) == [None]


def test_threshold_is_inclusive() -> None:
    win = _windower(ScriptedEstimator(PitchEstimate(110.0, 0.7)), clarity_threshold=0.7)
    assert win.push(np.ones(256, dtype=np.float32)) == [PitchEstimate(110.0, 0.7)]


def test_no_estimate_becomes_no_pitch() -> None:
    win = _windower(ScriptedEstimator(None))
    assert win.push(np.ones(512, dtype=np.float32)) == [None, None]


def test_multichannel_input_is_downmixed() -> None:
    est = ScriptedEstimator()
    win = _windower(est)
    stereo = np.stack([np.ones(256), np.zeros(256)], axis=1).astype(np.float32)
    win.push(stereo)
    assert np.allclose(est.calls[0][0], 0.5)


def test_noise_gate_skips_estimation() -> None:
    est = ScriptedEstimator()
    gate = AdaptiveNoiseGate(margin=1.0, preset_noise_floor=0.1)
    win = _windower(est, noise_gate=gate)

    assert win.push(np.full(256, 0.01, dtype=np.float32)) == [None]
    assert est.calls == []
    assert win.push(np.full(256, 0.5, dtype=np.float32)) == [PitchEstimate(110.0, 0.95)]
    assert len(est.calls) == 1


def test_reset_clears_buffer() -> None:
    win = _windower(ScriptedEstimator())
    win.push(np.zeros(100, dtype=np.float32))
    win.reset()
    assert win.buffered == 0


def test_high_pass_removes_offset() -> None:
    est = ScriptedEstimator()
    win = _windower(est, window=2048, hp_cutoff=60.0)
    t = np.arange(8192) / 8000
    signal = (0.5 + 0.3 * np.sin(2 * np.pi * 220 * t)).astype(np.float32)
    win.push(signal)
    last = est.calls[-1][0]
    assert abs(float(np.mean(last))) < 0.05


def test_from_settings_with_fft_estimator() -> None:
    audio = AudioSettings(window_size=2048, hop_size=1024, hp_cutoff=60.0)
    win = PitchWindower.from_settings(FftPitchEstimator(), 8000, audio, DetectionSettings())
    assert win.noise_gate is None
    t = np.arange(4096) / 8000
    results = win.push((0.5 * np.sin(2 * np.pi * 146.0 * t)).astype(np.float32))
    assert len(results) == 3
    assert results[-1] is not None
    assert results[-1].frequency == pytest.approx(146.0, abs=2.0)


def test_from_settings_builds_noise_gate() -> None:
    audio = AudioSettings(noise_gate=True, noise_gate_duration=0.5, window_size=1000, hop_size=1000)
    win = PitchWindower.from_settings(ScriptedEstimator(), 8000, audio, DetectionSettings())
    assert win.noise_gate is not None
    assert win.noise_gate.calibration_frames == 4


def test_invalid_hop_size() -> None:
    with pytest.raises(ValueError):
        _windower(ScriptedEstimator(), window=256, hop=512)
