import sys
import types

import numpy as np
import pytest

from pitchkeys import pitch
from pitchkeys.errors import ConfigError
from pitchkeys.pitch import FftPitchEstimator, PitchEstimate, make_estimator, rms


def _sine(freq: float, sr: int = 8000, n: int = 2048, amp: float = 0.5) -> np.ndarray:
    t = np.arange(n) / sr
    return (amp * np.sin(2 * np.pi * freq * t)).astype(np.float32)


@pytest.mark.parametrize("freq", [110.0, 146.3, 220.0, 329.6])
def test_fft_estimator_finds_sine_pitch(freq: float) -> None:
    est = FftPitchEstimator().get_pitch(_sine(freq), 8000, 0.7, 0.01)
    assert est is not None
    assert abs(est.frequency - freq) < 2.0
    assert 0.9 < est.clarity <= 1.0


def test_fft_estimator_rejects_noise() -> None:
    rng = np.random.default_rng(0)
    noise = rng.normal(scale=0.3, size=2048).astype(np.float32)
    assert FftPitchEstimator().get_pitch(noise, 8000, 0.7, 0.01) is None


def test_fft_estimator_respects_sensitivity() -> None:
    quiet = _sine(220.0, amp=0.001)
    assert FftPitchEstimator().get_pitch(quiet, 8000, 0.7, 0.01) is None
    assert FftPitchEstimator().get_pitch(quiet, 8000, 0.7, 0.0) is not None


def test_fft_estimator_silence() -> None:
    assert FftPitchEstimator().get_pitch(np.zeros(2048, dtype=np.float32), 8000, 0.0, 0.0) is None


def test_rms() -> None:
    assert rms(np.zeros(0)) == 0.0
    assert rms(np.ones(16, dtype=np.float32)) == pytest.approx(1.0)


class _FakeAubioPitch:
    def __init__(self, method, buf_size, hop_size, samplerate) -> None:
        self.args = (method, buf_size, hop_size, samplerate)
        self.freq = 220.0
        self.confidence = 0.9

    def set_unit(self, unit) -> None:
        self.unit = unit

    def set_silence(self, db) -> None:
        self.silence = db

    def set_tolerance(self, tol) -> None:
        self.tolerance = tol

    def get_confidence(self) -> float:
        return self.confidence

    def __call__(self, samples):
        assert samples.dtype == np.float32
        return np.array([self.freq], dtype=np.float32)


@pytest.fixture
def fake_aubio(monkeypatch: pytest.MonkeyPatch):
    mod = types.SimpleNamespace(pitch=_FakeAubioPitch)
    monkeypatch.setitem(sys.modules, "aubio", mod)
    return mod


def test_aubio_estimator_gates_on_confidence(fake_aubio) -> None:
    est = make_estimator("yin", 2048, 8000)
    assert isinstance(est, pitch.AubioPitchEstimator)
    assert est._pitch_o.args == ("yin", 2048, 2048, 8000)
    assert est._pitch_o.unit == "Hz"

    window = _sine(220.0)
    assert est.get_pitch(window, 8000, 0.7, 0.01) == PitchEstimate(pytest.approx(220.0), pytest.approx(0.9))

    est._pitch_o.confidence = 0.5
    assert est.get_pitch(window, 8000, 0.7, 0.01) is None

    est._pitch_o.confidence = 0.95
    est._pitch_o.freq = 0.0
    assert est.get_pitch(window, 8000, 0.7, 0.01) is None


def test_aubio_estimator_skips_quiet_windows(fake_aubio) -> None:
    est = make_estimator("aubio", 2048, 8000)
    assert est._pitch_o.args[0] == "default"
    assert est.get_pitch(np.zeros(2048, dtype=np.float32), 8000, 0.0, 0.01) is None


def test_aubio_estimator_rejects_other_sample_rate(fake_aubio) -> None:
    est = make_estimator("yinfft", 2048, 8000)
    with pytest.raises(ValueError):
        est.get_pitch(_sine(220.0), 44100, 0.7, 0.01)


def test_make_estimator_fft() -> None:
    assert isinstance(make_estimator("FFT", 2048, 8000), FftPitchEstimator)


def test_make_estimator_rejects_unknown_method(fake_aubio) -> None:
    with pytest.raises(ConfigError, match="unknown pitch method"):
        make_estimator("bogus", 2048, 8000)


def test_aubio_creation_failure_is_config_error(fake_aubio) -> None:
    def failing_pitch(**_kwargs):
        raise RuntimeError("failed creating pitch")

    fake_aubio.pitch = failing_pitch
    with pytest.raises(ConfigError, match="failed creating pitch"):
        make_estimator("yin", 2048, 8000)
