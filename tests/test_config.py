import json
from pathlib import Path

import pytest

from pitchkeys.config import (
    AudioSettings,
    DetectionSettings,
    PitchKeysConfig,
    config_from_dict,
    load_config,
)
from pitchkeys.constants import CLARITY_THRESHOLD, CONFIG_ENV_VAR, WINDOW_SIZE
from pitchkeys.errors import ConfigError
from pitchkeys.mapping import KeyMappingTable


def _write(tmp_path: Path, data) -> Path:
    path = tmp_path / "pitchkeys.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_defaults_without_file(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    config = load_config()
    assert config.detection.clarity_threshold == pytest.approx(CLARITY_THRESHOLD)
    assert config.audio.window_size == WINDOW_SIZE
    assert config.audio.sample_rate is None
    assert len(config.keys) == 10


def test_load_from_file(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        {
            "audio": {"device": 3, "window_size": 1024, "hop_size": 512},
            "detection": {"clarity_threshold": 0.8, "sensitivity": 0},
            "debounce": {"min_sustain_cycles": 3, "release_confirm_cycles": 4, "min_hold_seconds": 0.1},
            "keys": [
                {"low": 100.0, "high": 115.0, "key": "down"},
                {"low": 115.1, "high": 130.0, "key": "left"},
            ],
        },
    )
    config = load_config(path)
    assert config.audio.device == 3
    assert config.audio.hop_size == 512
    assert config.detection.clarity_threshold == pytest.approx(0.8)
    assert config.debounce.release_confirm_cycles == 4
    assert config.keys.classify(120.0) == "left"
    assert config.keys.classify(150.0) is None


def test_load_from_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = _write(tmp_path, {"detection": {"clarity_threshold": 0.9}})
    monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
    assert load_config().detection.clarity_threshold == pytest.approx(0.9)


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="cannot read"):
        load_config(tmp_path / "nope.json")


def test_invalid_json(tmp_path: Path) -> None:
    path = tmp_path / "bad.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError, match="invalid JSON"):
        load_config(path)


def test_non_utf8_file(tmp_path: Path) -> None:
    path = tmp_path / "latin1.json"
    path.write_bytes(b'{"audio": {"device": "\xff\xfe"}}')
    with pytest.raises(ConfigError, match="UTF-8"):
        load_config(path)


@pytest.mark.parametrize(
    "text",
    [
        '{"debounce": {"min_hold_seconds": NaN}}',
        '{"detection": {"sensitivity": NaN}}',
        '{"detection": {"clarity_threshold": NaN}}',
        '{"audio": {"hp_cutoff": Infinity}}',
        '{"audio": {"noise_gate_margin": NaN}}',
    ],
)
def test_non_finite_values_rejected(tmp_path: Path, text: str) -> None:
    path = tmp_path / "nan.json"
    path.write_text(text, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)


@pytest.mark.parametrize(
    "data",
    [
        [],
        {"bogus": {}},
        {"audio": {"windowsize": 1024}},
        {"audio": []},
        {"audio": {"window_size": "big"}},
        {"audio": {"noise_gate": 1}},
        {"audio": {"pitch_method": "bogus"}},
        {"debounce": {"min_sustain_cycles": True}},
        {"debounce": {"min_sustain_cycles": 1.5}},
        {"detection": {"clarity_threshold": 1.5}},
        {"audio": {"window_size": 1024, "hop_size": 2048}},
        {"keys": []},
        {"keys": [{"low": 100, "high": 120, "key": "a"}, {"low": 110, "high": 130, "key": "b"}]},
        {"keys": [{"low": 100, "high": 120, "key": "not-a-key"}]},
    ],
)
def test_invalid_configuration_rejected(data) -> None:
    with pytest.raises(ConfigError):
        config_from_dict(data)


def test_unknown_key_name_rejected_on_construction() -> None:
    table = KeyMappingTable.from_pairs([(100.0, 120.0, "hyperspace")])
    with pytest.raises(ConfigError, match="unknown key name"):
        PitchKeysConfig(keys=table)


def test_settings_are_frozen() -> None:
    settings = DetectionSettings()
    with pytest.raises(Exception):
        settings.clarity_threshold = 0.1  # type: ignore[misc]


def test_audio_settings_validation() -> None:
    with pytest.raises(ConfigError):
        AudioSettings(channels=0)
    with pytest.raises(ConfigError):
        AudioSettings(sample_rate=0)
    with pytest.raises(ConfigError):
        AudioSettings(window_size=16, hop_size=16)
    with pytest.raises(ConfigError, match="pitch_method"):
        AudioSettings(pitch_method="bogus")
    assert AudioSettings(pitch_method=" FFT ").pitch_method == " FFT "
