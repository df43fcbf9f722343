"""Tests for settings persistence and validation."""

import json
from copy import deepcopy

import pytest

from portfolio_uploader.models import UploaderConfig
from portfolio_uploader.settings import (
    DEFAULT_SETTINGS, load_settings, save_settings, uploader_config, validate_profile, validate_settings,
)


def _read(path):
    return json.loads(path.read_text(encoding="utf-8"))


class TestLoadSettings:
    """Tests for load_settings()."""

    def test_missing_file_writes_defaults(self, config_home):
        settings = load_settings()
        assert settings == DEFAULT_SETTINGS
        envelope = _read(config_home / "settings.json")
        assert envelope["version"] == 1
        assert envelope["settings"]["profiles"]["profile_image"]["crop_shape"] == "round"

    def test_corrupt_file_restores_defaults(self, config_home):
        (config_home / "settings.json").write_text("{not json", encoding="utf-8")
        assert load_settings() == DEFAULT_SETTINGS
        assert _read(config_home / "settings.json")["version"] == 1

    def test_missing_envelope_restores_defaults(self, config_home):
        (config_home / "settings.json").write_text(json.dumps(DEFAULT_SETTINGS), encoding="utf-8")
        assert load_settings() == DEFAULT_SETTINGS

    def test_invalid_settings_restore_defaults(self, config_home):
        bad = deepcopy(DEFAULT_SETTINGS)
        bad["timeout"] = -1
        (config_home / "settings.json").write_text(json.dumps({"version": 1, "settings": bad}), encoding="utf-8")
        assert load_settings()["timeout"] == DEFAULT_SETTINGS["timeout"]

    def test_round_trip(self, config_home):
        custom = deepcopy(DEFAULT_SETTINGS)
        custom["api_base_url"] = "https://portfolio.example.com/api"
        custom["profiles"]["profile_image"]["min_width"] = 320
        save_settings(custom)
        assert load_settings() == custom

    def test_returned_defaults_are_copies(self, config_home):
        load_settings()["profiles"]["profile_image"]["min_width"] = 1
        assert DEFAULT_SETTINGS["profiles"]["profile_image"]["min_width"] == 200


class TestSaveSettings:
    """Tests for save_settings()."""

    def test_rejects_invalid(self, config_home):
        bad = deepcopy(DEFAULT_SETTINGS)
        bad["profiles"]["profile_image"]["crop_shape"] = "hexagon"
        with pytest.raises(ValueError, match="crop_shape"):
            save_settings(bad)
        assert not (config_home / "settings.json").exists()


class TestValidation:
    """Tests for validate_settings() and validate_profile()."""

    def test_defaults_are_valid(self):
        assert validate_settings(DEFAULT_SETTINGS) == []

    def test_not_a_dict(self):
        assert validate_settings([]) == ["Settings must be a dict"]

    def test_bad_url(self):
        bad = deepcopy(DEFAULT_SETTINGS)
        bad["server_base_url"] = "ftp://example.com"
        assert any("server_base_url" in e for e in validate_settings(bad))

    def test_empty_profiles(self):
        bad = deepcopy(DEFAULT_SETTINGS)
        bad["profiles"] = {}
        assert "profiles must be a non-empty dict" in validate_settings(bad)

    def test_profile_missing_keys(self):
        errors = validate_profile("p", {"aspect_ratio": 1.0})
        assert errors and "missing keys" in errors[0]

    def test_profile_free_form_aspect(self):
        profile = dict(DEFAULT_SETTINGS["profiles"]["profile_image"], aspect_ratio=None)
        assert validate_profile("p", profile) == []

    @pytest.mark.parametrize("field, value", [
        ("aspect_ratio", 0),
        ("aspect_ratio", "wide"),
        ("min_width", -5),
        ("max_file_bytes", True),
        ("cropping_enabled", "yes"),
    ])
    def test_profile_bad_values(self, field, value):
        profile = dict(DEFAULT_SETTINGS["profiles"]["profile_image"], **{field: value})
        assert any(field in e for e in validate_profile("p", profile))


def test_uploader_config():
    config = uploader_config(DEFAULT_SETTINGS, "certificate_image")
    assert isinstance(config, UploaderConfig)
    assert config.aspect_ratio is None
    assert not config.cropping_enabled

    with pytest.raises(KeyError):
        uploader_config(DEFAULT_SETTINGS, "missing")
