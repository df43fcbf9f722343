"""
Settings persistence: load, save, and validate uploader configuration.

Runtime settings are stored in a JSON file in the user's config directory
(provided by ``config.config_dir()``).  On first launch (or if the file
is missing/corrupt), the file is created from DEFAULT_SETTINGS.

The on-disk format uses a versioned envelope::

    {"version": 1, "settings": { ... }}

``settings`` holds the backend URLs, the upload timeout, and one upload
profile per control (``profile_image``, ``certificate_image`` ...), each
of which becomes an ``UploaderConfig``.
"""

import json
import logging
from copy import deepcopy
from pathlib import Path

from portfolio_uploader.config import (
    API_BASE_URL, CROP_SHAPES, DEFAULT_ASPECT_RATIO, DEFAULT_CROP_SHAPE,
    MAX_FILE_BYTES, MIN_CROP_HEIGHT, MIN_CROP_WIDTH, SERVER_BASE_URL, UPLOAD_TIMEOUT,
    config_dir,
)
from portfolio_uploader.models import UploaderConfig

logger = logging.getLogger(__name__)

_SETTINGS_FILENAME = "settings.json"
_FORMAT_VERSION = 1

_PROFILE_REQUIRED_KEYS = {"aspect_ratio", "crop_shape", "min_width", "min_height", "max_file_bytes", "cropping_enabled"}
_PROFILE_INT_KEYS = ("min_width", "min_height", "max_file_bytes")

DEFAULT_SETTINGS = {
    "api_base_url": API_BASE_URL,
    "server_base_url": SERVER_BASE_URL,
    "timeout": UPLOAD_TIMEOUT,
    "profiles": {
        "profile_image": {
            "aspect_ratio": DEFAULT_ASPECT_RATIO,
            "crop_shape": DEFAULT_CROP_SHAPE,
            "min_width": MIN_CROP_WIDTH,
            "min_height": MIN_CROP_HEIGHT,
            "max_file_bytes": MAX_FILE_BYTES,
            "cropping_enabled": True,
        },
        "project_image": {
            "aspect_ratio": 16 / 9,
            "crop_shape": "rect",
            "min_width": MIN_CROP_WIDTH,
            "min_height": MIN_CROP_HEIGHT,
            "max_file_bytes": MAX_FILE_BYTES,
            "cropping_enabled": True,
        },
        "certificate_image": {
            "aspect_ratio": None,
            "crop_shape": "rect",
            "min_width": MIN_CROP_WIDTH,
            "min_height": MIN_CROP_HEIGHT,
            "max_file_bytes": MAX_FILE_BYTES,
            "cropping_enabled": False,
        },
    },
}


# =============================================================================
# Validation
# =============================================================================
def _is_number(val: object) -> bool:
    return isinstance(val, (int, float)) and not isinstance(val, bool)


def validate_profile(name: str, profile: object) -> list[str]:
    """Validate one upload profile. Returns a list of error strings."""
    prefix = f"Profile '{name}'"
    if not isinstance(profile, dict):
        return [f"{prefix}: must be a dict"]

    missing = _PROFILE_REQUIRED_KEYS - profile.keys()
    if missing:
        return [f"{prefix}: missing keys: {', '.join(sorted(missing))}"]

    errors: list[str] = []
    aspect = profile["aspect_ratio"]
    if aspect is not None and (not _is_number(aspect) or aspect <= 0):
        errors.append(f"{prefix}: aspect_ratio must be a positive number or null, got {aspect!r}")

    if profile["crop_shape"] not in CROP_SHAPES:
        errors.append(f"{prefix}: crop_shape must be one of {', '.join(CROP_SHAPES)}, got {profile['crop_shape']!r}")

    for key in _PROFILE_INT_KEYS:
        val = profile[key]
        if not isinstance(val, int) or isinstance(val, bool) or val <= 0:
            errors.append(f"{prefix}: {key} must be a positive integer, got {val!r}")

    if not isinstance(profile["cropping_enabled"], bool):
        errors.append(f"{prefix}: cropping_enabled must be true or false")

    return errors


def validate_settings(data: object) -> list[str]:
    """
    Validate a settings structure.

    Returns a list of error strings (empty means valid).
    """
    if not isinstance(data, dict):
        return ["Settings must be a dict"]

    errors: list[str] = []
    for key in ("api_base_url", "server_base_url"):
        val = data.get(key)
        if not isinstance(val, str) or not val.startswith(("http://", "https://")):
            errors.append(f"{key} must be an http(s) URL, got {val!r}")

    timeout = data.get("timeout")
    if not _is_number(timeout) or timeout <= 0:
        errors.append(f"timeout must be a positive number, got {timeout!r}")

    profiles = data.get("profiles")
    if not isinstance(profiles, dict) or not profiles:
        errors.append("profiles must be a non-empty dict")
        return errors

    for name, profile in profiles.items():
        errors.extend(validate_profile(name, profile))

    return errors


# =============================================================================
# Load / Save
# =============================================================================
def _settings_path() -> Path:
    """Return the full path to settings.json."""
    return config_dir() / _SETTINGS_FILENAME


def load_settings() -> dict:
    """
    Load settings from settings.json.

    If the file is missing, corrupt, or fails validation, writes the
    defaults and returns them.
    """
    path = _settings_path()

    if not path.exists():
        logger.info("settings.json not found, creating with defaults at %s", path)
        _write_defaults(path)
        return deepcopy(DEFAULT_SETTINGS)

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read settings.json (%s), restoring defaults", exc)
        _write_defaults(path)
        return deepcopy(DEFAULT_SETTINGS)

    if not isinstance(raw, dict) or raw.get("version") != _FORMAT_VERSION or "settings" not in raw:
        logger.warning("settings.json missing version envelope, restoring defaults")
        _write_defaults(path)
        return deepcopy(DEFAULT_SETTINGS)

    data = raw["settings"]
    errors = validate_settings(data)
    if errors:
        logger.warning(
            "settings.json validation failed:\n  %s\nRestoring defaults.",
            "\n  ".join(errors),
        )
        _write_defaults(path)
        return deepcopy(DEFAULT_SETTINGS)

    return data


def save_settings(settings: dict) -> None:
    """
    Validate and write settings to settings.json in versioned envelope.

    Raises ValueError if validation fails.
    Raises OSError if the file cannot be written.
    """
    errors = validate_settings(settings)
    if errors:
        raise ValueError("Invalid settings:\n  " + "\n  ".join(errors))

    envelope = {"version": _FORMAT_VERSION, "settings": settings}
    path = _settings_path()
    path.write_text(json.dumps(envelope, indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info("Saved settings with %d profile(s) to %s", len(settings["profiles"]), path)


def _write_defaults(path: Path) -> None:
    """Write DEFAULT_SETTINGS to the given path in versioned envelope."""
    try:
        envelope = {"version": _FORMAT_VERSION, "settings": deepcopy(DEFAULT_SETTINGS)}
        path.write_text(json.dumps(envelope, indent=2, ensure_ascii=False), encoding="utf-8")
    except OSError as exc:
        logger.error("Could not write default settings to %s: %s", path, exc)


def uploader_config(settings: dict, profile: str) -> UploaderConfig:
    """Build the ``UploaderConfig`` for a named profile. Raises KeyError if unknown."""
    return UploaderConfig(**settings["profiles"][profile])
