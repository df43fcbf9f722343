"""
Application constants and configuration.

Backend URLs and the upload timeout come from the environment and fall back
to the local development server.  Runtime settings are loaded from
settings.json via the settings module; everything here is the built-in
default those settings are validated against.

The ``config_dir()`` helper returns the platform-appropriate config
directory and is shared by all persistence modules (settings, token store).
"""

import os
import sys
from pathlib import Path

# =============================================================================
# APP IDENTITY & CONFIG DIRECTORY
# =============================================================================
APP_NAME = "portfolio-uploader"


def config_dir() -> Path:
    """Return the platform-appropriate config directory, creating it if needed."""
    if sys.platform == "win32":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    directory = base / APP_NAME
    directory.mkdir(parents=True, exist_ok=True)
    return directory


# =============================================================================
# BACKEND
# =============================================================================
API_BASE_URL = os.environ.get("PORTFOLIO_API_URL", "http://localhost:5001/api")
SERVER_BASE_URL = os.environ.get("PORTFOLIO_SERVER_URL", "http://localhost:5001")

# Seconds; the core never times out on its own, the transport does
UPLOAD_TIMEOUT = float(os.environ.get("PORTFOLIO_UPLOAD_TIMEOUT", "60"))

# Key under which the admin bearer token is stored
TOKEN_KEY = "adminToken"

# =============================================================================
# UPLOAD DEFAULTS
# =============================================================================
# Matches the backend's multer limit
MAX_FILE_BYTES = 15 * 1024 * 1024

MIN_CROP_WIDTH = 200
MIN_CROP_HEIGHT = 200

# Initial crop covers this share of the image width
INITIAL_CROP_PERCENT = 90

DEFAULT_ASPECT_RATIO = 1.0
CROP_SHAPES = ["round", "rect"]
DEFAULT_CROP_SHAPE = "round"

# Cropped output encoding
OUTPUT_FORMAT = "PNG"
OUTPUT_QUALITY = 1.0
CROPPED_FILENAME = "cropped-image.png"
CROPPED_MIME = "image/png"

# Aspect-ratio comparisons tolerate this much drift (rendering rounding)
ASPECT_TOLERANCE = 0.01

# Accepted MIME prefix for the image flow
IMAGE_MIME_PREFIX = "image/"

# Supported image extensions for the desktop file dialog
IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".bmp", ".tiff", ".tif", ".webp", ".psd"}

# =============================================================================
# CROP EDITOR
# =============================================================================
# Nudge amounts (pixels in display coordinates)
NUDGE_SMALL = 1
NUDGE_LARGE = 10

# Handle size for resize corners (pixels in screen coordinates)
HANDLE_SIZE = 10
