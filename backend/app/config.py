"""
Application configuration.
Values are read once from the environment (and an optional .env file).
"""

import os
import tempfile
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


# ---------------------------------------------------------------------------
# Upload constraints
# ---------------------------------------------------------------------------

MAX_FILE_SIZE_BYTES = _env_int("LOGO_MAX_FILE_SIZE", 1024 * 1024)  # 1 MB

# file type -> accepted MIME types
ACCEPTED_FILE_TYPES: dict[str, list[str]] = {
    "svg": ["image/svg+xml"],
    "png": ["image/png"],
    "jpeg": ["image/jpeg", "image/jpg"],
    "css": ["text/css"],
}

ACCEPTED_EXTENSIONS: dict[str, str] = {
    ".svg": "svg",
    ".png": "png",
    ".jpg": "jpeg",
    ".jpeg": "jpeg",
    ".css": "css",
}

# SVGs with more elements than this get a complexity warning at upload time
SVG_COMPLEX_NODE_COUNT = _env_int("LOGO_SVG_COMPLEX_NODE_COUNT", 500)

# ---------------------------------------------------------------------------
# Processing
# ---------------------------------------------------------------------------

DEFAULT_WIDTH = _env_int("LOGO_DEFAULT_WIDTH", 200)
DEFAULT_HEIGHT = _env_int("LOGO_DEFAULT_HEIGHT", 200)

# optimization level -> encoder quality (lower number = more compression)
QUALITY_LADDER: dict[str, int] = {
    "low": 95,
    "medium": 85,
    "high": 75,
}

PNG_QUALITY = 90
PNG_COMPRESS_LEVEL = 9
JPEG_QUALITY = 85
JPEG_PROGRESSIVE = True

# Source images larger than this area (in pixels) get a file-size warning
LARGE_IMAGE_AREA = 2000 * 2000

SVG_MAX_PASSES = _env_int("LOGO_SVG_MAX_PASSES", 10)

# Light gray RGBA used for placeholder rasters
PLACEHOLDER_COLOR = (200, 200, 200, 255)

# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

HTML_INCLUDE_COMMENTS = _env_bool("LOGO_HTML_INCLUDE_COMMENTS", True)
HTML_INDENT = 2

PACKAGE_FILENAME = "email-logo-package.zip"

PREVIEW_CLIENTS = ["apple-mail", "gmail", "outlook-desktop"]
PREVIEW_WIDTH = 300
PREVIEW_HEIGHT = 200

# ---------------------------------------------------------------------------
# Temp storage for uploads and job records
# ---------------------------------------------------------------------------

_tmp_root = Path(tempfile.gettempdir())

UPLOAD_DIR = Path(os.getenv("LOGO_UPLOAD_DIR", "").strip() or _tmp_root / "logo-uploads")
RESULTS_DIR = Path(os.getenv("LOGO_RESULTS_DIR", "").strip() or _tmp_root / "logo-results")

FILE_EXPIRY_SECONDS = _env_int("LOGO_FILE_EXPIRY_SECONDS", 60 * 60)  # 1 hour

# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

# Comma-separated extra origins, e.g. CORS_ORIGINS=https://logos.example.com
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]
