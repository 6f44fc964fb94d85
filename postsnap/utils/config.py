"""Configuration management for PostSnap."""

import os
from pathlib import Path
from typing import Dict, List


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    value = (os.getenv(name) or "").strip().lower()
    if not value:
        return default
    return value in ("1", "true", "yes", "on")


# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Logs configuration
LOG_DIR = Path(os.getenv("POSTSNAP_LOG_DIR", str(PROJECT_ROOT / "logs")))
LOG_FILE = LOG_DIR / "postsnap.log"
LOG_LEVEL = os.getenv("POSTSNAP_LOG_LEVEL", "INFO").upper()

# Server configuration
HOST = os.getenv("POSTSNAP_HOST", "0.0.0.0")
PORT = _env_int("PORT", 3001)

# Cache configuration
CACHE_TTL = _env_float("POSTSNAP_CACHE_TTL", 5 * 60.0)  # Seconds
COALESCE_REQUESTS = _env_bool("POSTSNAP_COALESCE_REQUESTS", False)

# Maximum number of posts returned per username
MAX_ITEMS = _env_int("POSTSNAP_MAX_ITEMS", 3)

# HTTP configuration
API_TIMEOUT = _env_float("POSTSNAP_API_TIMEOUT", 10.0)  # Seconds, connect + read

# Browser configuration
NAVIGATION_TIMEOUT = _env_float("POSTSNAP_NAVIGATION_TIMEOUT", 30.0)  # Seconds
NAVIGATION_ATTEMPTS = _env_int("POSTSNAP_NAVIGATION_ATTEMPTS", 2)
NAVIGATION_RETRY_WAIT = 1.0  # Seconds between navigation attempts
SELECTOR_TIMEOUT = _env_float("POSTSNAP_SELECTOR_TIMEOUT", 5.0)  # Seconds, per pattern
SETTLE_DELAY = _env_float("POSTSNAP_SETTLE_DELAY", 5.0)  # Seconds after navigation
BROWSER_LOCALE = os.getenv("POSTSNAP_BROWSER_LOCALE", "en-US")
VIEWPORT: Dict[str, int] = {"width": 1920, "height": 1080}
CHROMIUM_ARGS: List[str] = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
]

# Client identities
API_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
INSTAGRAM_APP_ID = "936619743392459"  # Instagram web app ID

# Instagram endpoints
INSTAGRAM_BASE_URL = "https://www.instagram.com"
INSTAGRAM_PROFILE_INFO_URL = f"{INSTAGRAM_BASE_URL}/api/v1/users/web_profile_info/"

# Placeholder text
DEFAULT_CAPTION = "Post do Instagram"
FALLBACK_CAPTION_TEMPLATE = "Posts recentes de @{username}"

# App information
APP_NAME = "PostSnap"
APP_VERSION = "0.1.0"
SERVICE_NAME = "Instagram Scraper Service"
