"""Constants used across the homebase-relay package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "homebase-relay"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / APP_NAME / DEFAULT_CONFIG_FILENAME

DEFAULT_HTTP_HOST = "0.0.0.0"
DEFAULT_HTTP_PORT = 8080

# Three full 30s poll cycles of headroom; 35s produced spurious timeouts.
DEFAULT_COMMAND_TIMEOUT_SECONDS = 90.0
# Well under typical reverse-proxy idle limits.
DEFAULT_LONG_POLL_MAX_SECONDS = 25.0

DEFAULT_DEVICE_ID = "SUBURBAN"
DEFAULT_DEVICE_TOKEN = "test"

DEFAULT_BARK_BASE_URL = "https://api.day.app"
DEFAULT_NOTIFY_TIMEOUT_SECONDS = 8.0
DEFAULT_NOTIFY_TITLE = "Suburban"

ADMIN_SECRET_ENV = "ADMIN_UID"
BARK_DEVICE_KEY_ENV = "BARK_DEVICE_KEY"
