"""Infrastructure and technical constants."""

from typing import Final

# Technical configuration constants
MIN_SECRET_KEY_LENGTH: Final = 32
DEFAULT_PORT: Final = 5000

# Session cookie
SESSION_COOKIE_NAME: Final = "session"
SESSION_MAX_AGE_SECONDS: Final = 7 * 24 * 3600

# Request bodies at or above this size are rejected (50 MB)
DEFAULT_BODY_LIMIT_BYTES: Final = 50 * 1024 * 1024

# Responses smaller than this are sent uncompressed
COMPRESSION_MIN_SIZE: Final = 1024

ALLOWED_METHODS: Final = ("GET", "POST", "PUT", "DELETE", "OPTIONS")

DEFAULT_BROKER_CHANNEL: Final = "socketio"
