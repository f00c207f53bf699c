"""
Cart sync configuration.

All settings come from environment variables and are read once at import.
Constructors take explicit arguments and fall back to these defaults.
"""

import os


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


# Remote cart service
CART_API_BASE_URL = os.environ.get("CART_API_BASE_URL", "http://localhost:3000/api")
HTTP_TIMEOUT = _env_float("CART_HTTP_TIMEOUT", 10.0)
HTTP_CONNECT_TIMEOUT = _env_float("CART_HTTP_CONNECT_TIMEOUT", 5.0)

# Retry policy (attempts are total, not extra)
CART_RETRY_ATTEMPTS = _env_int("CART_RETRY_ATTEMPTS", 3)
CART_RETRY_INITIAL_DELAY = _env_float("CART_RETRY_INITIAL_DELAY", 1.0)

# Quantity changes are coalesced within this window (seconds)
CART_DEBOUNCE_DELAY = _env_float("CART_DEBOUNCE_DELAY", 0.5)

# Durable cache
CART_CACHE_TTL_SECONDS = _env_int("CART_CACHE_TTL_SECONDS", 300)
CART_CACHE_BACKEND = os.environ.get("CART_CACHE_BACKEND", "file").lower()  # file | upstash
CART_CACHE_DIR = os.environ.get("CART_CACHE_DIR", os.path.join(os.path.expanduser("~"), ".artisan-cart"))

# Upstash Redis - standard env var names per docs
UPSTASH_REDIS_REST_URL = os.environ.get("UPSTASH_REDIS_REST_URL", "")
UPSTASH_REDIS_REST_TOKEN = os.environ.get("UPSTASH_REDIS_REST_TOKEN", "")

# Where unauthenticated users are sent
SIGN_IN_PATH = os.environ.get("SIGN_IN_PATH", "/auth/signin")
