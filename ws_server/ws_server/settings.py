"""
Settings for the GeoSync Django + Channels (ASGI) service.

Key points:
- Django + Django Channels (ASGI); the only HTTP route is the health check
- Environment-based configuration (optionally seeded from a `.env` file)
- RedisChannelLayer when REDIS_URL is set, InMemoryChannelLayer otherwise
  (sessions live in process memory, so ALB sticky sessions are required either way)
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import List

try:
    # Optional: allows local dev to load env vars from a `.env` file.
    from dotenv import load_dotenv

    load_dotenv()
except ImportError:
    pass


BASE_DIR = Path(__file__).resolve().parent.parent


def _env(name: str, default: str | None = None) -> str | None:
    v = os.environ.get(name)
    return v if v not in (None, "") else default


def _env_bool(name: str, default: bool = False) -> bool:
    v = _env(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_csv(name: str, default: str = "") -> List[str]:
    raw = _env(name, default) or ""
    return [x.strip() for x in raw.split(",") if x.strip()]


DEBUG = _env_bool("DJANGO_DEBUG", default=False)

SECRET_KEY = _env("DJANGO_SECRET_KEY", "dev-insecure-secret-key-change-me")
if not DEBUG and (not SECRET_KEY or SECRET_KEY.startswith("dev-insecure-")):
    raise RuntimeError("DJANGO_SECRET_KEY must be set in production")

ALLOWED_HOSTS = _env_csv("DJANGO_ALLOWED_HOSTS", default="localhost,127.0.0.1")

# CORS for the health endpoint and any browser tooling on another origin.
CORS_ALLOWED_ORIGINS = _env_csv("CORS_ALLOWED_ORIGINS", default="http://localhost:3000,http://127.0.0.1:3000")
CORS_ALLOW_ALL_ORIGINS = _env_bool("CORS_ALLOW_ALL_ORIGINS", default=False)

# When serving behind an ALB, Django must respect X-Forwarded-* headers.
USE_X_FORWARDED_HOST = True
SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
SECURE_SSL_REDIRECT = _env_bool("DJANGO_SECURE_SSL_REDIRECT", default=not DEBUG)


INSTALLED_APPS = [
    "corsheaders",
    # Channels must be installed to enable ASGI + websocket routing.
    "channels",
    # Session registry, role arbitration and the sync consumer.
    "realtime.apps.RealtimeConfig",
]

# HealthCheckAllowHttpMiddleware runs before SecurityMiddleware so ALB checks over
# plain HTTP are not redirected.
MIDDLEWARE = [
    "ws_server.middleware.HealthCheckAllowHttpMiddleware",
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "ws_server.urls"

ASGI_APPLICATION = "ws_server.asgi.application"

# No database: all session state is in memory.
DATABASES: dict = {}

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = False
USE_TZ = True


#
# Channels configuration
#
REDIS_URL = _env("REDIS_URL", None)
CHANNEL_LAYER_CAPACITY = int(_env("CHANNEL_LAYER_CAPACITY", "1000") or "1000")
CHANNEL_LAYER_EXPIRY = int(_env("CHANNEL_LAYER_EXPIRY", "60") or "60")

if REDIS_URL:
    CHANNEL_LAYERS = {
        "default": {
            "BACKEND": "channels_redis.core.RedisChannelLayer",
            "CONFIG": {
                # `hosts` accepts redis:// URLs.
                "hosts": [REDIS_URL],
                "capacity": CHANNEL_LAYER_CAPACITY,
                "expiry": CHANNEL_LAYER_EXPIRY,
            },
        }
    }
else:
    CHANNEL_LAYERS = {
        "default": {
            "BACKEND": "channels.layers.InMemoryChannelLayer",
            "CONFIG": {
                "capacity": CHANNEL_LAYER_CAPACITY,
                "expiry": CHANNEL_LAYER_EXPIRY,
            },
        }
    }


LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "plain": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {"console": {"class": "logging.StreamHandler", "formatter": "plain"}},
    "root": {"handlers": ["console"], "level": _env("DJANGO_LOG_LEVEL", "INFO") or "INFO"},
}
