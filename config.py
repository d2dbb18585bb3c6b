"""
FocusBand Configuration
Central settings shared by the API server and the tracking client.
Values come from environment variables (optionally a .env file).
"""

import os
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _get_list(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


class Config:
    """Application configuration loaded from the environment."""

    # Application
    APP_NAME = os.getenv("APP_NAME", "FocusBand")
    APP_VERSION = os.getenv("APP_VERSION", "1.0.0")
    DEBUG = _get_bool("DEBUG", False)

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG" if DEBUG else "INFO")
    LOG_FILE = os.getenv("LOG_FILE", "focusband.log")

    # Storage: "memory" keeps everything in process, "database" uses SQLAlchemy
    STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "memory").strip().lower()
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./focusband.db")

    # API server
    API_HOST = os.getenv("API_HOST", "0.0.0.0")
    API_PORT = int(os.getenv("API_PORT", "8000"))
    CORS_ORIGINS = _get_list(
        "CORS_ORIGINS",
        "http://localhost:5000,http://localhost:8000,http://127.0.0.1:5000,http://127.0.0.1:8000",
    )
    ALLOWED_HOSTS = _get_list("ALLOWED_HOSTS", "*")

    # Tracking client
    API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")
    REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "10"))
    CAMERA_INDEX = int(os.getenv("CAMERA_INDEX", "0"))
    METRICS_BATCH_INTERVAL = float(os.getenv("METRICS_BATCH_INTERVAL", "10"))  # seconds
    STOP_WAIT_POLL_INTERVAL = float(os.getenv("STOP_WAIT_POLL_INTERVAL", "0.1"))  # seconds
    STOP_WAIT_MAX_ITERATIONS = int(os.getenv("STOP_WAIT_MAX_ITERATIONS", "50"))


config = Config()
