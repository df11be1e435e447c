"""
Configuration module for the document sync client.

This module centralizes the loading and validation of all configuration
parameters from environment variables. It provides a single `Settings`
class that acts as a container for all configurable values, so the backend
client, the artifact cache and the status poller read their knobs from one
place.
"""

import os
from typing import Literal


class Settings:
    """
    A container for all configuration settings, loaded from environment variables.

    Optional settings fall back to defaults; invalid values raise ``ValueError``.
    """

    # --- Backend API Configuration ---
    BACKEND_URL: str
    API_TOKEN: str | None
    REQUEST_TIMEOUT: int

    # --- Artifact Cache Configuration ---
    CACHE_PATH: str | None
    CACHE_TTL_SECONDS: int

    # --- Status Poller Configuration ---
    POLL_MAX_ATTEMPTS: int
    POLL_TIMEOUT_SECONDS: float
    POLL_JITTER: float

    # --- Logging ---
    LOG_LEVEL: str
    LOG_FORMAT: Literal["console", "json"]

    DEFAULT_CACHE_PATH: str = "~/.cache/docsync/artifact_cache.json"

    def __init__(self):
        """
        Loads settings from environment variables and performs validation.
        """
        # --- Backend API Configuration ---
        self.BACKEND_URL = os.getenv("BACKEND_URL", "http://127.0.0.1:8000").rstrip("/")
        self.API_TOKEN = os.getenv("API_TOKEN") or None
        self.REQUEST_TIMEOUT = self._get_positive_int("REQUEST_TIMEOUT", 30)

        # --- Artifact Cache Configuration ---
        # An explicitly empty CACHE_PATH disables persistence.
        cache_path = os.getenv("CACHE_PATH", self.DEFAULT_CACHE_PATH).strip()
        self.CACHE_PATH = os.path.expanduser(cache_path) if cache_path else None
        self.CACHE_TTL_SECONDS = self._get_positive_int("CACHE_TTL_SECONDS", 24 * 60 * 60)

        # --- Status Poller Configuration ---
        self.POLL_MAX_ATTEMPTS = self._get_positive_int("POLL_MAX_ATTEMPTS", 10)
        self.POLL_TIMEOUT_SECONDS = float(os.getenv("POLL_TIMEOUT_SECONDS", 600))
        if self.POLL_TIMEOUT_SECONDS <= 0:
            raise ValueError("POLL_TIMEOUT_SECONDS must be > 0")
        self.POLL_JITTER = float(os.getenv("POLL_JITTER", 0.0))
        if not 0.0 <= self.POLL_JITTER < 1.0:
            raise ValueError("POLL_JITTER must be >= 0 and < 1")

        # --- Logging ---
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.LOG_FORMAT = os.getenv("LOG_FORMAT", "console").lower()
        if self.LOG_FORMAT not in ("console", "json"):
            raise ValueError("LOG_FORMAT must be 'console' or 'json'")

    def _get_positive_int(self, var_name: str, default: int) -> int:
        """
        Reads an integer environment variable that must be at least 1.
        """
        raw = os.getenv(var_name)
        if raw is None or raw.strip() == "":
            return default
        try:
            value = int(raw)
        except ValueError:
            raise ValueError(f"{var_name} must be an integer, got {raw!r}") from None
        if value < 1:
            raise ValueError(f"{var_name} must be >= 1")
        return value
