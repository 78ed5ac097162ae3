"""
Configuration module for the Campus Kart marketplace core.

This module centralizes the loading and validation of all configuration
parameters from environment variables. It provides a single `Settings`
class that acts as a container for all configurable values, ensuring
that they are defined in one place and can be easily imported and used
throughout the application.
"""

import os
from typing import Literal

import openai

DEFAULT_CATEGORIES = "Books,Electronics,Furniture,Clothing,Other"


class Settings:
    """
    A container for all configuration settings, loaded from environment variables.

    This class centralizes configuration, providing default values for optional
    settings and raising errors for missing required settings.
    """

    # --- LLM Provider Configuration ---
    LLM_PROVIDER: Literal["openai", "ollama"]
    OLLAMA_BASE_URL: str | None
    OPENAI_API_KEY: str | None

    # --- Category Suggestion ---
    SUGGEST_MODEL: str
    SUGGEST_TEMPERATURE: float
    SUGGEST_NO_FIT_LABEL: str
    REQUEST_TIMEOUT: int
    CATEGORIES: list[str]

    # --- Listing Store ---
    LISTINGS_API_URL: str | None
    LISTINGS_API_TOKEN: str | None
    MAX_RETRIES: int
    MAX_RETRY_BACKOFF_SECONDS: int

    # --- Logging ---
    LOG_LEVEL: str
    LOG_FORMAT: Literal["console", "json"]

    def __init__(self):
        """
        Loads settings from environment variables and performs validation.
        """
        # --- LLM Provider Configuration ---
        self.LLM_PROVIDER = os.getenv("LLM_PROVIDER", "openai")
        if self.LLM_PROVIDER not in ("openai", "ollama"):
            raise ValueError("LLM_PROVIDER must be 'openai' or 'ollama'")

        if self.LLM_PROVIDER == "ollama":
            self.OLLAMA_BASE_URL = os.getenv(
                "OLLAMA_BASE_URL", "http://localhost:11434/v1/"
            )
            self.OPENAI_API_KEY = None  # Not used for Ollama
            self.SUGGEST_MODEL = os.getenv("SUGGEST_MODEL", "gemma3:12b")
        else:  # openai
            self.OLLAMA_BASE_URL = None
            self.OPENAI_API_KEY = self._get_required_env("OPENAI_API_KEY")
            self.SUGGEST_MODEL = os.getenv("SUGGEST_MODEL", "gpt-4o-mini")

        # --- Category Suggestion ---
        self.SUGGEST_TEMPERATURE = float(os.getenv("SUGGEST_TEMPERATURE", 0.0))
        self.SUGGEST_NO_FIT_LABEL = os.getenv("SUGGEST_NO_FIT_LABEL", "Other").strip()
        self.REQUEST_TIMEOUT = int(os.getenv("REQUEST_TIMEOUT", 30))
        if self.REQUEST_TIMEOUT <= 0:
            raise ValueError("REQUEST_TIMEOUT must be a positive number of seconds")
        self.CATEGORIES = _parse_list(os.getenv("CATEGORIES", DEFAULT_CATEGORIES))

        # --- Listing Store ---
        listings_url = os.getenv("LISTINGS_API_URL")
        self.LISTINGS_API_URL = listings_url.rstrip("/") if listings_url else None
        self.LISTINGS_API_TOKEN = os.getenv("LISTINGS_API_TOKEN")
        self.MAX_RETRIES = int(os.getenv("MAX_RETRIES", 3))
        if self.MAX_RETRIES < 1:
            raise ValueError("MAX_RETRIES must be >= 1")
        self.MAX_RETRY_BACKOFF_SECONDS = int(os.getenv("MAX_RETRY_BACKOFF_SECONDS", 30))

        # --- Logging ---
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.LOG_FORMAT = os.getenv("LOG_FORMAT", "console").lower()
        if self.LOG_FORMAT not in ("console", "json"):
            raise ValueError("LOG_FORMAT must be 'console' or 'json'")

    def _get_required_env(self, var_name: str) -> str:
        """
        Gets a required environment variable, raising an error if it's not set.
        """
        value = os.getenv(var_name)
        if value is None:
            raise ValueError(f"Required environment variable '{var_name}' is not set.")
        return value


def _parse_list(value: str) -> list[str]:
    """Split a comma-separated value, keeping blanks so validation can reject them."""
    if not value.strip():
        return []
    return [item.strip() for item in value.split(",")]


def setup_libraries(settings: Settings) -> None:
    """
    Configures third-party libraries based on the application settings.
    """
    # Category suggestion is a single advisory call; the SDK must not retry it.
    openai.max_retries = 0

    if settings.LLM_PROVIDER == "ollama":
        openai.base_url = settings.OLLAMA_BASE_URL
        openai.api_key = "dummy"
    else:
        openai.api_key = settings.OPENAI_API_KEY
