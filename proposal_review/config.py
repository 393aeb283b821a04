"""Runtime settings for the review pipeline."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-3.5-turbo"
DEFAULT_TIMEOUT_SECONDS = 60.0
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_LOG_LEVEL = "WARNING"
REVIEW_TEMPERATURE = 0.3

API_KEY_ENV_VAR = "OPENAI_API_KEY"
BASE_URL_ENV_VAR = "OPENAI_BASE_URL"
MODEL_ENV_VAR = "PROPOSAL_REVIEW_MODEL"
TIMEOUT_ENV_VAR = "PROPOSAL_REVIEW_TIMEOUT_SECONDS"
MAX_ATTEMPTS_ENV_VAR = "PROPOSAL_REVIEW_MAX_ATTEMPTS"
LOG_LEVEL_ENV_VAR = "PROPOSAL_REVIEW_LOG_LEVEL"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True, slots=True)
class Settings:
    """Immutable settings shared by every review call."""

    api_key: str | None = None
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    temperature: float = REVIEW_TEMPERATURE
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from the environment, reading `.env` without overriding."""
        load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

        timeout_seconds = _read_float(TIMEOUT_ENV_VAR, DEFAULT_TIMEOUT_SECONDS)
        if timeout_seconds <= 0:
            raise ValueError(f"{TIMEOUT_ENV_VAR} must be positive, got {timeout_seconds}.")

        max_attempts = _read_int(MAX_ATTEMPTS_ENV_VAR, DEFAULT_MAX_ATTEMPTS)
        if max_attempts < 1:
            raise ValueError(f"{MAX_ATTEMPTS_ENV_VAR} must be at least 1, got {max_attempts}.")

        log_level = (os.getenv(LOG_LEVEL_ENV_VAR) or DEFAULT_LOG_LEVEL).upper()
        if log_level not in logging.getLevelNamesMapping():
            raise ValueError(f"{LOG_LEVEL_ENV_VAR} has unknown level '{log_level}'.")

        return cls(
            api_key=os.getenv(API_KEY_ENV_VAR) or None,
            base_url=(os.getenv(BASE_URL_ENV_VAR) or DEFAULT_BASE_URL).rstrip("/"),
            model=os.getenv(MODEL_ENV_VAR) or DEFAULT_MODEL,
            timeout_seconds=timeout_seconds,
            max_attempts=max_attempts,
            log_level=log_level,
        )


def _read_float(name: str, default: float) -> float:
    raw_value = os.getenv(name)
    if raw_value is None or not raw_value.strip():
        return default
    try:
        return float(raw_value)
    except ValueError as error:
        raise ValueError(f"{name} must be a number, got '{raw_value}'.") from error


def _read_int(name: str, default: int) -> int:
    raw_value = os.getenv(name)
    if raw_value is None or not raw_value.strip():
        return default
    try:
        return int(raw_value)
    except ValueError as error:
        raise ValueError(f"{name} must be an integer, got '{raw_value}'.") from error


def configure_logging(level: str = DEFAULT_LOG_LEVEL) -> None:
    """Configure root logging for command-line runs."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, force=True)
    # httpx logs every request at INFO; keep it quiet unless debugging.
    if level.upper() != "DEBUG":
        logging.getLogger("httpx").setLevel(logging.WARNING)
