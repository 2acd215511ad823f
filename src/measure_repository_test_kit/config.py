"""
Environment-driven settings for running the suite.

Command line options take precedence over these values.
"""

import logging
import os
from dataclasses import dataclass

DEFAULT_TIMEOUT = 10


@dataclass(frozen=True)
class Settings:
    """
    :param url: FHIR base URL of the Measure Repository Service under test.
    :param bearer_token: Optional OAuth2 access token.
    :param timeout: Timeout in seconds for each HTTP call.
    :param log_level: Name of the logging level, e.g. ``INFO``.
    """

    url: str | None = None
    bearer_token: str | None = None
    timeout: int = DEFAULT_TIMEOUT
    log_level: str = "WARNING"


def load_settings() -> Settings:
    """
    Read settings from the environment.

    :raises ValueError: If ``MEASURE_REPOSITORY_TIMEOUT`` is not an integer or
        ``TEST_KIT_LOG_LEVEL`` is not a logging level name.
    """
    timeout = os.getenv("MEASURE_REPOSITORY_TIMEOUT")
    try:
        timeout_seconds = int(timeout) if timeout else DEFAULT_TIMEOUT
    except ValueError as err:
        raise ValueError(
            f"MEASURE_REPOSITORY_TIMEOUT must be an integer, got {timeout!r}"
        ) from err

    log_level = os.getenv("TEST_KIT_LOG_LEVEL", "WARNING").upper()
    if log_level not in logging.getLevelNamesMapping():
        raise ValueError(
            f"TEST_KIT_LOG_LEVEL must be a logging level name, got {log_level!r}"
        )

    return Settings(
        url=os.getenv("MEASURE_REPOSITORY_URL"),
        bearer_token=os.getenv("MEASURE_REPOSITORY_TOKEN"),
        timeout=timeout_seconds,
        log_level=log_level,
    )
