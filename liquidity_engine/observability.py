"""Logfire configuration from settings."""

import logging

import logfire

from config import settings

logger = logging.getLogger(__name__)

SCRUB_PATTERNS = [
    r'api_?key', r'api_?secret',
    r'EXCHANGE_API_KEY', r'EXCHANGE_API_SECRET',
]


def configure_observability() -> bool:
    """
    Configure logfire and route stdlib logging through it.

    Returns:
        True if logfire was configured, False when no token is set
    """
    logging.basicConfig(level=logging.INFO)

    if not settings.logfire_token:
        logger.info("LOGFIRE_TOKEN not set, observability export disabled")
        return False

    logfire.configure(
        service_name=settings.logfire_service_name,
        token=settings.logfire_token,
        environment=settings.logfire_environment,
        scrubbing=logfire.ScrubbingOptions(extra_patterns=SCRUB_PATTERNS),
        console=logfire.ConsoleOptions(min_log_level=settings.logfire_console_level),
    )
    logfire.instrument_pydantic()
    logging.getLogger().addHandler(logfire.LogfireLoggingHandler())
    logger.info("Logfire observability initialized")
    return True
