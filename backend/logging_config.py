import logging

from constants import LOG_LEVEL

APP_LOGGER_NAME = "seed_generator"


def configure_logging(level: str = LOG_LEVEL):
    """
    Configure service logging from the LOG_LEVEL environment variable.

    Library loggers (azure, httpx) stay at WARNING to reduce noise.
    """
    level_value = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=level_value,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    for noisy in ("azure", "azure.core.pipeline.policies.http_logging_policy", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(APP_LOGGER_NAME).setLevel(level_value)


def get_logger(name: str = APP_LOGGER_NAME):
    """
    Get a configured logger instance for the application.

    Args:
        name: Logger name (defaults to application name)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)
