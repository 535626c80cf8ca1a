"""Process-wide logging for the profile web service."""

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# HTTP client loggers print every CRM and auth provider URL at INFO.
HTTP_CLIENT_LOGGERS = ("httpx", "httpcore")


def configure_logging(level: str = "INFO") -> None:
    """Set the root level from LOG_LEVEL and keep HTTP client chatter for DEBUG."""
    root_level = level.strip().upper() or "INFO"
    logging.basicConfig(level=root_level, format=LOG_FORMAT)

    client_level = logging.DEBUG if root_level == "DEBUG" else logging.WARNING
    for name in HTTP_CLIENT_LOGGERS:
        logging.getLogger(name).setLevel(client_level)
