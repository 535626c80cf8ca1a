"""Unit tests for shared logging setup."""

import logging
from unittest.mock import patch

import pytest

from profiledesk.logging import HTTP_CLIENT_LOGGERS, LOG_FORMAT, configure_logging


@pytest.mark.parametrize(
    ("level", "expected_root", "expected_client"),
    [
        ("info", "INFO", logging.WARNING),
        (" debug ", "DEBUG", logging.DEBUG),
        ("", "INFO", logging.WARNING),
    ],
)
def test_configure_logging_levels(
    level: str, expected_root: str, expected_client: int
) -> None:
    """HTTP client request lines should only show up when debugging."""
    with patch("profiledesk.logging.logging.basicConfig") as mock_basic_config:
        configure_logging(level)

    mock_basic_config.assert_called_once_with(level=expected_root, format=LOG_FORMAT)
    for name in HTTP_CLIENT_LOGGERS:
        assert logging.getLogger(name).level == expected_client
