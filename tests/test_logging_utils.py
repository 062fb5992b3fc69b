"""Tests for logging setup."""

import logging

from floodkit.logging_utils import setup_logging


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_sets_package_level(self) -> None:
        package_logger = logging.getLogger("floodkit")
        previous = package_logger.level
        try:
            setup_logging("debug")
            assert package_logger.level == logging.DEBUG

            setup_logging(logging.WARNING)
            assert package_logger.level == logging.WARNING
        finally:
            package_logger.setLevel(previous)

    def test_unknown_level_name_falls_back_to_info(self) -> None:
        package_logger = logging.getLogger("floodkit")
        previous = package_logger.level
        try:
            setup_logging("chatty")
            assert package_logger.level == logging.INFO
        finally:
            package_logger.setLevel(previous)
