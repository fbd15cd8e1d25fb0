"""
Tests de la configuración de logging
"""
import logging

from rich.logging import RichHandler

from glbtool.core.log import LOGGER_NAME, setup_logging


class TestSetupLogging:
    def test_levels(self):
        assert setup_logging(verbose=True).level == logging.DEBUG
        assert setup_logging().level == logging.INFO

    def test_single_rich_handler(self):
        setup_logging()
        logger = setup_logging()
        handlers = [h for h in logging.getLogger(LOGGER_NAME).handlers if isinstance(h, RichHandler)]
        assert len(handlers) == 1
        assert logger.propagate is False
