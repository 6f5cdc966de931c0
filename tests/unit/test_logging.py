"""Tests for logging configuration and behavior."""

import logging

import pytest

from ecoplane.control import ControlPlane
from ecoplane.ledger import InMemoryLedger
from ecoplane.logging import DEEP_DEBUG, EcoLogger, configure, getLogger, level_from_name


class TestEcoLogger:
    """Test custom EcoLogger functionality."""

    def test_logger_has_deep_method(self):
        logger = getLogger("ecoplane.test")
        assert isinstance(logger, EcoLogger)
        assert callable(logger.deep)

    def test_deep_level_exists(self):
        assert DEEP_DEBUG == 5
        assert logging.getLevelName(DEEP_DEBUG) == "DEEP"

    def test_deep_logging_when_enabled(self, caplog):
        logger = getLogger("ecoplane.test.deep")
        logger.setLevel(DEEP_DEBUG)

        with caplog.at_level(DEEP_DEBUG, logger="ecoplane.test.deep"):
            logger.deep("Deep debug message")

        assert "Deep debug message" in caplog.text

    def test_deep_logging_when_disabled(self, caplog):
        logger = getLogger("ecoplane.test.deep_disabled")
        logger.setLevel(logging.INFO)

        with caplog.at_level(logging.INFO, logger="ecoplane.test.deep_disabled"):
            logger.deep("Should not appear")

        assert "Should not appear" not in caplog.text


class TestLevelNames:
    @pytest.mark.parametrize(
        "name, expected",
        [
            ("DEEP_DEBUG", DEEP_DEBUG),
            ("deep", DEEP_DEBUG),
            ("debug", logging.DEBUG),
            ("INFO", logging.INFO),
            ("Warning", logging.WARNING),
        ],
    )
    def test_known_levels(self, name, expected):
        assert level_from_name(name) == expected

    def test_unknown_level_raises(self):
        with pytest.raises(ValueError, match="Unknown log level"):
            level_from_name("CHATTY")


class TestLoggingConfiguration:
    def test_configure_sets_root_and_components(self):
        configure({"default_level": "WARNING", "components": {"market": "DEBUG"}})

        assert logging.getLogger("ecoplane").level == logging.WARNING
        assert logging.getLogger("ecoplane.market").level == logging.DEBUG

    def test_configure_without_components(self):
        configure({"default_level": "ERROR"})
        assert logging.getLogger("ecoplane").level == logging.ERROR

    def test_control_plane_applies_logging_section(self):
        ControlPlane.init(
            ledger=InMemoryLedger(),
            logging={"default_level": "DEBUG", "components": {"safemode": "ERROR"}},
        )

        assert logging.getLogger("ecoplane").level == logging.DEBUG
        assert logging.getLogger("ecoplane.safemode").level == logging.ERROR

    def test_invalid_logging_section_falls_back(self):
        ControlPlane.init(ledger=InMemoryLedger(), logging={"default_level": "LOUD"})
        assert logging.getLogger("ecoplane").level == logging.INFO
