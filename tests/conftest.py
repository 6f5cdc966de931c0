"""Pytest configuration and fixtures for ecoplane tests."""

import os

import pytest

from ecoplane import logging
from ecoplane.core.notifications import NotificationBus
from tests.helpers.factories import FakeClock, make_config


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cfg():
    """Package defaults, sanitized exactly like ControlPlane.init does."""
    return make_config()


@pytest.fixture
def bus() -> NotificationBus:
    return NotificationBus()


@pytest.fixture
def received(bus):
    """Every notification published on ``bus`` during the test."""
    seen: list = []
    bus.subscribe(seen.append)
    return seen


@pytest.fixture(autouse=True)
def mute_ecoplane_logs(caplog):
    # - coverage run: DEBUG so every logging branch executes
    # - all other runs: ERROR for faster tests
    if os.environ.get("COVERAGE_RUN") == "true":
        level = logging.DEBUG
    else:
        level = logging.ERROR

    caplog.set_level(level, logger="ecoplane")
    logging.getLogger("ecoplane").setLevel(level)
