"""Pytest configuration and shared fixtures for eventnormflow tests."""

import pytest

from eventnormflow import EventSurface
from tests.event_factory import plane_batch


def pytest_addoption(parser):
    parser.addoption(
        "--run-slow", action="store_true", default=False,
        help="Run full-resolution synthetic scenarios",
    )


def pytest_configure(config):
    config.addinivalue_line("markers", "slow: full-resolution synthetic scenario")


def pytest_collection_modifyitems(config, items):
    if not config.getoption("--run-slow"):
        skip_slow = pytest.mark.skip(reason="needs --run-slow option to run")
        for item in items:
            if "slow" in item.keywords:
                item.add_marker(skip_slow)


@pytest.fixture
def surface_5x5():
    """5x5 sensor holding the plane t = 1 + 0.1x + 0.1y."""
    surface = EventSurface.from_resolution(5, 5)
    surface.ingest_batch(plane_batch(5, 5, 0.1, 0.1))
    return surface
