"""Shared fixtures for the gaussian_capture tests."""

import logging

import pytest

from gaussian_capture import TrajectoryConfig, generate_viewpoints
from gaussian_capture.utils.logging import ROOT_LOGGER_NAME


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Drop handlers installed by setup_logging so captured streams are not reused."""
    yield
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def small_orbit():
    """36 viewpoints: 3 rings of 12 at 5m."""
    return generate_viewpoints(TrajectoryConfig(ring_count=3, views_per_ring=12, base_radius=500.0))
