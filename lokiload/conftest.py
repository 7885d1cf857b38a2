"""
Pytest configuration and fixtures for lokiload.

This module provides shared fixtures and configuration for all tests.
"""

import pytest
from hypothesis import settings, Verbosity

from lokiload.workload.loglines import LogVocabulary

# Configure Hypothesis profiles
settings.register_profile(
    "default",
    max_examples=100,
    verbosity=Verbosity.normal,
    deadline=None,
)

settings.register_profile(
    "ci",
    max_examples=200,
    verbosity=Verbosity.verbose,
    deadline=None,
)

settings.register_profile(
    "dev",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)


def pytest_configure(config):
    """Configure pytest with custom settings."""
    config.addinivalue_line("markers", "property: property-based tests")
    config.addinivalue_line("markers", "live: tests against a running Loki")
    # Load the default hypothesis profile
    settings.load_profile("default")


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--loki-url",
        action="store",
        default="http://localhost:3100",
        help="Loki URL",
    )


@pytest.fixture
def loki_url(request):
    """Get the Loki URL from command line."""
    return request.config.getoption("--loki-url")


@pytest.fixture(scope="session")
def vocabulary():
    """A small seeded vocabulary; building the full one is slow."""
    return LogVocabulary.build(seed=42, size=16)
