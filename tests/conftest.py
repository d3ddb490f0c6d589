"""Pytest configuration and fixtures for the perftrend tests."""

import pytest
from factories import FakeBackend

from perftrend.config import Settings


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def settings():
    return Settings(_env_file=None)
