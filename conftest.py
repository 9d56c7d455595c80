"""Pytest configuration for Parish Lifecycle."""

import pytest

from parish_lifecycle.config import LifecycleConfig, set_config


def pytest_configure(config):
    """Configure pytest with custom settings."""
    config.addinivalue_line("markers", "cascade: test exercises sacrament cascades")


@pytest.fixture(autouse=True)
def reset_global_config():
    """Give every test a fresh global configuration."""
    set_config(LifecycleConfig(environment="test"))
    yield
    set_config(LifecycleConfig(environment="test"))
