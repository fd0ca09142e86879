"""Pytest configuration and shared fixtures."""

import logging
import time

import pytest

from vault_openvpn.logger import setup_logger

from .utils.factories import FakeVaultPKI


@pytest.fixture(autouse=True)
def logger():
    """Bind the package logger to the current test's streams."""
    return setup_logger(level=logging.DEBUG, use_colors=False)


@pytest.fixture
def fake_vault() -> FakeVaultPKI:
    """Provide an empty in-memory Vault PKI backend."""
    return FakeVaultPKI()


@pytest.fixture
def past_timestamp() -> int:
    """Epoch seconds one hour ago."""
    return int(time.time()) - 3600


@pytest.fixture
def future_timestamp() -> int:
    """Epoch seconds one day ahead."""
    return int(time.time()) + 86400
