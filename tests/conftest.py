"""Test fixtures."""

from __future__ import annotations

import logging
from collections.abc import Iterator

import pytest
import structlog
from structlog.stdlib import BoundLogger

from .support.ldap import MockLdapServer, patch_ldap


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    """Undo any logging configuration done by a test."""
    yield
    structlog.reset_defaults()
    logging.getLogger("ldapdir").handlers = []


@pytest.fixture(autouse=True)
def environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Clear environment variables that would override test settings."""
    for name in (
        "LDAPDIR_CONFIG_PATH",
        "LDAPDIR_LOG_LEVEL",
        "LDAPDIR_LOG_PROFILE",
        "LDAPDIR_PASSWORD",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def logger() -> BoundLogger:
    """Return the logger used by directories under test."""
    return structlog.get_logger("ldapdir")


@pytest.fixture
def mock_ldap() -> Iterator[MockLdapServer]:
    """Replace the LDAP backend with a mock server."""
    yield from patch_ldap()
