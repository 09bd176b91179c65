"""Create ldapdir components."""

from __future__ import annotations

import sys
from importlib.util import find_spec
from typing import Self

import structlog
from structlog.stdlib import BoundLogger

from .config import ActiveDirectoryConfig, Config, GenericLdapConfig
from .directories.active_directory import ActiveDirectoryDirectory
from .directories.base import UserDirectory
from .directories.generic_ldap import GenericLdapDirectory
from .directories.openldap import OpenLdapDirectory
from .exceptions import NoBackendError
from .models.enums import LdapBackend
from .storage.base import LdapClient

__all__ = [
    "Factory",
    "available_backends",
    "select_client_class",
]


def available_backends() -> list[LdapBackend]:
    """Return the LDAP backends whose libraries are installed.

    Returns
    -------
    list of LdapBackend
        Installed backends in order of preference for this platform. On
        Windows, the native bonsai backend (using WinLDAP) is preferred.
        Elsewhere, the pure-Python ldap3 backend is preferred.
    """
    order = [LdapBackend.ldap3, LdapBackend.bonsai]
    if sys.platform == "win32":
        order.reverse()
    return [b for b in order if find_spec(b.value) is not None]


def select_client_class(
    backend: LdapBackend = LdapBackend.auto,
) -> type[LdapClient]:
    """Choose the LDAP client implementation.

    The backend module is imported only once it has been chosen, so the
    library of the other backend need not be installed.

    Parameters
    ----------
    backend
        Requested backend, or ``auto`` to pick the preferred installed one.

    Returns
    -------
    type of LdapClient
        Client class for that backend.

    Raises
    ------
    NoBackendError
        Raised if the requested backend is not installed, or if ``auto`` was
        requested and no backend is installed.
    """
    available = available_backends()
    if backend == LdapBackend.auto:
        if not available:
            raise NoBackendError("Neither ldap3 nor bonsai is installed")
        backend = available[0]
    elif backend not in available:
        raise NoBackendError(f"LDAP backend {backend.value} is not installed")

    if backend == LdapBackend.bonsai:
        from .storage.native import BonsaiClient

        return BonsaiClient
    else:
        from .storage.portable import Ldap3Client

        return Ldap3Client


class Factory:
    """Build LDAP clients and user directories from configuration.

    Parameters
    ----------
    config
        ldapdir configuration.
    logger
        Logger to use for errors.
    """

    @classmethod
    def from_config(cls, config: Config) -> Self:
        """Create a factory using the default ldapdir logger.

        Parameters
        ----------
        config
            ldapdir configuration.

        Returns
        -------
        Factory
            Newly-created factory.
        """
        logger = structlog.get_logger("ldapdir")
        return cls(config, logger)

    def __init__(self, config: Config, logger: BoundLogger) -> None:
        self._config = config
        self._logger = logger
        self._client_class: type[LdapClient] | None = None

    def create_client(self) -> LdapClient:
        """Create a new, unconnected LDAP client.

        Returns
        -------
        LdapClient
            Client using the configured backend and timeout.

        Raises
        ------
        NoBackendError
            Raised if the configured backend is not installed.
        """
        if not self._client_class:
            self._client_class = select_client_class(self._config.backend)
            self._logger.debug(
                "Selected LDAP backend", backend=self._client_class.__name__
            )
        timeout = self._config.directory.timeout
        return self._client_class(self._logger, timeout=timeout)

    def create_directory(self) -> UserDirectory:
        """Create the configured user directory.

        Returns
        -------
        UserDirectory
            Directory of the configured type.
        """
        directory = self._config.directory
        logger = self._logger.bind(directory=directory.type)
        if isinstance(directory, ActiveDirectoryConfig):
            return ActiveDirectoryDirectory(
                directory,
                self.create_client,
                logger,
                credentials=self._config.credentials,
            )
        elif isinstance(directory, GenericLdapConfig):
            return GenericLdapDirectory(directory, self.create_client, logger)
        else:
            return OpenLdapDirectory(directory, self.create_client, logger)
