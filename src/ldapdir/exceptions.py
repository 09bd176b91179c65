"""Exceptions for ldapdir."""

from __future__ import annotations

__all__ = [
    "DirectoryError",
    "LDAPAuthenticationError",
    "LDAPConnectionError",
    "LDAPError",
    "LDAPSearchError",
    "NoBackendError",
    "UnknownCredentialError",
]


class DirectoryError(Exception):
    """Base class for all errors raised by the directory layer."""


class LDAPError(DirectoryError):
    """An LDAP operation failed.

    Parameters
    ----------
    message
        Human-readable description of the failure.
    host
        LDAP server involved, if known, for diagnostic logging.
    """

    def __init__(self, message: str, host: str | None = None) -> None:
        super().__init__(message)
        self.host = host

    def __str__(self) -> str:
        message = super().__str__()
        if self.host:
            return f"{message} (server {self.host})"
        return message


class LDAPConnectionError(LDAPError):
    """The LDAP server could not be reached.

    Covers unreachable hosts, TLS handshake failures, and timeouts. This is
    fatal for the current operation and always propagates to the caller.
    """


class LDAPAuthenticationError(LDAPError):
    """The LDAP server rejected the bind credentials.

    For credential validation this is the expected signal for an invalid
    password. It always propagates to the caller.
    """


class LDAPSearchError(LDAPConnectionError):
    """The LDAP server failed a search operation.

    Failures during group or trust enumeration are logged and absorbed.
    Elsewhere this is treated like a connection failure.
    """


class NoBackendError(DirectoryError):
    """No usable LDAP client library is installed."""


class UnknownCredentialError(DirectoryError):
    """A domain line refers to a credential name that is not configured."""
