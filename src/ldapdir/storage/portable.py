"""Portable LDAP client backend built on ldap3."""

from __future__ import annotations

import ssl

from ldap3 import (
    ALL_ATTRIBUTES,
    BASE,
    LEVEL,
    NONE,
    SIMPLE,
    SUBTREE,
    SYNC,
    Connection,
    Server,
    Tls,
)
from ldap3.core.exceptions import LDAPException
from structlog.stdlib import BoundLogger

from ..constants import LDAP_PORT, LDAP_TIMEOUT, LDAPS_PORT
from ..exceptions import (
    LDAPAuthenticationError,
    LDAPConnectionError,
    LDAPSearchError,
)
from ..models.enums import SearchScope
from .base import LdapClient, LdapClientEntry, StaticEntry

_SCOPES = {
    SearchScope.base: BASE,
    SearchScope.one_level: LEVEL,
    SearchScope.subtree: SUBTREE,
}
"""Mapping of search scopes to ldap3 scope constants."""

_SEARCH_OK_RESULTS = frozenset({0, 4, 10, 32})
"""LDAP result codes that mean "return what was found".

These are success, sizeLimitExceeded, referral, and noSuchObject.
"""

__all__ = ["Ldap3Client"]


class Ldap3Client(LdapClient):
    """LDAP client using the pure-Python ldap3 library.

    Parameters
    ----------
    logger
        Logger for debug messages and errors.
    timeout
        Timeout in seconds for connecting and for each response.
    strategy
        ldap3 client strategy. Only synchronous strategies are supported.
    """

    def __init__(
        self,
        logger: BoundLogger,
        timeout: float = LDAP_TIMEOUT,
        *,
        strategy: str = SYNC,
    ) -> None:
        super().__init__(logger, timeout)
        self._strategy = strategy
        self._connection: Connection | None = None

    def connect(
        self,
        host: str,
        port: int | None = None,
        *,
        use_tls: bool = False,
        bypass_cert_validation: bool = False,
    ) -> None:
        if port is None:
            port = LDAPS_PORT if use_tls else LDAP_PORT
        self._host = f"{host}:{port}"
        self._logger = self._logger.bind(ldap_host=self._host)
        tls = None
        if use_tls:
            if bypass_cert_validation:
                tls = Tls(validate=ssl.CERT_NONE)
            else:
                tls = Tls(validate=ssl.CERT_REQUIRED)
        server = Server(
            host,
            port=port,
            use_ssl=use_tls,
            tls=tls,
            get_info=NONE,
            connect_timeout=self._timeout,
        )
        connection = Connection(
            server,
            client_strategy=self._strategy,
            receive_timeout=self._timeout,
            raise_exceptions=False,
        )
        try:
            connection.open()
        except LDAPException as e:
            self._logger.warning("Cannot connect to LDAP server", error=str(e))
            msg = f"Cannot connect to LDAP server: {e}"
            raise LDAPConnectionError(msg, self._host) from e
        self._connection = connection
        self._logger.debug("Connected to LDAP server")

    def close(self) -> None:
        if self._connection is None:
            return
        connection, self._connection = self._connection, None
        try:
            connection.unbind()
        except LDAPException as e:
            self._logger.debug("Error closing LDAP connection", error=str(e))

    def _bind(self, user: str, password: str) -> None:
        connection = self._get_connection()
        connection.user = user
        connection.password = password
        connection.authentication = SIMPLE
        try:
            bound = connection.bind()
        except LDAPException as e:
            self._logger.warning("LDAP bind failed", user=user, error=str(e))
            msg = f"Bind as {user} failed: {e}"
            raise LDAPConnectionError(msg, self._host) from e
        if not bound:
            result = connection.result or {}
            error = result.get("description") or result.get("message")
            self._logger.info("LDAP bind rejected", user=user, error=error)
            msg = f"Bind as {user} rejected"
            raise LDAPAuthenticationError(msg, self._host)

    def _search(
        self,
        base_dn: str,
        search_filter: str,
        scope: SearchScope,
        attributes: list[str] | None,
    ) -> list[LdapClientEntry]:
        connection = self._get_connection()
        try:
            connection.search(
                base_dn,
                search_filter,
                search_scope=_SCOPES[scope],
                attributes=attributes or ALL_ATTRIBUTES,
                time_limit=max(1, int(self._timeout)),
            )
        except LDAPException as e:
            msg = f"Search of {base_dn} failed: {e}"
            raise LDAPSearchError(msg, self._host) from e
        result = connection.result or {}
        if result.get("result", 0) not in _SEARCH_OK_RESULTS:
            description = result.get("description") or result.get("message")
            msg = f"Search of {base_dn} failed: {description}"
            raise LDAPSearchError(msg, self._host)
        entries: list[LdapClientEntry] = []
        for response in connection.response or []:
            if response.get("type") != "searchResEntry":
                continue
            raw = response.get("raw_attributes") or {}
            entries.append(StaticEntry(response["dn"], dict(raw)))
        return entries

    def _get_connection(self) -> Connection:
        if self._connection is None:
            raise LDAPConnectionError("Not connected to an LDAP server")
        return self._connection
