"""Native LDAP client backend built on bonsai.

bonsai wraps the platform LDAP library: WinLDAP on Windows and OpenLDAP's
libldap elsewhere.
"""

from __future__ import annotations

import bonsai
from bonsai import LDAPSearchScope
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
    SearchScope.base: LDAPSearchScope.BASE,
    SearchScope.one_level: LDAPSearchScope.ONELEVEL,
    SearchScope.subtree: LDAPSearchScope.SUBTREE,
}
"""Mapping of search scopes to bonsai scope constants."""

__all__ = ["BonsaiClient"]


class BonsaiClient(LdapClient):
    """LDAP client using the bonsai library.

    bonsai binds while opening the connection, so `connect` opens an
    anonymous connection to check that the server is reachable and `bind`
    reopens it with the new credentials.

    Parameters
    ----------
    logger
        Logger for debug messages and errors.
    timeout
        Timeout in seconds for connecting and for each search.
    """

    def __init__(
        self, logger: BoundLogger, timeout: float = LDAP_TIMEOUT
    ) -> None:
        super().__init__(logger, timeout)
        self._client: bonsai.LDAPClient | None = None
        self._connection: bonsai.LDAPConnection | None = None

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
        scheme = "ldaps" if use_tls else "ldap"
        client = bonsai.LDAPClient(f"{scheme}://{host}:{port}")
        client.set_server_chase_referrals(False)
        if use_tls and bypass_cert_validation:
            client.set_cert_policy("never")
        self._client = client
        self._connection = self._open(client)
        self._logger.debug("Connected to LDAP server")

    def close(self) -> None:
        if self._connection is None:
            return
        connection, self._connection = self._connection, None
        try:
            connection.close()
        except bonsai.LDAPError as e:
            self._logger.debug("Error closing LDAP connection", error=str(e))

    def _bind(self, user: str, password: str) -> None:
        if self._client is None:
            raise LDAPConnectionError("Not connected to an LDAP server")
        self._client.set_credentials("SIMPLE", user=user, password=password)
        self.close()
        self._connection = self._open(self._client, user)

    def _open(
        self, client: bonsai.LDAPClient, user: str | None = None
    ) -> bonsai.LDAPConnection:
        """Open a connection, binding with the current credentials."""
        try:
            return client.connect(timeout=self._timeout)
        except bonsai.AuthenticationError as e:
            self._logger.info("LDAP bind rejected", user=user, error=str(e))
            msg = f"Bind as {user} rejected"
            raise LDAPAuthenticationError(msg, self._host) from e
        except bonsai.LDAPError as e:
            self._logger.warning("Cannot connect to LDAP server", error=str(e))
            msg = f"Cannot connect to LDAP server: {e}"
            raise LDAPConnectionError(msg, self._host) from e

    def _search(
        self,
        base_dn: str,
        search_filter: str,
        scope: SearchScope,
        attributes: list[str] | None,
    ) -> list[LdapClientEntry]:
        if self._connection is None:
            raise LDAPConnectionError("Not connected to an LDAP server")
        try:
            results = self._connection.search(
                base_dn,
                _SCOPES[scope],
                search_filter,
                attrlist=attributes,
                timeout=self._timeout,
            )
        except bonsai.NoSuchObjectError:
            return []
        except (bonsai.ConnectionError, bonsai.TimeoutError) as e:
            msg = f"Lost connection to LDAP server: {e}"
            raise LDAPConnectionError(msg, self._host) from e
        except bonsai.LDAPError as e:
            msg = f"Search of {base_dn} failed: {e}"
            raise LDAPSearchError(msg, self._host) from e
        entries: list[LdapClientEntry] = []
        for result in results:
            if not isinstance(result, bonsai.LDAPEntry):
                continue
            values = {k: v for k, v in result.items() if k.lower() != "dn"}
            entries.append(StaticEntry(str(result.dn), values))
        return entries
