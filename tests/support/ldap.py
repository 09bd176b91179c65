"""Mock LDAP server for testing."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from unittest.mock import patch

import structlog
from structlog.stdlib import BoundLogger

from ldapdir import factory
from ldapdir.constants import LDAP_TIMEOUT
from ldapdir.exceptions import (
    LDAPAuthenticationError,
    LDAPConnectionError,
    LDAPSearchError,
)
from ldapdir.models.enums import SearchScope
from ldapdir.storage.base import LdapClient, LdapClientEntry, StaticEntry

__all__ = [
    "MockLdapClient",
    "MockLdapServer",
    "RecordedBind",
    "RecordedSearch",
    "make_entry",
    "patch_ldap",
]


@dataclass(frozen=True)
class RecordedBind:
    """A bind made against the mock server."""

    host: str
    user: str


@dataclass(frozen=True)
class RecordedSearch:
    """A search made against the mock server."""

    host: str
    base_dn: str
    search_filter: str
    scope: SearchScope
    attributes: list[str] | None


def make_entry(dn: str, **attributes: str | list[str]) -> StaticEntry:
    """Build an entry for the mock server.

    Parameters
    ----------
    dn
        Distinguished name of the entry.
    **attributes
        Attribute values, either a single string or a list of strings.

    Returns
    -------
    StaticEntry
        The entry.
    """
    values = {
        k: [v] if isinstance(v, str) else list(v)
        for k, v in attributes.items()
    }
    return StaticEntry(dn, values)


class MockLdapServer:
    """Mock LDAP server that records every call made to it.

    One-level and subtree searches are answered from canned results keyed
    by the base DN (compared case-insensitively) and the exact filter
    string. Base-scope searches instead look up the base DN among the
    entries added with `add_entry` and ignore the filter, since that is how
    entries are read directly.
    """

    def __init__(self) -> None:
        self.connects: list[tuple[str, int | None, bool]] = []
        self.binds: list[RecordedBind] = []
        self.searches: list[RecordedSearch] = []
        self.closed = 0
        self._entries: dict[str, LdapClientEntry] = {}
        self._results: dict[tuple[str, str], list[LdapClientEntry]] = {}
        self._passwords: dict[str, str] = {}
        self._failing_hosts: set[str] = set()
        self._failing_searches: set[tuple[str, str]] = set()

    @property
    def client_class(self) -> type[LdapClient]:
        """Client class bound to this server, for use by the factory."""
        server = self

        class BoundMockLdapClient(MockLdapClient):
            def __init__(
                self, logger: BoundLogger, timeout: float = LDAP_TIMEOUT
            ) -> None:
                super().__init__(server, logger, timeout)

        return BoundMockLdapClient

    def create_client(self) -> MockLdapClient:
        """Create a new, unconnected client for this server."""
        return MockLdapClient(self, structlog.get_logger("ldapdir"))

    def add_entry(self, entry: LdapClientEntry) -> None:
        """Add an entry that can be read with a base-scope search.

        Use an entry with an empty DN for the RootDSE.
        """
        self._entries[entry.distinguished_name.lower()] = entry

    def add_search(
        self, base_dn: str, search_filter: str, entries: list[StaticEntry]
    ) -> None:
        """Add the results of a search.

        Parameters
        ----------
        base_dn
            Base DN of the search.
        search_filter
            Exact filter of the search.
        entries
            Entries returned by that search. Each is also added with
            `add_entry`.
        """
        key = (base_dn.lower(), search_filter)
        self._results.setdefault(key, []).extend(entries)
        for entry in entries:
            self.add_entry(entry)

    def fail_host(self, host: str) -> None:
        """Make connections to a host fail."""
        self._failing_hosts.add(host.lower())

    def fail_search(self, base_dn: str, search_filter: str) -> None:
        """Make a search fail with a server error."""
        self._failing_searches.add((base_dn.lower(), search_filter))

    def set_password(self, user: str, password: str) -> None:
        """Require a password for binds as a user.

        Binds as users without a configured password always succeed.
        """
        self._passwords[user.lower()] = password

    def filters_for(self, base_dn: str | None = None) -> list[str]:
        """Return the filters of recorded searches, optionally by base DN."""
        return [
            s.search_filter
            for s in self.searches
            if base_dn is None or s.base_dn.lower() == base_dn.lower()
        ]

    def do_connect(self, host: str, port: int | None, use_tls: bool) -> None:
        self.connects.append((host, port, use_tls))
        if host.lower() in self._failing_hosts:
            raise LDAPConnectionError("Cannot connect", host)

    def do_bind(self, host: str, user: str, password: str) -> None:
        self.binds.append(RecordedBind(host, user))
        expected = self._passwords.get(user.lower())
        if expected is not None and expected != password:
            raise LDAPAuthenticationError(f"Bind as {user} rejected", host)

    def do_search(
        self,
        host: str,
        base_dn: str,
        search_filter: str,
        scope: SearchScope,
        attributes: list[str] | None,
    ) -> list[LdapClientEntry]:
        search = RecordedSearch(
            host, base_dn, search_filter, scope, attributes
        )
        self.searches.append(search)
        key = (base_dn.lower(), search_filter)
        if key in self._failing_searches:
            raise LDAPSearchError(f"Search of {base_dn} failed", host)
        if scope == SearchScope.base:
            entry = self._entries.get(base_dn.lower())
            return [entry] if entry else []
        return list(self._results.get(key, []))


class MockLdapClient(LdapClient):
    """LDAP client that talks to a `MockLdapServer`."""

    def __init__(
        self,
        server: MockLdapServer,
        logger: BoundLogger,
        timeout: float = LDAP_TIMEOUT,
    ) -> None:
        super().__init__(logger, timeout)
        self._server = server
        self._connected = False

    def connect(
        self,
        host: str,
        port: int | None = None,
        *,
        use_tls: bool = False,
        bypass_cert_validation: bool = False,
    ) -> None:
        self._server.do_connect(host, port, use_tls)
        self._host = host
        self._connected = True

    def close(self) -> None:
        if self._connected:
            self._connected = False
            self._server.closed += 1

    def _bind(self, user: str, password: str) -> None:
        assert self._connected
        assert self._host
        self._server.do_bind(self._host, user, password)

    def _search(
        self,
        base_dn: str,
        search_filter: str,
        scope: SearchScope,
        attributes: list[str] | None,
    ) -> list[LdapClientEntry]:
        assert self._connected
        assert self._host
        return self._server.do_search(
            self._host, base_dn, search_filter, scope, attributes
        )


def patch_ldap() -> Iterator[MockLdapServer]:
    """Replace the LDAP backend selected by the factory with a mock.

    Returns
    -------
    MockLdapServer
        The mock LDAP server.
    """
    server = MockLdapServer()
    with patch.object(factory, "select_client_class") as mock_select:
        mock_select.return_value = server.client_class
        yield server
