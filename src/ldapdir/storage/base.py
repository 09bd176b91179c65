"""Contract shared by the LDAP client backends."""

from __future__ import annotations

from abc import ABCMeta, abstractmethod
from collections.abc import Iterable
from types import TracebackType
from typing import Self

from structlog.stdlib import BoundLogger

from ..constants import LDAP_TIMEOUT
from ..exceptions import LDAPAuthenticationError
from ..models.enums import SearchScope
from ..models.identity import GroupId
from ..util import dn_to_domain, domain_qualified_name, parse_dn_components

__all__ = [
    "LdapClient",
    "LdapClientEntry",
    "StaticEntry",
]


class LdapClientEntry(metaclass=ABCMeta):
    """One entry returned by an LDAP search.

    Attribute names are matched case-insensitively and values are always
    returned as strings, whichever backend produced the entry.
    """

    @property
    @abstractmethod
    def distinguished_name(self) -> str:
        """Distinguished name of the entry."""

    @abstractmethod
    def get_values(self, attribute: str) -> list[str]:
        """Return all values of an attribute.

        Parameters
        ----------
        attribute
            Name of the attribute (case-insensitive).

        Returns
        -------
        list of str
            Values of the attribute, empty if the entry does not have it.
        """

    def get_value(self, attribute: str) -> str | None:
        """Return the first value of an attribute, or `None`."""
        values = self.get_values(attribute)
        return values[0] if values else None

    @property
    def domain_path(self) -> str:
        """DNS domain of the entry, from the ``DC=`` components of its DN."""
        return dn_to_domain(self.distinguished_name)

    def extract_groups(self, attribute: str = "memberOf") -> set[GroupId]:
        """Parse group identities from a member-of style attribute.

        Each value is the DN of a group. The group name is taken from the
        leading RDN of that DN (normally its ``CN=``), and the group domain
        from its ``DC=`` components.

        Parameters
        ----------
        attribute
            Multi-valued attribute holding group DNs.

        Returns
        -------
        set of GroupId
            Resolved identities of the groups, deduplicated
            case-insensitively.
        """
        groups = set()
        for value in self.get_values(attribute):
            components = parse_dn_components(value)
            if not components or not components[0][1].strip():
                continue
            name = components[0][1]
            domain = dn_to_domain(value)
            group_id = GroupId(name, domain, distinguished_name=value)
            groups.add(group_id)
        return groups

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.distinguished_name!r})"


class StaticEntry(LdapClientEntry):
    """An entry whose attributes have already been read into memory.

    Both backends convert their native results to this form.

    Parameters
    ----------
    dn
        Distinguished name of the entry.
    attributes
        Attribute values keyed by attribute name. Byte values are decoded as
        UTF-8.
    """

    def __init__(
        self, dn: str, attributes: dict[str, Iterable[str | bytes]]
    ) -> None:
        self._dn = dn
        self._attributes: dict[str, list[str]] = {}
        for name, values in attributes.items():
            decoded = [
                v.decode(errors="replace") if isinstance(v, bytes) else str(v)
                for v in values
                if v is not None
            ]
            self._attributes.setdefault(name.lower(), []).extend(decoded)

    @property
    def distinguished_name(self) -> str:
        return self._dn

    def get_values(self, attribute: str) -> list[str]:
        return list(self._attributes.get(attribute.lower(), []))


class LdapClient(metaclass=ABCMeta):
    """A connection to one LDAP server.

    Each client is used for a single logical operation: connect, optionally
    bind, run one or more searches, and close. Clients are not safe to share
    between threads. Use the client as a context manager to guarantee that
    the connection is released.

    Parameters
    ----------
    logger
        Logger for debug messages and errors.
    timeout
        Timeout in seconds for each network operation.
    """

    def __init__(
        self, logger: BoundLogger, timeout: float = LDAP_TIMEOUT
    ) -> None:
        self._logger = logger
        self._timeout = timeout
        self._host: str | None = None

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    @abstractmethod
    def connect(
        self,
        host: str,
        port: int | None = None,
        *,
        use_tls: bool = False,
        bypass_cert_validation: bool = False,
    ) -> None:
        """Connect to an LDAP server.

        Parameters
        ----------
        host
            Host name or IP address of the server.
        port
            Port to connect to. Defaults to 636 with TLS and 389 otherwise.
        use_tls
            Whether to use LDAP over TLS.
        bypass_cert_validation
            Whether to accept any server certificate.

        Raises
        ------
        LDAPConnectionError
            Raised if the server cannot be reached or the TLS handshake fails.
        """

    @abstractmethod
    def _bind(self, user: str, password: str) -> None:
        """Perform a simple bind with a non-empty password."""

    @abstractmethod
    def _search(
        self,
        base_dn: str,
        search_filter: str,
        scope: SearchScope,
        attributes: list[str] | None,
    ) -> list[LdapClientEntry]:
        """Perform a search with a non-empty filter."""

    @abstractmethod
    def close(self) -> None:
        """Release the connection. Safe to call more than once."""

    def bind(self, user: str, password: str) -> None:
        """Authenticate the connection with a simple bind.

        Parameters
        ----------
        user
            Distinguished name or user principal name to bind as.
        password
            Password for that user.

        Raises
        ------
        LDAPAuthenticationError
            Raised if the password is empty or the server rejects the
            credentials. An empty password is rejected locally, since LDAP
            servers treat it as an unauthenticated bind that always succeeds.
        LDAPConnectionError
            Raised if the server could not be reached.
        """
        if not password:
            self._logger.info("Refusing bind with empty password", user=user)
            raise LDAPAuthenticationError(
                f"Empty password for {user}", self._host
            )
        self._logger.debug("Binding to LDAP server", user=user)
        self._bind(user, password)

    def bind_credential(
        self, username: str, password: str, domain: str | None = None
    ) -> None:
        """Bind as a user of a domain.

        Bare usernames are qualified as ``user@domain``.
        """
        self.bind(domain_qualified_name(username, domain), password)

    def search(
        self,
        base_dn: str,
        search_filter: str,
        scope: SearchScope = SearchScope.subtree,
        attributes: list[str] | None = None,
    ) -> list[LdapClientEntry]:
        """Search the directory.

        Parameters
        ----------
        base_dn
            Base DN of the search.
        search_filter
            Search filter in RFC 4515 syntax.
        scope
            Scope of the search.
        attributes
            Attributes to retrieve, or `None` for all user attributes.

        Returns
        -------
        list of LdapClientEntry
            Matching entries. An empty filter, a filter that matches nothing,
            or a base DN that does not exist all give an empty list.
            Referrals are skipped.

        Raises
        ------
        LDAPSearchError
            Raised if the server failed the search.
        LDAPConnectionError
            Raised if the server could not be reached.
        """
        if not search_filter or not search_filter.strip():
            return []
        logger = self._logger.bind(
            ldap_base=base_dn,
            ldap_search=search_filter,
            ldap_scope=scope.value,
        )
        logger.debug("Querying LDAP")
        results = self._search(base_dn, search_filter, scope, attributes)
        logger.debug("LDAP search returned", ldap_results=len(results))
        return results
