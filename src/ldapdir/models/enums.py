"""Enums used in ldapdir models and configuration.

Notes
-----
These are kept in a separate module because both the configuration models and
the directory implementations need them, and the configuration must not
import the directory code.
"""

from __future__ import annotations

from enum import Enum, Flag, IntEnum

__all__ = [
    "ADSearchMode",
    "GroupSearchType",
    "LdapBackend",
    "LdapConnectionType",
    "PrincipalSearchType",
    "SearchScope",
    "TrustDirection",
]


class ADSearchMode(Enum):
    """Which domains an Active Directory directory searches."""

    current_domain = "current_domain"
    """Only the domain the directory is joined to or configured for."""

    trusted_domains = "trusted_domains"
    """The current domain plus every domain it or its forest trusts."""

    specific_domains = "specific_domains"
    """An explicit list of domains, each with optional credentials."""


class GroupSearchType(Enum):
    """Strategy for resolving group membership."""

    no_recursion = "no_recursion"
    """Use only the direct member-of values of the entry."""

    recursive_search = "recursive_search"
    """Walk parent groups one LDAP search at a time."""

    recursive_search_active_directory = "recursive_search_active_directory"
    """Resolve transitive membership with one matching-rule query.

    Only valid against Active Directory compatible servers.
    """


class LdapBackend(Enum):
    """LDAP client library used to talk to the server."""

    auto = "auto"
    bonsai = "bonsai"
    ldap3 = "ldap3"


class LdapConnectionType(Enum):
    """Transport used to reach the LDAP server."""

    ldap = "ldap"
    """Plain LDAP."""

    ldaps = "ldaps"
    """LDAP over TLS with certificate validation."""

    ldaps_with_bypass = "ldaps_with_bypass"
    """LDAP over TLS without certificate validation."""

    @property
    def use_tls(self) -> bool:
        """Whether this connection type uses TLS."""
        return self is not LdapConnectionType.ldap

    @property
    def bypass_cert_validation(self) -> bool:
        """Whether server certificate errors are ignored."""
        return self is LdapConnectionType.ldaps_with_bypass


class PrincipalSearchType(Flag):
    """Kinds of principals a search returns."""

    users = 1
    groups = 2
    users_and_groups = users | groups


class SearchScope(Enum):
    """Scope of an LDAP search."""

    base = "base"
    """The base entry only."""

    one_level = "one_level"
    """Immediate children of the base entry."""

    subtree = "subtree"
    """The base entry and all of its descendants."""


class TrustDirection(IntEnum):
    """Direction of an Active Directory trust (``trustDirection``)."""

    disabled = 0
    inbound = 1
    outbound = 2
    bidirectional = 3
