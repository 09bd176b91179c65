"""Tests for discovery of domains and trusts."""

from __future__ import annotations

import pytest
from structlog.stdlib import BoundLogger

from ldapdir.exceptions import LDAPSearchError
from ldapdir.models.domain import DomainTrust
from ldapdir.models.enums import SearchScope, TrustDirection
from ldapdir.storage.base import LdapClient, StaticEntry
from ldapdir.storage.trusts import LdapTrustDiscovery

from ..support.ldap import MockLdapServer, make_entry

CORP_DN = "DC=corp,DC=example,DC=com"
ROOT_DN = "DC=example,DC=com"
TRUST_SEARCH = "(objectClass=trustedDomain)"


def build_discovery(
    server: MockLdapServer, logger: BoundLogger
) -> LdapTrustDiscovery:
    def connect() -> LdapClient:
        client = server.create_client()
        client.connect("dc1.corp.example.com")
        return client

    return LdapTrustDiscovery(connect, logger)


def trust_entry(
    context: str, partner: str, direction: str, attributes: str = "0"
) -> StaticEntry:
    return make_entry(
        f"CN={partner},CN=System,{context}",
        trustPartner=partner,
        trustDirection=direction,
        trustAttributes=attributes,
    )


def add_root_dse(server: MockLdapServer) -> None:
    root = make_entry(
        "",
        defaultNamingContext=CORP_DN,
        rootDomainNamingContext=ROOT_DN,
    )
    server.add_entry(root)


def test_current_domain(logger: BoundLogger) -> None:
    server = MockLdapServer()
    add_root_dse(server)
    discovery = build_discovery(server, logger)

    assert discovery.get_current_domain() == "corp.example.com"
    search = server.searches[0]
    assert search.base_dn == ""
    assert search.scope == SearchScope.base
    assert search.attributes == ["defaultNamingContext"]
    assert server.closed == 1


def test_domain_trusts(logger: BoundLogger) -> None:
    server = MockLdapServer()
    add_root_dse(server)
    trusts = [
        trust_entry(CORP_DN, "partner.example.com", "3"),
        trust_entry(CORP_DN, "inbound.example.com", "1"),
        trust_entry(CORP_DN, "broken.example.com", "bogus"),
        trust_entry(CORP_DN, "unknown.example.com", "7"),
        make_entry(f"CN=Nameless,CN=System,{CORP_DN}", trustDirection="3"),
    ]
    server.add_search(f"CN=System,{CORP_DN}", TRUST_SEARCH, trusts)
    discovery = build_discovery(server, logger)

    assert discovery.get_domain_trusts() == [
        DomainTrust(
            "partner.example.com",
            TrustDirection.bidirectional,
            "corp.example.com",
        ),
        DomainTrust(
            "inbound.example.com", TrustDirection.inbound, "corp.example.com"
        ),
    ]
    search = server.searches[-1]
    assert search.scope == SearchScope.one_level
    assert search.search_filter == TRUST_SEARCH


def test_forest_trusts(logger: BoundLogger) -> None:
    server = MockLdapServer()
    add_root_dse(server)
    trusts = [
        trust_entry(ROOT_DN, "other.example.net", "3", "8"),
        trust_entry(ROOT_DN, "external.example.org", "3", "4"),
    ]
    server.add_search(f"CN=System,{ROOT_DN}", TRUST_SEARCH, trusts)
    discovery = build_discovery(server, logger)

    assert discovery.get_forest_trusts() == [
        DomainTrust(
            "other.example.net", TrustDirection.bidirectional, "example.com"
        )
    ]
    assert server.filters_for(f"CN=System,{CORP_DN}") == []


def test_missing_naming_context(logger: BoundLogger) -> None:
    server = MockLdapServer()
    server.add_entry(make_entry("", defaultNamingContext=CORP_DN))
    discovery = build_discovery(server, logger)

    with pytest.raises(LDAPSearchError, match="rootDomainNamingContext"):
        discovery.get_forest_trusts()
    assert server.closed == 1

    server = MockLdapServer()
    discovery = build_discovery(server, logger)
    with pytest.raises(LDAPSearchError, match="defaultNamingContext"):
        discovery.get_current_domain()
