"""Tests for filter and DN utility functions."""

from __future__ import annotations

import pytest

from ldapdir.util import (
    and_filters,
    dn_to_domain,
    domain_qualified_name,
    domain_to_dn,
    or_filters,
    parenthesize,
    parse_dn_components,
    parse_netbios_maps,
    split_logon_name,
    unescape_dn_value,
)


def test_combine_filters() -> None:
    assert parenthesize("uid=jdoe") == "(uid=jdoe)"
    assert parenthesize(" (uid=jdoe) ") == "(uid=jdoe)"
    assert and_filters("(a=1)", "b=2") == "(&(a=1)(b=2))"
    assert and_filters("(a=1)", None, " ") == "(a=1)"
    assert and_filters() == ""
    assert or_filters("(a=1)", "(b=2)", "(c=3)") == "(|(a=1)(b=2)(c=3))"
    assert or_filters("", "(b=2)") == "(b=2)"
    assert or_filters() == ""


def test_parse_dn_components() -> None:
    dn = r"CN=Smith\, John,OU=Users, DC=example,DC=com"
    assert parse_dn_components(dn) == [
        ("CN", "Smith, John"),
        ("OU", "Users"),
        ("DC", "example"),
        ("DC", "com"),
    ]
    assert parse_dn_components(r"cn = caf\C3\A9 ,dc=example") == [
        ("cn", "café"),
        ("dc", "example"),
    ]
    assert parse_dn_components("") == []
    assert parse_dn_components("Admins") == []
    assert parse_dn_components("=Admins") == []


def test_unescape_dn_value() -> None:
    assert unescape_dn_value("plain") == "plain"
    assert unescape_dn_value(r"a\,b\+c") == "a,b+c"
    assert unescape_dn_value(r"caf\C3\A9") == "café"
    assert unescape_dn_value(r"back\\slash") == "back\\slash"


def test_domains() -> None:
    dn = "CN=John Doe,OU=Users,DC=corp,DC=example,DC=com"
    assert dn_to_domain(dn) == "corp.example.com"
    assert dn_to_domain("cn=admin,dc=example,dc=org") == "example.org"
    assert dn_to_domain("CN=Builtin") == ""
    assert domain_to_dn("corp.example.com") == "DC=corp,DC=example,DC=com"
    assert domain_to_dn("") == ""


def test_domain_qualified_name() -> None:
    assert domain_qualified_name("svc", "corp.example.com") == (
        "svc@corp.example.com"
    )
    name = domain_qualified_name("svc@lab.example.com", "corp.example.com")
    assert name == "svc@lab.example.com"
    assert domain_qualified_name("CORP\\svc", "corp.example.com") == (
        "CORP\\svc"
    )
    assert domain_qualified_name("svc", None) == "svc"


@pytest.mark.parametrize(
    ("logon_name", "expected"),
    [
        ("CORP\\jdoe", ("CORP", "jdoe")),
        (" corp \\ jdoe ", ("corp", "jdoe")),
        ("jdoe@corp.example.com", None),
        ("\\jdoe", None),
        ("CORP\\", None),
    ],
)
def test_split_logon_name(
    logon_name: str, expected: tuple[str, str] | None
) -> None:
    assert split_logon_name(logon_name) == expected


def test_parse_netbios_maps() -> None:
    expected = {"CORP": "corp.example.com", "LAB": "lab=example.com"}
    maps = "corp=corp.example.com\nLAB=lab=example.com"
    assert parse_netbios_maps(maps) == expected
    assert parse_netbios_maps(["corp = corp.example.com", "bogus", "=x"]) == {
        "CORP": "corp.example.com"
    }
    assert parse_netbios_maps({"corp": "corp.example.com"}) == {
        "CORP": "corp.example.com"
    }
    assert parse_netbios_maps(None) == {}
    assert parse_netbios_maps("") == {}
