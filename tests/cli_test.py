"""Tests for the command-line interface."""

from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

from ldapdir.cli import main

from .support.config import config_path
from .support.ldap import MockLdapServer, make_entry

CORP_DN = "DC=corp,DC=example,DC=com"
JDOE_DN = "CN=John Doe,OU=Users,DC=corp,DC=example,DC=com"
JSMITH_DN = "CN=Jane Smith,OU=Users,DC=corp,DC=example,DC=com"
STAFF_DN = "CN=Staff,OU=Groups,DC=corp,DC=example,DC=com"


@pytest.fixture
def corp(mock_ldap: MockLdapServer) -> MockLdapServer:
    """Populate the mock server with a small Active Directory domain."""
    jdoe = make_entry(
        JDOE_DN,
        objectClass=["top", "person", "user"],
        sAMAccountName="jdoe",
        displayName="John Doe",
        mail="jdoe@example.com",
        memberOf=STAFF_DN,
    )
    jsmith = make_entry(
        JSMITH_DN,
        objectClass=["top", "person", "user"],
        sAMAccountName="jsmith",
        displayName="Jane Smith",
    )
    staff = make_entry(
        STAFF_DN,
        objectClass=["top", "group"],
        sAMAccountName="Staff",
        name="Staff",
        displayName="All staff",
    )
    mock_ldap.set_password("svc@corp.example.com", "corp-secret")
    mock_ldap.set_password(JDOE_DN, "hunter2")
    mock_ldap.add_search(CORP_DN, "(sAMAccountName=jdoe)", [jdoe])
    mock_ldap.add_search(
        CORP_DN,
        "(&(objectCategory=group)(|(sAMAccountName=Staff)(name=Staff)))",
        [staff],
    )
    mock_ldap.add_search(
        CORP_DN,
        f"(&(objectCategory=user)(memberOf={STAFF_DN}))",
        [jsmith, jdoe],
    )
    search = (
        "(&(|(objectCategory=user)(objectCategory=group))"
        "(|(userPrincipalName=j*)(sAMAccountName=j*)(name=j*)"
        "(displayName=j*)))"
    )
    mock_ldap.add_search(CORP_DN, search, [jdoe, jsmith])
    search = (
        "(&(objectCategory=group)"
        "(|(userPrincipalName=S*)(sAMAccountName=S*)(name=S*)"
        "(displayName=S*)))"
    )
    mock_ldap.add_search(CORP_DN, search, [staff])
    return mock_ldap


def invoke(*args: str) -> tuple[int, str]:
    runner = CliRunner()
    path = str(config_path("ad-current"))
    result = runner.invoke(
        main, [*args, "--config-path", path], catch_exceptions=False
    )
    return result.exit_code, result.output


def test_help() -> None:
    runner = CliRunner()

    result = runner.invoke(main, ["-h"], catch_exceptions=False)
    assert result.exit_code == 0
    assert "Commands:" in result.output

    result = runner.invoke(main, ["help"], catch_exceptions=False)
    assert result.exit_code == 0
    assert "Commands:" in result.output

    result = runner.invoke(main, ["help", "user"], catch_exceptions=False)
    assert result.exit_code == 0
    assert "Options:" in result.output
    assert "Commands:" not in result.output

    result = runner.invoke(
        main, ["help", "unknown-command"], catch_exceptions=False
    )
    assert result.exit_code != 0
    assert "Unknown help topic unknown-command" in result.output


def test_user(corp: MockLdapServer) -> None:
    exit_code, output = invoke("user", "jdoe", "--group", "staff")
    assert exit_code == 0
    assert output.splitlines() == [
        "Name: jdoe@corp.example.com",
        "Display name: John Doe",
        "Email: jdoe@example.com",
        f"DN: {JDOE_DN}",
        "Groups: Staff@corp.example.com",
        "Member of staff: yes",
    ]

    exit_code, output = invoke("user", "nobody")
    assert exit_code == 1
    assert "User nobody not found" in output


def test_group(corp: MockLdapServer) -> None:
    exit_code, output = invoke("group", "Staff")
    assert exit_code == 0
    assert "Name: Staff@corp.example.com" in output
    assert "Display name: All staff" in output
    assert "Groups: (none)" in output

    exit_code, output = invoke("group", "Finance")
    assert exit_code == 1
    assert "Group Finance not found" in output


def test_search(corp: MockLdapServer) -> None:
    exit_code, output = invoke("search", "j")
    assert exit_code == 0
    assert output.splitlines() == [
        "jdoe@corp.example.com (user): John Doe",
        "jsmith@corp.example.com (user): Jane Smith",
    ]

    exit_code, output = invoke("search", "--groups", "S")
    assert exit_code == 0
    assert output.splitlines() == ["Staff@corp.example.com (group): All staff"]


def test_members(corp: MockLdapServer) -> None:
    exit_code, output = invoke("members", "Staff")
    assert exit_code == 0
    assert output.splitlines() == [
        "jdoe@corp.example.com (user): John Doe",
        "jsmith@corp.example.com (user): Jane Smith",
    ]


def test_logon(corp: MockLdapServer) -> None:
    exit_code, output = invoke("logon", "CORP\\jdoe")
    assert exit_code == 0
    assert output.strip() == "jdoe@corp.example.com (user): John Doe"

    exit_code, output = invoke("logon", "not-a-logon-name")
    assert exit_code == 1
    assert "did not match a user" in output


def test_validate(
    corp: MockLdapServer, monkeypatch: pytest.MonkeyPatch
) -> None:
    exit_code, output = invoke("validate", "jdoe", "--password", "hunter2")
    assert exit_code == 0
    assert "Credentials for jdoe@corp.example.com are valid" in output

    monkeypatch.setenv("LDAPDIR_PASSWORD", "wrong")
    exit_code, output = invoke("validate", "jdoe")
    assert exit_code == 1
    assert "rejected" in output


def test_missing_config(tmp_path: Path) -> None:
    runner = CliRunner()
    path = tmp_path / "missing.yaml"
    result = runner.invoke(
        main, ["user", "jdoe", "--config-path", str(path)]
    )
    assert result.exit_code != 0
    assert "not found" in result.output
