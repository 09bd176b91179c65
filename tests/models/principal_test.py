"""Tests for directory principals."""

from __future__ import annotations

import threading
from collections.abc import Iterable

from ldapdir.models.identity import GroupId, PrincipalId, UserId
from ldapdir.models.principal import DirectoryGroup, DirectoryUser


class CountingResolver:
    """Group resolver that counts how often it is called."""

    def __init__(self, groups: Iterable[GroupId]) -> None:
        self.groups = list(groups)
        self.calls = 0

    def __call__(self, principal_id: PrincipalId) -> list[GroupId]:
        self.calls += 1
        return self.groups


def test_user() -> None:
    user_id = UserId("jdoe", "corp.example.com", "CN=John Doe,DC=corp")
    user = DirectoryUser(
        user_id,
        CountingResolver([]),
        display_name="John Doe",
        email_address="jdoe@example.com",
    )
    assert user.name == "jdoe@corp.example.com"
    assert user.display_name == "John Doe"
    assert user.email_address == "jdoe@example.com"
    assert user.distinguished_name == "CN=John Doe,DC=corp"
    assert user.principal_id == user_id
    assert str(user) == "jdoe"
    assert repr(user) == "DirectoryUser('jdoe@corp.example.com')"

    user = DirectoryUser(
        UserId("jdoe"), CountingResolver([]), email_address=""
    )
    assert user.name == "jdoe"
    assert user.display_name == "jdoe"
    assert user.email_address is None


def test_groups_resolved_once() -> None:
    resolver = CountingResolver(
        [GroupId("Staff", "corp.example.com"), GroupId("Admins")]
    )
    user = DirectoryUser(UserId("jdoe", "corp.example.com"), resolver)
    assert resolver.calls == 0

    assert user.is_member_of_group("staff")
    assert user.is_member_of_group("staff")
    assert user.is_member_of_group("ADMINS@lab.example.com")
    assert not user.is_member_of_group("Finance")
    assert not user.is_member_of_group("Finance")
    assert user.groups == {
        GroupId("staff", "corp.example.com"),
        GroupId("admins"),
    }
    assert resolver.calls == 1


def test_groups_concurrent_access() -> None:
    started = threading.Event()
    release = threading.Event()
    calls = []

    def resolver(principal_id: PrincipalId) -> list[GroupId]:
        calls.append(principal_id)
        started.set()
        release.wait(5)
        return [GroupId("Staff")]

    user = DirectoryUser(UserId("jdoe"), resolver)
    results: list[frozenset[GroupId]] = []
    threads = [
        threading.Thread(target=lambda: results.append(user.groups))
        for _ in range(4)
    ]
    for thread in threads:
        thread.start()
    started.wait(5)
    release.set()
    for thread in threads:
        thread.join(5)

    assert len(calls) == 1
    assert results == [frozenset({GroupId("Staff")})] * 4


def test_group_members() -> None:
    jdoe = DirectoryUser(
        UserId("jdoe", "corp.example.com"), CountingResolver([])
    )
    duplicate = DirectoryUser(
        UserId("JDOE", "corp.example.com"), CountingResolver([])
    )
    jsmith = DirectoryUser(
        UserId("jsmith", "corp.example.com"), CountingResolver([])
    )
    group_id = GroupId("Staff", "corp.example.com", "CN=Staff,DC=corp")
    seen = []

    def member_resolver(wanted: GroupId) -> list[DirectoryUser]:
        seen.append(wanted)
        return [jdoe, duplicate, jsmith]

    group = DirectoryGroup(
        group_id, CountingResolver([]), member_resolver, display_name="Staff"
    )
    assert group.group_id == group_id
    assert group.get_member_users() == [jdoe, jsmith]
    assert seen == [group_id]
    assert jdoe == duplicate
    assert hash(jdoe) == hash(duplicate)
