"""Users and groups returned by directory lookups."""

from __future__ import annotations

from collections.abc import Callable, Iterable

from ..cache import LazyValue, MembershipCache
from .identity import GroupId, PrincipalId, UserId

GroupResolver = Callable[[PrincipalId], Iterable[GroupId]]
"""Function returning every group a principal belongs to."""

MemberResolver = Callable[[GroupId], Iterable["DirectoryUser"]]
"""Function returning every user that is a member of a group."""

__all__ = [
    "DirectoryGroup",
    "DirectoryPrincipal",
    "DirectoryUser",
    "GroupResolver",
    "MemberResolver",
]


class DirectoryPrincipal:
    """A user or group found in a directory.

    The set of groups the principal belongs to is resolved on first use with
    whatever strategy the directory is configured for, and then cached for
    the lifetime of this object. Concurrent first accesses wait for a single
    resolution.

    Parameters
    ----------
    principal_id
        Resolved identity of the principal.
    group_resolver
        Function called (at most once) to find the groups of the principal.
    display_name
        Display name from the directory, if any.
    """

    def __init__(
        self,
        principal_id: PrincipalId,
        group_resolver: GroupResolver,
        display_name: str | None = None,
    ) -> None:
        self._principal_id = principal_id
        self._display_name = display_name
        self._groups = LazyValue(
            lambda: frozenset(group_resolver(principal_id))
        )
        self._membership_cache = MembershipCache()

    @property
    def principal_id(self) -> PrincipalId:
        """Identity of the principal."""
        return self._principal_id

    @property
    def name(self) -> str:
        """Fully-qualified name of the principal."""
        return self._principal_id.fully_qualified_name

    @property
    def display_name(self) -> str:
        """Display name, falling back on the bare principal name."""
        return self._display_name or self._principal_id.principal

    @property
    def distinguished_name(self) -> str | None:
        """Distinguished name of the directory entry."""
        return self._principal_id.distinguished_name

    @property
    def groups(self) -> frozenset[GroupId]:
        """Groups this principal belongs to, resolved on first access."""
        return self._groups.get()

    def is_member_of_group(self, group_name: str) -> bool:
        """Check whether the principal belongs to a group.

        Any domain part of the group name is ignored, and the comparison is
        case-insensitive. Confirmed memberships are remembered so that
        repeated checks do not scan the group set again.

        Parameters
        ----------
        group_name
            Name of the group, either bare or ``group@domain``.

        Returns
        -------
        bool
            Whether the principal is a member.
        """
        if group_name in self._membership_cache:
            return True
        group_id = GroupId.parse(group_name)
        compare = (group_id.principal if group_id else group_name).casefold()
        if any(g.principal.casefold() == compare for g in self.groups):
            self._membership_cache.add(group_name)
            return True
        return False

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DirectoryPrincipal):
            return NotImplemented
        return self._principal_id == other._principal_id

    def __hash__(self) -> int:
        return hash(self._principal_id)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"

    def __str__(self) -> str:
        return self._principal_id.principal


class DirectoryUser(DirectoryPrincipal):
    """A user found in a directory.

    Parameters
    ----------
    user_id
        Resolved identity of the user.
    group_resolver
        Function called (at most once) to find the groups of the user.
    display_name
        Display name from the directory, if any.
    email_address
        Email address from the directory, if any.
    """

    def __init__(
        self,
        user_id: UserId,
        group_resolver: GroupResolver,
        display_name: str | None = None,
        email_address: str | None = None,
    ) -> None:
        super().__init__(user_id, group_resolver, display_name)
        self._email_address = email_address

    @property
    def email_address(self) -> str | None:
        """Email address of the user."""
        return self._email_address or None


class DirectoryGroup(DirectoryPrincipal):
    """A group found in a directory.

    Parameters
    ----------
    group_id
        Resolved identity of the group.
    group_resolver
        Function called (at most once) to find the parent groups.
    member_resolver
        Function called to list the member users.
    display_name
        Display name from the directory, if any.
    """

    def __init__(
        self,
        group_id: GroupId,
        group_resolver: GroupResolver,
        member_resolver: MemberResolver,
        display_name: str | None = None,
    ) -> None:
        super().__init__(group_id, group_resolver, display_name)
        self._group_id = group_id
        self._member_resolver = member_resolver

    @property
    def group_id(self) -> GroupId:
        """Identity of the group."""
        return self._group_id

    def get_member_users(self) -> list[DirectoryUser]:
        """List the users that are members of this group.

        Returns
        -------
        list of DirectoryUser
            Member users, without duplicates. Whether membership through
            nested groups is included depends on the directory's group search
            strategy.
        """
        members: dict[PrincipalId, DirectoryUser] = {}
        for user in self._member_resolver(self.group_id):
            members.setdefault(user.principal_id, user)
        return list(members.values())
