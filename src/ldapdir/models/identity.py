"""Identity of users and groups in a directory."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Self

from ..util import domain_to_dn

__all__ = [
    "GroupId",
    "PrincipalId",
    "UserId",
]


@dataclass(frozen=True, eq=False)
class PrincipalId:
    """Identity of a principal (a user or a group) in a directory.

    Identities are built in two phases. `parse` produces a partial identity
    from a name supplied by the caller, and `resolve` returns a new identity
    that also carries the distinguished name found by a directory search.
    Neither phase mutates an existing object.

    Equality and hashing are case-insensitive and consider only the domain
    alias and the principal name, so identities can be used to deduplicate
    sets of group memberships.
    """

    principal: str
    """Bare name of the principal, such as ``jsmith``. Never empty."""

    domain_alias: str = ""
    """Domain used to scope searches for this principal.

    This may be a DNS domain name or a NETBIOS-style alias. The empty string
    means that every configured domain should be searched.
    """

    distinguished_name: str | None = None
    """Distinguished name, once resolved by a directory search."""

    @classmethod
    def parse(cls, name: str | None) -> Self | None:
        """Parse a fully-qualified or bare principal name.

        The name is split on the last ``@``, so principal names that are
        themselves email addresses (``a@example.org@corp.example.com``) are
        supported.

        Parameters
        ----------
        name
            Name of the form ``principal@domain`` or ``principal``.

        Returns
        -------
        PrincipalId or None
            Parsed identity, or `None` if the name has no principal part.
        """
        if not name:
            return None
        principal, sep, domain = name.strip().rpartition("@")
        if not sep:
            principal, domain = domain, ""
        principal = principal.strip()
        if not principal:
            return None
        return cls(principal=principal, domain_alias=domain.strip())

    @property
    def fully_qualified_name(self) -> str:
        """Name of the form ``principal@domain``, or the bare principal."""
        if self.domain_alias:
            return f"{self.principal}@{self.domain_alias}"
        return self.principal

    @property
    def is_resolved(self) -> bool:
        """Whether the distinguished name is known."""
        return bool(self.distinguished_name)

    @property
    def search_path(self) -> str:
        """Base DN synthesized from the domain alias."""
        return domain_to_dn(self.domain_alias)

    def resolve(self, distinguished_name: str) -> Self:
        """Return a copy of this identity carrying its distinguished name."""
        return replace(self, distinguished_name=distinguished_name)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PrincipalId):
            return NotImplemented
        return self._key == other._key

    def __hash__(self) -> int:
        return hash(self._key)

    def __str__(self) -> str:
        return self.fully_qualified_name

    @property
    def _key(self) -> tuple[str, str]:
        return (self.domain_alias.casefold(), self.principal.casefold())


class UserId(PrincipalId):
    """Identity of a user."""


class GroupId(PrincipalId):
    """Identity of a group."""
