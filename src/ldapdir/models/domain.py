"""Models for domains, their credentials, and trusts between them."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from ..exceptions import UnknownCredentialError
from ..util import domain_qualified_name
from .enums import TrustDirection

__all__ = [
    "CredentialedDomain",
    "DomainTrust",
    "NamedCredential",
]


class NamedCredential(BaseModel):
    """Credentials that domain configuration lines can refer to by name."""

    model_config = ConfigDict(extra="forbid")

    username: str = Field(
        ...,
        title="Bind username",
        description=(
            "User to bind as. A bare name is qualified with the domain it is"
            " used for; ``user@domain`` and ``DOMAIN\\user`` forms are used"
            " as-is."
        ),
        min_length=1,
    )

    password: SecretStr = Field(..., title="Bind password")


@dataclass(frozen=True, eq=False)
class CredentialedDomain:
    """A domain to search, with optional credentials for binding to it.

    Equality and hashing are case-insensitive on the domain name only, so a
    set of these never searches the same domain twice.
    """

    name: str
    """DNS name of the domain."""

    username: str | None = None
    """User to bind as, or `None` for an anonymous bind."""

    password: SecretStr | None = field(default=None, repr=False)
    """Password for ``username``."""

    @classmethod
    def parse(
        cls, line: str, credentials: Mapping[str, NamedCredential]
    ) -> Self | None:
        """Parse a ``domain[,credentialName]`` configuration line.

        Parameters
        ----------
        line
            Configuration line.
        credentials
            Known credentials by name. Name lookup is case-insensitive.

        Returns
        -------
        CredentialedDomain or None
            Parsed domain, or `None` if the line is blank.

        Raises
        ------
        UnknownCredentialError
            Raised if the line names a credential that is not configured.
        """
        name, _, credential_name = line.partition(",")
        name = name.strip()
        credential_name = credential_name.strip()
        if not name:
            return None
        if not credential_name:
            return cls(name=name)
        folded = {k.casefold(): v for k, v in credentials.items()}
        credential = folded.get(credential_name.casefold())
        if not credential:
            msg = f"Unknown credential {credential_name} for domain {name}"
            raise UnknownCredentialError(msg)
        return cls(
            name=name,
            username=credential.username,
            password=credential.password,
        )

    @property
    def domain_qualified_name(self) -> str | None:
        """Bind username qualified with this domain, if there is one."""
        if not self.username:
            return None
        return domain_qualified_name(self.username, self.name)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CredentialedDomain):
            return NotImplemented
        return self.name.casefold() == other.name.casefold()

    def __hash__(self) -> int:
        return hash(self.name.casefold())

    def __str__(self) -> str:
        if self.username:
            return f"{self.username}@{self.name}"
        return self.name


@dataclass(frozen=True)
class DomainTrust:
    """A trust relationship read from the directory."""

    target: str
    """DNS name of the trusted (partner) domain."""

    direction: TrustDirection
    """Direction of the trust from the point of view of the source domain."""

    source: str = ""
    """DNS name of the domain holding the trust object."""
