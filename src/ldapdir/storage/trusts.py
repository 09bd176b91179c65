"""Discovery of the current Active Directory domain and its trusts."""

from __future__ import annotations

from abc import ABCMeta, abstractmethod
from collections.abc import Callable

from structlog.stdlib import BoundLogger

from ..constants import FOREST_TRANSITIVE_FLAG
from ..exceptions import LDAPSearchError
from ..models.domain import DomainTrust
from ..models.enums import SearchScope, TrustDirection
from ..util import dn_to_domain
from .base import LdapClient

_TRUST_ATTRIBUTES = ["trustPartner", "trustDirection", "trustAttributes"]
"""Attributes read from ``trustedDomain`` objects."""

__all__ = [
    "LdapTrustDiscovery",
    "TrustDiscovery",
]


class TrustDiscovery(metaclass=ABCMeta):
    """Source of domain and trust information for Active Directory."""

    @abstractmethod
    def get_current_domain(self) -> str:
        """Return the DNS name of the domain the directory is joined to."""

    @abstractmethod
    def get_domain_trusts(self) -> list[DomainTrust]:
        """Return the trust relationships of the current domain."""

    @abstractmethod
    def get_forest_trusts(self) -> list[DomainTrust]:
        """Return the trust relationships of the current forest."""


class LdapTrustDiscovery(TrustDiscovery):
    """Discover domains and trusts by querying a domain controller.

    The current domain comes from the ``defaultNamingContext`` of the
    RootDSE, and trusts from the ``trustedDomain`` objects in the
    ``CN=System`` container of the domain. Forest trusts are the
    forest-transitive trusts held by the forest root domain.

    Parameters
    ----------
    connect
        Function returning a connected and bound client. Each lookup uses a
        fresh client and closes it afterwards.
    logger
        Logger for debug messages and errors.
    """

    def __init__(
        self, connect: Callable[[], LdapClient], logger: BoundLogger
    ) -> None:
        self._connect = connect
        self._logger = logger

    def get_current_domain(self) -> str:
        with self._connect() as client:
            context = self._read_root_dse(client, "defaultNamingContext")
        domain = dn_to_domain(context)
        self._logger.debug("Discovered current domain", domain=domain)
        return domain

    def get_domain_trusts(self) -> list[DomainTrust]:
        with self._connect() as client:
            context = self._read_root_dse(client, "defaultNamingContext")
            return self._read_trusts(client, context)

    def get_forest_trusts(self) -> list[DomainTrust]:
        with self._connect() as client:
            context = self._read_root_dse(client, "rootDomainNamingContext")
            trusts = self._read_trusts(client, context, forest_only=True)
        return trusts

    def _read_root_dse(self, client: LdapClient, attribute: str) -> str:
        """Read one naming context attribute from the RootDSE.

        Raises
        ------
        LDAPSearchError
            Raised if the RootDSE does not have the attribute.
        """
        results = client.search(
            "", "(objectClass=*)", SearchScope.base, [attribute]
        )
        value = results[0].get_value(attribute) if results else None
        if not value:
            msg = f"RootDSE has no {attribute}"
            raise LDAPSearchError(msg)
        return value

    def _read_trusts(
        self, client: LdapClient, context: str, *, forest_only: bool = False
    ) -> list[DomainTrust]:
        source = dn_to_domain(context)
        results = client.search(
            f"CN=System,{context}",
            "(objectClass=trustedDomain)",
            SearchScope.one_level,
            _TRUST_ATTRIBUTES,
        )
        trusts = []
        for entry in results:
            partner = entry.get_value("trustPartner")
            if not partner:
                continue
            try:
                direction = TrustDirection(
                    int(entry.get_value("trustDirection") or 0)
                )
                attributes = int(entry.get_value("trustAttributes") or 0)
            except ValueError:
                self._logger.warning(
                    "Ignoring malformed trust", dn=entry.distinguished_name
                )
                continue
            if forest_only and not attributes & FOREST_TRANSITIVE_FLAG:
                continue
            trusts.append(DomainTrust(partner, direction, source))
        self._logger.debug(
            "Read trust relationships",
            domain=source,
            trusts=[t.target for t in trusts],
        )
        return trusts
