"""Interface shared by every type of user directory."""

from __future__ import annotations

from abc import ABCMeta, abstractmethod
from collections.abc import Callable
from typing import TypeVar

from pydantic import SecretStr
from structlog.stdlib import BoundLogger

from ..cache import NetbiosNameCache
from ..config import BaseDirectoryConfig
from ..models.enums import PrincipalSearchType
from ..models.identity import GroupId, PrincipalId, UserId
from ..models.principal import (
    DirectoryGroup,
    DirectoryPrincipal,
    DirectoryUser,
)
from ..storage.base import LdapClient
from ..util import split_logon_name

ClientFactory = Callable[[], LdapClient]
"""Function returning a new, unconnected LDAP client."""

P = TypeVar("P", bound=DirectoryPrincipal)
"""Type of principal returned by a lookup."""

__all__ = [
    "ClientFactory",
    "P",
    "UserDirectory",
    "prefer_domain",
]


def prefer_domain(principals: list[P], domain_alias: str) -> P | None:
    """Pick the result of a lookup by name.

    Parameters
    ----------
    principals
        Principals matching the name.
    domain_alias
        Domain alias from the name, or the empty string.

    Returns
    -------
    DirectoryPrincipal or None
        The first principal in the requested domain if there is one,
        otherwise the first principal, or `None` if there are none.
    """
    if domain_alias:
        wanted = domain_alias.casefold()
        for principal in principals:
            if principal.principal_id.domain_alias.casefold() == wanted:
                return principal
    return principals[0] if principals else None


class UserDirectory(metaclass=ABCMeta):
    """A directory of users and groups.

    Subclasses implement the lookups for one type of directory server. The
    shared logic here handles parsing of principal names and logon names,
    NETBIOS name resolution from the configured map, and the credential
    validation flow.

    Every operation opens its own LDAP connections and closes them before
    returning, so a directory may be used from several threads at once.

    Parameters
    ----------
    config
        Configuration for this directory.
    client_factory
        Function returning a new LDAP client.
    logger
        Logger for debug messages and errors.
    """

    def __init__(
        self,
        config: BaseDirectoryConfig,
        client_factory: ClientFactory,
        logger: BoundLogger,
    ) -> None:
        self._config = config
        self._client_factory = client_factory
        self._logger = logger
        self._netbios_cache = NetbiosNameCache()

    @abstractmethod
    def find_principals(
        self,
        search_term: str,
        search_type: PrincipalSearchType = (
            PrincipalSearchType.users_and_groups
        ),
    ) -> list[DirectoryPrincipal]:
        """Search for users and groups whose names start with a term.

        Parameters
        ----------
        search_term
            Start of the name to search for. All special characters are
            matched literally.
        search_type
            Kinds of principals to return.

        Returns
        -------
        list of DirectoryPrincipal
            Matching principals, or an empty list if the term is empty.

        Raises
        ------
        LDAPConnectionError
            Raised if the directory could not be reached.
        LDAPAuthenticationError
            Raised if the directory rejected the configured credentials.
        """

    @abstractmethod
    def _get_user(self, user_id: UserId) -> DirectoryUser | None:
        """Look up a user by parsed identity."""

    @abstractmethod
    def _get_group(self, group_id: GroupId) -> DirectoryGroup | None:
        """Look up a group by parsed identity."""

    @abstractmethod
    def _connect_for(self, principal_id: PrincipalId) -> LdapClient:
        """Return an unbound client connected to the principal's server."""

    def find_users(self, search_term: str) -> list[DirectoryUser]:
        """Search for users whose names start with a term."""
        principals = self.find_principals(
            search_term, PrincipalSearchType.users
        )
        return [p for p in principals if isinstance(p, DirectoryUser)]

    def find_groups(self, search_term: str) -> list[DirectoryGroup]:
        """Search for groups whose names start with a term."""
        principals = self.find_principals(
            search_term, PrincipalSearchType.groups
        )
        return [p for p in principals if isinstance(p, DirectoryGroup)]

    def try_get_user(self, name: str) -> DirectoryUser | None:
        """Look up a user by name.

        Parameters
        ----------
        name
            Name of the user, either ``user@domain`` or a bare user name.

        Returns
        -------
        DirectoryUser or None
            The user, or `None` if the name is malformed or no such user
            exists.
        """
        user_id = UserId.parse(name)
        if not user_id:
            return None
        return self._get_user(user_id)

    def try_get_group(self, name: str) -> DirectoryGroup | None:
        """Look up a group by name.

        Parameters
        ----------
        name
            Name of the group, either ``group@domain`` or a bare group name.

        Returns
        -------
        DirectoryGroup or None
            The group, or `None` if the name is malformed or no such group
            exists.
        """
        group_id = GroupId.parse(name)
        if not group_id:
            return None
        return self._get_group(group_id)

    def try_get_principal(self, name: str) -> DirectoryPrincipal | None:
        """Look up a user by name, or a group if there is no such user."""
        return self.try_get_user(name) or self.try_get_group(name)

    def try_get_and_validate_user(
        self, name: str, password: str
    ) -> DirectoryUser | None:
        """Look up a user and check their password.

        Parameters
        ----------
        name
            Name of the user, as ``user@domain``, a bare user name, or a
            ``DOMAIN\\user`` logon name.
        password
            Password to check.

        Returns
        -------
        DirectoryUser or None
            The user if the password is correct, or `None` if the user does
            not exist. No bind is attempted for unknown users.

        Raises
        ------
        LDAPAuthenticationError
            Raised if the password is empty or was rejected.
        LDAPConnectionError
            Raised if the directory could not be reached.
        """
        logger = self._logger.bind(user=name)
        if "\\" in name:
            user = self.try_parse_logon_user(name)
        else:
            user = self.try_get_user(name)
        if not user or not user.distinguished_name:
            logger.info("User not found for credential validation")
            return None
        with self._connect_for(user.principal_id) as client:
            client.bind(user.distinguished_name, password)
        logger.info("Validated user credentials", dn=user.distinguished_name)
        return user

    def get_group_members(self, group_name: str) -> list[DirectoryUser]:
        """List the users in a group.

        Parameters
        ----------
        group_name
            Name of the group, either ``group@domain`` or a bare group name.

        Returns
        -------
        list of DirectoryUser
            Member users, or an empty list if the group does not exist.
        """
        group = self.try_get_group(group_name)
        if not group:
            return []
        return group.get_member_users()

    def try_parse_logon_user(self, logon_name: str) -> DirectoryUser | None:
        """Look up the user for a ``DOMAIN\\user`` logon name.

        If the NETBIOS domain name cannot be resolved, the bare user name is
        looked up in every searched domain instead.

        Parameters
        ----------
        logon_name
            Logon name of the form ``DOMAIN\\user``.

        Returns
        -------
        DirectoryUser or None
            The user, or `None` if the logon name is malformed or no such
            user exists.
        """
        parts = split_logon_name(logon_name)
        if not parts:
            return None
        netbios_name, username = parts
        domain = self.resolve_netbios_name(netbios_name)
        if not domain:
            self._logger.debug(
                "Unresolved NETBIOS name, searching all domains",
                netbios_name=netbios_name,
            )
            return self.try_get_user(username)
        return self.try_get_user(f"{username}@{domain}")

    def resolve_netbios_name(self, netbios_name: str) -> str | None:
        """Map a NETBIOS domain name to its DNS domain name.

        Parameters
        ----------
        netbios_name
            NETBIOS name of the domain (case-insensitive).

        Returns
        -------
        str or None
            DNS name of the domain, or `None` if it is not known.
        """
        domain = self._config.netbios_name_maps.get(netbios_name.upper())
        if domain:
            return domain
        domain = self._netbios_cache.get(netbios_name)
        if domain:
            return domain
        domain = self._discover_netbios_name(netbios_name)
        if domain:
            self._netbios_cache.store(netbios_name, domain)
        return domain

    def _discover_netbios_name(self, netbios_name: str) -> str | None:
        """Ask the directory for the DNS name of a NETBIOS domain.

        Only directories with automatic discovery override this.
        """
        return None

    def _connect(
        self,
        host: str,
        username: str | None = None,
        password: SecretStr | None = None,
    ) -> LdapClient:
        """Open a client to a server and bind if a username is given.

        Parameters
        ----------
        host
            Host name of the LDAP server.
        username
            DN or user principal name to bind as. If `None`, the connection
            is left anonymous.
        password
            Password for ``username``.

        Returns
        -------
        LdapClient
            Connected client. The caller must close it.
        """
        client = self._client_factory()
        connection = self._config.connection
        try:
            client.connect(
                host,
                self._config.port,
                use_tls=connection.use_tls,
                bypass_cert_validation=connection.bypass_cert_validation,
            )
            if username:
                secret = password.get_secret_value() if password else ""
                client.bind(username, secret)
        except Exception:
            client.close()
            raise
        return client
