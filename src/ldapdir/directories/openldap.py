"""OpenLDAP user directory driven by filter templates."""

from __future__ import annotations

from ldap3.utils.conv import escape_filter_chars
from structlog.stdlib import BoundLogger

from ..config import OpenLdapConfig
from ..models.enums import PrincipalSearchType
from ..models.identity import GroupId, PrincipalId, UserId
from ..models.principal import (
    DirectoryGroup,
    DirectoryPrincipal,
    DirectoryUser,
)
from ..storage.base import LdapClient, LdapClientEntry
from .base import ClientFactory, UserDirectory, prefer_domain

__all__ = ["OpenLdapDirectory"]


class OpenLdapDirectory(UserDirectory):
    """User directory for OpenLDAP and similar servers.

    Every search is built from a configured filter template by replacing
    each ``%s`` with an escaped search term or distinguished name.

    Group membership is flat: the groups of a principal are found with a
    single search for groups that list the principal as a member. Servers
    that nest groups are expected to flatten membership themselves, for
    example with the ``memberof`` overlay.

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
        config: OpenLdapConfig,
        client_factory: ClientFactory,
        logger: BoundLogger,
    ) -> None:
        super().__init__(config, client_factory, logger)
        self._openldap_config = config

    def find_principals(
        self,
        search_term: str,
        search_type: PrincipalSearchType = (
            PrincipalSearchType.users_and_groups
        ),
    ) -> list[DirectoryPrincipal]:
        search_term = search_term.strip() if search_term else ""
        if not search_term:
            return []
        term = escape_filter_chars(search_term) + "*"
        return self._search(search_type, term)

    def _get_user(self, user_id: UserId) -> DirectoryUser | None:
        term = escape_filter_chars(user_id.principal)
        principals = self._search(PrincipalSearchType.users, term)
        users = [p for p in principals if isinstance(p, DirectoryUser)]
        return prefer_domain(users, user_id.domain_alias)

    def _get_group(self, group_id: GroupId) -> DirectoryGroup | None:
        term = escape_filter_chars(group_id.principal)
        principals = self._search(PrincipalSearchType.groups, term)
        groups = [p for p in principals if isinstance(p, DirectoryGroup)]
        return prefer_domain(groups, group_id.domain_alias)

    def _connect_for(self, principal_id: PrincipalId) -> LdapClient:
        return self._connect(self._openldap_config.host)

    def _open(self) -> LdapClient:
        config = self._openldap_config
        return self._connect(config.host, config.bind_dn, config.bind_password)

    def _search(
        self, search_type: PrincipalSearchType, term: str
    ) -> list[DirectoryPrincipal]:
        """Run the user and group filter templates with an escaped term."""
        config = self._openldap_config
        results: list[DirectoryPrincipal] = []
        with self._open() as client:
            if PrincipalSearchType.users in search_type:
                search = config.users_filter.replace("%s", term)
                entries = client.search(
                    config.user_base_dn,
                    search,
                    attributes=self._user_attributes,
                )
                for entry in entries:
                    user = self._create_user(entry)
                    if user:
                        results.append(user)
            if PrincipalSearchType.groups in search_type:
                search = config.groups_filter.replace("%s", term)
                entries = client.search(
                    config.group_base_dn,
                    search,
                    attributes=self._group_attributes,
                )
                for entry in entries:
                    group = self._create_group(entry)
                    if group:
                        results.append(group)
        return results

    @property
    def _user_attributes(self) -> list[str]:
        config = self._openldap_config
        return [
            config.user_name_attribute,
            config.display_name_attribute,
            config.email_attribute,
        ]

    @property
    def _group_attributes(self) -> list[str]:
        config = self._openldap_config
        return [config.group_name_attribute, config.user_name_attribute]

    def _create_user(self, entry: LdapClientEntry) -> DirectoryUser | None:
        """Convert a search result to a user.

        Entries without a name or without ``DC=`` components in their DN
        are skipped, since they cannot be given a fully-qualified name.
        """
        config = self._openldap_config
        name = entry.get_value(config.user_name_attribute)
        domain = entry.domain_path
        if not name or not domain:
            self._logger.debug(
                "Ignoring unnamed user entry", dn=entry.distinguished_name
            )
            return None
        return DirectoryUser(
            UserId(name, domain, entry.distinguished_name),
            self._get_groups,
            display_name=entry.get_value(config.display_name_attribute),
            email_address=entry.get_value(config.email_attribute),
        )

    def _create_group(self, entry: LdapClientEntry) -> DirectoryGroup | None:
        config = self._openldap_config
        name = entry.get_value(config.group_name_attribute)
        name = name or entry.get_value(config.user_name_attribute)
        domain = entry.domain_path
        if not name or not domain:
            self._logger.debug(
                "Ignoring unnamed group entry", dn=entry.distinguished_name
            )
            return None
        return DirectoryGroup(
            GroupId(name, domain, entry.distinguished_name),
            self._get_groups,
            self._get_members,
        )

    def _get_groups(self, principal_id: PrincipalId) -> set[GroupId]:
        """Find the groups that list a principal as a member.

        This is a single search with no recursion. Errors are logged and
        give an empty set.
        """
        config = self._openldap_config
        dn = principal_id.distinguished_name
        if not dn:
            return set()
        search = config.user_groups_filter.replace(
            "%s", escape_filter_chars(dn)
        )
        try:
            with self._open() as client:
                entries = client.search(
                    config.group_base_dn,
                    search,
                    attributes=self._group_attributes,
                )
        except Exception as e:
            self._logger.warning(
                "Unable to resolve groups",
                principal=str(principal_id),
                error=str(e),
            )
            return set()
        groups = set()
        for entry in entries:
            name = entry.get_value(config.group_name_attribute)
            if name and name.strip():
                domain = entry.domain_path
                groups.add(GroupId(name, domain, entry.distinguished_name))
        return groups

    def _get_members(self, group_id: GroupId) -> list[DirectoryUser]:
        config = self._openldap_config
        dn = group_id.distinguished_name
        if not dn:
            return []
        search = config.group_members_filter.replace(
            "%s", escape_filter_chars(dn)
        )
        with self._open() as client:
            entries = client.search(
                config.user_base_dn,
                search,
                attributes=self._user_attributes,
            )
        members = []
        for entry in entries:
            user = self._create_user(entry)
            if user:
                members.append(user)
        return members
