"""Generic LDAP user directory with configurable filters and attributes."""

from __future__ import annotations

from functools import partial

from ldap3.utils.conv import escape_filter_chars
from structlog.stdlib import BoundLogger

from ..config import GenericLdapConfig
from ..constants import AD_RECURSIVE_MATCHING_RULE
from ..models.enums import GroupSearchType, PrincipalSearchType, SearchScope
from ..models.identity import GroupId, PrincipalId, UserId
from ..models.principal import (
    DirectoryGroup,
    DirectoryPrincipal,
    DirectoryUser,
)
from ..storage.base import LdapClient, LdapClientEntry
from ..util import and_filters
from .base import ClientFactory, UserDirectory, prefer_domain

__all__ = ["GenericLdapDirectory"]


class GenericLdapDirectory(UserDirectory):
    """User directory backed by a single LDAP server.

    Users and groups are selected by configurable object filters and read
    through configurable attribute names, so this works with most LDAP
    schemas. Group membership is read from a member-of style attribute of
    each entry.

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
        config: GenericLdapConfig,
        client_factory: ClientFactory,
        logger: BoundLogger,
    ) -> None:
        super().__init__(config, client_factory, logger)
        self._ldap_config = config

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
        term = escape_filter_chars(search_term)
        config = self._ldap_config
        results: list[DirectoryPrincipal] = []
        seen: set[str] = set()
        with self._open() as client:
            if PrincipalSearchType.users in search_type:
                search = f"({config.user_name_attribute}={term}*)"
                results.extend(self._search_users(client, search))
            if PrincipalSearchType.groups in search_type:
                search = f"({config.group_name_attribute}={term}*)"
                results.extend(self._search_groups(client, search))
        unique = []
        for principal in results:
            dn = principal.distinguished_name
            if dn is None:
                unique.append(principal)
            elif dn.casefold() not in seen:
                seen.add(dn.casefold())
                unique.append(principal)
        return unique

    def _get_user(self, user_id: UserId) -> DirectoryUser | None:
        name = escape_filter_chars(user_id.principal)
        search = f"({self._ldap_config.user_name_attribute}={name})"
        with self._open() as client:
            users = self._search_users(client, search)
        return prefer_domain(users, user_id.domain_alias)

    def _get_group(self, group_id: GroupId) -> DirectoryGroup | None:
        name = escape_filter_chars(group_id.principal)
        search = f"({self._ldap_config.group_name_attribute}={name})"
        with self._open() as client:
            groups = self._search_groups(client, search)
        return prefer_domain(groups, group_id.domain_alias)

    def _connect_for(self, principal_id: PrincipalId) -> LdapClient:
        return self._connect(self._ldap_config.host)

    def _open(self) -> LdapClient:
        """Connect to the server and bind with the configured credentials."""
        config = self._ldap_config
        return self._connect(
            config.host, config.bind_username, config.bind_password
        )

    def _search_users(
        self, client: LdapClient, extra_filter: str
    ) -> list[DirectoryUser]:
        """Search for users matching the user filter and a raw filter.

        ``extra_filter`` is used as-is, so callers must escape any values
        they put into it.
        """
        config = self._ldap_config
        search = and_filters(config.users_filter_base, extra_filter)
        attributes = [
            config.user_name_attribute,
            config.display_name_attribute,
            config.email_attribute,
            config.member_of_attribute,
        ]
        entries = client.search(
            config.search_base, search, attributes=attributes
        )
        users = []
        for entry in entries:
            name = entry.get_value(config.user_name_attribute)
            if not name:
                continue
            user_id = UserId(
                name, entry.domain_path, entry.distinguished_name
            )
            user = DirectoryUser(
                user_id,
                partial(self._get_groups, entry),
                display_name=entry.get_value(config.display_name_attribute),
                email_address=entry.get_value(config.email_attribute),
            )
            users.append(user)
        return users

    def _search_groups(
        self, client: LdapClient, extra_filter: str
    ) -> list[DirectoryGroup]:
        """Search for groups matching the group filter and a raw filter.

        ``extra_filter`` is used as-is, so callers must escape any values
        they put into it.
        """
        config = self._ldap_config
        search = and_filters(config.groups_filter_base, extra_filter)
        attributes = [config.group_name_attribute, config.member_of_attribute]
        entries = client.search(
            config.search_base, search, attributes=attributes
        )
        groups = []
        for entry in entries:
            name = entry.get_value(config.group_name_attribute)
            if not name:
                continue
            group_id = GroupId(
                name, entry.domain_path, entry.distinguished_name
            )
            group = DirectoryGroup(
                group_id,
                partial(self._get_groups, entry),
                self._get_members,
            )
            groups.append(group)
        return groups

    def _get_groups(
        self, entry: LdapClientEntry, principal_id: PrincipalId
    ) -> set[GroupId]:
        """Resolve the groups of an entry with the configured strategy."""
        config = self._ldap_config
        logger = self._logger.bind(principal=str(principal_id))
        strategy = config.group_search_type
        if strategy == GroupSearchType.recursive_search_active_directory:
            rule = f"member:{AD_RECURSIVE_MATCHING_RULE}:"
            dn = escape_filter_chars(entry.distinguished_name)
            try:
                with self._open() as client:
                    found = self._search_groups(client, f"({rule}={dn})")
            except Exception as e:
                logger.warning("Unable to resolve groups", error=str(e))
                return set()
            return {g.group_id for g in found}

        groups = entry.extract_groups(config.member_of_attribute)
        if strategy == GroupSearchType.recursive_search and groups:
            self._add_parent_groups(groups, logger)
        return groups

    def _add_parent_groups(
        self, groups: set[GroupId], logger: BoundLogger
    ) -> None:
        """Add the transitive parents of a set of groups in place.

        Each group is looked up once, so membership cycles terminate. Errors
        are logged and end the walk along that branch only.
        """
        attribute = self._ldap_config.member_of_attribute
        pending = [(dn, g) for g in groups if (dn := g.distinguished_name)]
        try:
            client = self._open()
        except Exception as e:
            logger.warning("Unable to resolve nested groups", error=str(e))
            return
        with client:
            while pending:
                dn, group = pending.pop()
                try:
                    entries = client.search(
                        dn,
                        "(objectClass=*)",
                        SearchScope.base,
                        [attribute],
                    )
                except Exception as e:
                    logger.warning(
                        "Unable to read nested groups",
                        group=str(group),
                        error=str(e),
                    )
                    continue
                for result in entries:
                    for parent in result.extract_groups(attribute):
                        if parent not in groups:
                            groups.add(parent)
                            if parent.distinguished_name:
                                dn = parent.distinguished_name
                                pending.append((dn, parent))

    def _get_members(self, group_id: GroupId) -> list[DirectoryUser]:
        """List the users in a group with the configured strategy."""
        dn = group_id.distinguished_name
        if not dn:
            return []
        config = self._ldap_config
        member_of = config.member_of_attribute
        strategy = config.group_search_type
        with self._open() as client:
            if strategy == GroupSearchType.recursive_search_active_directory:
                rule = f"{member_of}:{AD_RECURSIVE_MATCHING_RULE}:"
                search = f"({rule}={escape_filter_chars(dn)})"
                return self._search_users(client, search)

            search = f"({member_of}={escape_filter_chars(dn)})"
            members = self._search_users(client, search)
            if strategy != GroupSearchType.recursive_search:
                return members
            seen = {dn.casefold()}
            pending = [dn]
            while pending:
                group_dn = pending.pop(0)
                search = f"({member_of}={escape_filter_chars(group_dn)})"
                try:
                    for group in self._search_groups(client, search):
                        nested_dn = group.distinguished_name
                        if not nested_dn or nested_dn.casefold() in seen:
                            continue
                        seen.add(nested_dn.casefold())
                        pending.append(nested_dn)
                        search = (
                            f"({member_of}={escape_filter_chars(nested_dn)})"
                        )
                        members.extend(self._search_users(client, search))
                except Exception as e:
                    self._logger.warning(
                        "Unable to list nested group members",
                        dn=group_dn,
                        error=str(e),
                    )
        return members

