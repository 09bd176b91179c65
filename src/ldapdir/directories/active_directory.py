"""Active Directory user directory."""

from __future__ import annotations

from collections.abc import Mapping
from functools import partial

from ldap3.utils.conv import escape_filter_chars
from structlog.stdlib import BoundLogger

from ..cache import LazyValue
from ..config import ActiveDirectoryConfig
from ..constants import (
    ACCOUNT_DISABLED_FLAG,
    AD_RECURSIVE_MATCHING_RULE,
    GMSA_OBJECT_CATEGORY,
    PERSON_OBJECT_CATEGORY,
)
from ..models.domain import CredentialedDomain, NamedCredential
from ..models.enums import (
    ADSearchMode,
    GroupSearchType,
    PrincipalSearchType,
    SearchScope,
    TrustDirection,
)
from ..models.identity import GroupId, PrincipalId, UserId
from ..models.principal import (
    DirectoryGroup,
    DirectoryPrincipal,
    DirectoryUser,
)
from ..storage.base import LdapClient, LdapClientEntry
from ..storage.trusts import LdapTrustDiscovery, TrustDiscovery
from ..util import (
    and_filters,
    domain_qualified_name,
    domain_to_dn,
    or_filters,
)
from .base import ClientFactory, UserDirectory

_PREFIX_SEARCH_ATTRIBUTES = (
    "userPrincipalName",
    "sAMAccountName",
    "name",
    "displayName",
)
"""Attributes matched against the search term by `find_principals`."""

__all__ = ["ActiveDirectoryDirectory"]


class ActiveDirectoryDirectory(UserDirectory):
    """User directory backed by one or more Active Directory domains.

    Depending on the search mode, the directory searches only the current
    domain, the current domain plus every domain that it or its forest
    trusts, or an explicit list of domains with per-domain credentials. The
    set of domains is resolved once, on first use.

    Parameters
    ----------
    config
        Configuration for this directory.
    client_factory
        Function returning a new LDAP client.
    logger
        Logger for debug messages and errors.
    credentials
        Named credentials that ``domainsToSearch`` entries may refer to.
    trust_discovery
        Source of the current domain and its trusts. Defaults to querying
        the configured domain controller.
    """

    def __init__(
        self,
        config: ActiveDirectoryConfig,
        client_factory: ClientFactory,
        logger: BoundLogger,
        *,
        credentials: Mapping[str, NamedCredential] | None = None,
        trust_discovery: TrustDiscovery | None = None,
    ) -> None:
        super().__init__(config, client_factory, logger)
        self._ad_config = config
        self._credentials = credentials or {}
        if trust_discovery:
            self._trust_discovery = trust_discovery
        else:
            self._trust_discovery = LdapTrustDiscovery(
                self._connect_controller, self._logger
            )
        self._current_domain = config.domain
        self._domains = LazyValue(self._build_domains_to_search)

    @property
    def domains(self) -> list[CredentialedDomain]:
        """Domains searched when a name has no domain alias."""
        return self._domains.get()

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
        config = self._ad_config
        categories = []
        if PrincipalSearchType.users in search_type:
            categories.append(config.users_filter_base)
            if config.include_group_managed_service_accounts:
                categories.append(
                    config.group_managed_service_account_filter_base
                )
        if PrincipalSearchType.groups in search_type:
            categories.append(config.groups_filter_base)
        term = escape_filter_chars(search_term)
        search = and_filters(
            or_filters(*categories),
            or_filters(*(f"({a}={term}*)" for a in _PREFIX_SEARCH_ATTRIBUTES)),
        )

        # Every domain contributes, unlike lookups by name.
        results: list[DirectoryPrincipal] = []
        for domain in self.domains:
            for entry in self._search_domain(domain, search):
                principal = self._create_principal(entry, domain)
                if isinstance(principal, DirectoryUser):
                    wanted = PrincipalSearchType.users in search_type
                else:
                    wanted = PrincipalSearchType.groups in search_type
                if principal and wanted:
                    results.append(principal)
        return results

    def _get_user(self, user_id: UserId) -> DirectoryUser | None:
        name = escape_filter_chars(user_id.principal)
        search = f"({self._ad_config.user_name_attribute}={name})"
        for domain in self._domains_for(user_id.domain_alias):
            for entry in self._search_domain(domain, search):
                principal = self._create_principal(entry, domain)
                if isinstance(principal, DirectoryUser):
                    return principal
        self._logger.debug("User not found", user=str(user_id))
        return None

    def _get_group(self, group_id: GroupId) -> DirectoryGroup | None:
        config = self._ad_config
        name = escape_filter_chars(group_id.principal)
        search = and_filters(
            config.groups_filter_base,
            or_filters(
                f"(sAMAccountName={name})",
                f"({config.group_name_attribute}={name})",
            ),
        )
        for domain in self._domains_for(group_id.domain_alias):
            for entry in self._search_domain(domain, search):
                principal = self._create_principal(entry, domain)
                if isinstance(principal, DirectoryGroup):
                    return principal
        self._logger.debug("Group not found", group=str(group_id))
        return None

    def _connect_for(self, principal_id: PrincipalId) -> LdapClient:
        return self._connect(self._host_for(principal_id.domain_alias))

    def _discover_netbios_name(self, netbios_name: str) -> str | None:
        logger = self._logger.bind(netbios_name=netbios_name)
        try:
            with self._connect_controller() as client:
                results = client.search(
                    "",
                    "(objectClass=*)",
                    SearchScope.base,
                    ["configurationNamingContext"],
                )
                context = None
                if results:
                    context = results[0].get_value(
                        "configurationNamingContext"
                    )
                if not context:
                    logger.warning("RootDSE has no configuration context")
                    return None
                name = escape_filter_chars(netbios_name)
                results = client.search(
                    f"CN=Partitions,{context}",
                    f"(nETBIOSName={name})",
                    SearchScope.subtree,
                    ["dnsRoot"],
                )
        except Exception as e:
            logger.warning("Unable to resolve NETBIOS name", error=str(e))
            return None
        domain = results[0].get_value("dnsRoot") if results else None
        if domain:
            logger.debug("Resolved NETBIOS name", domain=domain)
        else:
            logger.debug("NETBIOS name not found")
        return domain

    def _build_domains_to_search(self) -> list[CredentialedDomain]:
        """Determine the domains to search, deduplicated by name."""
        mode = self._ad_config.search_mode
        logger = self._logger.bind(search_mode=mode.value)
        logger.debug("Building domains to search")
        domains: list[CredentialedDomain] = []
        if mode == ADSearchMode.specific_domains:
            for line in self._ad_config.domains_to_search:
                domain = CredentialedDomain.parse(line, self._credentials)
                if domain and domain not in domains:
                    domains.append(domain)
            return domains

        if not self._current_domain:
            self._current_domain = self._trust_discovery.get_current_domain()
        domains.append(self._default_domain(self._current_domain))
        if mode == ADSearchMode.trusted_domains:
            for get_trusts in (
                self._trust_discovery.get_domain_trusts,
                self._trust_discovery.get_forest_trusts,
            ):
                try:
                    trusts = get_trusts()
                except Exception as e:
                    msg = "Unable to enumerate trust relationships"
                    logger.warning(msg, error=str(e))
                    continue
                for trust in trusts:
                    if trust.direction == TrustDirection.outbound:
                        logger.debug("Ignoring outbound trust", trust=trust)
                        continue
                    domain = self._default_domain(trust.target)
                    if domain not in domains:
                        domains.append(domain)
        logger.debug("Domains to search", domains=[d.name for d in domains])
        return domains

    def _domains_for(self, domain_alias: str) -> list[CredentialedDomain]:
        """Return the domains to search for a name with a domain alias.

        An empty alias searches every domain. Otherwise only one domain is
        searched: the configured domain of that name, else the domain that
        the alias names as a NETBIOS name, else the alias itself with the
        default credentials.
        """
        if not domain_alias:
            return self.domains
        for domain in self.domains:
            if domain.name.casefold() == domain_alias.casefold():
                return [domain]

        # NETBIOS names never contain dots.
        if "." not in domain_alias:
            resolved = self.resolve_netbios_name(domain_alias)
            if resolved:
                for domain in self.domains:
                    if domain.name.casefold() == resolved.casefold():
                        return [domain]
                domain_alias = resolved
        return [self._default_domain(domain_alias)]

    def _default_domain(self, name: str) -> CredentialedDomain:
        """Build a domain using the directory's own bind credentials."""
        username = self._ad_config.username
        if username:
            qualify = self._current_domain or name
            username = domain_qualified_name(username, qualify)
        return CredentialedDomain(
            name=name, username=username, password=self._ad_config.password
        )

    def _host_for(self, domain: str) -> str:
        """Return the server to connect to for a domain.

        The configured domain controller serves the current domain, or every
        domain if the current domain is not known. Other domains are reached
        through their DNS names.
        """
        address = self._ad_config.domain_controller_address
        current = self._current_domain
        if not address:
            return domain
        if not current or domain.casefold() == current.casefold():
            return address
        return domain

    def _search_base(self, domain: CredentialedDomain) -> str:
        return self._ad_config.search_root_path or domain_to_dn(domain.name)

    def _connect_domain(self, domain: CredentialedDomain) -> LdapClient:
        return self._connect(
            self._host_for(domain.name),
            domain.domain_qualified_name,
            domain.password,
        )

    def _connect_controller(self) -> LdapClient:
        """Connect and bind to the configured domain controller."""
        config = self._ad_config
        host = config.domain_controller_address or config.domain
        if not host:
            return self._connect_domain(self.domains[0])
        username = config.username
        if username:
            username = domain_qualified_name(username, self._current_domain)
        return self._connect(host, username, config.password)

    def _search_domain(
        self, domain: CredentialedDomain, search: str
    ) -> list[LdapClientEntry]:
        with self._connect_domain(domain) as client:
            return client.search(
                self._search_base(domain),
                search,
                attributes=self._principal_attributes,
            )

    @property
    def _principal_attributes(self) -> list[str]:
        config = self._ad_config
        attributes = {
            "objectCategory",
            "objectClass",
            "userAccountControl",
            "sAMAccountName",
            config.user_name_attribute,
            config.group_name_attribute,
            config.display_name_attribute,
            config.email_attribute,
        }
        return sorted(attributes)

    def _create_principal(
        self, entry: LdapClientEntry, domain: CredentialedDomain
    ) -> DirectoryPrincipal | None:
        """Convert a search result into a user or group.

        Returns `None` for disabled accounts, for group managed service
        accounts unless they are included, and for entries without a name.
        """
        config = self._ad_config
        categories = [
            c.casefold() for c in entry.get_values("objectCategory")
        ]
        classes = [c.casefold() for c in entry.get_values("objectClass")]
        gmsa = GMSA_OBJECT_CATEGORY.casefold()
        person = PERSON_OBJECT_CATEGORY.casefold()
        is_gmsa = any(gmsa in c for c in categories)
        is_user = "user" in classes or any(person in c for c in categories)
        if is_gmsa and not config.include_group_managed_service_accounts:
            return None

        domain_alias = entry.domain_path or domain.name
        resolver = partial(self._get_parent_groups, domain)
        if is_gmsa or is_user:
            control = entry.get_value("userAccountControl")
            if control and control.isdigit():
                if int(control) & ACCOUNT_DISABLED_FLAG:
                    self._logger.debug(
                        "Skipping disabled account",
                        dn=entry.distinguished_name,
                    )
                    return None
            name = entry.get_value(config.user_name_attribute)
            if not name:
                return None
            user_id = UserId(name, domain_alias, entry.distinguished_name)
            return DirectoryUser(
                user_id,
                resolver,
                display_name=entry.get_value(config.display_name_attribute),
                email_address=entry.get_value(config.email_attribute),
            )

        name = entry.get_value(config.group_name_attribute)
        name = name or entry.get_value("sAMAccountName")
        if not name:
            return None
        group_id = GroupId(name, domain_alias, entry.distinguished_name)
        return DirectoryGroup(
            group_id,
            resolver,
            partial(self._get_group_members, domain),
            display_name=entry.get_value(config.display_name_attribute),
        )

    def _get_parent_groups(
        self, domain: CredentialedDomain, principal_id: PrincipalId
    ) -> set[GroupId]:
        """Resolve the groups of a principal with the configured strategy.

        Failures are logged and reduce the result rather than raising.
        """
        logger = self._logger.bind(principal=str(principal_id))
        dn = principal_id.distinguished_name
        groups: set[GroupId] = set()
        if not dn:
            return groups
        strategy = self._ad_config.group_search_type
        try:
            with self._connect_domain(domain) as client:
                if strategy == GroupSearchType.no_recursion:
                    self._add_parent_groups(client, dn, groups, False)
                elif strategy == GroupSearchType.recursive_search:
                    self._add_parent_groups(client, dn, groups, True)
                else:
                    rule = f"member:{AD_RECURSIVE_MATCHING_RULE}:"
                    search = and_filters(
                        self._ad_config.groups_filter_base,
                        f"({rule}={escape_filter_chars(dn)})",
                    )
                    base = self._search_base(domain)
                    for group in self._principals_from(
                        client, base, search, domain
                    ):
                        if isinstance(group, DirectoryGroup):
                            groups.add(group.group_id)
        except Exception as e:
            logger.warning("Unable to resolve group membership", error=str(e))
        logger.debug("Resolved groups", groups=sorted(map(str, groups)))
        return groups

    def _add_parent_groups(
        self, client: LdapClient, dn: str, groups: set[GroupId], recurse: bool
    ) -> None:
        """Add the groups an entry is a member of, optionally recursively.

        Only groups that were not already in the set are walked, which
        terminates the walk on membership cycles. A failed step is logged
        and contributes no groups.
        """
        attribute = self._ad_config.member_of_attribute
        try:
            entries = client.search(
                dn, "(objectClass=*)", SearchScope.base, [attribute]
            )
        except Exception as e:
            self._logger.warning(
                "Unable to read group membership", dn=dn, error=str(e)
            )
            return
        added = []
        for entry in entries:
            for group in entry.extract_groups(attribute):
                if group not in groups:
                    groups.add(group)
                    added.append(group)
        if not recurse:
            return
        for group in added:
            if group.distinguished_name:
                self._add_parent_groups(
                    client, group.distinguished_name, groups, recurse
                )

    def _get_group_members(
        self, domain: CredentialedDomain, group_id: GroupId
    ) -> list[DirectoryUser]:
        """List the users in a group with the configured strategy.

        With ``recursive_search``, member groups are walked breadth-first
        and each group is visited once. Failures below the top-level group
        are logged and skipped.
        """
        dn = group_id.distinguished_name
        if not dn:
            return []
        config = self._ad_config
        strategy = config.group_search_type
        base = self._search_base(domain)
        with self._connect_domain(domain) as client:
            if strategy == GroupSearchType.recursive_search_active_directory:
                rule = f"{config.member_of_attribute}:"
                rule += f"{AD_RECURSIVE_MATCHING_RULE}:"
                search = and_filters(
                    config.users_filter_base,
                    f"({rule}={escape_filter_chars(dn)})",
                )
                return self._users_from(client, base, search, domain)

            search = self._member_of(config.users_filter_base, dn)
            members = self._users_from(client, base, search, domain)
            if strategy != GroupSearchType.recursive_search:
                return members
            seen = {dn.casefold()}
            pending = [dn]
            while pending:
                group_dn = pending.pop(0)
                search = self._member_of(config.groups_filter_base, group_dn)
                try:
                    nested = client.search(base, search, attributes=["cn"])
                    for entry in nested:
                        nested_dn = entry.distinguished_name
                        if nested_dn.casefold() in seen:
                            continue
                        seen.add(nested_dn.casefold())
                        pending.append(nested_dn)
                        search = self._member_of(
                            config.users_filter_base, nested_dn
                        )
                        members.extend(
                            self._users_from(client, base, search, domain)
                        )
                except Exception as e:
                    self._logger.warning(
                        "Unable to list nested group members",
                        dn=group_dn,
                        error=str(e),
                    )
        return members

    def _member_of(self, object_filter: str, dn: str) -> str:
        """Build a filter for objects that are direct members of a group."""
        attribute = self._ad_config.member_of_attribute
        return and_filters(
            object_filter, f"({attribute}={escape_filter_chars(dn)})"
        )

    def _principals_from(
        self,
        client: LdapClient,
        base: str,
        search: str,
        domain: CredentialedDomain,
    ) -> list[DirectoryPrincipal]:
        entries = client.search(
            base, search, attributes=self._principal_attributes
        )
        principals = []
        for entry in entries:
            principal = self._create_principal(entry, domain)
            if principal:
                principals.append(principal)
        return principals

    def _users_from(
        self,
        client: LdapClient,
        base: str,
        search: str,
        domain: CredentialedDomain,
    ) -> list[DirectoryUser]:
        principals = self._principals_from(client, base, search, domain)
        return [p for p in principals if isinstance(p, DirectoryUser)]
