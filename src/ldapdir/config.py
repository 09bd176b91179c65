"""Configuration for ldapdir.

ldapdir is configured by a YAML file describing one user directory and any
named credentials that directory refers to. The logging settings may also be
overridden by environment variables, which is convenient when running the
command-line tool against an existing configuration.

Only the logging settings have environment variable names of their own.
There is unfortunately no way to disable environment variable support for
the other settings, which should always come from the configuration file.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, Literal, Self, override

import yaml
from pydantic import (
    AliasChoices,
    ConfigDict,
    Field,
    SecretStr,
    field_validator,
    model_validator,
)
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)
from safir.logging import LogLevel, Profile, configure_logging
from safir.pydantic import CamelCaseModel

from .constants import LDAP_TIMEOUT
from .exceptions import UnknownCredentialError
from .models.domain import CredentialedDomain, NamedCredential
from .models.enums import (
    ADSearchMode,
    GroupSearchType,
    LdapBackend,
    LdapConnectionType,
)
from .util import domain_to_dn, parse_netbios_maps

__all__ = [
    "ActiveDirectoryConfig",
    "BaseDirectoryConfig",
    "Config",
    "DirectoryConfig",
    "EnvFirstSettings",
    "GenericLdapConfig",
    "OpenLdapConfig",
]


class BaseDirectoryConfig(CamelCaseModel):
    """Connection settings shared by every directory type.

    This base class also forbids all extra attributes, so that misspelled
    settings in the configuration file are reported.
    """

    model_config = ConfigDict(extra="forbid")

    connection: LdapConnectionType = Field(
        LdapConnectionType.ldap,
        title="LDAP connection type",
        description=(
            "Connect with plain LDAP, LDAP over TLS, or LDAP over TLS while"
            " ignoring certificate errors"
        ),
    )

    port: int | None = Field(
        None,
        title="Port override",
        description=(
            "Port of the LDAP server. If not set, 389 is used for plain LDAP"
            " and 636 for LDAP over TLS."
        ),
        gt=0,
        lt=65536,
    )

    timeout: float = Field(
        LDAP_TIMEOUT,
        title="Network timeout",
        description="Timeout in seconds for each connect, bind, and search",
        gt=0,
    )

    netbios_name_maps: dict[str, str] = Field(
        {},
        title="NETBIOS name mapping",
        description=(
            "Mapping of NETBIOS domain names to DNS domain names, used to"
            " resolve ``DOMAIN\\user`` logon names. May be given as a"
            " mapping, as a list of ``NETBIOS=dns.domain`` lines, or as a"
            " single string with one such entry per line."
        ),
    )

    @field_validator("netbios_name_maps", mode="before")
    @classmethod
    def _parse_netbios_name_maps(cls, v: Any) -> dict[str, str]:
        if v is None:
            return {}
        if isinstance(v, str | list | tuple | dict):
            return parse_netbios_maps(v)
        raise ValueError("netbiosNameMaps must be a mapping or list of lines")


class ActiveDirectoryConfig(BaseDirectoryConfig):
    """Configuration for an Active Directory user directory."""

    type: Literal["active_directory"] = Field(
        ..., title="Directory type"
    )

    domain: str | None = Field(
        None,
        title="Current domain",
        description=(
            "DNS name of the domain to search. If not set, it is read from"
            " the RootDSE of the domain controller."
        ),
        examples=["corp.example.com"],
    )

    domain_controller_address: str | None = Field(
        None,
        title="Domain controller host",
        description=(
            "Host name or IP address of the domain controller, if different"
            " from the domain name"
        ),
    )

    username: str | None = Field(
        None,
        title="Bind username",
        description=(
            "User with read access to the directory. A bare name is"
            " qualified with the current domain. If not set, binds are"
            " anonymous."
        ),
    )

    password: SecretStr | None = Field(None, title="Bind password")

    search_mode: ADSearchMode = Field(
        ADSearchMode.current_domain,
        title="Domains to search",
        description=(
            "Search only the current domain, the current domain and every"
            " domain it trusts, or an explicit list of domains"
        ),
    )

    domains_to_search: list[str] = Field(
        [],
        title="Explicit domain list",
        description=(
            "Domains to search in ``specific_domains`` mode, one"
            " ``domain[,credentialName]`` entry each, where the credential"
            " name refers to the top-level ``credentials`` setting"
        ),
        examples=[["corp.example.com,CorpCred", "lab.example.com"]],
    )

    search_root_path: str | None = Field(
        None,
        title="Search root",
        description=(
            "Base DN of searches. If not set, the DN of each searched domain"
            " is used."
        ),
    )

    group_search_type: GroupSearchType = Field(
        GroupSearchType.no_recursion,
        title="Group search strategy",
        description=(
            "Whether to resolve only direct group membership, walk parent"
            " groups, or ask the domain controller for transitive membership"
        ),
    )

    include_group_managed_service_accounts: bool = Field(
        False,
        title="Include gMSAs",
        description=(
            "Whether group managed service accounts are returned as users"
        ),
    )

    users_filter_base: str = Field(
        "(objectCategory=user)", title="User object filter"
    )

    group_managed_service_account_filter_base: str = Field(
        "(objectCategory=msDS-GroupManagedServiceAccount)",
        title="gMSA object filter",
    )

    groups_filter_base: str = Field(
        "(objectCategory=group)", title="Group object filter"
    )

    user_name_attribute: str = Field(
        "sAMAccountName", title="User name attribute"
    )

    group_name_attribute: str = Field("name", title="Group name attribute")

    display_name_attribute: str = Field(
        "displayName", title="Display name attribute"
    )

    email_attribute: str = Field("mail", title="Email address attribute")

    member_of_attribute: str = Field(
        "memberOf", title="Group membership attribute"
    )

    @model_validator(mode="after")
    def _validate_domains(self) -> Self:
        if self.search_mode == ADSearchMode.specific_domains:
            if not any(line.strip() for line in self.domains_to_search):
                msg = "domainsToSearch must be set in specific_domains mode"
                raise ValueError(msg)
        elif not self.domain and not self.domain_controller_address:
            msg = "domain or domainControllerAddress must be set"
            raise ValueError(msg)
        return self


class GenericLdapConfig(BaseDirectoryConfig):
    """Configuration for a generic LDAP user directory."""

    type: Literal["generic_ldap"] = Field(..., title="Directory type")

    host: str = Field(
        ...,
        title="LDAP server",
        description="Host name or IP address of the LDAP server",
        min_length=1,
    )

    bind_username: str | None = Field(
        None,
        title="Bind username",
        description=(
            "DN or user name to bind as for searches. If not set, searches"
            " use an anonymous bind."
        ),
    )

    bind_password: SecretStr | None = Field(None, title="Bind password")

    base_dn: str | None = Field(
        None,
        title="Base DN",
        description=(
            "Base DN of all searches. If not set, it is derived from the"
            " host name (``ldap.example.com`` becomes"
            " ``DC=ldap,DC=example,DC=com``)."
        ),
    )

    users_filter_base: str = Field(
        "(objectCategory=user)", title="User object filter"
    )

    user_name_attribute: str = Field(
        "sAMAccountName", title="User name attribute"
    )

    display_name_attribute: str = Field(
        "displayName", title="Display name attribute"
    )

    email_attribute: str = Field("mail", title="Email address attribute")

    groups_filter_base: str = Field(
        "(objectCategory=group)", title="Group object filter"
    )

    group_name_attribute: str = Field("name", title="Group name attribute")

    group_search_type: GroupSearchType = Field(
        GroupSearchType.no_recursion,
        title="Group search strategy",
        description=(
            "``recursive_search_active_directory`` only works against Active"
            " Directory compatible servers"
        ),
    )

    member_of_attribute: str = Field(
        "memberOf", title="Group membership attribute"
    )

    @property
    def search_base(self) -> str:
        """Base DN of searches, derived from the host if not configured."""
        return self.base_dn or domain_to_dn(self.host)


class OpenLdapConfig(BaseDirectoryConfig):
    """Configuration for an OpenLDAP user directory.

    The filters are templates in which every ``%s`` is replaced by the
    escaped search term or distinguished name.
    """

    type: Literal["openldap"] = Field(..., title="Directory type")

    host: str = Field(
        ...,
        title="LDAP server",
        description="Host name or IP address of the LDAP server",
        min_length=1,
    )

    bind_dn: str | None = Field(
        None,
        title="Bind DN",
        description="DN to bind as for searches, or unset for anonymous",
    )

    bind_password: SecretStr | None = Field(None, title="Bind password")

    user_search_root_path: str | None = Field(
        None,
        title="User search root",
        description="Base DN for users, derived from the host if not set",
    )

    group_search_root_path: str | None = Field(
        None,
        title="Group search root",
        description="Base DN for groups, derived from the host if not set",
    )

    users_filter: str = Field(
        "(&(objectClass=inetOrgPerson)(uid=%s))",
        title="User search filter template",
    )

    user_groups_filter: str = Field(
        "(|(&(objectClass=groupOfNames)(member=%s))"
        "(&(objectClass=groupOfUniqueNames)(uniqueMember=%s)))",
        title="Groups of a principal filter template",
        description="Template substituted with the DN of the principal",
    )

    groups_filter: str = Field(
        "(&(objectClass=groupOfNames)(cn=%s))",
        title="Group search filter template",
    )

    group_members_filter: str = Field(
        "(&(objectClass=inetOrgPerson)(memberof=%s))",
        title="Group members filter template",
        description="Template substituted with the DN of the group",
    )

    user_name_attribute: str = Field("uid", title="User name attribute")

    display_name_attribute: str = Field(
        "displayName", title="Display name attribute"
    )

    email_attribute: str = Field("mail", title="Email address attribute")

    group_name_attribute: str = Field("cn", title="Group name attribute")

    @field_validator(
        "users_filter",
        "user_groups_filter",
        "groups_filter",
        "group_members_filter",
    )
    @classmethod
    def _validate_template(cls, v: str) -> str:
        if "%s" not in v:
            raise ValueError("filter template must contain %s")
        return v

    @property
    def user_base_dn(self) -> str:
        """Base DN of user searches."""
        return self.user_search_root_path or domain_to_dn(self.host)

    @property
    def group_base_dn(self) -> str:
        """Base DN of group searches."""
        return self.group_search_root_path or domain_to_dn(self.host)


DirectoryConfig = Annotated[
    ActiveDirectoryConfig | GenericLdapConfig | OpenLdapConfig,
    Field(discriminator="type"),
]
"""Configuration of any type of directory."""


class EnvFirstSettings(BaseSettings):
    """Base class for Pydantic settings with environment overrides.

    Classes that inherit from this base class will prioritize environment
    variables over arguments to the class constructor. Settings that can be
    overridden name the environment variable first in their
    ``validation_alias``.

    No alias generator is used. A generated alias would be preferred over
    the environment variable when the two sources are merged.
    """

    model_config = SettingsConfigDict(extra="forbid", populate_by_name=True)

    @override
    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Override the sources of settings.

        Deactivate :file:`.env` and secret file support. Allow environment
        variables to override init parameters, since init parameters come
        from the YAML configuration file and we want environment variables
        to take precedence.
        """
        return (env_settings, init_settings)


class Config(EnvFirstSettings):
    """Configuration for ldapdir."""

    log_level: LogLevel = Field(
        LogLevel.INFO,
        title="Log level",
        description="Log level of the ldapdir logger",
        validation_alias=AliasChoices("LDAPDIR_LOG_LEVEL", "logLevel"),
    )

    log_profile: Profile = Field(
        Profile.production,
        title="Logging profile",
        description=(
            "``production`` logs JSON, ``development`` logs for humans"
        ),
        validation_alias=AliasChoices("LDAPDIR_LOG_PROFILE", "logProfile"),
    )

    backend: LdapBackend = Field(
        LdapBackend.auto,
        title="LDAP client library",
        description=(
            "LDAP library to use. ``auto`` picks one at startup based on"
            " the platform and which libraries are installed."
        ),
    )

    credentials: dict[str, NamedCredential] = Field(
        {},
        title="Named credentials",
        description=(
            "Credentials that ``domainsToSearch`` entries can refer to by"
            " name"
        ),
    )

    directory: DirectoryConfig = Field(..., title="Directory settings")

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.upper()
        return v

    @model_validator(mode="after")
    def _validate_domain_credentials(self) -> Self:
        if isinstance(self.directory, ActiveDirectoryConfig):
            for line in self.directory.domains_to_search:
                try:
                    CredentialedDomain.parse(line, self.credentials)
                except UnknownCredentialError as e:
                    raise ValueError(str(e)) from e
        return self

    @classmethod
    def from_file(cls, path: Path) -> Self:
        """Construct a Config object from a configuration file.

        The logging environment variables take precedence over the
        settings in the file.

        Parameters
        ----------
        path
            Path to the configuration file in YAML.

        Returns
        -------
        Config
            The corresponding `Config` object.
        """
        with path.open("r") as f:
            return cls(**(yaml.safe_load(f) or {}))

    def configure_logging(self) -> None:
        """Configure logging based on the ldapdir configuration."""
        configure_logging(
            name="ldapdir",
            profile=self.log_profile,
            log_level=self.log_level,
        )
