"""Command-line interface for testing a directory configuration."""

from __future__ import annotations

from pathlib import Path
from typing import NoReturn

import click
from safir.click import display_help

from .config import Config
from .constants import CONFIG_PATH
from .directories.base import UserDirectory
from .exceptions import DirectoryError
from .factory import Factory
from .models.enums import PrincipalSearchType
from .models.principal import (
    DirectoryGroup,
    DirectoryPrincipal,
    DirectoryUser,
)

__all__ = [
    "group",
    "help",
    "logon",
    "main",
    "members",
    "search",
    "user",
    "validate",
]

_config_option = click.option(
    "--config-path",
    envvar="LDAPDIR_CONFIG_PATH",
    type=click.Path(path_type=Path),
    default=CONFIG_PATH,
    show_default=True,
    help="Directory configuration file.",
)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(message="%(version)s")
def main() -> None:
    """Query a user directory over LDAP."""


@main.command()
@click.argument("topic", default=None, required=False, nargs=1)
@click.pass_context
def help(ctx: click.Context, topic: str | None) -> None:
    """Show help for any command."""
    display_help(main, ctx, topic)


@main.command()
@click.argument("term")
@click.option(
    "--users",
    "search_type",
    flag_value=PrincipalSearchType.users.name,
    help="Only search for users.",
)
@click.option(
    "--groups",
    "search_type",
    flag_value=PrincipalSearchType.groups.name,
    help="Only search for groups.",
)
@_config_option
def search(term: str, search_type: str | None, config_path: Path) -> None:
    """List users and groups whose names start with TERM."""
    directory = _create_directory(config_path)
    if search_type:
        wanted = PrincipalSearchType[search_type]
    else:
        wanted = PrincipalSearchType.users_and_groups
    try:
        principals = directory.find_principals(term, wanted)
    except DirectoryError as e:
        raise click.ClickException(str(e)) from e
    for principal in principals:
        click.echo(_describe(principal))


@main.command()
@click.argument("name")
@click.option("--group", "group_name", help="Check membership in a group.")
@_config_option
def user(name: str, group_name: str | None, config_path: Path) -> None:
    """Show a user and their groups."""
    directory = _create_directory(config_path)
    try:
        found = directory.try_get_user(name)
        if not found:
            _not_found(f"User {name} not found")
        _show(found)
        if group_name:
            answer = "yes" if found.is_member_of_group(group_name) else "no"
            click.echo(f"Member of {group_name}: {answer}")
    except DirectoryError as e:
        raise click.ClickException(str(e)) from e


@main.command()
@click.argument("name")
@_config_option
def group(name: str, config_path: Path) -> None:
    """Show a group and its parent groups."""
    directory = _create_directory(config_path)
    try:
        found = directory.try_get_group(name)
        if not found:
            _not_found(f"Group {name} not found")
        _show(found)
    except DirectoryError as e:
        raise click.ClickException(str(e)) from e


@main.command()
@click.argument("name")
@_config_option
def members(name: str, config_path: Path) -> None:
    """List the users in a group."""
    directory = _create_directory(config_path)
    try:
        found = directory.try_get_group(name)
        if not found:
            _not_found(f"Group {name} not found")
        users = found.get_member_users()
    except DirectoryError as e:
        raise click.ClickException(str(e)) from e
    for member in sorted(users, key=lambda u: u.name.casefold()):
        click.echo(_describe(member))


@main.command()
@click.argument("logon_name")
@_config_option
def logon(logon_name: str, config_path: Path) -> None:
    """Resolve a DOMAIN\\user logon name to a user."""
    directory = _create_directory(config_path)
    try:
        found = directory.try_parse_logon_user(logon_name)
    except DirectoryError as e:
        raise click.ClickException(str(e)) from e
    if not found:
        _not_found(f"Logon name {logon_name} did not match a user")
    click.echo(_describe(found))


@main.command()
@click.argument("name")
@click.password_option(
    "--password",
    envvar="LDAPDIR_PASSWORD",
    confirmation_prompt=False,
    help="Password to check (prompted for if not given).",
)
@_config_option
def validate(name: str, password: str, config_path: Path) -> None:
    """Check the password of a user."""
    directory = _create_directory(config_path)
    try:
        found = directory.try_get_and_validate_user(name, password)
    except DirectoryError as e:
        raise click.ClickException(str(e)) from e
    if not found:
        _not_found(f"User {name} not found")
    click.echo(f"Credentials for {found.name} are valid")


def _create_directory(config_path: Path) -> UserDirectory:
    """Load the configuration and create the directory it describes."""
    try:
        config = Config.from_file(config_path)
    except FileNotFoundError as e:
        msg = f"Configuration file {config_path} not found"
        raise click.ClickException(msg) from e
    config.configure_logging()
    return Factory.from_config(config).create_directory()


def _describe(principal: DirectoryPrincipal) -> str:
    kind = "group" if isinstance(principal, DirectoryGroup) else "user"
    return f"{principal.name} ({kind}): {principal.display_name}"


def _not_found(message: str) -> NoReturn:
    click.echo(message, err=True)
    raise click.exceptions.Exit(1)


def _show(principal: DirectoryPrincipal) -> None:
    click.echo(f"Name: {principal.name}")
    click.echo(f"Display name: {principal.display_name}")
    if isinstance(principal, DirectoryUser) and principal.email_address:
        click.echo(f"Email: {principal.email_address}")
    click.echo(f"DN: {principal.distinguished_name}")
    groups = sorted(str(g) for g in principal.groups)
    click.echo("Groups: " + (", ".join(groups) if groups else "(none)"))
