"""General utility functions for LDAP filters and distinguished names."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping

from ldap3.core.exceptions import LDAPInvalidDnError
from ldap3.utils.dn import parse_dn

__all__ = [
    "and_filters",
    "dn_to_domain",
    "domain_qualified_name",
    "domain_to_dn",
    "or_filters",
    "parenthesize",
    "parse_dn_components",
    "parse_netbios_maps",
    "split_logon_name",
    "unescape_dn_value",
]

_DN_ESCAPE_REGEX = re.compile(r"\\([0-9A-Fa-f]{2}|.)", re.DOTALL)
"""Matches one escape sequence in a DN attribute value (RFC 4514)."""


def parenthesize(search_filter: str) -> str:
    """Wrap a filter in parentheses unless it already has them."""
    search_filter = search_filter.strip()
    if search_filter.startswith("("):
        return search_filter
    return f"({search_filter})"


def and_filters(*filters: str | None) -> str:
    """Combine filters with a logical AND.

    Empty filters are dropped and a single remaining filter is returned
    without a wrapping ``(&...)``.
    """
    parts = [parenthesize(f) for f in filters if f and f.strip()]
    if len(parts) == 1:
        return parts[0]
    return "(&" + "".join(parts) + ")" if parts else ""


def or_filters(*filters: str | None) -> str:
    """Combine filters with a logical OR.

    Empty filters are dropped and a single remaining filter is returned
    without a wrapping ``(|...)``.
    """
    parts = [parenthesize(f) for f in filters if f and f.strip()]
    if len(parts) == 1:
        return parts[0]
    return "(|" + "".join(parts) + ")" if parts else ""


def unescape_dn_value(value: str) -> str:
    """Undo RFC 4514 escaping of a DN attribute value."""
    if "\\" not in value:
        return value
    result = bytearray()
    position = 0
    for match in _DN_ESCAPE_REGEX.finditer(value):
        result.extend(value[position : match.start()].encode())
        escaped = match.group(1)
        if len(escaped) == 2:
            result.append(int(escaped, 16))
        else:
            result.extend(escaped.encode())
        position = match.end()
    result.extend(value[position:].encode())
    return result.decode(errors="replace")


def parse_dn_components(dn: str) -> list[tuple[str, str]]:
    """Parse a distinguished name into attribute types and values.

    Parameters
    ----------
    dn
        Distinguished name such as ``CN=Smith\\, John,DC=example,DC=com``.

    Returns
    -------
    list of tuple of (str, str)
        Attribute type and unescaped value of each component, in order.
        Components of a multi-valued RDN are returned separately. A
        malformed or empty DN yields an empty list.
    """
    try:
        components = parse_dn(dn, strip=True)
    except LDAPInvalidDnError:
        return []
    return [(a, unescape_dn_value(v)) for a, v, _ in components]


def dn_to_domain(dn: str) -> str:
    """Return the DNS domain encoded in the ``DC=`` components of a DN.

    Parameters
    ----------
    dn
        Distinguished name.

    Returns
    -------
    str
        The ``DC=`` values joined with ``.``, or the empty string if the DN
        has none.
    """
    components = parse_dn_components(dn)
    return ".".join(v for a, v in components if a.lower() == "dc" and v)


def domain_to_dn(domain: str) -> str:
    """Return the DN of a DNS domain (``a.b`` becomes ``DC=a,DC=b``)."""
    return ",".join(f"DC={label}" for label in domain.split(".") if label)


def domain_qualified_name(username: str, domain: str | None) -> str:
    """Qualify a bind username with its domain.

    Names that are already qualified, either as ``user@domain`` or as
    ``DOMAIN\\user``, are returned unchanged, as are names when no domain is
    known.
    """
    if not domain or "@" in username or "\\" in username:
        return username
    return f"{username}@{domain}"


def split_logon_name(logon_name: str) -> tuple[str, str] | None:
    """Split a ``NETBIOS\\user`` logon name.

    Returns
    -------
    tuple of (str, str) or None
        The NETBIOS name and the user name, or `None` if the logon name does
        not have that form.
    """
    netbios_name, sep, username = logon_name.partition("\\")
    netbios_name = netbios_name.strip()
    username = username.strip()
    if not sep or not netbios_name or not username:
        return None
    return netbios_name, username


def parse_netbios_maps(
    maps: str | Iterable[str] | Mapping[str, str] | None,
) -> dict[str, str]:
    """Parse NETBIOS name mappings.

    Parameters
    ----------
    maps
        Either a mapping, a string with one ``NETBIOS=dns.domain`` entry per
        line, or an iterable of such lines. Blank and malformed lines are
        ignored. Each line is split on the first ``=``.

    Returns
    -------
    dict of str to str
        Mapping from upper-cased NETBIOS name to DNS domain name.
    """
    if not maps:
        return {}
    if isinstance(maps, Mapping):
        items = [(str(k), str(v)) for k, v in maps.items()]
    else:
        lines = maps.splitlines() if isinstance(maps, str) else maps
        items = []
        for line in lines:
            name, sep, domain = line.partition("=")
            if sep:
                items.append((name, domain))
    result = {}
    for name, domain in items:
        name = name.strip()
        domain = domain.strip()
        if name and domain:
            result[name.upper()] = domain
    return result
