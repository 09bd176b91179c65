"""Caches used by directories and the principals they return.

None of these caches is process-global. A `LazyValue` and a
`MembershipCache` live as long as the principal object that owns them, and a
`NetbiosNameCache` lives as long as its directory. The common theme is some
storage wrapped in a `threading.Lock`, since directory operations are
blocking calls that may be made from several threads at once.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Generic, TypeVar

from cachetools import LRUCache

from .constants import NETBIOS_CACHE_SIZE

S = TypeVar("S")
"""Type of content stored in a cache."""

__all__ = [
    "LazyValue",
    "MembershipCache",
    "NetbiosNameCache",
    "S",
]


class LazyValue(Generic[S]):
    """A value computed on first access and immutable afterwards.

    The first caller runs the computation while holding a lock, and any
    concurrent callers wait for it rather than computing the value again.
    Once the value is published, reads do not take the lock. If the
    computation raises an exception, nothing is published and the next
    caller tries again.

    Parameters
    ----------
    compute
        Function that computes the value.
    """

    def __init__(self, compute: Callable[[], S]) -> None:
        self._compute = compute
        self._lock = threading.Lock()
        self._value: S | None = None
        self._computed = False

    @property
    def is_computed(self) -> bool:
        """Whether the value has been computed."""
        return self._computed

    def get(self) -> S:
        """Return the value, computing it if necessary.

        Returns
        -------
        S
            The cached value.
        """
        if not self._computed:
            with self._lock:
                if not self._computed:
                    self._value = self._compute()
                    self._computed = True
        return self._value  # type: ignore[return-value]


class MembershipCache:
    """Group names already confirmed as memberships of one principal.

    Only positive results are stored, so a group the principal later joins
    is never hidden by the cache. Names are compared case-insensitively.
    """

    def __init__(self) -> None:
        self._groups: set[str] = set()
        self._lock = threading.Lock()

    def __contains__(self, group_name: str) -> bool:
        return group_name.casefold() in self._groups

    def add(self, group_name: str) -> None:
        """Record a confirmed membership.

        Parameters
        ----------
        group_name
            Name of the group, as passed to the membership check.
        """
        with self._lock:
            self._groups.add(group_name.casefold())


class NetbiosNameCache:
    """Cache of NETBIOS names discovered from the directory.

    Only successful lookups are cached. Lookup is case-insensitive.
    """

    def __init__(self) -> None:
        self._cache: LRUCache[str, str] = LRUCache(NETBIOS_CACHE_SIZE)
        self._lock = threading.Lock()

    def clear(self) -> None:
        """Invalidate the cache.

        Used primarily for testing.
        """
        with self._lock:
            self._cache.clear()

    def get(self, netbios_name: str) -> str | None:
        """Retrieve the DNS domain name for a NETBIOS name, if cached.

        Parameters
        ----------
        netbios_name
            NETBIOS name of the domain.

        Returns
        -------
        str or None
            DNS domain name, or `None` if the name is not in the cache.
        """
        with self._lock:
            return self._cache.get(netbios_name.upper())

    def store(self, netbios_name: str, domain: str) -> None:
        """Store the DNS domain name for a NETBIOS name.

        Parameters
        ----------
        netbios_name
            NETBIOS name of the domain.
        domain
            DNS name of the domain.
        """
        with self._lock:
            self._cache[netbios_name.upper()] = domain
