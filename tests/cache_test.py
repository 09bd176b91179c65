"""Tests for the directory caches."""

from __future__ import annotations

import pytest

from ldapdir.cache import LazyValue, MembershipCache, NetbiosNameCache
from ldapdir.constants import NETBIOS_CACHE_SIZE


def test_lazy_value() -> None:
    calls = []

    def compute() -> str:
        calls.append(True)
        return "value"

    lazy = LazyValue(compute)
    assert not lazy.is_computed
    assert lazy.get() == "value"
    assert lazy.get() == "value"
    assert lazy.is_computed
    assert len(calls) == 1


def test_lazy_value_retries_after_error() -> None:
    attempts = []

    def compute() -> int:
        attempts.append(True)
        if len(attempts) == 1:
            raise ValueError("first attempt fails")
        return 42

    lazy = LazyValue(compute)
    with pytest.raises(ValueError, match="first attempt"):
        lazy.get()
    assert not lazy.is_computed
    assert lazy.get() == 42
    assert len(attempts) == 2


def test_membership_cache() -> None:
    cache = MembershipCache()
    assert "Staff" not in cache
    cache.add("Staff")
    assert "staff" in cache
    assert "STAFF" in cache
    assert "Admins" not in cache


def test_netbios_name_cache() -> None:
    cache = NetbiosNameCache()
    assert cache.get("CORP") is None
    cache.store("corp", "corp.example.com")
    assert cache.get("Corp") == "corp.example.com"
    cache.clear()
    assert cache.get("CORP") is None

    for i in range(NETBIOS_CACHE_SIZE + 1):
        cache.store(f"DOMAIN{i}", f"domain{i}.example.com")
    assert cache.get("DOMAIN0") is None
    assert cache.get(f"DOMAIN{NETBIOS_CACHE_SIZE}") == (
        f"domain{NETBIOS_CACHE_SIZE}.example.com"
    )
