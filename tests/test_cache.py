"""
tests/test_cache.py -- Unit tests for cache/store.py.

Time is driven by the FakeClock from conftest, so expiry is tested without
sleeping.
"""

from __future__ import annotations


def test_set_get_roundtrip(cache):
    cache.set("users:list:1:10", {"data": [{"id": "a"}], "meta": {"total": 1}})
    assert cache.get("users:list:1:10") == {"data": [{"id": "a"}], "meta": {"total": 1}}
    assert cache.exists("users:list:1:10")


def test_missing_key_reads_as_none(cache):
    assert cache.get("nope") is None
    assert not cache.exists("nope")
    assert cache.ttl("nope") == -2


def test_ttl_expiry(cache, clock):
    cache.set("k", [1, 2, 3], ttl=300)
    assert cache.ttl("k") == 300
    clock.advance(299)
    assert cache.get("k") == [1, 2, 3]
    clock.advance(1)
    assert cache.get("k") is None
    assert not cache.exists("k")


def test_key_without_ttl_never_expires(cache, clock):
    cache.set("k", "v")
    clock.advance(10**9)
    assert cache.get("k") == "v"
    assert cache.ttl("k") == -1


def test_delete(cache):
    cache.set("k", 1)
    assert cache.delete("k") is True
    assert cache.delete("k") is False
    assert cache.get("k") is None


def test_delete_pattern_only_touches_matching_keys(cache):
    cache.set("users:list:1:10", 1)
    cache.set("users:list:2:10", 2)
    cache.set("users:profile:1", 3)

    assert cache.delete_pattern("users:list:*") == 2
    assert cache.get("users:list:1:10") is None
    assert cache.get("users:profile:1") == 3


def test_expire_and_pttl(cache, clock):
    cache.set("k", 1)
    assert cache.expire("k", 10) is True
    assert cache.pttl("k") == 10_000
    clock.advance(2.5)
    assert cache.pttl("k") == 7_500
    assert cache.ttl("k") == 8
    assert cache.expire("missing", 10) is False


def test_sorted_set_operations(cache):
    for score in (1, 2, 3, 4):
        cache.zadd("z", score, f"m{score}")
    assert cache.zcard("z") == 4

    assert cache.zremrangebyscore("z", 0, 2) == 2
    assert cache.zcard("z") == 2

    # Re-adding a member updates its score instead of duplicating it
    cache.zadd("z", 10, "m3")
    assert cache.zcard("z") == 2


def test_sorted_set_expires_with_its_key(cache, clock):
    cache.zadd("z", 1, "a")
    cache.expire("z", 60)
    clock.advance(61)
    assert cache.zcard("z") == 0
    assert cache.zremrangebyscore("z", 0, 100) == 0


def test_purge_expired(cache, clock):
    cache.set("short", 1, ttl=10)
    cache.set("long", 2, ttl=1000)
    cache.zadd("z", 1, "a")
    cache.expire("z", 5)

    clock.advance(20)
    assert cache.purge_expired() == 2
    assert cache.get("long") == 2
