"""Tests for the session profile cache."""

import asyncio

import pytest

from conftest import FakeUserRepo
from journeylog.schemas.profile import Profile
from journeylog.services.profile_enricher import ProfileEnricher


@pytest.mark.asyncio
async def test_cache_hit_skips_lookup(user_repo: FakeUserRepo) -> None:
    enricher = ProfileEnricher(user_repo)
    first = await enricher.resolve("alice")
    second = await enricher.resolve("alice")
    assert first == second
    assert first.username == "Alice"
    assert user_repo.calls == ["alice"]


@pytest.mark.asyncio
async def test_concurrent_misses_are_coalesced(user_repo: FakeUserRepo) -> None:
    user_repo.gate = asyncio.Event()
    enricher = ProfileEnricher(user_repo)

    waiters = [asyncio.create_task(enricher.resolve("bob")) for _ in range(5)]
    await asyncio.sleep(0)
    assert enricher.pending == 1
    user_repo.gate.set()
    results = await asyncio.gather(*waiters)

    assert user_repo.calls == ["bob"]
    assert all(r == results[0] for r in results)
    assert enricher.pending == 0


@pytest.mark.asyncio
async def test_missing_user_gets_cached_fallback(user_repo: FakeUserRepo) -> None:
    enricher = ProfileEnricher(user_repo)
    profile = await enricher.resolve("ghost")
    assert profile == Profile(user_id="ghost", username="Unknown", avatar="")
    assert profile.is_fallback
    await enricher.resolve("ghost")
    assert user_repo.calls == ["ghost"]


@pytest.mark.asyncio
async def test_store_error_gets_cached_fallback(user_repo: FakeUserRepo) -> None:
    user_repo.failing.add("alice")
    enricher = ProfileEnricher(user_repo)
    assert (await enricher.resolve("alice")).username == "Unknown"
    assert (await enricher.resolve("alice")).username == "Unknown"
    assert user_repo.calls == ["alice"]


@pytest.mark.asyncio
async def test_timeout_fallback_is_not_cached(user_repo: FakeUserRepo) -> None:
    user_repo.gate = asyncio.Event()
    enricher = ProfileEnricher(user_repo, lookup_timeout=0.01)

    assert (await enricher.resolve("carol")).username == "Unknown"
    assert enricher.cached("carol") is None

    user_repo.gate.set()
    assert (await enricher.resolve("carol")).username == "Carol"
    assert user_repo.calls == ["carol", "carol"]


@pytest.mark.asyncio
async def test_resolve_many_deduplicates(user_repo: FakeUserRepo) -> None:
    enricher = ProfileEnricher(user_repo)
    profiles = await enricher.resolve_many(["alice", "bob", "alice", "alice", "bob"])
    assert set(profiles) == {"alice", "bob"}
    assert sorted(user_repo.calls) == ["alice", "bob"]


@pytest.mark.asyncio
async def test_cancelling_one_waiter_keeps_shared_lookup(user_repo: FakeUserRepo) -> None:
    user_repo.gate = asyncio.Event()
    enricher = ProfileEnricher(user_repo)

    keep = asyncio.create_task(enricher.resolve("alice"))
    drop = asyncio.create_task(enricher.resolve("alice"))
    await asyncio.sleep(0)
    drop.cancel()
    await asyncio.gather(drop, return_exceptions=True)

    user_repo.gate.set()
    assert (await keep).username == "Alice"
    assert user_repo.cancelled == []


@pytest.mark.asyncio
async def test_cancelling_last_waiter_cancels_lookup(user_repo: FakeUserRepo) -> None:
    user_repo.gate = asyncio.Event()
    enricher = ProfileEnricher(user_repo)

    waiter = asyncio.create_task(enricher.resolve("alice"))
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter
    await asyncio.sleep(0)

    assert user_repo.cancelled == ["alice"]
    assert enricher.pending == 0
    assert enricher.cached("alice") is None


@pytest.mark.asyncio
async def test_close_cancels_lookups_and_clears_cache(user_repo: FakeUserRepo) -> None:
    enricher = ProfileEnricher(user_repo)
    await enricher.resolve("bob")

    user_repo.gate = asyncio.Event()
    waiter = asyncio.create_task(enricher.resolve("alice"))
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    await enricher.close()

    with pytest.raises(asyncio.CancelledError):
        await waiter
    assert enricher.cached("bob") is None
    assert enricher.pending == 0
