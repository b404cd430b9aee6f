"""Tests for the two-tier discovery cache."""

import asyncio

import pytest
from pydantic import ValidationError

from src.models.cache import CacheConfig
from src.models.discovery import DiscoveryResult, DiscoveryStatus
from src.services.cache_service import DiscoveryCache
from src.services.durable_store import DurableStore
from src.utils.exceptions import CacheReadError, CacheWriteError


class MemoryStore(DurableStore):
    """Dict-backed durable tier with switchable failures"""

    def __init__(self):
        self.data = {}
        self.fail_reads = False
        self.fail_writes = False

    def get(self, key):
        if self.fail_reads:
            raise CacheReadError("disk unavailable")
        return self.data.get(key)

    def put(self, key, payload, expires_at):
        if self.fail_writes:
            raise CacheWriteError("disk full")
        self.data[key] = (payload, expires_at)

    def delete(self, key):
        return self.data.pop(key, None) is not None

    def delete_prefix(self, prefix):
        keys = [k for k in self.data if k.startswith(prefix)]
        for key in keys:
            del self.data[key]
        return len(keys)


def _result(status=DiscoveryStatus.SUCCESS, paper_id="paper-1"):
    return DiscoveryResult(
        source_paper_id=paper_id,
        source_title="Deep Learning for X-ray Diagnosis",
        status=status,
        config_fingerprint="fp",
    )


@pytest.fixture
def durable():
    return MemoryStore()


@pytest.fixture
def cache(durable, metrics, clock):
    return DiscoveryCache(
        CacheConfig(ttl_seconds=100, partial_ttl_seconds=10, max_entries=5),
        durable=durable,
        metrics=metrics,
        clock=clock,
    )


class TestLookup:
    def test_miss_then_hit(self, cache, metrics):
        result = _result()
        assert cache.get("paper-1", "fp") is None
        assert cache.store("paper-1", "fp", result)
        hit = cache.get("paper-1", "fp")
        assert hit == result
        assert hit is not result
        stats = cache.stats()
        assert stats.misses == 1
        assert stats.memory_hits == 1
        assert metrics.registry.get_sample_value("discovery_cache_misses_total") == 1
        assert (
            metrics.registry.get_sample_value("discovery_cache_hits_total", {"tier": "memory"})
            == 1
        )

    def test_fingerprint_is_part_of_key(self, cache):
        cache.store("paper-1", "fp", _result())
        assert cache.get("paper-1", "other-fp") is None

    def test_entry_expires(self, cache, clock):
        cache.store("paper-1", "fp", _result())
        clock.advance(99)
        assert cache.get("paper-1", "fp") is not None
        clock.advance(1)
        assert cache.get("paper-1", "fp") is None
        assert cache.stats().expired_count == 1

    def test_durable_hit_is_promoted(self, durable, metrics, clock):
        config = CacheConfig(ttl_seconds=100)
        writer = DiscoveryCache(config, durable=durable, clock=clock)
        writer.store("paper-1", "fp", _result())

        reader = DiscoveryCache(config, durable=durable, metrics=metrics, clock=clock)
        assert reader.entry_count == 0
        assert reader.get("paper-1", "fp").source_paper_id == "paper-1"
        assert reader.entry_count == 1
        reader.get("paper-1", "fp")
        stats = reader.stats()
        assert stats.durable_hits == 1
        assert stats.memory_hits == 1

    def test_expired_durable_entry_is_deleted(self, durable, clock):
        config = CacheConfig(ttl_seconds=100)
        DiscoveryCache(config, durable=durable, clock=clock).store("paper-1", "fp", _result())
        clock.advance(200)
        reader = DiscoveryCache(config, durable=durable, clock=clock)
        assert reader.get("paper-1", "fp") is None
        assert durable.data == {}

    def test_durable_read_error_is_a_miss(self, cache, durable, metrics):
        durable.fail_reads = True
        assert cache.get("paper-1", "fp") is None
        stats = cache.stats()
        assert stats.read_errors == 1
        assert stats.misses == 1
        assert (
            metrics.registry.get_sample_value("discovery_cache_errors_total", {"operation": "read"})
            == 1
        )

    def test_undecodable_durable_payload_is_a_miss(self, cache, durable, clock):
        from src.utils.hash import cache_key

        durable.data[cache_key("paper-1", "fp")] = (b"{not json", clock() + 50)
        assert cache.get("paper-1", "fp") is None
        assert cache.stats().read_errors == 1

    def test_mutating_a_hit_leaves_cache_intact(self, cache, make_candidate):
        paper = make_candidate(
            relevance_score=0.6, confidence_score=0.9, metadata={"rank": 1}
        )
        stored = DiscoveryResult(
            source_paper_id="paper-1",
            source_title="Deep Learning for X-ray Diagnosis",
            status=DiscoveryStatus.SUCCESS,
            candidates=[paper],
            config_fingerprint="fp",
        )
        cache.store("paper-1", "fp", stored)
        stored.candidates.clear()

        first = cache.get("paper-1", "fp")
        first.candidates[0].metadata["rank"] = 99
        first.candidates.append(paper)
        with pytest.raises(ValidationError):
            first.candidates[0].relevance_score = 7.5

        second = cache.get("paper-1", "fp")
        assert len(second.candidates) == 1
        assert second.candidates[0].relevance_score == 0.6
        assert second.candidates[0].metadata == {"rank": 1}

    def test_durable_hit_is_isolated_from_memory_tier(self, durable, clock, make_candidate):
        config = CacheConfig(ttl_seconds=100)
        paper = make_candidate(relevance_score=0.6, confidence_score=0.9)
        DiscoveryCache(config, durable=durable, clock=clock).store(
            "paper-1",
            "fp",
            DiscoveryResult(
                source_paper_id="paper-1",
                source_title="Deep Learning for X-ray Diagnosis",
                status=DiscoveryStatus.SUCCESS,
                candidates=[paper],
                config_fingerprint="fp",
            ),
        )
        reader = DiscoveryCache(config, durable=durable, clock=clock)
        reader.get("paper-1", "fp").candidates.clear()
        assert len(reader.get("paper-1", "fp").candidates) == 1

    def test_disabled_cache(self, durable):
        cache = DiscoveryCache(CacheConfig(enabled=False), durable=durable)
        assert cache.store("paper-1", "fp", _result()) is False
        assert cache.get("paper-1", "fp") is None
        assert cache.durable is None


class TestStore:
    def test_failed_results_not_cached(self, cache, durable):
        assert cache.store("paper-1", "fp", _result(DiscoveryStatus.FAILED)) is False
        assert cache.entry_count == 0
        assert durable.data == {}

    def test_partial_results_use_shorter_ttl(self, cache, clock):
        cache.store("paper-1", "fp", _result(DiscoveryStatus.PARTIAL_SUCCESS))
        clock.advance(10)
        assert cache.get("paper-1", "fp") is None

    def test_ttl_override(self, cache, clock):
        cache.store("paper-1", "fp", _result(), ttl=5)
        clock.advance(5)
        assert cache.get("paper-1", "fp") is None

    def test_ttl_for(self, cache):
        assert cache.ttl_for(_result()) == 100
        assert cache.ttl_for(_result(DiscoveryStatus.PARTIAL_SUCCESS)) == 10
        assert cache.ttl_for(_result(DiscoveryStatus.FAILED)) is None

    def test_write_error_keeps_memory_entry(self, cache, durable):
        durable.fail_writes = True
        assert cache.store("paper-1", "fp", _result()) is True
        assert cache.get("paper-1", "fp") is not None
        assert cache.stats().write_errors == 1

    def test_writes_both_tiers(self, cache, durable, clock):
        cache.store("paper-1", "fp", _result())
        ((payload, expires_at),) = durable.data.values()
        assert expires_at == clock() + 100
        assert DiscoveryResult.model_validate_json(payload).source_paper_id == "paper-1"


class TestInvalidation:
    def test_invalidate_single_configuration(self, cache, durable):
        cache.store("paper-1", "fp", _result())
        cache.store("paper-1", "fp2", _result())
        assert cache.invalidate("paper-1", "fp") is True
        assert cache.get("paper-1", "fp") is None
        assert cache.get("paper-1", "fp2") is not None
        assert len(durable.data) == 1

    def test_invalidate_all_configurations(self, cache, durable):
        cache.store("paper-1", "fp", _result())
        cache.store("paper-1", "fp2", _result())
        cache.store("paper-2", "fp", _result(paper_id="paper-2"))
        assert cache.invalidate_all("paper-1") == 2
        assert cache.get("paper-1", "fp") is None
        assert cache.get("paper-1", "fp2") is None
        assert cache.get("paper-2", "fp") is not None
        assert cache.stats().invalidation_count == 2

    def test_invalidate_unknown(self, cache):
        assert cache.invalidate("missing", "fp") is False


class TestMaintenance:
    def test_sweep_expired(self, cache, clock):
        cache.store("paper-1", "fp", _result())
        cache.store("paper-2", "fp", _result(DiscoveryStatus.PARTIAL_SUCCESS, "paper-2"))
        clock.advance(50)
        assert cache.sweep_expired() == 1
        assert cache.entry_count == 1

    def test_evict_to_capacity_keeps_hot_entries(self, cache, clock):
        for i in range(6):
            cache.store(f"paper-{i}", "fp", _result(paper_id=f"paper-{i}"))
        for _ in range(5):
            cache.get("paper-0", "fp")
        evicted = cache.evict_to_capacity()
        assert evicted == 2
        assert cache.entry_count == 4
        assert cache.get("paper-0", "fp") is not None
        assert cache.stats().eviction_count == 2

    def test_under_capacity_evicts_nothing(self, cache):
        cache.store("paper-1", "fp", _result())
        assert cache.evict_to_capacity() == 0

    @pytest.mark.asyncio
    async def test_eviction_scheduled_on_running_loop(self, cache):
        for i in range(6):
            cache.store(f"paper-{i}", "fp", _result(paper_id=f"paper-{i}"))
        assert cache.entry_count == 6
        await asyncio.sleep(0)
        assert cache.entry_count == 4

    def test_eviction_deferred_without_loop(self, cache):
        for i in range(6):
            cache.store(f"paper-{i}", "fp", _result(paper_id=f"paper-{i}"))
        assert cache.entry_count == 6
        assert cache.evict_to_capacity() == 2

    def test_clear(self, cache, metrics):
        cache.store("paper-1", "fp", _result())
        cache.clear()
        assert cache.entry_count == 0
        assert metrics.registry.get_sample_value("discovery_cache_entries") == 0


class TestStats:
    def test_stats_snapshot(self, cache):
        cache.store("paper-1", "fp", _result())
        cache.get("paper-1", "fp")
        cache.get("paper-2", "fp")
        stats = cache.stats()
        assert stats.stores == 1
        assert stats.entry_count == 1
        assert stats.hit_rate == pytest.approx(0.5)
        assert stats.memory_estimate_bytes > 0
        assert 0.0 < stats.average_effectiveness <= 1.0
