"""Tests for correlation id and discovery context propagation."""

import asyncio

import pytest
import structlog

from src.observability.context import (
    clear_correlation_id,
    discovery_context,
    get_correlation_id,
    set_correlation_id,
)


@pytest.fixture(autouse=True)
def reset_context():
    clear_correlation_id()
    structlog.contextvars.clear_contextvars()
    yield
    clear_correlation_id()
    structlog.contextvars.clear_contextvars()


class TestCorrelationId:
    def test_set_generates_uuid(self):
        corr_id = set_correlation_id()
        assert len(corr_id) == 36
        assert get_correlation_id() == corr_id

    def test_set_explicit(self):
        set_correlation_id("abc")
        assert get_correlation_id() == "abc"
        clear_correlation_id()
        assert get_correlation_id() is None


class TestDiscoveryContext:
    def test_binds_and_restores(self):
        with discovery_context(paper_id="p-1", user_id="u-9") as corr_id:
            assert get_correlation_id() == corr_id
            bound = structlog.contextvars.get_contextvars()
            assert bound["paper_id"] == "p-1"
            assert bound["user_id"] == "u-9"
        assert get_correlation_id() is None
        assert "paper_id" not in structlog.contextvars.get_contextvars()

    def test_reuses_enclosing_correlation_id(self):
        set_correlation_id("batch-1")
        with discovery_context(paper_id="p-1") as corr_id:
            assert corr_id == "batch-1"
            assert "user_id" not in structlog.contextvars.get_contextvars()
        assert get_correlation_id() == "batch-1"

    @pytest.mark.asyncio
    async def test_propagates_into_tasks(self):
        async def read():
            return get_correlation_id()

        with discovery_context(paper_id="p-1", corr_id="corr-7"):
            seen = await asyncio.create_task(read())
        assert seen == "corr-7"
