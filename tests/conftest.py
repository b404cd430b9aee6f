"""Shared fixtures for discovery engine tests."""

import asyncio
import shutil
import tempfile
from pathlib import Path
from typing import Awaitable, Dict, List, Optional

import pytest
from prometheus_client import CollectorRegistry

from src.models.discovery import DiscoveryConfiguration
from src.models.paper import (
    CandidatePaper,
    ProviderType,
    RelationshipType,
    SourcePaper,
)
from src.observability.metrics import DiscoveryMetrics
from src.services.providers.base import ProviderClient


class FakeClock:
    """Manually advanced time source"""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubProvider(ProviderClient):
    """ProviderClient returning canned candidates, errors or delays"""

    def __init__(
        self,
        provider_type: ProviderType,
        candidates: Optional[List[CandidatePaper]] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self.provider_type = provider_type
        self.candidates = candidates or []
        self.error = error
        self.delay = delay
        self.calls = 0
        self.closed = False

    def build_strategies(
        self, source: SourcePaper, config: DiscoveryConfiguration
    ) -> Dict[str, Awaitable[List[CandidatePaper]]]:
        self.calls += 1
        return {"stub": self._produce()}

    async def _produce(self) -> List[CandidatePaper]:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return [c.model_copy(deep=True) for c in self.candidates]

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def metrics():
    """Metrics bound to a private registry"""
    return DiscoveryMetrics(CollectorRegistry())


@pytest.fixture
def temp_cache_dir():
    temp_dir = Path(tempfile.mkdtemp())
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def source_paper():
    return SourcePaper(
        paper_id="paper-1",
        title="Deep Learning for X-ray Diagnosis",
        doi="10.1/abc",
        authors=["Alice Smith", "Bob Jones"],
        venue="Radiology",
        year=2022,
        abstract="Convolutional networks detect pneumonia in chest radiographs.",
        topics=["deep learning", "radiology"],
    )


@pytest.fixture
def make_candidate():
    """Factory for CandidatePaper with sensible defaults"""

    def _make(
        title: str = "Chest Radiograph Classification with Transformers",
        provider: ProviderType = ProviderType.CITATION_NETWORK,
        relationship: RelationshipType = RelationshipType.CITES,
        **overrides,
    ) -> CandidatePaper:
        return CandidatePaper(
            title=title, provider=provider, relationship=relationship, **overrides
        )

    return _make


@pytest.fixture
def stub_provider():
    """Factory for StubProvider"""
    return StubProvider
