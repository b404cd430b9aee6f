import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Dict, List, Optional

import aiohttp
import structlog

from src.models.admission import RetryConfig
from src.models.discovery import DiscoveryConfiguration, ProviderStatus
from src.models.paper import CandidatePaper, ProviderType, SourcePaper
from src.utils.exceptions import (
    ProviderError,
    ProviderParseError,
    ProviderTimeout,
    ProviderTransportError,
)
from src.utils.hash import normalize_doi, title_key
from src.utils.retry import with_retry

logger = structlog.get_logger()


class ProviderOutcome:
    """Candidates produced by one provider call plus an optional diagnostic.

    ``error`` is set when at least one sub-strategy failed; the outcome is
    PARTIAL when others still produced a result, FAILED when none did.
    """

    __slots__ = ("candidates", "error", "strategies_run", "strategies_failed")

    def __init__(
        self,
        candidates: Optional[List[CandidatePaper]] = None,
        error: Optional[ProviderError] = None,
        strategies_run: int = 0,
        strategies_failed: int = 0,
    ):
        self.candidates = candidates or []
        self.error = error
        self.strategies_run = strategies_run
        self.strategies_failed = strategies_failed

    @property
    def status(self) -> ProviderStatus:
        if self.error is None:
            return ProviderStatus.SUCCESS
        if self.strategies_run and self.strategies_failed < self.strategies_run:
            return ProviderStatus.PARTIAL
        return ProviderStatus.FAILED

    def __repr__(self) -> str:
        return (
            f"ProviderOutcome(candidates={len(self.candidates)}, "
            f"status={self.status.value}, error={self.error!r})"
        )


class ProviderClient(ABC):
    """Abstract base class for related-paper discovery providers

    Subclasses describe their independent sub-strategies; the base class
    runs them concurrently, isolates their failures and normalizes the
    merged output. ``discover`` never raises for provider-side problems.
    """

    provider_type: ProviderType

    @property
    def name(self) -> str:
        """Provider name for logging and identification"""
        return self.provider_type.value

    @abstractmethod
    def build_strategies(
        self, source: SourcePaper, config: DiscoveryConfiguration
    ) -> Dict[str, Awaitable[List[CandidatePaper]]]:
        """Sub-strategy coroutines keyed by strategy name.

        Return an empty dict when the provider has nothing to do for this
        source (e.g. missing DOI or API key); that is not an error.
        """
        pass

    async def close(self) -> None:
        """Release network resources"""
        return None

    async def discover(
        self, source: SourcePaper, config: DiscoveryConfiguration
    ) -> ProviderOutcome:
        try:
            strategies = self.build_strategies(source, config)
        except Exception as e:
            logger.error("provider_setup_failed", provider=self.name, error=str(e))
            return ProviderOutcome(error=self._as_provider_error(e), strategies_run=0)

        if not strategies:
            logger.debug("provider_not_applicable", provider=self.name)
            return ProviderOutcome()

        names = list(strategies.keys())
        results = await asyncio.gather(*strategies.values(), return_exceptions=True)

        candidates: List[CandidatePaper] = []
        errors: List[ProviderError] = []
        for strategy, result in zip(names, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                error = self._as_provider_error(result)
                errors.append(error)
                logger.warning(
                    "provider_strategy_failed",
                    provider=self.name,
                    strategy=strategy,
                    error=str(error),
                    error_type=type(error).__name__,
                )
                continue
            candidates.extend(result)

        candidates = self.finalize(source, candidates, config)
        logger.info(
            "papers_discovered",
            provider=self.name,
            count=len(candidates),
            strategies=len(names),
            failed_strategies=len(errors),
        )
        return ProviderOutcome(
            candidates=candidates,
            error=errors[0] if errors else None,
            strategies_run=len(names),
            strategies_failed=len(errors),
        )

    def finalize(
        self,
        source: SourcePaper,
        candidates: List[CandidatePaper],
        config: DiscoveryConfiguration,
    ) -> List[CandidatePaper]:
        """Drop the source paper itself and in-provider repeats, then truncate"""
        source_doi = normalize_doi(source.doi)
        source_title = title_key(source.title)
        seen: set = set()
        kept: List[CandidatePaper] = []
        for candidate in candidates:
            doi = normalize_doi(candidate.doi)
            key = title_key(candidate.title)
            if (doi and doi == source_doi) or key == source_title:
                continue
            identity = doi or key
            if identity in seen:
                continue
            seen.add(identity)
            kept.append(candidate)
        return kept[: config.max_results_per_provider]

    def _as_provider_error(self, exc: Exception) -> ProviderError:
        if isinstance(exc, ProviderError):
            return exc
        if isinstance(exc, asyncio.TimeoutError):
            return ProviderTimeout(f"{self.name} timed out", provider=self.name)
        return ProviderParseError(
            f"{self.name} produced an unexpected response: {exc}", provider=self.name
        )


class HttpProviderClient(ProviderClient):
    """ProviderClient talking JSON over HTTP with aiohttp"""

    def __init__(
        self,
        retry_config: Optional[RetryConfig] = None,
        request_timeout: float = 30.0,
        connection_limit: int = 20,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.retry_config = retry_config or RetryConfig()
        self.request_timeout = request_timeout
        self.connection_limit = connection_limit
        self._session = session

    def default_headers(self) -> Dict[str, str]:
        return {}

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.request_timeout)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers=self.default_headers(),
                connector=aiohttp.TCPConnector(limit=self.connection_limit),
            )
        return self._session

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def request_json(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Perform one JSON request with retries on transient failures"""

        async def attempt() -> Any:
            return await self._request_once(method, url, params, json_body, headers)

        return await with_retry(self.retry_config, attempt)

    async def _request_once(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]],
        json_body: Optional[Dict[str, Any]],
        headers: Optional[Dict[str, str]],
    ) -> Any:
        session = await self._get_session()
        request_headers = {**self.default_headers(), **(headers or {})}
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        try:
            if method == "POST":
                request = session.post(
                    url, params=params, json=json_body, headers=request_headers, timeout=timeout
                )
            else:
                request = session.get(
                    url, params=params, headers=request_headers, timeout=timeout
                )
            async with request as response:
                if response.status == 429:
                    raise ProviderTransportError(
                        f"{self.name} rate limit exceeded (429)",
                        provider=self.name,
                        status=429,
                    )
                if response.status >= 500:
                    raise ProviderTransportError(
                        f"{self.name} server error: {response.status}",
                        provider=self.name,
                        status=response.status,
                    )
                if response.status != 200:
                    text = await response.text()
                    logger.error(
                        "api_error",
                        provider=self.name,
                        status=response.status,
                        body=text[:500],
                    )
                    raise ProviderTransportError(
                        f"{self.name} request failed: {response.status}",
                        provider=self.name,
                        status=response.status,
                    )
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise ProviderParseError(
                        f"{self.name} returned invalid JSON: {e}", provider=self.name
                    ) from e
        except asyncio.TimeoutError as e:
            logger.error("api_timeout", provider=self.name, url=url)
            raise ProviderTimeout(f"{self.name} request timed out", provider=self.name) from e
        except aiohttp.ClientError as e:
            raise ProviderTransportError(
                f"{self.name} connection error: {e}", provider=self.name
            ) from e
