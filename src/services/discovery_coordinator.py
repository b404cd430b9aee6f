"""Fan-out of one discovery request across providers.

Each enabled provider is admission-checked, then called as its own task on
a bounded worker pool. The coordinator waits for all tasks up to the
configured deadline, cancels stragglers (reported as timeouts), and merges
whatever completed: score, deduplicate, filter, sort, truncate.
"""

import asyncio
import time
from typing import Dict, List, Optional, Set, Tuple

import structlog

from src.models.discovery import (
    DiscoveryConfiguration,
    DiscoveryResult,
    DiscoveryStatus,
    ProviderReport,
    ProviderStatus,
)
from src.models.paper import CandidatePaper, ProviderType, SourcePaper
from src.observability.metrics import DiscoveryMetrics
from src.services.admission_controller import AdmissionController, AdmissionRegistry
from src.services.dedup_service import Deduplicator
from src.services.providers.base import ProviderClient, ProviderOutcome
from src.services.relevance_scorer import RelevanceScorer
from src.utils.exceptions import ProviderError, ProviderRateLimited
from src.utils.hash import title_key

logger = structlog.get_logger()

_CallResult = Tuple[Optional[ProviderOutcome], Optional[ProviderRateLimited], float]


def _elapsed_ms(started: float) -> int:
    return max(0, int((time.monotonic() - started) * 1000))


def _sort_key(candidate: CandidatePaper) -> Tuple[float, float, int, str]:
    return (
        -(candidate.relevance_score or 0.0),
        -(candidate.confidence_score or 0.0),
        -candidate.provider.trust_rank,
        title_key(candidate.title),
    )


class DiscoveryCoordinator:
    """Admission-gated, deadline-bounded parallel provider execution.

    Args:
        providers: One client per provider variant
        admission: Per-provider admission controllers
        scorer: Relevance scorer (fills scores providers left unset)
        deduplicator: Candidate merger
        metrics: Metrics sink
        max_concurrency: Worker pool size shared by all requests
    """

    def __init__(
        self,
        providers: Dict[ProviderType, ProviderClient],
        admission: AdmissionRegistry,
        scorer: Optional[RelevanceScorer] = None,
        deduplicator: Optional[Deduplicator] = None,
        metrics: Optional[DiscoveryMetrics] = None,
        max_concurrency: int = 8,
    ):
        self.providers = providers
        self.admission = admission
        self.scorer = scorer or RelevanceScorer()
        self.deduplicator = deduplicator or Deduplicator()
        self.metrics = metrics
        self.max_concurrency = max_concurrency
        self._worker_slots = asyncio.Semaphore(max_concurrency)

    async def discover(
        self, source: SourcePaper, config: DiscoveryConfiguration
    ) -> DiscoveryResult:
        if source is None:
            raise ValueError("source paper is required")
        if config is None:
            raise ValueError("discovery configuration is required")

        started = time.monotonic()
        deadline = started + config.timeout_seconds
        fingerprint = config.fingerprint(source.paper_id)
        enabled = config.enabled_providers()

        logger.info(
            "discovery_started",
            providers=[p.value for p in enabled],
            timeout_seconds=config.timeout_seconds,
        )

        reports: Dict[ProviderType, ProviderReport] = {}
        tasks: Dict["asyncio.Task[_CallResult]", ProviderType] = {}
        # Providers whose call got a worker slot and actually began
        started_calls: Set[ProviderType] = set()

        for provider_type in enabled:
            client = self.providers.get(provider_type)
            if client is None:
                reports[provider_type] = self._skipped(
                    provider_type, "ProviderUnavailable", "provider not configured"
                )
                continue

            controller = self.admission.get(provider_type)
            if not config.wait_for_admission:
                reason = controller.check()
                if reason is not None:
                    reports[provider_type] = self._skipped(
                        provider_type, ProviderRateLimited.__name__, reason
                    )
                    continue

            task = asyncio.create_task(
                self._run_provider(
                    provider_type, client, controller, source, config, deadline, started_calls
                ),
                name=f"discover-{provider_type.value}",
            )
            tasks[task] = provider_type

        candidates: List[CandidatePaper] = []
        if tasks:
            remaining = max(0.0, deadline - time.monotonic())
            done, pending = await asyncio.wait(tasks.keys(), timeout=remaining)

            for task in pending:
                # Abandon, never wait: the deadline has passed
                task.cancel()
                provider_type = tasks[task]
                controller = self.admission.get(provider_type)
                queued = provider_type not in started_calls
                if queued:
                    controller.release_probe()
                else:
                    controller.record_failure()
                reports[provider_type] = self._timed_out(provider_type, config, started, queued)

            for task in done:
                provider_type = tasks[task]
                report, produced = self._collect(provider_type, task, started)
                reports[provider_type] = report
                candidates.extend(produced)

        ordered_reports = [reports[p] for p in enabled if p in reports]
        for report in ordered_reports:
            self._publish(report)

        elapsed_ms = _elapsed_ms(started)
        if not any(r.status.contributed for r in ordered_reports):
            result = DiscoveryResult.failed(source, fingerprint, ordered_reports, elapsed_ms)
        else:
            result = DiscoveryResult(
                source_paper_id=source.paper_id,
                source_title=source.title,
                status=(
                    DiscoveryStatus.SUCCESS
                    if all(r.status == ProviderStatus.SUCCESS for r in ordered_reports)
                    else DiscoveryStatus.PARTIAL_SUCCESS
                ),
                candidates=self._assemble(source, config, candidates),
                provider_reports=ordered_reports,
                elapsed_ms=elapsed_ms,
                config_fingerprint=fingerprint,
            )

        logger.info(
            "discovery_completed",
            status=result.status.value,
            candidates=len(result.candidates),
            raw_candidates=len(candidates),
            elapsed_ms=elapsed_ms,
            providers={r.provider.value: r.status.value for r in ordered_reports},
        )
        return result

    async def _run_provider(
        self,
        provider_type: ProviderType,
        client: ProviderClient,
        controller: AdmissionController,
        source: SourcePaper,
        config: DiscoveryConfiguration,
        deadline: float,
        started_calls: Set[ProviderType],
    ) -> _CallResult:
        if config.wait_for_admission:
            try:
                await controller.acquire(timeout=max(0.0, deadline - time.monotonic()))
            except ProviderRateLimited as e:
                return None, e, 0.0

        async with self._worker_slots:
            started_calls.add(provider_type)
            if self.metrics:
                self.metrics.active_provider_calls.inc()
            call_started = time.monotonic()
            try:
                outcome = await client.discover(source, config)
            finally:
                if self.metrics:
                    self.metrics.active_provider_calls.dec()
            return outcome, None, time.monotonic() - call_started

    def _collect(
        self,
        provider_type: ProviderType,
        task: "asyncio.Task[_CallResult]",
        started: float,
    ) -> Tuple[ProviderReport, List[CandidatePaper]]:
        controller = self.admission.get(provider_type)
        elapsed_ms = _elapsed_ms(started)

        if task.cancelled():
            controller.record_failure()
            return (
                ProviderReport(
                    provider=provider_type,
                    status=ProviderStatus.TIMEOUT,
                    error_type="ProviderTimeout",
                    error_message="provider task cancelled",
                    elapsed_ms=elapsed_ms,
                ),
                [],
            )

        exc = task.exception()
        if exc is not None:
            # ProviderClient.discover must not raise; count it as a failure
            controller.record_failure()
            logger.error(
                "provider_call_failed",
                provider=provider_type.value,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return (
                ProviderReport(
                    provider=provider_type,
                    status=ProviderStatus.FAILED,
                    error_type=type(exc).__name__,
                    error_message=str(exc),
                    elapsed_ms=elapsed_ms,
                ),
                [],
            )

        outcome, denied, duration = task.result()
        if denied is not None or outcome is None:
            return (
                self._skipped(
                    provider_type,
                    ProviderRateLimited.__name__,
                    denied.reason if denied is not None else "denied",
                ),
                [],
            )

        status = outcome.status
        if status == ProviderStatus.FAILED:
            controller.record_failure()
        else:
            controller.record_success()

        error: Optional[ProviderError] = outcome.error
        if error is not None:
            logger.warning(
                "provider_call_degraded" if status == ProviderStatus.PARTIAL else "provider_call_failed",
                provider=provider_type.value,
                error=str(error),
                error_type=type(error).__name__,
                failed_strategies=outcome.strategies_failed,
            )
        return (
            ProviderReport(
                provider=provider_type,
                status=status,
                candidate_count=len(outcome.candidates),
                error_type=type(error).__name__ if error else None,
                error_message=str(error) if error else None,
                elapsed_ms=int(duration * 1000),
            ),
            outcome.candidates,
        )

    def _assemble(
        self,
        source: SourcePaper,
        config: DiscoveryConfiguration,
        candidates: List[CandidatePaper],
    ) -> List[CandidatePaper]:
        scored = self.scorer.score_all(candidates, source, config.scoring_weights)
        unique, _ = self.deduplicator.deduplicate(scored)
        kept = [
            c
            for c in unique
            if (c.relevance_score or 0.0) >= config.min_relevance_score
        ]
        kept.sort(key=_sort_key)
        return kept[: config.max_total_results]

    def _skipped(
        self, provider_type: ProviderType, error_type: str, reason: str
    ) -> ProviderReport:
        logger.info("provider_skipped", provider=provider_type.value, reason=reason)
        if self.metrics and error_type == ProviderRateLimited.__name__:
            self.metrics.admission_denied(provider_type.value, reason)
        return ProviderReport(
            provider=provider_type,
            status=ProviderStatus.SKIPPED,
            error_type=error_type,
            error_message=reason,
        )

    def _timed_out(
        self,
        provider_type: ProviderType,
        config: DiscoveryConfiguration,
        started: float,
        queued: bool = False,
    ) -> ProviderReport:
        logger.warning(
            "provider_timeout",
            provider=provider_type.value,
            timeout_seconds=config.timeout_seconds,
            queued=queued,
        )
        message = (
            f"no worker slot within {config.timeout_seconds}s"
            if queued
            else f"no response within {config.timeout_seconds}s"
        )
        return ProviderReport(
            provider=provider_type,
            status=ProviderStatus.TIMEOUT,
            error_type="ProviderTimeout",
            error_message=message,
            elapsed_ms=_elapsed_ms(started),
        )

    def _publish(self, report: ProviderReport) -> None:
        if not self.metrics:
            return
        self.metrics.provider_call(
            report.provider.value, report.status.value, report.elapsed_ms / 1000.0
        )
        controller = self.admission.get(report.provider)
        self.metrics.set_circuit_state(report.provider.value, controller.circuit_state.value)
