"""
Scraper Engine

Fans one SearchRequest out to the airline adapters (on pooled browser
pages) and the external fare source, then merges whatever came back
into one normalized, sorted SearchResult.

Tasks never raise into the engine: every task ends as a TaskOutcome that
either carries offers or a TaskFailure. Only a malformed request is
rejected with an exception, before anything is scheduled.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping, Optional, Protocol

import httpx

from .amadeus import AmadeusClient
from .base import AirlineAdapter
from .config import REPORTING_CURRENCY, Settings
from .errors import (
    DeadlineExceeded,
    FareTaskError,
    InvalidSearchRequest,
    NavigationTimeout,
    SourceUnavailable,
)
from .normalizer import normalize_offers, sort_records
from .pool import BrowserPool, PlaywrightPageFactory
from .registry import build_adapters
from .schema import (
    Direction,
    FailureKind,
    FareSource,
    MileageAccount,
    RawFareOffer,
    SearchRequest,
    SearchResult,
    TaskFailure,
    TaskKind,
)

logger = logging.getLogger(__name__)

CASH_MAX_ATTEMPTS = 2
# How long cancelled stragglers get to unwind and hand back their pages
CANCEL_GRACE_SECONDS = 1.0


class ExternalFareSource(Protocol):
    name: str

    async def search(self, request: SearchRequest) -> list[RawFareOffer]: ...


@dataclass
class FareTask:
    kind: TaskKind
    airline: str
    adapter: Optional[AirlineAdapter] = None
    account: Optional[MileageAccount] = None
    attempts: int = 0

    @property
    def label(self) -> str:
        return f"{self.airline or 'external'}:{self.kind.value}"

    @property
    def max_attempts(self) -> int:
        return CASH_MAX_ATTEMPTS if self.kind is TaskKind.CASH else 1


@dataclass
class TaskOutcome:
    task: FareTask
    offers: list[RawFareOffer] = field(default_factory=list)
    failure: Optional[TaskFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


class ScraperEngine:
    """
    Orchestrates one search across adapters and the external source.

    All collaborators are passed in, settings included; the engine never
    reads the environment itself and keeps no state between searches
    apart from what the pool holds.
    """

    def __init__(
        self,
        pool: BrowserPool,
        adapters: Mapping[str, AirlineAdapter],
        mileage_accounts: Optional[Mapping[str, MileageAccount]] = None,
        external_source: Optional[ExternalFareSource] = None,
        *,
        settings: Settings,
    ):
        self.pool = pool
        self.adapters = dict(adapters)
        self.mileage_accounts = dict(mileage_accounts or {})
        self.external_source = external_source
        self.settings = settings

    # -- planning -----------------------------------------------------------

    def plan(self, request: SearchRequest) -> list[FareTask]:
        """
        Validate the request and list the tasks a search would run.

        One cash task per airline (covering every leg), one miles task per
        airline with a configured mileage account, and one external-source
        task when a source is configured.
        """
        request.validate()
        if request.airlines:
            missing = [code for code in request.airlines if code not in self.adapters]
            if missing:
                raise InvalidSearchRequest(f"No adapter configured for: {', '.join(missing)}")
            codes = list(request.airlines)
        else:
            codes = [code for code in request.target_airlines if code in self.adapters]

        accounts = {**self.mileage_accounts, **request.mileage_accounts}
        tasks = [FareTask(TaskKind.CASH, code, self.adapters[code]) for code in codes]
        for code in codes:
            account = accounts.get(code)
            if account is not None and account.is_configured:
                tasks.append(FareTask(TaskKind.MILES, code, self.adapters[code], account))
        if self.external_source is not None:
            tasks.append(FareTask(TaskKind.EXTERNAL, ""))
        return tasks

    # -- running ------------------------------------------------------------

    async def search(self, request: SearchRequest) -> SearchResult:
        tasks = self.plan(request)
        started_at = datetime.now().isoformat(timespec="seconds")
        t0 = time.monotonic()
        logger.info(
            "Searching %s→%s %s%s: %d tasks on %d pages",
            request.origin, request.destination, request.depart_date,
            f" / {request.return_date}" if request.return_date else "",
            len(tasks), self.pool.size,
        )

        running = {
            asyncio.create_task(self._run(task, request), name=task.label): task
            for task in tasks
        }
        outcomes: list[TaskOutcome] = []
        if running:
            done, pending = await asyncio.wait(list(running), timeout=self.settings.search_deadline)
            if pending:
                logger.warning(
                    "Deadline of %.0fs reached, cancelling %d task(s): %s",
                    self.settings.search_deadline, len(pending),
                    ", ".join(sorted(running[t].label for t in pending)),
                )
                for t in pending:
                    t.cancel()
                await asyncio.wait(pending, timeout=CANCEL_GRACE_SECONDS)
            for t, task in running.items():
                outcomes.append(self._collect(t, task, finished=t in done))

        return self._assemble(request, outcomes, started_at, time.monotonic() - t0)

    def search_sync(self, request: SearchRequest) -> SearchResult:
        """Run search() from synchronous code (no event loop running)."""
        return asyncio.run(self.search(request))

    def _collect(self, t: asyncio.Task, task: FareTask, finished: bool) -> TaskOutcome:
        if not finished or t.cancelled():
            e = DeadlineExceeded(
                f"still running after the {self.settings.search_deadline:.0f}s search deadline", task.airline
            )
            return TaskOutcome(task, failure=self._failure(task, e.kind, e.message))
        if t.exception() is not None:
            return TaskOutcome(task, failure=self._failure(task, FailureKind.UNEXPECTED, repr(t.exception())))
        return t.result()

    async def _run(self, task: FareTask, request: SearchRequest) -> TaskOutcome:
        logger.info("[%s] started", task.label)
        while True:
            task.attempts += 1
            try:
                if task.kind is TaskKind.EXTERNAL:
                    offers = await self._run_external(request)
                else:
                    offers = await self._run_browser(task, request)
            except FareTaskError as e:
                if e.retryable and task.attempts < task.max_attempts:
                    logger.warning("[%s] %s, retrying (attempt %d/%d)",
                                   task.label, e.message, task.attempts + 1, task.max_attempts)
                    continue
                logger.warning("[%s] failed: %s (%s)", task.label, e.message, e.kind.value)
                return TaskOutcome(task, failure=self._failure(task, e.kind, e.message))
            except Exception as e:
                logger.exception("[%s] unexpected error", task.label)
                return TaskOutcome(task, failure=self._failure(task, FailureKind.UNEXPECTED, f"{type(e).__name__}: {e}"))

            logger.info("[%s] finished with %d offers", task.label, len(offers))
            return TaskOutcome(task, offers=offers)

    async def _run_browser(self, task: FareTask, request: SearchRequest) -> list[RawFareOffer]:
        if task.kind is TaskKind.MILES and not task.adapter.supports_miles:
            raise SourceUnavailable(f"{task.adapter.name or task.airline} redemption search is not available", task.airline)
        timeout = self.settings.task_timeout
        async with self.pool.acquire() as scoped:
            try:
                return await asyncio.wait_for(self._search_legs(task, scoped.page, request), timeout=timeout)
            except asyncio.TimeoutError:
                scoped.mark_unhealthy()
                raise NavigationTimeout(f"no result within {timeout:.0f}s", task.airline)

    async def _search_legs(self, task: FareTask, page, request: SearchRequest) -> list[RawFareOffer]:
        offers = []
        for leg in request.legs():
            if task.kind is TaskKind.CASH:
                found = await task.adapter.search_cash(
                    page, leg.origin, leg.destination, leg.date, request.cabin, request.adults,
                )
            else:
                found = await task.adapter.search_miles(
                    page, leg.origin, leg.destination, leg.date, request.cabin, task.account, request.adults,
                )
            offers.extend(
                offer.tagged(airline=task.airline, direction=leg.direction, depart_date=leg.date)
                for offer in found
            )
        return offers

    async def _run_external(self, request: SearchRequest) -> list[RawFareOffer]:
        source = self.external_source
        timeout = self.settings.task_timeout
        try:
            offers = await asyncio.wait_for(source.search(request), timeout=timeout)
        except asyncio.TimeoutError:
            raise SourceUnavailable(f"{source.name} did not answer within {timeout:.0f}s")
        return [offer.tagged(source=FareSource.EXTERNAL_API) for offer in offers]

    def _failure(self, task: FareTask, kind: FailureKind, reason: str) -> TaskFailure:
        if task.kind is TaskKind.EXTERNAL and self.external_source is not None:
            reason = f"{self.external_source.name}: {reason}"
        return TaskFailure(
            airline=task.airline,
            task=task.kind,
            kind=kind,
            reason=reason,
            attempts=max(task.attempts, 1),
        )

    # -- merging ------------------------------------------------------------

    def _assemble(
        self,
        request: SearchRequest,
        outcomes: list[TaskOutcome],
        started_at: str,
        elapsed: float,
    ) -> SearchResult:
        result = SearchResult(request=request, started_at=started_at, elapsed_seconds=elapsed)
        offers: list[RawFareOffer] = []
        for outcome in outcomes:
            if outcome.ok:
                result.succeeded.append(outcome.task.label)
                offers.extend(outcome.offers)
            else:
                result.failures.append(outcome.failure)

        records, warnings = normalize_offers(offers, self.settings, fetched_at=datetime.now().isoformat(timespec="seconds"))
        rate = self.settings.miles_value_rate
        result.outbound = sort_records((r for r in records if r.direction is Direction.OUTBOUND), rate)
        result.inbound = sort_records((r for r in records if r.direction is Direction.INBOUND), rate)
        result.warnings = warnings

        logger.info(
            "Search finished in %.1fs: %d outbound, %d inbound, %d failed task(s)",
            elapsed, len(result.outbound), len(result.inbound), len(result.failures),
        )
        return result


async def run_search(
    request: SearchRequest,
    settings: Settings,
    adapters: Optional[Mapping[str, AirlineAdapter]] = None,
) -> SearchResult:
    """
    Wire up a real browser pool, the airline adapters and (when
    configured) Amadeus, run one search and tear everything down.
    """
    request.validate()
    factory = PlaywrightPageFactory(headless=settings.browser_headless)
    async with httpx.AsyncClient() as http_client:
        external = None
        if settings.amadeus_configured:
            external = AmadeusClient(
                settings.amadeus_client_id,
                settings.amadeus_client_secret,
                production=settings.amadeus_production,
                http_client=http_client,
                timeout=settings.amadeus_timeout,
                currency=REPORTING_CURRENCY,
            )
        async with BrowserPool(factory, settings.browser_max_pages, settings.pool_acquire_timeout) as pool:
            engine = ScraperEngine(
                pool,
                adapters if adapters is not None else build_adapters(request.airlines or None),
                mileage_accounts=settings.mileage_accounts(),
                external_source=external,
                settings=settings,
            )
            return await engine.search(request)
