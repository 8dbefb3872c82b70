"""
Tests for flightscan.engine: planning, fan-out, retries, deadlines and merging.

Uses scripted adapters on a stub page pool; no browser needed.
"""

from datetime import date

import pytest

from flightscan.airlines.china_airlines import ChinaAirlinesAdapter
from flightscan.engine import ScraperEngine
from flightscan.errors import (
    AuthenticationFailed,
    InvalidSearchRequest,
    LayoutChanged,
    NavigationTimeout,
    RateLimited,
)
from flightscan.pool import BrowserPool
from flightscan.schema import (
    Direction,
    FailureKind,
    FareSource,
    MileageAccount,
    SearchRequest,
    TaskKind,
)
from stubs import (
    ConcurrencyProbe,
    ScriptedAdapter,
    StubExternalSource,
    StubPageFactory,
    StuckFormPage,
    cash_offer,
    miles_offer,
)

DEPART = date(2026, 3, 15)
RETURN = date(2026, 3, 20)


def make_request(airlines=("CI",), **fields):
    return SearchRequest(origin="TPE", destination="NRT", depart_date=DEPART, airlines=airlines, **fields)


def account(code):
    return MileageAccount(airline=code, member_id=f"{code}123", password="secret")


def make_engine(pool, adapters, settings, accounts=None, external=None):
    return ScraperEngine(
        pool,
        {adapter.code: adapter for adapter in adapters},
        mileage_accounts=accounts,
        external_source=external,
        settings=settings,
    )


class TestPlan:
    def test_settings_must_be_passed(self, pool):
        with pytest.raises(TypeError):
            ScraperEngine(pool, {"CI": ScriptedAdapter("CI")})

    def test_same_origin_and_destination_rejected(self, pool, settings):
        adapter = ScriptedAdapter("CI")
        engine = make_engine(pool, [adapter], settings)
        request = SearchRequest(origin="TPE", destination="TPE", depart_date=DEPART)
        with pytest.raises(InvalidSearchRequest, match="both TPE"):
            engine.plan(request)

    @pytest.mark.asyncio
    async def test_invalid_request_schedules_nothing(self, pool, settings):
        adapter = ScriptedAdapter("CI")
        engine = make_engine(pool, [adapter], settings)
        request = SearchRequest(origin="TPE", destination="NRT", depart_date=DEPART, return_date=date(2026, 3, 1))
        with pytest.raises(InvalidSearchRequest, match="before depart_date"):
            await engine.search(request)
        assert adapter.cash_calls == []
        assert pool.spawned == 0

    def test_requested_airline_without_adapter_rejected(self, pool, settings):
        engine = make_engine(pool, [ScriptedAdapter("CI")], settings)
        with pytest.raises(InvalidSearchRequest, match="No adapter configured for: BR"):
            engine.plan(make_request(("CI", "BR")))

    def test_cash_and_miles_tasks(self, pool, settings):
        adapters = [ScriptedAdapter(code, supports_miles=True) for code in ("CI", "BR", "JX")]
        engine = make_engine(pool, adapters, settings, accounts={"CI": account("CI"), "BR": account("BR")})
        tasks = engine.plan(make_request(("CI", "BR", "JX")))
        kinds = [(t.airline, t.kind) for t in tasks]
        assert kinds.count(("CI", TaskKind.CASH)) == 1
        assert sum(1 for t in tasks if t.kind is TaskKind.CASH) == 3
        assert sorted(t.airline for t in tasks if t.kind is TaskKind.MILES) == ["BR", "CI"]

    @pytest.mark.asyncio
    async def test_miles_task_without_redemption_support(self, pool, settings):
        adapter = ScriptedAdapter("BR", supports_miles=False)
        engine = make_engine(pool, [adapter], settings, accounts={"BR": account("BR")})
        assert [t.kind for t in engine.plan(make_request(("BR",)))] == [TaskKind.CASH, TaskKind.MILES]

        result = await engine.search(make_request(("BR",)))
        assert [(f.task, f.kind) for f in result.failures] == [(TaskKind.MILES, FailureKind.SOURCE_UNAVAILABLE)]
        assert adapter.miles_calls == []
        assert len(result.cash_fares()) == 1

    def test_incomplete_account_ignored(self, pool, settings):
        adapter = ScriptedAdapter("CI", supports_miles=True)
        accounts = {"CI": MileageAccount(airline="CI", member_id="CI123", password="")}
        engine = make_engine(pool, [adapter], settings, accounts=accounts)
        assert [t.kind for t in engine.plan(make_request())] == [TaskKind.CASH]

    def test_request_accounts_override_engine_accounts(self, pool, settings):
        adapter = ScriptedAdapter("CI", supports_miles=True)
        engine = make_engine(pool, [adapter], settings)
        tasks = engine.plan(make_request(mileage_accounts={"CI": account("CI")}))
        assert [t.kind for t in tasks] == [TaskKind.CASH, TaskKind.MILES]

    def test_external_task_added_when_source_configured(self, pool, settings):
        engine = make_engine(pool, [ScriptedAdapter("CI")], settings, external=StubExternalSource())
        tasks = engine.plan(make_request())
        assert tasks[-1].kind is TaskKind.EXTERNAL
        assert tasks[-1].label == "external:external"

    def test_all_airlines_uses_available_adapters(self, pool, settings):
        adapters = [ScriptedAdapter("CI"), ScriptedAdapter("EK")]
        engine = make_engine(pool, adapters, settings)
        tasks = engine.plan(make_request(airlines=()))
        assert [t.airline for t in tasks] == ["CI", "EK"]


class TestSearch:
    @pytest.mark.asyncio
    async def test_partial_failure_keeps_successes(self, pool, settings):
        adapters = [
            ScriptedAdapter("CI"),
            ScriptedAdapter("BR", cash=[LayoutChanged("results list missing", "BR")]),
            ScriptedAdapter("JX"),
        ]
        result = await make_engine(pool, adapters, settings).search(make_request(("CI", "BR", "JX")))

        assert sorted(r.airline for r in result.outbound) == ["CI", "JX"]
        assert len(result.failures) == 1
        failure = result.failures[0]
        assert failure.airline == "BR"
        assert failure.task is TaskKind.CASH
        assert failure.kind is FailureKind.LAYOUT_CHANGED
        assert sorted(result.succeeded) == ["CI:cash", "JX:cash"]
        assert result.failed_airlines() == ["BR"]
        assert pool.in_use == 0

    @pytest.mark.asyncio
    async def test_navigation_timeout_retried_once(self, pool, settings):
        adapter = ScriptedAdapter("BR", cash=[NavigationTimeout("slow page", "BR"), [cash_offer("BR", "BR198")]])
        result = await make_engine(pool, [adapter], settings).search(make_request(("BR",)))

        assert len(adapter.cash_calls) == 2
        assert result.failures == []
        assert [r.flight_number for r in result.outbound] == ["BR198"]

    @pytest.mark.asyncio
    async def test_retry_gets_a_fresh_page(self, pool, settings):
        adapter = ScriptedAdapter("BR", cash=[NavigationTimeout("slow page", "BR"), [cash_offer("BR", "BR198")]])
        await make_engine(pool, [adapter], settings).search(make_request(("BR",)))
        first_page, second_page = (call[0] for call in adapter.cash_calls)
        assert first_page is not second_page
        assert first_page.closed

    @pytest.mark.asyncio
    async def test_navigation_timeout_gives_up_after_second_attempt(self, pool, settings):
        adapter = ScriptedAdapter("BR", cash=[NavigationTimeout("slow page", "BR")])
        result = await make_engine(pool, [adapter], settings).search(make_request(("BR",)))

        assert len(adapter.cash_calls) == 2
        assert result.failures[0].kind is FailureKind.NAVIGATION_TIMEOUT
        assert result.failures[0].attempts == 2

    @pytest.mark.asyncio
    async def test_stalled_browser_step_retried_as_navigation_timeout(self, settings):
        factory = StubPageFactory(make_page=StuckFormPage)
        pool = BrowserPool(factory, size=3, acquire_timeout=5.0)
        result = await make_engine(pool, [ChinaAirlinesAdapter()], settings).search(make_request(("CI",)))

        failure = result.failures[0]
        assert failure.kind is FailureKind.NAVIGATION_TIMEOUT
        assert failure.attempts == 2
        assert len(factory.opened) == 2
        assert all(page.closed for page in factory.opened)

    @pytest.mark.asyncio
    async def test_layout_change_not_retried(self, pool, settings):
        adapter = ScriptedAdapter("CI", cash=[LayoutChanged("submit button missing", "CI")])
        result = await make_engine(pool, [adapter], settings).search(make_request())

        assert len(adapter.cash_calls) == 1
        assert result.failures[0].attempts == 1

    @pytest.mark.asyncio
    async def test_miles_task_not_retried(self, pool, settings):
        adapter = ScriptedAdapter("CI", supports_miles=True, miles=[NavigationTimeout("login page hung", "CI")])
        engine = make_engine(pool, [adapter], settings, accounts={"CI": account("CI")})
        result = await engine.search(make_request())

        assert len(adapter.miles_calls) == 1
        assert [(f.task, f.kind) for f in result.failures] == [(TaskKind.MILES, FailureKind.NAVIGATION_TIMEOUT)]

    @pytest.mark.asyncio
    async def test_authentication_failure_only_affects_miles(self, pool, settings):
        adapter = ScriptedAdapter("CI", supports_miles=True, miles=[AuthenticationFailed("wrong password", "CI")])
        engine = make_engine(pool, [adapter], settings, accounts={"CI": account("CI")})
        result = await engine.search(make_request())

        assert len(result.cash_fares()) == 1
        assert result.miles_fares() == []
        assert [(f.task, f.kind) for f in result.failures] == [(TaskKind.MILES, FailureKind.AUTHENTICATION_FAILED)]
        assert adapter.miles_calls[0][1][2].member_id == "CI123"

    @pytest.mark.asyncio
    async def test_unexpected_error_recorded(self, pool, settings):
        adapter = ScriptedAdapter("CI", cash=[RuntimeError("Target page, context or browser has been closed")])
        result = await make_engine(pool, [adapter], settings).search(make_request())

        assert result.failures[0].kind is FailureKind.UNEXPECTED
        assert "RuntimeError" in result.failures[0].reason
        assert len(adapter.cash_calls) == 1
        assert pool.discarded == 1

    @pytest.mark.asyncio
    async def test_pool_exhausted_recorded(self, settings):
        pool = BrowserPool(StubPageFactory(fail=True), size=1)
        adapter = ScriptedAdapter("CI")
        result = await make_engine(pool, [adapter], settings).search(make_request())

        assert result.failures[0].kind is FailureKind.POOL_EXHAUSTED
        assert adapter.cash_calls == []

    @pytest.mark.asyncio
    async def test_concurrency_bounded_by_pool_size(self, page_factory, settings):
        pool = BrowserPool(page_factory, size=2)
        probe = ConcurrencyProbe()
        adapters = [ScriptedAdapter(code, delay=0.05, probe=probe) for code in ("CI", "BR", "JX", "CX", "SQ")]
        result = await make_engine(pool, adapters, settings).search(make_request(("CI", "BR", "JX", "CX", "SQ")))

        assert probe.peak == 2
        assert len(result.succeeded) == 5
        assert page_factory.opened and len(page_factory.opened) <= 2

    @pytest.mark.asyncio
    async def test_round_trip_searches_both_legs(self, pool, settings):
        adapter = ScriptedAdapter("CI")
        result = await make_engine(pool, [adapter], settings).search(make_request(return_date=RETURN))

        assert [call[1] for call in adapter.cash_calls] == [("TPE", "NRT", DEPART), ("NRT", "TPE", RETURN)]
        assert len(result.outbound) == 1
        assert len(result.inbound) == 1
        assert result.inbound[0].direction is Direction.INBOUND
        assert result.inbound[0].depart_date == RETURN
        # Both legs share one cash task
        assert result.succeeded == ["CI:cash"]

    @pytest.mark.asyncio
    async def test_results_sorted_by_normalized_cost(self, pool, settings):
        adapters = [
            ScriptedAdapter(
                "CI",
                supports_miles=True,
                cash=[[cash_offer("CI", "CI100", price="NT$15,000")]],
                miles=[[miles_offer("CI", "CI100", miles="20,000", taxes="NT$3,200")]],
            ),
            ScriptedAdapter("BR", cash=[[cash_offer("BR", "BR198", price="NT$9,000", depart="10:00")]]),
            ScriptedAdapter("JX", cash=[[cash_offer("JX", "JX800", price="NT$9,000", depart="07:00", stops=1)]]),
        ]
        engine = make_engine(pool, adapters, settings, accounts={"CI": account("CI")})
        result = await engine.search(make_request(("CI", "BR", "JX")))

        order = [(r.flight_number, r.price or r.miles) for r in result.outbound]
        assert order == [("BR198", 9000), ("JX800", 9000), ("CI100", 20000), ("CI100", 15000)]

    @pytest.mark.asyncio
    async def test_unusable_offer_dropped_with_warning(self, pool, settings):
        adapter = ScriptedAdapter("CI", cash=[[cash_offer("CI", "CI100"), cash_offer("CI", "CI102", price="售完")]])
        result = await make_engine(pool, [adapter], settings).search(make_request())

        assert [r.flight_number for r in result.outbound] == ["CI100"]
        assert any("CI102" in w for w in result.warnings)

    def test_search_sync(self, pool, settings):
        result = make_engine(pool, [ScriptedAdapter("CI")], settings).search_sync(make_request())
        assert len(result.outbound) == 1
        assert result.elapsed_seconds >= 0


class TestTimeouts:
    @pytest.mark.asyncio
    async def test_task_timeout_is_navigation_timeout(self, pool, settings):
        settings.task_timeout = 0.05
        adapter = ScriptedAdapter("SQ", delay=1.0)
        result = await make_engine(pool, [adapter], settings).search(make_request(("SQ",)))

        failure = result.failures[0]
        assert failure.kind is FailureKind.NAVIGATION_TIMEOUT
        assert failure.attempts == 2
        assert pool.discarded == 2

    @pytest.mark.asyncio
    async def test_deadline_cancels_stragglers(self, pool, settings):
        settings.search_deadline = 0.2
        settings.task_timeout = 30.0
        adapters = [ScriptedAdapter("CI"), ScriptedAdapter("EK", delay=30.0)]
        result = await make_engine(pool, adapters, settings).search(make_request(("CI", "EK")))

        assert [r.airline for r in result.outbound] == ["CI"]
        assert [(f.airline, f.kind) for f in result.failures] == [("EK", FailureKind.DEADLINE_EXCEEDED)]
        assert result.elapsed_seconds < 5
        assert pool.in_use == 0


class TestExternalSource:
    @pytest.mark.asyncio
    async def test_external_offers_labelled(self, pool, settings):
        external = StubExternalSource(offers=[cash_offer("BR", "BR198", price="9500", currency="TWD")])
        engine = make_engine(pool, [ScriptedAdapter("CI")], settings, external=external)
        result = await engine.search(make_request())

        assert [r.source for r in result.outbound] == [FareSource.EXTERNAL_API, FareSource.BROWSER]
        assert [r.airline for r in result.by_source(FareSource.EXTERNAL_API)] == ["BR"]
        assert "external:external" in result.succeeded

    @pytest.mark.asyncio
    async def test_rate_limit_recorded_without_retry(self, pool, settings):
        external = StubExternalSource(error=RateLimited("StubAPI"))
        engine = make_engine(pool, [ScriptedAdapter("CI")], settings, external=external)
        result = await engine.search(make_request())

        assert external.calls == 1
        failure = result.failures[0]
        assert failure.task is TaskKind.EXTERNAL
        assert failure.kind is FailureKind.RATE_LIMITED
        assert failure.airline == ""
        assert failure.reason.startswith("StubAPI:")
        assert len(result.outbound) == 1

    @pytest.mark.asyncio
    async def test_slow_external_source_unavailable(self, pool, settings):
        settings.task_timeout = 0.05
        external = StubExternalSource(delay=1.0)
        engine = make_engine(pool, [ScriptedAdapter("CI")], settings, external=external)
        result = await engine.search(make_request())

        kinds = {f.task: f.kind for f in result.failures}
        assert kinds[TaskKind.EXTERNAL] is FailureKind.SOURCE_UNAVAILABLE
