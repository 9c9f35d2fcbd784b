import pytest

from key_router.registry import RegistryClient
from key_router.types import PeriodType
from key_router.usage import UsageLedger, UsageReporter


def _reporter(registry, ledger: UsageLedger) -> UsageReporter:
    client = RegistryClient("http://dashboard:3000", "internal-secret", transport=registry.transport)
    return UsageReporter(client, ledger)


@pytest.mark.asyncio
async def test_flush_sends_all_buckets_and_keeps_current(registry, clock) -> None:
    ledger = UsageLedger(clock=clock)
    ledger.record_usage("A", "gemini-2.5-flash", input_tokens=10, total_tokens=25)

    delivered = await _reporter(registry, ledger).flush()

    assert delivered == 2
    sent = {(r["period_type"], r["period_key"]) for r in registry.usage_batches[0]}
    assert sent == {("minute", "2026-02-14T09:05"), ("day", "2026-02-14")}
    # Current minute/day buckets survive a flush
    assert ledger.get_usage("A", "gemini-2.5-flash", PeriodType.MINUTE).request_count == 1
    assert len(ledger) == 2


@pytest.mark.asyncio
async def test_flush_prunes_stale_buckets_after_delivery(registry, clock) -> None:
    ledger = UsageLedger(clock=clock)
    ledger.record_usage("A", "gemini-2.5-flash")
    clock.advance(minutes=2)
    ledger.record_usage("A", "gemini-2.5-flash")

    delivered = await _reporter(registry, ledger).flush()

    assert delivered == 3
    assert len(ledger) == 2
    day = ledger.get_usage("A", "gemini-2.5-flash", PeriodType.DAY)
    assert day.request_count == 2


@pytest.mark.asyncio
async def test_failed_flush_keeps_everything_for_next_cycle(registry, clock) -> None:
    ledger = UsageLedger(clock=clock)
    ledger.record_usage("A", "gemini-2.5-flash")
    clock.advance(minutes=2)
    reporter = _reporter(registry, ledger)
    registry.usage_status = 500

    assert await reporter.flush() == 0
    assert len(ledger) == 2

    registry.usage_status = 200
    assert await reporter.flush() == 2
    # Old minute delivered and pruned; the day bucket is still current
    assert len(ledger) == 1


@pytest.mark.asyncio
async def test_flush_with_empty_ledger_sends_nothing(registry, clock) -> None:
    delivered = await _reporter(registry, UsageLedger(clock=clock)).flush()

    assert delivered == 0
    assert registry.usage_batches == []
