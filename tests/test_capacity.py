import math

from key_router.config.tiers import TierCatalog, get_default_catalog
from key_router.types import RateLimit, Tier
from key_router.usage.capacity import CapacityEvaluator
from key_router.usage.ledger import UsageLedger


def _evaluator(clock, threshold: float = 0.8) -> CapacityEvaluator:
    return CapacityEvaluator(UsageLedger(clock=clock), get_default_catalog(), threshold)


def test_free_tier_flash_full_at_four_requests(clock) -> None:
    evaluator = _evaluator(clock)
    ledger = evaluator._ledger

    for _ in range(3):
        ledger.record_usage("k1", "gemini-2.5-flash")
    assert evaluator.is_at_capacity("k1", "gemini-2.5-flash", Tier.FREE) is False

    ledger.record_usage("k1", "gemini-2.5-flash")
    assert evaluator.is_at_capacity("k1", "gemini-2.5-flash", Tier.FREE) is True


def test_minute_rollover_restores_capacity(clock) -> None:
    evaluator = _evaluator(clock)
    for _ in range(4):
        evaluator._ledger.record_usage("k1", "gemini-2.5-flash")

    clock.advance(minutes=1)

    assert evaluator.is_at_capacity("k1", "gemini-2.5-flash", Tier.FREE) is False


def test_input_tokens_count_against_tpm(clock) -> None:
    evaluator = _evaluator(clock)
    evaluator._ledger.record_usage("k1", "gemini-2.5-flash-lite", input_tokens=200_000)

    assert evaluator.is_at_capacity("k1", "gemini-2.5-flash-lite", Tier.FREE) is True


def test_daily_limit_holds_across_minutes(clock) -> None:
    evaluator = _evaluator(clock)
    for _ in range(16):
        evaluator._ledger.record_usage("k1", "gemini-2.5-flash-lite")
        clock.advance(minutes=1)

    assert evaluator.is_at_capacity("k1", "gemini-2.5-flash-lite", Tier.FREE) is True


def test_unsupported_model_is_at_capacity(clock) -> None:
    evaluator = _evaluator(clock)

    assert evaluator.is_at_capacity("k1", "gemini-2.0-flash", Tier.FREE) is True
    assert evaluator.get_capacity_info("k1", "gemini-2.0-flash", Tier.FREE) is None


def test_dated_variant_resolves_by_longest_prefix(clock) -> None:
    evaluator = _evaluator(clock)

    limit = evaluator.resolve_limit(Tier.FREE, "gemini-2.5-flash-lite-001")

    assert limit == RateLimit(rpm=10, tpm=250_000, rpd=20)


def test_capacity_is_monotonic_within_a_minute(clock) -> None:
    evaluator = _evaluator(clock)
    seen_full = False
    for _ in range(12):
        evaluator._ledger.record_usage("k1", "gemini-2.5-flash-lite", input_tokens=1_000)
        full = evaluator.is_at_capacity("k1", "gemini-2.5-flash-lite", Tier.FREE)
        assert not (seen_full and not full)
        seen_full = seen_full or full
    assert seen_full


def test_capacity_info_reports_counters(clock) -> None:
    evaluator = _evaluator(clock)
    evaluator._ledger.record_usage("k1", "gemini-2.5-flash", input_tokens=50, total_tokens=80)

    info = evaluator.get_capacity_info("k1", "gemini-2.5-flash", Tier.FREE)

    assert info.rpm_used == 1
    assert info.rpm_limit == 5
    assert info.tpm_used == 50
    assert info.rpd_used == 1
    assert info.at_capacity is False


def test_unlimited_limits_serialize_as_none(clock) -> None:
    catalog = TierCatalog.from_tables(
        models={Tier.FREE: ["local-model"]},
        limits={Tier.FREE: {"local-model": RateLimit(rpm=math.inf, tpm=math.inf, rpd=10)}},
    )
    evaluator = CapacityEvaluator(UsageLedger(clock=clock), catalog)

    payload = evaluator.get_capacity_info("k1", "local-model", Tier.FREE).to_dict()

    assert payload["rpm_limit"] is None
    assert payload["tpm_limit"] is None
    assert payload["rpd_limit"] == 10
