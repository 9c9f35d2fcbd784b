import pytest

from conftest import make_credential

from key_router.config.tiers import MODEL_FALLBACK_ORDER, MODEL_FALLBACK_ORDER_PAID, get_default_catalog
from key_router.pool import CredentialPool
from key_router.selection import Planner, Selector
from key_router.types import FallbackCredential, Tier
from key_router.usage.capacity import CapacityEvaluator
from key_router.usage.ledger import UsageLedger


@pytest.fixture
def env(clock):
    catalog = get_default_catalog()
    pool = CredentialPool()
    ledger = UsageLedger(clock=clock)
    evaluator = CapacityEvaluator(ledger, catalog)
    fallback = FallbackCredential(api_key="AIza-env-fallback-9999", models=("gemini-2.5-flash",))
    return pool, ledger, evaluator, catalog, fallback


def test_selector_drains_first_credential_then_moves_on(env) -> None:
    pool, ledger, evaluator, catalog, _ = env
    pool.replace([make_credential("A", priority=0), make_credential("B", priority=1)])
    selector = Selector(pool, evaluator, catalog)

    assert selector.select_credential("gemini-2.5-flash").credential_id == "A"

    for _ in range(4):
        ledger.record_usage("A", "gemini-2.5-flash")

    assignment = selector.select_credential("gemini-2.5-flash")
    assert assignment.credential_id == "B"
    assert assignment.model == "gemini-2.5-flash"


def test_selector_falls_back_when_pool_exhausted(env) -> None:
    pool, ledger, evaluator, catalog, fallback = env
    pool.replace([make_credential("A")])
    selector = Selector(pool, evaluator, catalog, fallback)
    for _ in range(4):
        ledger.record_usage("A", "gemini-2.5-flash")

    assignment = selector.select_credential("gemini-2.5-flash")

    assert assignment.is_fallback
    assert assignment.credential_id is None
    assert assignment.tier == "env"
    assert assignment.api_key == "AIza-env-fallback-9999"


def test_selector_returns_none_without_fallback(env) -> None:
    pool, _, evaluator, catalog, _ = env

    assert Selector(pool, evaluator, catalog).select_credential("gemini-2.5-flash") is None


def test_selector_skips_tier_without_model(env) -> None:
    pool, _, evaluator, catalog, _ = env
    pool.replace(
        [
            make_credential("free", Tier.FREE, priority=0),
            make_credential("paid", Tier.TIER1, priority=1),
        ]
    )

    assignment = Selector(pool, evaluator, catalog).select_credential("gemini-2.0-flash")

    assert assignment.credential_id == "paid"


def test_selector_never_returns_invalid_credential(env) -> None:
    pool, _, evaluator, catalog, _ = env
    pool.replace([make_credential("A"), make_credential("B", priority=1)])
    pool.revoke("A")

    assert Selector(pool, evaluator, catalog).select_credential("gemini-2.5-flash").credential_id == "B"


def test_plan_crosses_credentials_with_tier_default_order(env) -> None:
    pool, _, evaluator, catalog, fallback = env
    pool.replace(
        [
            make_credential("A", Tier.FREE, priority=0),
            make_credential("B", Tier.TIER1, priority=1),
        ]
    )

    plan = Planner(pool, evaluator, catalog, fallback).get_call_plan()

    pairs = [(a.credential_id, a.model) for a in plan]
    expected = [("A", m) for m in MODEL_FALLBACK_ORDER]
    expected += [("B", m) for m in MODEL_FALLBACK_ORDER_PAID]
    expected += [(None, "gemini-2.5-flash")]
    assert pairs == expected


def test_plan_with_preferred_models_and_exhausted_pair(env) -> None:
    pool, ledger, evaluator, catalog, fallback = env
    pool.replace([make_credential("A", Tier.FREE), make_credential("B", Tier.FREE, priority=1)])
    for _ in range(8):
        ledger.record_usage("A", "gemini-2.5-flash-lite")

    plan = Planner(pool, evaluator, catalog, fallback).get_call_plan(
        preferred_models=["gemini-2.5-flash-lite", "gemini-2.5-flash"]
    )

    pairs = [(a.credential_id, a.model) for a in plan]
    assert pairs == [
        ("A", "gemini-2.5-flash"),
        ("B", "gemini-2.5-flash-lite"),
        ("B", "gemini-2.5-flash"),
        (None, "gemini-2.5-flash-lite"),
        (None, "gemini-2.5-flash"),
    ]


def test_plan_allowed_filter_uses_prefix_match(env) -> None:
    pool, _, evaluator, catalog, fallback = env
    pool.replace([make_credential("A", Tier.TIER1)])

    plan = Planner(pool, evaluator, catalog, fallback).get_call_plan(
        allowed_models=["gemini-2.5"]
    )

    assert [a.model for a in plan] == [
        "gemini-2.5-flash-lite",
        "gemini-2.5-flash",
        "gemini-2.5-flash",
    ]
    assert plan[-1].is_fallback


def test_plan_collapses_duplicate_preferences(env) -> None:
    pool, _, evaluator, catalog, _ = env
    pool.replace([make_credential("A")])

    plan = Planner(pool, evaluator, catalog).get_call_plan(
        preferred_models=["gemini-2.5-flash", "gemini-2.5-flash"]
    )

    assert [(a.credential_id, a.model) for a in plan] == [("A", "gemini-2.5-flash")]


def test_plan_is_deterministic(env) -> None:
    pool, ledger, evaluator, catalog, fallback = env
    pool.replace([make_credential(str(i), priority=i % 2) for i in range(5)])
    ledger.record_usage("3", "gemini-2.5-flash")
    planner = Planner(pool, evaluator, catalog, fallback)

    first = planner.get_call_plan()
    second = planner.get_call_plan()

    assert first == second


def test_empty_pool_without_fallback_yields_empty_plan(env) -> None:
    pool, _, evaluator, catalog, _ = env

    assert Planner(pool, evaluator, catalog).get_call_plan() == []
