import asyncio

import pytest

from conftest import make_credential

from key_router.errors import RegistryUnavailableError
from key_router.failures import FailureTracker
from key_router.pool import CredentialPool


def _pool(*ids: str) -> CredentialPool:
    pool = CredentialPool()
    pool.replace([make_credential(i, priority=n) for n, i in enumerate(ids)])
    return pool


def test_success_resets_counter() -> None:
    pool = _pool("A")
    tracker = FailureTracker(pool, threshold=10)

    for _ in range(3):
        tracker.record_failure("A", "boom")
    tracker.record_success("A")

    assert pool.get("A").consecutive_failures == 0


def test_unknown_credential_is_ignored() -> None:
    tracker = FailureTracker(_pool("A"))

    tracker.record_success("missing")
    assert tracker.record_failure("missing", "boom") is False


@pytest.mark.asyncio
async def test_revokes_at_threshold_and_reports_once() -> None:
    pool = _pool("A", "B")
    reports = []

    async def notify(credential_id: str, reason: str) -> None:
        reports.append((credential_id, reason))

    tracker = FailureTracker(pool, threshold=10, on_revoked=notify)

    results = [tracker.record_failure("A", "500 internal") for _ in range(10)]
    await tracker.drain()

    assert results[-1] is True
    assert not any(results[:-1])
    assert pool.get("A").is_valid is False
    assert pool.is_revoked("A")
    assert len(reports) == 1
    assert reports[0][0] == "A"

    # Further failures are no-ops
    assert tracker.record_failure("A", "again") is False
    await tracker.drain()
    assert len(reports) == 1


@pytest.mark.asyncio
async def test_report_failure_does_not_restore_credential() -> None:
    pool = _pool("A")

    async def notify(credential_id: str, reason: str) -> None:
        raise RegistryUnavailableError("registry down")

    tracker = FailureTracker(pool, threshold=2, on_revoked=notify)
    tracker.record_failure("A")
    tracker.record_failure("A")
    await tracker.drain()

    assert pool.get("A").is_valid is False
    assert pool.is_revoked("A")


def test_revocation_without_event_loop_still_applies() -> None:
    pool = _pool("A")

    async def notify(credential_id: str, reason: str) -> None:
        await asyncio.sleep(0)

    tracker = FailureTracker(pool, threshold=1, on_revoked=notify)

    assert tracker.record_failure("A", "401") is True
    assert pool.get("A").is_valid is False
