import httpx
import pytest

from conftest import make_credential, registry_key

from key_router.errors import RegistryUnavailableError
from key_router.pool import CredentialPool
from key_router.registry import RegistryClient, RegistrySync
from key_router.types import Tier, UsageRecord


def _client(registry, **kwargs) -> RegistryClient:
    return RegistryClient(
        "http://dashboard:3000/",
        internal_api_key="internal-secret",
        transport=registry.transport,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_fetch_parses_credentials_and_sends_auth_header(registry) -> None:
    registry.keys = [
        registry_key("A", tier="tier1", priority=2),
        registry_key("B", tier="platinum"),
        {"id": "broken"},
    ]

    credentials = await _client(registry).fetch_credentials()

    assert [c.id for c in credentials] == ["A", "B"]
    assert credentials[0].tier == Tier.TIER1
    assert credentials[1].tier == Tier.FREE
    assert "AIza" not in repr(credentials[0])
    assert registry.seen_headers == ["internal-secret"]


@pytest.mark.asyncio
async def test_fetch_404_means_not_available(registry) -> None:
    registry.fetch_status = 404

    assert await _client(registry).fetch_credentials() is None


@pytest.mark.asyncio
async def test_fetch_raises_on_server_error(registry) -> None:
    registry.fetch_status = 503

    with pytest.raises(RegistryUnavailableError) as exc_info:
        await _client(registry).fetch_credentials()
    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_transport_errors_become_registry_unavailable(registry) -> None:
    registry.fail_with = httpx.ConnectError("connection refused")

    with pytest.raises(RegistryUnavailableError):
        await _client(registry).fetch_credentials()


@pytest.mark.asyncio
async def test_push_usage_payload_shape(registry) -> None:
    record = UsageRecord(
        credential_id="A",
        model="gemini-2.5-flash",
        period_type="minute",
        period_key="2026-02-14T09:05",
        request_count=3,
        input_tokens=120,
        total_tokens=300,
    )

    await _client(registry).push_usage([record])

    assert registry.usage_batches == [
        [
            {
                "key_id": "A",
                "model": "gemini-2.5-flash",
                "period_type": "minute",
                "period_key": "2026-02-14T09:05",
                "request_count": 3,
                "input_tokens": 120,
                "total_tokens": 300,
            }
        ]
    ]


@pytest.mark.asyncio
async def test_report_status(registry) -> None:
    await _client(registry).report_status("A", False, "Auto-disabled")

    assert registry.status_reports == [{"id": "A", "is_valid": False, "reason": "Auto-disabled"}]


@pytest.mark.asyncio
async def test_sync_filters_and_orders_by_priority(registry) -> None:
    registry.keys = [
        registry_key("low", priority=5),
        registry_key("inactive", priority=0, is_active=False),
        registry_key("invalid", priority=0, is_valid=False),
        registry_key("high", priority=1),
        registry_key("tie", priority=1),
    ]
    pool = CredentialPool()

    assert await RegistrySync(_client(registry), pool).refresh() is True

    assert [c.id for c in pool] == ["high", "tie", "low"]


@pytest.mark.asyncio
async def test_sync_keeps_pool_when_registry_unreachable(registry) -> None:
    pool = CredentialPool()
    pool.replace([make_credential("A"), make_credential("B", priority=1)])
    before = pool.snapshot
    registry.fail_with = httpx.ConnectTimeout("timed out")

    assert await RegistrySync(_client(registry), pool).refresh() is False

    assert pool.snapshot is before
    assert [c.id for c in pool] == ["A", "B"]


@pytest.mark.asyncio
async def test_sync_keeps_pool_on_404(registry) -> None:
    pool = CredentialPool()
    pool.replace([make_credential("A")])
    registry.fetch_status = 404

    assert await RegistrySync(_client(registry), pool).refresh() is False
    assert len(pool) == 1


@pytest.mark.asyncio
async def test_sync_reuses_handles_and_drops_departed(registry) -> None:
    registry.keys = [registry_key("A"), registry_key("B", priority=1)]
    pool = CredentialPool()
    sync = RegistrySync(_client(registry), pool)
    await sync.refresh()
    handle_a = pool.get_handle("A")

    registry.keys = [registry_key("A")]
    await sync.refresh()

    assert pool.get_handle("A") is handle_a
    assert pool.get_handle("B") is None


@pytest.mark.asyncio
async def test_locally_revoked_credential_stays_out_after_sync(registry) -> None:
    registry.keys = [registry_key("A"), registry_key("B", priority=1)]
    pool = CredentialPool()
    sync = RegistrySync(_client(registry), pool)
    await sync.refresh()

    pool.revoke("A")
    await sync.refresh()

    assert [c.id for c in pool] == ["B"]


@pytest.mark.asyncio
async def test_sync_carries_local_failure_counts(registry) -> None:
    registry.keys = [registry_key("A"), registry_key("B", priority=1, consecutive_failures=3)]
    pool = CredentialPool()
    sync = RegistrySync(_client(registry), pool)
    await sync.refresh()
    pool.get("A").consecutive_failures = 4

    await sync.refresh()

    assert pool.get("A").consecutive_failures == 4
    assert pool.get("B").consecutive_failures == 3
