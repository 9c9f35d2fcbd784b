import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import pytest


ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from key_router.types import Credential, Tier


class FakeClock:
    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 2, 14, 9, 5, 10, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeRegistry:
    """In-memory stand-in for the dashboard's internal API."""

    def __init__(self, keys: Optional[List[Dict[str, Any]]] = None):
        self.keys = keys or []
        self.fetch_status = 200
        self.usage_status = 200
        self.status_status = 200
        self.fail_with: Optional[Exception] = None
        self.usage_batches: List[List[Dict[str, Any]]] = []
        self.status_reports: List[Dict[str, Any]] = []
        self.seen_headers: List[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.seen_headers.append(request.headers.get("x-internal-api-key", ""))
        if self.fail_with is not None:
            raise self.fail_with

        path = request.url.path
        if request.method == "GET" and path == "/api/internal/gemini-keys":
            if self.fetch_status != 200:
                return httpx.Response(self.fetch_status)
            return httpx.Response(200, json={"keys": self.keys})

        if request.method == "POST" and path == "/api/internal/gemini-keys/usage":
            if self.usage_status != 200:
                return httpx.Response(self.usage_status)

            self.usage_batches.append(json.loads(request.content)["records"])
            return httpx.Response(200, json={"ok": True})

        if request.method == "POST" and path.endswith("/status"):
            if self.status_status != 200:
                return httpx.Response(self.status_status)

            key_id = path.split("/")[-2]
            self.status_reports.append({"id": key_id, **json.loads(request.content)})
            return httpx.Response(200, json={"ok": True})

        return httpx.Response(404)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def make_credential(
    credential_id: str,
    tier: Tier = Tier.FREE,
    priority: int = 0,
    **kwargs,
) -> Credential:
    return Credential(
        id=credential_id,
        name=kwargs.pop("name", f"key-{credential_id}"),
        api_key=kwargs.pop("api_key", f"AIza-secret-{credential_id}-0000"),
        tier=tier,
        priority=priority,
        **kwargs,
    )


def registry_key(credential_id: str, tier: str = "free", priority: int = 0, **kwargs) -> Dict[str, Any]:
    record = {
        "id": credential_id,
        "name": f"key-{credential_id}",
        "api_key": f"AIza-secret-{credential_id}-0000",
        "tier": tier,
        "is_active": True,
        "is_valid": True,
        "priority": priority,
        "consecutive_failures": 0,
        "last_used_at": None,
    }
    record.update(kwargs)
    return record


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry()
