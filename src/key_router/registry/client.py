# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Credential registry client.

Talks to the dashboard's internal API:
1. Fetching the credential list for this deployment
2. Reporting locally revoked credentials
3. Submitting batches of usage records

Every call is a single round trip bounded by ``timeout``. Transport
failures and non-2xx answers raise RegistryUnavailableError; callers in
this package catch it and keep their previous state.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError

from ..config.defaults import DEFAULT_REGISTRY_TIMEOUT
from ..errors import RegistryUnavailableError
from ..types import Credential, UsageRecord, parse_tier

lib_logger = logging.getLogger("key_router")

CREDENTIALS_PATH = "/api/internal/gemini-keys"
INTERNAL_API_KEY_HEADER = "x-internal-api-key"


# =============================================================================
# WIRE MODELS
# =============================================================================


class CredentialRecord(BaseModel):
    """One credential as returned by the registry."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = ""
    api_key: SecretStr
    tier: str = "free"
    is_active: bool = True
    is_valid: bool = True
    priority: int = 0
    consecutive_failures: int = 0
    last_used_at: Optional[str] = None

    def to_credential(self) -> Credential:
        return Credential(
            id=self.id,
            name=self.name or self.id,
            api_key=self.api_key.get_secret_value(),
            tier=parse_tier(self.tier),
            is_active=self.is_active,
            is_valid=self.is_valid,
            priority=self.priority,
            consecutive_failures=self.consecutive_failures,
            last_used_at=self.last_used_at,
        )


class CredentialListResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    keys: List[Dict[str, Any]] = Field(default_factory=list)


class KeyStatusReport(BaseModel):
    is_valid: bool
    reason: str


# =============================================================================
# CLIENT
# =============================================================================


class RegistryClient:
    """
    Async client for the credential registry.

    A fresh ``httpx.AsyncClient`` is opened per call, so a stalled
    connection never outlives its own timeout.
    """

    def __init__(
        self,
        base_url: str,
        internal_api_key: str = "",
        timeout: float = DEFAULT_REGISTRY_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the registry client.

        Args:
            base_url: Registry base URL, e.g. ``http://dashboard:3000``
            internal_api_key: Value for the internal auth header
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self._internal_api_key = internal_api_key
        self._timeout = timeout
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {INTERNAL_API_KEY_HEADER: self._internal_api_key}

    async def _request(
        self, method: str, path: str, json: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                return await client.request(method, url, headers=self._headers(), json=json)
        except httpx.HTTPError as e:
            raise RegistryUnavailableError(
                f"{method} {path} failed: {type(e).__name__}: {e}"
            ) from e

    async def fetch_credentials(self) -> Optional[List[Credential]]:
        """
        Fetch every credential registered for this deployment.

        Returns:
            List of credentials (unfiltered), or None if the registry does
            not expose the endpoint yet (404)

        Raises:
            RegistryUnavailableError: On transport failure or non-2xx status
        """
        response = await self._request("GET", CREDENTIALS_PATH)

        if response.status_code == 404:
            return None
        if not response.is_success:
            raise RegistryUnavailableError(
                f"Registry returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = CredentialListResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise RegistryUnavailableError(f"Malformed credential list: {e}") from e

        credentials = []
        for raw in payload.keys:
            try:
                credentials.append(CredentialRecord.model_validate(raw).to_credential())
            except ValidationError as e:
                lib_logger.warning(
                    f"Skipping malformed credential record "
                    f"'{raw.get('id', '?')}': {e.error_count()} validation error(s)"
                )
        return credentials

    async def report_status(self, credential_id: str, is_valid: bool, reason: str) -> None:
        """
        Tell the registry a credential changed validity.

        Raises:
            RegistryUnavailableError: On transport failure or non-2xx status
        """
        body = KeyStatusReport(is_valid=is_valid, reason=reason).model_dump()
        response = await self._request(
            "POST", f"{CREDENTIALS_PATH}/{credential_id}/status", json=body
        )
        if not response.is_success:
            raise RegistryUnavailableError(
                f"Status report returned {response.status_code}",
                status_code=response.status_code,
            )

    async def push_usage(self, records: Sequence[UsageRecord]) -> None:
        """
        Submit a batch of usage records.

        Records carry absolute bucket counts; resending a bucket replaces
        the earlier value on the registry side.

        Raises:
            RegistryUnavailableError: On transport failure or non-2xx status
        """
        body = {"records": [record.to_payload() for record in records]}
        response = await self._request("POST", f"{CREDENTIALS_PATH}/usage", json=body)
        if not response.is_success:
            raise RegistryUnavailableError(
                f"Usage push returned {response.status_code}",
                status_code=response.status_code,
            )
