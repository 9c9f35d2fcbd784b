# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
KeyRouter - the caller-facing router.

Wires the credential pool, usage ledger, capacity evaluator, selector,
planner, failure tracker, registry sync and usage reporter together.
Construct one per process and pass it to whatever makes provider calls.

Routing operations (select, plan, record) are synchronous and never
await. Registry sync and usage reporting run as background tasks started
by ``start()``.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .background import PeriodicTask
from .config.loader import RouterConfig
from .errors import mask_credential
from .failures import FailureTracker
from .pool import CredentialPool, HandleFactory
from .registry.client import RegistryClient
from .registry.sync import RegistrySync
from .selection.planner import Planner
from .selection.selector import Selector
from .types import (
    CallAssignment,
    CapacityInfo,
    Credential,
    ProviderHandle,
    Tier,
    parse_tier,
)
from .usage.capacity import CapacityEvaluator
from .usage.ledger import Clock, UsageLedger, utcnow
from .usage.reporter import UsageReporter

lib_logger = logging.getLogger("key_router")
lib_logger.addHandler(logging.NullHandler())


class KeyRouter:
    """
    Routes provider calls across a pool of rate-limited credentials.

    Example:
        router = KeyRouter(load_router_config())
        async with router:
            assignment = router.select_credential("gemini-2.5-flash")
            ...
            router.record_usage(assignment.credential_id, assignment.model, 120, 480)
    """

    def __init__(
        self,
        config: Optional[RouterConfig] = None,
        registry_client: Optional[RegistryClient] = None,
        clock: Optional[Clock] = None,
        handle_factory: Optional[HandleFactory] = None,
    ):
        """
        Initialize the router.

        Args:
            config: Router configuration (defaults to RouterConfig())
            registry_client: Registry client; built from config when None
                and the registry is enabled
            clock: Callable returning the current UTC time (for tests)
            handle_factory: Builds the provider handle for a credential
        """
        self.config = config or RouterConfig()
        self._clock = clock or utcnow

        if handle_factory is None:
            prefix = self.config.provider_prefix

            def handle_factory(credential: Credential) -> ProviderHandle:
                return ProviderHandle(api_key=credential.api_key, provider_prefix=prefix)

        self.pool = CredentialPool(handle_factory=handle_factory)
        self.ledger = UsageLedger(clock=self._clock)
        self.evaluator = CapacityEvaluator(
            self.ledger, self.config.catalog, self.config.capacity_threshold
        )

        self.fallback = self.config.fallback_credential
        fallback_handle = None
        if self.fallback is not None:
            fallback_handle = ProviderHandle(
                api_key=self.fallback.api_key,
                provider_prefix=self.config.provider_prefix,
            )

        self.selector = Selector(
            self.pool, self.evaluator, self.config.catalog, self.fallback, fallback_handle
        )
        self.planner = Planner(
            self.pool, self.evaluator, self.config.catalog, self.fallback, fallback_handle
        )

        if registry_client is None and self.config.registry_enabled:
            registry_client = RegistryClient(
                self.config.registry_url,
                self.config.internal_api_key,
                timeout=self.config.registry_timeout,
            )
        self.registry_client = registry_client

        self.sync: Optional[RegistrySync] = None
        self.reporter: Optional[UsageReporter] = None
        on_revoked = None
        if registry_client is not None:
            self.sync = RegistrySync(registry_client, self.pool)
            self.reporter = UsageReporter(registry_client, self.ledger)
            on_revoked = self._report_revocation

        self.failures = FailureTracker(
            self.pool, self.config.failure_threshold, on_revoked=on_revoked
        )

        # A registry round trip plus headroom for connect and body transfer
        self._tick_timeout = self.config.registry_timeout * 2
        self._tasks: List[PeriodicTask] = []
        self._started = False

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        """
        Load credentials once, then start the sync and flush loops.

        A failed initial load is logged; the router still starts with the
        fallback credential (if any).
        """
        if self._started:
            return
        self._started = True

        if self.sync is None or self.reporter is None:
            lib_logger.info(
                f"KeyRouter started without registry "
                f"(fallback {'configured' if self.fallback else 'not configured'})"
            )
            return

        await self._bounded("Initial credential refresh", self.refresh_credentials, False)
        lib_logger.info(
            f"KeyRouter started with {len(self.pool)} pooled credential(s), "
            f"fallback {'configured' if self.fallback else 'not configured'}"
        )

        self._tasks = [
            PeriodicTask(
                "credential-refresh",
                self.config.refresh_interval,
                self.refresh_credentials,
                timeout=self._tick_timeout,
            ),
            PeriodicTask(
                "usage-flush",
                self.config.flush_interval,
                self.flush_usage,
                timeout=self._tick_timeout,
            ),
        ]
        for task in self._tasks:
            task.start()

    async def stop(self) -> None:
        """Cancel background tasks and flush remaining usage once."""
        if not self._started:
            return
        self._started = False

        for task in self._tasks:
            await task.stop()
        self._tasks = []

        await self._bounded("Final usage flush", self.flush_usage, 0)
        await self.failures.drain()
        lib_logger.info("KeyRouter stopped")

    async def __aenter__(self) -> "KeyRouter":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def refresh_credentials(self) -> bool:
        """Run one registry sync. Returns True if the pool was replaced."""
        if self.sync is None:
            return False
        return await self.sync.refresh()

    async def flush_usage(self) -> int:
        """Run one usage flush. Returns the number of records delivered."""
        if self.reporter is None:
            return 0
        return await self.reporter.flush()

    async def _bounded(self, label: str, func, default):
        try:
            return await asyncio.wait_for(func(), timeout=self._tick_timeout)
        except asyncio.TimeoutError:
            lib_logger.warning(f"{label} timed out after {self._tick_timeout}s")
            return default

    async def _report_revocation(self, credential_id: str, reason: str) -> None:
        await self.registry_client.report_status(credential_id, False, reason)

    # =========================================================================
    # SELECTION
    # =========================================================================

    def select_credential(self, requested_model: str) -> Optional[CallAssignment]:
        """Pick one credential for ``requested_model``, or None."""
        return self.selector.select_credential(requested_model)

    def get_call_plan(
        self,
        preferred_models: Optional[Sequence[str]] = None,
        allowed_models: Optional[Sequence[str]] = None,
    ) -> List[CallAssignment]:
        """Build the ordered credential x model fallback plan."""
        return self.planner.get_call_plan(preferred_models, allowed_models)

    def get_credentials(self) -> Tuple[Credential, ...]:
        return self.pool.credentials

    def has_credentials(self) -> bool:
        """True if any pooled or fallback credential is configured."""
        return len(self.pool) > 0 or self.fallback is not None

    @property
    def registry_synced(self) -> Optional[bool]:
        """Whether the last registry sync replaced the pool; None without a registry."""
        if self.sync is None:
            return None
        return self.sync.last_refresh_ok

    # =========================================================================
    # OUTCOME REPORTING
    # =========================================================================

    def record_usage(
        self,
        credential_id: Optional[str],
        model: str,
        input_tokens: int = 0,
        total_tokens: int = 0,
    ) -> None:
        """
        Record a completed call.

        Calls made with the fallback credential (``credential_id`` None)
        are not metered.
        """
        if credential_id is None:
            return
        self.ledger.record_usage(credential_id, model, input_tokens, total_tokens)

        credential = self.pool.get(credential_id)
        if credential is not None:
            credential.last_used_at = self._clock().isoformat()

    def record_success(self, credential_id: Optional[str]) -> None:
        if credential_id is None:
            return
        self.failures.record_success(credential_id)

    def record_failure(self, credential_id: Optional[str], error_detail: str = "") -> bool:
        """Record a failed call. Returns True if the credential was revoked."""
        if credential_id is None:
            return False
        return self.failures.record_failure(credential_id, error_detail)

    def record_rate_limit(
        self, credential_id: Optional[str], model: str, tier: Optional[Any] = None
    ) -> None:
        """
        Treat a pair as full for the rest of the current minute.

        Called when the provider rejects a call with a rate limit error
        that local counters did not predict.
        """
        if credential_id is None:
            return
        resolved = self._resolve_tier(credential_id, tier)
        if resolved is None:
            return
        limit = self.evaluator.resolve_limit(resolved, model)
        if limit is None:
            return
        self.ledger.saturate(credential_id, model)
        lib_logger.info(
            f"Rate limit reported for credential {credential_id} on {model}; "
            f"marked full for the current minute"
        )

    # =========================================================================
    # CAPACITY INSPECTION
    # =========================================================================

    def get_capacity_info(
        self, credential_id: str, model: str, tier: Optional[Any] = None
    ) -> Optional[CapacityInfo]:
        resolved = self._resolve_tier(credential_id, tier)
        if resolved is None:
            return None
        return self.evaluator.get_capacity_info(credential_id, model, resolved)

    def get_all_capacity_info(self) -> List[Dict[str, Any]]:
        """Capacity of every tier model, for every pooled credential."""
        result = []
        for credential in self.pool.credentials:
            models = []
            for model in self.config.catalog.models_for(credential.tier):
                info = self.evaluator.get_capacity_info(credential.id, model, credential.tier)
                if info is not None:
                    models.append(info.to_dict())
            result.append(
                {
                    "key_id": credential.id,
                    "key_name": credential.name,
                    "tier": credential.tier.value,
                    "models": models,
                }
            )
        return result

    def describe_fallback(self) -> Optional[Dict[str, Any]]:
        if self.fallback is None:
            return None
        return {
            "name": self.fallback.name,
            "key": mask_credential(self.fallback.api_key),
            "models": list(self.fallback.models),
        }

    def _resolve_tier(self, credential_id: str, tier: Optional[Any]) -> Optional[Tier]:
        if tier is not None:
            return parse_tier(tier)
        credential = self.pool.get(credential_id)
        if credential is None:
            return None
        return credential.tier
