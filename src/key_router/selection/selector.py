# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Credential selector.

Picks the single best credential for an immediate request on a known
model. Walks the pool in priority order and sticks to the first
credential with headroom, so cheaper/preferred keys drain first.
"""

import logging
from typing import Optional

from ..config.defaults import FALLBACK_TIER_LABEL
from ..config.tiers import TierCatalog
from ..pool import CredentialPool
from ..types import CallAssignment, Credential, FallbackCredential, ProviderHandle
from ..usage.capacity import CapacityEvaluator

lib_logger = logging.getLogger("key_router")


def pooled_assignment(
    credential: Credential, handle: ProviderHandle, model: str
) -> CallAssignment:
    return CallAssignment(
        credential_id=credential.id,
        credential_name=credential.name,
        tier=credential.tier.value,
        model=model,
        handle=handle,
    )


def fallback_assignment(
    fallback: FallbackCredential, handle: ProviderHandle, model: str
) -> CallAssignment:
    return CallAssignment(
        credential_id=None,
        credential_name=fallback.name,
        tier=FALLBACK_TIER_LABEL,
        model=model,
        handle=handle,
    )


class Selector:
    """
    Selects one credential for a requested model.

    Skips credentials that are inactive or invalid, whose tier does not
    serve the model, that have no provider handle, or that are at
    capacity. Never raises: an exhausted pool yields the fallback
    credential, or None when no fallback is configured.
    """

    def __init__(
        self,
        pool: CredentialPool,
        evaluator: CapacityEvaluator,
        catalog: TierCatalog,
        fallback: Optional[FallbackCredential] = None,
        fallback_handle: Optional[ProviderHandle] = None,
    ):
        self._pool = pool
        self._evaluator = evaluator
        self._catalog = catalog
        self._fallback = fallback
        if fallback is not None and fallback_handle is None:
            fallback_handle = ProviderHandle(api_key=fallback.api_key)
        self._fallback_handle = fallback_handle

    def select_credential(self, requested_model: str) -> Optional[CallAssignment]:
        """
        Select the best credential for a model.

        Args:
            requested_model: Exact model name (dated variants accepted)

        Returns:
            CallAssignment, or None if nothing can serve the request
        """
        snapshot = self._pool.snapshot

        for credential in snapshot.credentials:
            if not credential.is_selectable:
                continue

            if not self._catalog.supports(credential.tier, requested_model):
                continue

            handle = snapshot.handles.get(credential.id)
            if handle is None:
                continue

            if self._evaluator.is_at_capacity(
                credential.id, requested_model, credential.tier
            ):
                lib_logger.debug(
                    f"Credential '{credential.name}' at capacity for {requested_model} "
                    f"({credential.tier.value}), trying next"
                )
                continue

            return pooled_assignment(credential, handle, requested_model)

        if self._fallback is not None:
            lib_logger.debug(f"Pool exhausted for {requested_model}, using fallback credential")
            return fallback_assignment(self._fallback, self._fallback_handle, requested_model)

        lib_logger.debug(f"No credential available for {requested_model}")
        return None
