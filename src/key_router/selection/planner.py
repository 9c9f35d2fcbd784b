# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Call planner.

Builds the ordered list of credential + model attempts for one logical
request, so a caller can fall back across both dimensions without asking
the router again.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from ..config.tiers import TierCatalog, model_matches
from ..pool import CredentialPool
from ..types import CallAssignment, FallbackCredential, ProviderHandle
from ..usage.capacity import CapacityEvaluator
from .selector import fallback_assignment, pooled_assignment

lib_logger = logging.getLogger("key_router")


def _unique(models: Sequence[str]) -> Tuple[str, ...]:
    seen = []
    for model in models:
        if model not in seen:
            seen.append(model)
    return tuple(seen)


def _is_allowed(model: str, allowed_models: Optional[Sequence[str]]) -> bool:
    if allowed_models is None:
        return True
    return any(model_matches(model, allowed) for allowed in allowed_models)


class Planner:
    """
    Builds deterministic call plans.

    Pool credentials come first in priority order, each crossed with its
    candidate models; the fallback credential comes last. The plan is a
    pure function of pool state and ledger counters: no randomness, so
    identical state always yields the identical order.
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

    def get_call_plan(
        self,
        preferred_models: Optional[Sequence[str]] = None,
        allowed_models: Optional[Sequence[str]] = None,
    ) -> List[CallAssignment]:
        """
        Build the call plan.

        Args:
            preferred_models: Model order to try. When empty, each
                credential uses its tier's default order.
            allowed_models: Optional filter; a model is kept if it equals
                or starts with one of these entries.

        Returns:
            Ordered list of assignments, possibly empty
        """
        plan: List[CallAssignment] = []
        preferred = _unique(preferred_models) if preferred_models else ()
        snapshot = self._pool.snapshot

        for credential in snapshot.credentials:
            if not credential.is_selectable:
                continue

            handle = snapshot.handles.get(credential.id)
            if handle is None:
                continue

            candidates = preferred or self._catalog.default_models(credential.tier)

            for model in candidates:
                if not _is_allowed(model, allowed_models):
                    continue
                if not self._catalog.supports(credential.tier, model):
                    continue
                if self._evaluator.is_at_capacity(credential.id, model, credential.tier):
                    continue
                plan.append(pooled_assignment(credential, handle, model))

        if self._fallback is not None:
            fallback_models = preferred or _unique(self._fallback.models)
            for model in fallback_models:
                if not _is_allowed(model, allowed_models):
                    continue
                plan.append(
                    fallback_assignment(self._fallback, self._fallback_handle, model)
                )

        return plan
