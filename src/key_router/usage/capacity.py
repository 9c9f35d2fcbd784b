# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Capacity evaluator.

Checks whether a credential/model pair still has headroom under the
tier's rate limits.
"""

import logging
from typing import Optional

from ..config.defaults import CAPACITY_THRESHOLD
from ..config.tiers import TierCatalog
from ..types import CapacityInfo, PeriodType, RateLimit, Tier
from .ledger import UsageLedger

lib_logger = logging.getLogger("key_router")


class CapacityEvaluator:
    """
    Evaluates usage against tier limits.

    A pair is at capacity once any of RPM, TPM (input tokens) or RPD
    reaches ``threshold`` of its limit. A model the tier does not serve is
    reported as at capacity, so selection skips it like any full pair.
    """

    def __init__(
        self,
        ledger: UsageLedger,
        catalog: TierCatalog,
        threshold: float = CAPACITY_THRESHOLD,
    ):
        """
        Initialize capacity evaluator.

        Args:
            ledger: Usage ledger to read counters from
            catalog: Tier catalog with rate limit tables
            threshold: Fraction of a limit treated as full
        """
        self._ledger = ledger
        self._catalog = catalog
        self.threshold = threshold

    def resolve_limit(self, tier: Tier, model: str) -> Optional[RateLimit]:
        return self._catalog.resolve_limit(tier, model)

    def is_at_capacity(self, credential_id: str, model: str, tier: Tier) -> bool:
        limit = self.resolve_limit(tier, model)
        if limit is None:
            return True
        return self._check(credential_id, model, limit)

    def get_capacity_info(
        self, credential_id: str, model: str, tier: Tier
    ) -> Optional[CapacityInfo]:
        """
        Get a read-only capacity snapshot.

        Returns:
            CapacityInfo, or None if the model is unsupported for the tier
        """
        limit = self.resolve_limit(tier, model)
        if limit is None:
            return None

        minute = self._ledger.get_usage(credential_id, model, PeriodType.MINUTE)
        day = self._ledger.get_usage(credential_id, model, PeriodType.DAY)

        return CapacityInfo(
            model=model,
            rpm_used=minute.request_count,
            rpm_limit=limit.rpm,
            tpm_used=minute.input_tokens,
            tpm_limit=limit.tpm,
            rpd_used=day.request_count,
            rpd_limit=limit.rpd,
            at_capacity=self._check(credential_id, model, limit),
        )

    def _check(self, credential_id: str, model: str, limit: RateLimit) -> bool:
        if self._ledger.is_saturated(credential_id, model):
            return True

        minute = self._ledger.get_usage(credential_id, model, PeriodType.MINUTE)
        if minute.request_count >= limit.rpm * self.threshold:
            return True
        if minute.input_tokens >= limit.tpm * self.threshold:
            return True

        day = self._ledger.get_usage(credential_id, model, PeriodType.DAY)
        if day.request_count >= limit.rpd * self.threshold:
            return True

        return False
