# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Tier catalogs and rate limit tables.

Limits are per credential (per provider project) and per model. Values
follow the provider's published rate limit dashboard; "unlimited" daily
quotas are represented as 999_999.

Model fallback order (cheapest -> more capable):
    gemini-2.0-flash-lite -> gemini-2.5-flash-lite -> gemini-2.0-flash
    -> gemini-2.5-flash -> gemini-3-flash-preview
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple

from ..types import RateLimit, Tier

# =============================================================================
# MODEL ORDERS
# =============================================================================

# Default plan order for free-tier credentials. Only models every tier serves.
MODEL_FALLBACK_ORDER: Tuple[str, ...] = (
    "gemini-2.5-flash-lite",
    "gemini-2.5-flash",
    "gemini-3-flash-preview",
)

# Default plan order for paid tiers, adding the 2.0 models
MODEL_FALLBACK_ORDER_PAID: Tuple[str, ...] = (
    "gemini-2.0-flash-lite",
    "gemini-2.5-flash-lite",
    "gemini-2.0-flash",
    "gemini-2.5-flash",
    "gemini-3-flash-preview",
)

# =============================================================================
# FREE TIER
# =============================================================================

FREE_TIER_LIMITS: Dict[str, RateLimit] = {
    "gemini-2.5-flash-lite": RateLimit(rpm=10, tpm=250_000, rpd=20),
    "gemini-2.5-flash": RateLimit(rpm=5, tpm=250_000, rpd=20),
    "gemini-3-flash-preview": RateLimit(rpm=5, tpm=250_000, rpd=20),
    "gemini-embedding-001": RateLimit(rpm=100, tpm=30_000, rpd=1_000),
}

# No 2.0 models on the free tier
FREE_TIER_MODELS: Tuple[str, ...] = (
    "gemini-2.5-flash-lite",
    "gemini-2.5-flash",
    "gemini-3-flash-preview",
    "gemini-embedding-001",
)

# =============================================================================
# TIER 1 (billing account linked)
# =============================================================================

TIER1_LIMITS: Dict[str, RateLimit] = {
    "gemini-2.0-flash-lite": RateLimit(rpm=4_000, tpm=4_000_000, rpd=999_999),
    "gemini-2.0-flash": RateLimit(rpm=2_000, tpm=4_000_000, rpd=999_999),
    "gemini-2.5-flash-lite": RateLimit(rpm=4_000, tpm=4_000_000, rpd=999_999),
    "gemini-2.5-flash": RateLimit(rpm=1_000, tpm=1_000_000, rpd=10_000),
    "gemini-2.5-pro": RateLimit(rpm=150, tpm=2_000_000, rpd=1_000),
    "gemini-3-flash-preview": RateLimit(rpm=1_000, tpm=1_000_000, rpd=10_000),
    "gemini-3-pro-preview": RateLimit(rpm=25, tpm=1_000_000, rpd=250),
    "gemini-embedding-001": RateLimit(rpm=3_000, tpm=1_000_000, rpd=999_999),
}

TIER1_MODELS: Tuple[str, ...] = (
    "gemini-2.0-flash-lite",
    "gemini-2.0-flash",
    "gemini-2.5-flash-lite",
    "gemini-2.5-flash",
    "gemini-2.5-pro",
    "gemini-3-flash-preview",
    "gemini-3-pro-preview",
    "gemini-embedding-001",
)

# =============================================================================
# TIER 2 (>$250 cumulative spend)
# =============================================================================

# Estimated at ~2x Tier 1 until confirmed against a Tier 2 account
TIER2_LIMITS: Dict[str, RateLimit] = {
    "gemini-2.0-flash-lite": RateLimit(rpm=8_000, tpm=8_000_000, rpd=999_999),
    "gemini-2.0-flash": RateLimit(rpm=4_000, tpm=8_000_000, rpd=999_999),
    "gemini-2.5-flash-lite": RateLimit(rpm=8_000, tpm=8_000_000, rpd=999_999),
    "gemini-2.5-flash": RateLimit(rpm=2_000, tpm=4_000_000, rpd=999_999),
    "gemini-2.5-pro": RateLimit(rpm=1_000, tpm=4_000_000, rpd=10_000),
    "gemini-3-flash-preview": RateLimit(rpm=2_000, tpm=4_000_000, rpd=999_999),
    "gemini-3-pro-preview": RateLimit(rpm=150, tpm=2_000_000, rpd=1_000),
    "gemini-embedding-001": RateLimit(rpm=5_000, tpm=4_000_000, rpd=999_999),
}

TIER2_MODELS: Tuple[str, ...] = TIER1_MODELS


def model_matches(model: str, candidate: str) -> bool:
    """True if ``model`` is ``candidate`` or a dated/suffixed variant of it."""
    return model == candidate or model.startswith(candidate)


# =============================================================================
# CATALOG
# =============================================================================


@dataclass
class TierCatalog:
    """
    Model catalog and rate limits for every tier.

    Lookups for a tier missing from the catalog use the free tier entries.
    """

    models: Dict[Tier, Tuple[str, ...]]
    limits: Dict[Tier, Dict[str, RateLimit]]
    default_orders: Dict[Tier, Tuple[str, ...]] = field(default_factory=dict)

    def models_for(self, tier: Tier) -> Tuple[str, ...]:
        return self.models.get(tier, self.models.get(Tier.FREE, ()))

    def limits_for(self, tier: Tier) -> Mapping[str, RateLimit]:
        return self.limits.get(tier, self.limits.get(Tier.FREE, {}))

    def default_models(self, tier: Tier) -> Tuple[str, ...]:
        """Default plan order for a tier (cheapest/fastest first)."""
        if tier in self.default_orders:
            return self.default_orders[tier]
        return self.default_orders.get(Tier.FREE, self.models_for(tier))

    def supports(self, tier: Tier, model: str) -> bool:
        """Check the tier's model list, accepting prefix matches."""
        return any(model_matches(model, m) for m in self.models_for(tier))

    def resolve_limit(self, tier: Tier, model: str) -> Optional[RateLimit]:
        """
        Resolve the rate limit for a model.

        Exact match first, then the longest catalog entry that prefixes
        the model name (tolerates date-suffixed variants).

        Returns:
            RateLimit, or None if the model is not available on the tier
        """
        limits = self.limits_for(tier)
        if model in limits:
            return limits[model]
        for candidate in sorted(limits, key=len, reverse=True):
            if model.startswith(candidate):
                return limits[candidate]
        return None

    @classmethod
    def from_tables(
        cls,
        models: Mapping[Tier, Iterable[str]],
        limits: Mapping[Tier, Mapping[str, RateLimit]],
        default_orders: Optional[Mapping[Tier, Sequence[str]]] = None,
    ) -> "TierCatalog":
        """Build a catalog from plain tables (used by tests and deployments)."""
        return cls(
            models={tier: tuple(names) for tier, names in models.items()},
            limits={tier: dict(table) for tier, table in limits.items()},
            default_orders={
                tier: tuple(order) for tier, order in (default_orders or {}).items()
            },
        )


def get_default_catalog() -> TierCatalog:
    """Get the built-in Gemini catalog."""
    return TierCatalog.from_tables(
        models={
            Tier.FREE: FREE_TIER_MODELS,
            Tier.TIER1: TIER1_MODELS,
            Tier.TIER2: TIER2_MODELS,
        },
        limits={
            Tier.FREE: FREE_TIER_LIMITS,
            Tier.TIER1: TIER1_LIMITS,
            Tier.TIER2: TIER2_LIMITS,
        },
        default_orders={
            Tier.FREE: MODEL_FALLBACK_ORDER,
            Tier.TIER1: MODEL_FALLBACK_ORDER_PAID,
            Tier.TIER2: MODEL_FALLBACK_ORDER_PAID,
        },
    )
