# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Configuration package for the key router.

- defaults: tunable default values
- tiers: tier catalogs and rate limit tables
- loader: RouterConfig and environment loading
"""

from .defaults import (
    CAPACITY_THRESHOLD,
    DEFAULT_KEY_REFRESH_INTERVAL,
    DEFAULT_REGISTRY_TIMEOUT,
    DEFAULT_REGISTRY_URL,
    DEFAULT_USAGE_FLUSH_INTERVAL,
    MAX_CONSECUTIVE_FAILURES,
    MAX_RETRIES_PER_MODEL,
)
from .tiers import (
    MODEL_FALLBACK_ORDER,
    MODEL_FALLBACK_ORDER_PAID,
    TierCatalog,
    get_default_catalog,
    model_matches,
)
from .loader import RouterConfig, load_router_config, parse_model_list

__all__ = [
    "CAPACITY_THRESHOLD",
    "DEFAULT_KEY_REFRESH_INTERVAL",
    "DEFAULT_REGISTRY_TIMEOUT",
    "DEFAULT_REGISTRY_URL",
    "DEFAULT_USAGE_FLUSH_INTERVAL",
    "MAX_CONSECUTIVE_FAILURES",
    "MAX_RETRIES_PER_MODEL",
    "MODEL_FALLBACK_ORDER",
    "MODEL_FALLBACK_ORDER_PAID",
    "TierCatalog",
    "get_default_catalog",
    "model_matches",
    "RouterConfig",
    "load_router_config",
    "parse_model_list",
]
