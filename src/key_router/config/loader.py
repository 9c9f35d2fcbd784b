# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Router configuration and environment loading.

Merges:
1. System defaults (defaults.py, tiers.py)
2. Environment variables (always win)
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence, Tuple

from ..types import FallbackCredential
from .defaults import (
    CAPACITY_THRESHOLD,
    DEFAULT_KEY_REFRESH_INTERVAL,
    DEFAULT_PROVIDER_PREFIX,
    DEFAULT_REGISTRY_TIMEOUT,
    DEFAULT_REGISTRY_URL,
    DEFAULT_USAGE_FLUSH_INTERVAL,
    FALLBACK_CREDENTIAL_NAME,
    MAX_CONSECUTIVE_FAILURES,
    MAX_RETRIES_PER_MODEL,
)
from .tiers import MODEL_FALLBACK_ORDER_PAID, TierCatalog, get_default_catalog

lib_logger = logging.getLogger("key_router")


@dataclass
class RouterConfig:
    """
    Complete configuration for a KeyRouter.

    Every value here is externally supplied; nothing in the routing code
    hard-codes limits, intervals or thresholds.
    """

    # Registry
    registry_url: str = DEFAULT_REGISTRY_URL  # Empty disables sync and reporting
    internal_api_key: str = field(default="", repr=False)
    registry_timeout: float = DEFAULT_REGISTRY_TIMEOUT
    refresh_interval: float = DEFAULT_KEY_REFRESH_INTERVAL
    flush_interval: float = DEFAULT_USAGE_FLUSH_INTERVAL

    # Fallback credential
    fallback_api_key: Optional[str] = field(default=None, repr=False)
    fallback_models: Tuple[str, ...] = MODEL_FALLBACK_ORDER_PAID

    # Thresholds
    capacity_threshold: float = CAPACITY_THRESHOLD
    failure_threshold: int = MAX_CONSECUTIVE_FAILURES
    max_retries_per_model: int = MAX_RETRIES_PER_MODEL

    provider_prefix: str = DEFAULT_PROVIDER_PREFIX

    # Tier tables
    catalog: TierCatalog = field(default_factory=get_default_catalog)

    @property
    def registry_enabled(self) -> bool:
        return bool(self.registry_url)

    @property
    def fallback_credential(self) -> Optional[FallbackCredential]:
        if not self.fallback_api_key:
            return None
        return FallbackCredential(
            api_key=self.fallback_api_key,
            models=tuple(self.fallback_models),
            name=FALLBACK_CREDENTIAL_NAME,
        )


def parse_model_list(
    value: Optional[str], fallback: Sequence[str]
) -> Tuple[str, ...]:
    """
    Parse a comma-separated model list.

    Blank entries are dropped and duplicates collapsed (first wins). An
    empty result yields ``fallback``.
    """
    raw = (value or "").strip()
    if not raw:
        return tuple(fallback)

    unique = []
    for model in (part.strip() for part in raw.split(",")):
        if model and model not in unique:
            unique.append(model)
    return tuple(unique) if unique else tuple(fallback)


def _env_int(environ: Mapping[str, str], name: str, default: int, minimum: int = 1) -> int:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        lib_logger.warning(f"Invalid {name} '{raw}'. Falling back to {default}.")
        return default
    if value < minimum:
        lib_logger.warning(f"{name} must be >= {minimum}, got {value}. Falling back to {default}.")
        return default
    return value


def _env_float(
    environ: Mapping[str, str],
    name: str,
    default: float,
    minimum: float = 0.0,
    maximum: Optional[float] = None,
) -> float:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        lib_logger.warning(f"Invalid {name} '{raw}'. Falling back to {default}.")
        return default
    if value <= minimum or (maximum is not None and value > maximum):
        lib_logger.warning(f"{name} out of range: {value}. Falling back to {default}.")
        return default
    return value


def load_router_config(
    environ: Optional[Mapping[str, str]] = None,
    catalog: Optional[TierCatalog] = None,
) -> RouterConfig:
    """
    Load router configuration from environment variables.

    Args:
        environ: Mapping to read from (defaults to ``os.environ``)
        catalog: Optional tier catalog override

    Returns:
        Complete RouterConfig
    """
    env = os.environ if environ is None else environ

    registry_url = env.get("DASHBOARD_SERVICE_URL")
    if registry_url is None:
        registry_url = DEFAULT_REGISTRY_URL
    registry_url = registry_url.strip().rstrip("/")

    fallback_api_key = (env.get("GEMINI_API_KEY") or "").strip() or None

    config = RouterConfig(
        registry_url=registry_url,
        internal_api_key=(env.get("INTERNAL_API_KEY") or "").strip(),
        registry_timeout=_env_float(env, "REGISTRY_TIMEOUT", DEFAULT_REGISTRY_TIMEOUT),
        refresh_interval=_env_int(env, "KEY_REFRESH_INTERVAL", DEFAULT_KEY_REFRESH_INTERVAL),
        flush_interval=_env_int(env, "USAGE_FLUSH_INTERVAL", DEFAULT_USAGE_FLUSH_INTERVAL),
        fallback_api_key=fallback_api_key,
        fallback_models=parse_model_list(
            env.get("FALLBACK_MODELS"), MODEL_FALLBACK_ORDER_PAID
        ),
        capacity_threshold=_env_float(
            env, "CAPACITY_THRESHOLD", CAPACITY_THRESHOLD, maximum=1.0
        ),
        failure_threshold=_env_int(env, "MAX_CONSECUTIVE_FAILURES", MAX_CONSECUTIVE_FAILURES),
        max_retries_per_model=_env_int(env, "MAX_RETRIES_PER_MODEL", MAX_RETRIES_PER_MODEL),
        catalog=catalog or get_default_catalog(),
    )

    if not config.registry_enabled:
        lib_logger.info("DASHBOARD_SERVICE_URL is empty; credential registry disabled")
    if config.fallback_api_key is None and not config.registry_enabled:
        lib_logger.warning(
            "No fallback credential and no registry configured; every call plan will be empty"
        )

    return config
