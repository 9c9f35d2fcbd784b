# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Type definitions for the key router.

This module contains the dataclasses and enums shared by the usage
ledger, capacity evaluation, credential selection and registry sync.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional, Tuple

lib_logger = logging.getLogger("key_router")


# =============================================================================
# ENUMS
# =============================================================================


class Tier(str, Enum):
    """Service tier of a credential. Controls models and rate limits."""

    FREE = "free"
    TIER1 = "tier1"
    TIER2 = "tier2"


class PeriodType(str, Enum):
    """Granularity of a usage bucket."""

    MINUTE = "minute"
    DAY = "day"


def parse_tier(value: Any) -> Tier:
    """
    Parse a tier from registry data.

    Unknown values are routed with free-tier limits, the most conservative
    catalog, rather than being rejected.
    """
    if isinstance(value, Tier):
        return value
    try:
        return Tier(str(value).strip().lower())
    except ValueError:
        lib_logger.warning(f"Unknown credential tier '{value}', treating as free")
        return Tier.FREE


# =============================================================================
# RATE LIMITS
# =============================================================================


@dataclass(frozen=True)
class RateLimit:
    """
    Provider-enforced limits for one (tier, model) pair.

    Any field may be ``math.inf`` for "no limit".
    """

    rpm: float  # Requests per minute
    tpm: float  # Input tokens per minute
    rpd: float  # Requests per day


# =============================================================================
# CREDENTIALS
# =============================================================================


@dataclass
class Credential:
    """
    A pooled provider credential.

    The secret is excluded from repr so a credential can be logged safely.
    """

    id: str
    name: str
    api_key: str = field(repr=False)
    tier: Tier = Tier.FREE
    is_active: bool = True
    is_valid: bool = True
    priority: int = 0  # Lower = tried first
    consecutive_failures: int = 0
    last_used_at: Optional[str] = None  # ISO format

    @property
    def is_selectable(self) -> bool:
        return self.is_active and self.is_valid


@dataclass(frozen=True)
class FallbackCredential:
    """Statically configured credential used when the pool cannot serve."""

    api_key: str = field(repr=False)
    models: Tuple[str, ...] = ()
    name: str = ".env (fallback)"


@dataclass(frozen=True)
class ProviderHandle:
    """
    Cached per-credential client handle.

    Holds what a provider call needs to authenticate with one credential.
    Built once per credential id and discarded when the credential leaves
    the pool.
    """

    api_key: str = field(repr=False)
    provider_prefix: str = "gemini"

    def litellm_model(self, model: str) -> str:
        """Return the litellm model string, e.g. ``gemini/gemini-2.5-flash``."""
        if "/" in model:
            return model
        return f"{self.provider_prefix}/{model}"

    def completion_kwargs(self, model: str) -> Dict[str, Any]:
        """Keyword arguments for ``litellm.acompletion``."""
        return {"model": self.litellm_model(model), "api_key": self.api_key}


@dataclass(frozen=True)
class CallAssignment:
    """
    A credential + model pair handed to a caller.

    ``credential_id`` is None when the assignment uses the fallback
    credential. Short-lived, never persisted.
    """

    credential_id: Optional[str]
    credential_name: str
    tier: str  # Tier value, or "env" for the fallback
    model: str
    handle: ProviderHandle = field(repr=False, compare=False)

    @property
    def is_fallback(self) -> bool:
        return self.credential_id is None

    @property
    def api_key(self) -> str:
        return self.handle.api_key


# =============================================================================
# USAGE TYPES
# =============================================================================


class UsageKey(NamedTuple):
    """Composite ledger key. Used directly as a mapping key."""

    credential_id: str
    model: str
    period_type: PeriodType
    period_key: str


@dataclass
class UsageCounter:
    """Counters for one usage bucket."""

    request_count: int = 0
    input_tokens: int = 0
    total_tokens: int = 0

    @property
    def is_empty(self) -> bool:
        return self.request_count == 0

    def copy(self) -> "UsageCounter":
        return UsageCounter(
            request_count=self.request_count,
            input_tokens=self.input_tokens,
            total_tokens=self.total_tokens,
        )


@dataclass(frozen=True)
class UsageRecord:
    """Flattened ledger entry as reported to the registry."""

    credential_id: str
    model: str
    period_type: str
    period_key: str
    request_count: int
    input_tokens: int
    total_tokens: int

    @classmethod
    def from_bucket(cls, key: UsageKey, counter: UsageCounter) -> "UsageRecord":
        return cls(
            credential_id=key.credential_id,
            model=key.model,
            period_type=key.period_type.value,
            period_key=key.period_key,
            request_count=counter.request_count,
            input_tokens=counter.input_tokens,
            total_tokens=counter.total_tokens,
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "key_id": self.credential_id,
            "model": self.model,
            "period_type": self.period_type,
            "period_key": self.period_key,
            "request_count": self.request_count,
            "input_tokens": self.input_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True)
class CapacityInfo:
    """Read-only capacity snapshot for one (credential, model) pair."""

    model: str
    rpm_used: int
    rpm_limit: float
    tpm_used: int
    tpm_limit: float
    rpd_used: int
    rpd_limit: float
    at_capacity: bool

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe dict. Unlimited (inf) limits become None."""
        return {
            "model": self.model,
            "rpm_used": self.rpm_used,
            "rpm_limit": _json_limit(self.rpm_limit),
            "tpm_used": self.tpm_used,
            "tpm_limit": _json_limit(self.tpm_limit),
            "rpd_used": self.rpd_used,
            "rpd_limit": _json_limit(self.rpd_limit),
            "at_capacity": self.at_capacity,
        }


def _json_limit(value: float) -> Optional[float]:
    if value == float("inf"):
        return None
    return value
