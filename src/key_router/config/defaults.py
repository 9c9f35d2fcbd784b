# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Centralized defaults for the key router.

This file contains all tunable default values for:
- Capacity evaluation
- Failure tracking and revocation
- Registry sync and usage reporting
- Plan execution retries

Environment variables can override these at runtime (see loader.py).
"""

# =============================================================================
# CAPACITY DEFAULTS
# =============================================================================

# Fraction of any provider limit at which a credential/model pair is
# treated as full. Leaves headroom for skew between local counters and
# the provider's own accounting.
# Override: CAPACITY_THRESHOLD=<fraction>
CAPACITY_THRESHOLD: float = 0.80

# =============================================================================
# FAILURE TRACKING DEFAULTS
# =============================================================================

# Consecutive failures before a credential is marked invalid
# Override: MAX_CONSECUTIVE_FAILURES=<count>
MAX_CONSECUTIVE_FAILURES: int = 10

# =============================================================================
# REGISTRY DEFAULTS
# =============================================================================

# Base URL of the credential registry (dashboard internal API)
# Override: DASHBOARD_SERVICE_URL=<url>
DEFAULT_REGISTRY_URL: str = "http://dashboard:3000"

# How often to refresh the credential pool from the registry (seconds)
# Override: KEY_REFRESH_INTERVAL=<seconds>
DEFAULT_KEY_REFRESH_INTERVAL: int = 60

# How often to flush usage counters to the registry (seconds)
# Override: USAGE_FLUSH_INTERVAL=<seconds>
DEFAULT_USAGE_FLUSH_INTERVAL: int = 30

# Timeout for a single registry round trip (seconds)
# Override: REGISTRY_TIMEOUT=<seconds>
DEFAULT_REGISTRY_TIMEOUT: float = 5.0

# =============================================================================
# PLAN EXECUTION DEFAULTS
# =============================================================================

# Attempts per (credential, model) entry before moving to the next one
# Override: MAX_RETRIES_PER_MODEL=<count>
MAX_RETRIES_PER_MODEL: int = 2

# Exponential backoff between attempts on the same entry (seconds)
BASE_RETRY_DELAY: float = 1.0
MAX_RETRY_DELAY: float = 5.0

# =============================================================================
# FALLBACK CREDENTIAL
# =============================================================================

FALLBACK_CREDENTIAL_NAME: str = ".env (fallback)"

# Tier label reported for assignments using the fallback credential
FALLBACK_TIER_LABEL: str = "env"

# litellm provider prefix for routed models
DEFAULT_PROVIDER_PREFIX: str = "gemini"
