# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Usage tracking for the key router.

- ledger: per-minute/per-day counters
- capacity: threshold checks against tier limits
- reporter: periodic delivery to the registry
"""

from .ledger import UsageLedger, day_key, minute_key, utcnow
from .capacity import CapacityEvaluator
from .reporter import UsageReporter

__all__ = [
    "UsageLedger",
    "CapacityEvaluator",
    "UsageReporter",
    "day_key",
    "minute_key",
    "utcnow",
]
