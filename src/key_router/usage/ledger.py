# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Usage ledger.

In-memory request/token counters per (credential, model) in the current
UTC minute and day. Crossing a boundary starts a new bucket; there is no
explicit rollover step. Stale buckets are removed by the usage reporter
after they have been delivered.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Mapping, Optional, Set, Tuple

from ..types import PeriodType, UsageCounter, UsageKey

lib_logger = logging.getLogger("key_router")

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def minute_key(now: datetime) -> str:
    """Minute-truncated period key, e.g. ``2026-02-14T09:05``."""
    return now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M")


def day_key(now: datetime) -> str:
    """Day-truncated period key, e.g. ``2026-02-14``."""
    return now.astimezone(timezone.utc).strftime("%Y-%m-%d")


class UsageLedger:
    """
    Usage counters keyed by UsageKey.

    All operations are synchronous and never perform I/O. Mutations are
    serialized by a lock so callers on worker threads are also safe.
    """

    def __init__(self, clock: Optional[Clock] = None):
        """
        Initialize the ledger.

        Args:
            clock: Callable returning the current time (UTC-aware datetime)
        """
        self._clock = clock or utcnow
        self._buckets: Dict[UsageKey, UsageCounter] = {}
        # (credential_id, model, minute_key) pairs the provider rate limited
        self._saturated: Set[Tuple[str, str, str]] = set()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._buckets)

    def current_period_keys(self) -> Tuple[str, str]:
        """Return (minute_key, day_key) for the current time."""
        now = self._clock()
        return minute_key(now), day_key(now)

    def record_usage(
        self,
        credential_id: str,
        model: str,
        input_tokens: int = 0,
        total_tokens: int = 0,
    ) -> None:
        """
        Record one request in the current minute and day buckets.

        Args:
            credential_id: Credential that served the request
            model: Model that was used
            input_tokens: Prompt tokens consumed
            total_tokens: Prompt + completion tokens consumed
        """
        minute, day = self.current_period_keys()
        input_tokens = max(0, int(input_tokens or 0))
        total_tokens = max(0, int(total_tokens or 0))

        with self._lock:
            for key in (
                UsageKey(credential_id, model, PeriodType.MINUTE, minute),
                UsageKey(credential_id, model, PeriodType.DAY, day),
            ):
                counter = self._buckets.get(key)
                if counter is None:
                    counter = self._buckets[key] = UsageCounter()
                counter.request_count += 1
                counter.input_tokens += input_tokens
                counter.total_tokens += total_tokens

    def get_usage(
        self, credential_id: str, model: str, period_type: PeriodType
    ) -> UsageCounter:
        """
        Get a copy of the current bucket for a period type.

        Returns a zeroed counter if nothing was recorded yet. Reading never
        creates a bucket.
        """
        minute, day = self.current_period_keys()
        period_key = minute if period_type == PeriodType.MINUTE else day
        counter = self._buckets.get(UsageKey(credential_id, model, period_type, period_key))
        return counter.copy() if counter is not None else UsageCounter()

    def saturate(self, credential_id: str, model: str) -> None:
        """
        Mark a pair as full for the rest of the current minute.

        Used when the provider rejects a call with a rate limit error
        before local counters reached the threshold. The mark lives beside
        the counters and is never reported as usage.
        """
        minute, _ = self.current_period_keys()
        with self._lock:
            self._saturated.add((credential_id, model, minute))

    def is_saturated(self, credential_id: str, model: str) -> bool:
        minute, _ = self.current_period_keys()
        return (credential_id, model, minute) in self._saturated

    def snapshot(self) -> List[Tuple[UsageKey, UsageCounter]]:
        """Copies of every non-empty bucket."""
        with self._lock:
            return [
                (key, counter.copy())
                for key, counter in self._buckets.items()
                if not counter.is_empty
            ]

    def prune_stale(
        self, reported: Optional[Mapping[UsageKey, UsageCounter]] = None
    ) -> int:
        """
        Delete buckets outside the current minute and day.

        Rate limit marks from earlier minutes are dropped as well.

        Args:
            reported: Counters as they were delivered. A stale bucket that
                moved since then is kept so its final value is sent next
                cycle.

        Returns:
            Number of buckets removed
        """
        minute, day = self.current_period_keys()
        removed = 0
        with self._lock:
            for key in list(self._buckets):
                if key.period_type == PeriodType.MINUTE and key.period_key == minute:
                    continue
                if key.period_type == PeriodType.DAY and key.period_key == day:
                    continue
                if reported is not None:
                    sent = reported.get(key)
                    current = self._buckets[key]
                    if sent is None and not current.is_empty:
                        continue
                    if sent is not None and sent != current:
                        continue
                del self._buckets[key]
                removed += 1
            self._saturated = {mark for mark in self._saturated if mark[2] == minute}
        if removed:
            lib_logger.debug(f"Pruned {removed} stale usage bucket(s)")
        return removed
