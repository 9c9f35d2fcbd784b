# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Usage reporter.

Flushes ledger buckets to the registry. Records carry absolute counts, so
a bucket that is sent twice (once mid-minute, again after the minute
closes) simply overwrites itself on the registry side.
"""

import logging

from ..errors import RegistryUnavailableError
from ..registry.client import RegistryClient
from ..types import UsageRecord
from .ledger import UsageLedger

lib_logger = logging.getLogger("key_router")


class UsageReporter:
    """Pushes usage snapshots and prunes delivered stale buckets."""

    def __init__(self, client: RegistryClient, ledger: UsageLedger):
        self._client = client
        self._ledger = ledger

    async def flush(self) -> int:
        """
        Send every non-empty bucket to the registry.

        On success, buckets outside the current minute/day are pruned. On
        failure nothing is removed and the same data is retried next cycle.

        Returns:
            Number of records delivered (0 on failure or nothing to send)
        """
        snapshot = self._ledger.snapshot()
        if not snapshot:
            self._ledger.prune_stale(reported={})
            return 0

        records = [UsageRecord.from_bucket(key, counter) for key, counter in snapshot]

        try:
            await self._client.push_usage(records)
        except RegistryUnavailableError as e:
            lib_logger.warning(
                f"Failed to flush {len(records)} usage record(s), will retry: {e}"
            )
            return 0

        self._ledger.prune_stale(reported=dict(snapshot))
        lib_logger.debug(f"Flushed {len(records)} usage record(s)")
        return len(records)
