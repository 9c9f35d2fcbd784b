# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Consecutive failure tracking and automatic credential revocation.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

from .config.defaults import MAX_CONSECUTIVE_FAILURES
from .errors import RegistryUnavailableError
from .pool import CredentialPool

lib_logger = logging.getLogger("key_router")

RevocationNotifier = Callable[[str, str], Awaitable[None]]


class FailureTracker:
    """
    Counts consecutive failures per credential.

    Once a credential reaches ``threshold`` it is revoked for the rest of
    the process lifetime and the registry is notified in the background.
    The local revocation stands even if the notification fails.
    """

    def __init__(
        self,
        pool: CredentialPool,
        threshold: int = MAX_CONSECUTIVE_FAILURES,
        on_revoked: Optional[RevocationNotifier] = None,
    ):
        """
        Initialize the tracker.

        Args:
            pool: Pool whose credentials are tracked
            threshold: Consecutive failures before revocation
            on_revoked: Async callback ``(credential_id, reason)`` invoked
                after a revocation, typically the registry status report
        """
        self._pool = pool
        self.threshold = threshold
        self._on_revoked = on_revoked
        self._pending: Set[asyncio.Task] = set()

    def record_success(self, credential_id: str) -> None:
        credential = self._pool.get(credential_id)
        if credential is None:
            return
        credential.consecutive_failures = 0

    def record_failure(self, credential_id: str, error_detail: str = "") -> bool:
        """
        Record one failed call.

        Args:
            credential_id: Credential that failed
            error_detail: Short description of the error

        Returns:
            True if this failure revoked the credential
        """
        credential = self._pool.get(credential_id)
        if credential is None:
            return False

        if not credential.is_valid or self._pool.is_revoked(credential_id):
            lib_logger.debug(
                f"Ignoring failure for already invalid credential '{credential.name}'"
            )
            return False

        credential.consecutive_failures += 1
        if credential.consecutive_failures < self.threshold:
            lib_logger.debug(
                f"Credential '{credential.name}' failure "
                f"{credential.consecutive_failures}/{self.threshold}: {error_detail}"
            )
            return False

        self._pool.revoke(credential_id)
        reason = f"Auto-disabled after {credential.consecutive_failures} consecutive failures"
        lib_logger.error(
            f"Credential '{credential.name}' revoked: {reason}. Last error: {error_detail}"
        )
        self._notify(credential_id, reason)
        return True

    def _notify(self, credential_id: str, reason: str) -> None:
        if self._on_revoked is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            lib_logger.warning(
                f"No running event loop; registry not notified of revocation for {credential_id}"
            )
            return

        task = loop.create_task(self._run_notify(credential_id, reason))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _run_notify(self, credential_id: str, reason: str) -> None:
        try:
            await self._on_revoked(credential_id, reason)
        except RegistryUnavailableError as e:
            lib_logger.warning(f"Failed to report revocation of {credential_id}: {e}")
        except Exception as e:
            lib_logger.error(
                f"Unexpected error reporting revocation of {credential_id}: {e}",
                exc_info=True,
            )

    async def drain(self) -> None:
        """Wait for outstanding registry notifications."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
