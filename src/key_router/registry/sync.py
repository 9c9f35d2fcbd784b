# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Registry sync.

Refreshes the credential pool from the registry. When the registry is
unreachable the last known pool stays in service unchanged.
"""

import logging

from ..errors import RegistryUnavailableError
from ..pool import CredentialPool
from .client import RegistryClient

lib_logger = logging.getLogger("key_router")


class RegistrySync:
    """Pulls the credential list and swaps it into the pool."""

    def __init__(self, client: RegistryClient, pool: CredentialPool):
        self._client = client
        self._pool = pool
        self.last_refresh_ok: bool = False

    async def refresh(self) -> bool:
        """
        Run one sync cycle.

        Returns:
            True if the pool was replaced, False if the previous pool was
            kept (registry unreachable, non-2xx, or endpoint absent)
        """
        try:
            credentials = await self._client.fetch_credentials()
        except RegistryUnavailableError as e:
            lib_logger.warning(
                f"Failed to refresh credentials, using existing pool "
                f"({len(self._pool)} cached): {e}"
            )
            self.last_refresh_ok = False
            return False

        if credentials is None:
            lib_logger.debug("Credential registry endpoint not available yet (404)")
            self.last_refresh_ok = False
            return False

        self._pool.replace(credentials)
        self.last_refresh_ok = True

        lib_logger.debug(
            f"Credentials refreshed: {len(self._pool)} selectable of {len(credentials)} "
            f"[{', '.join(f'{c.name}({c.tier.value})' for c in self._pool)}]"
        )
        return True
