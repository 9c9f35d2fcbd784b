# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Credential pool.

Holds the current credential snapshot and the provider handle cached for
each credential. The snapshot is immutable and replaced by a single
attribute assignment, so readers always observe either the old or the new
pool in full.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Iterator, Mapping, Optional, Set, Tuple

from .config.defaults import DEFAULT_PROVIDER_PREFIX
from .types import Credential, ProviderHandle

lib_logger = logging.getLogger("key_router")

HandleFactory = Callable[[Credential], ProviderHandle]


def default_handle_factory(credential: Credential) -> ProviderHandle:
    return ProviderHandle(api_key=credential.api_key, provider_prefix=DEFAULT_PROVIDER_PREFIX)


@dataclass(frozen=True)
class PoolSnapshot:
    """One consistent view of the pool."""

    credentials: Tuple[Credential, ...] = ()
    handles: Mapping[str, ProviderHandle] = field(default_factory=dict)


class CredentialPool:
    """
    Ordered pool of selectable credentials.

    Ordering is priority ascending, ties broken by the order credentials
    were supplied. Credentials revoked locally stay excluded for the
    lifetime of the pool, even if the registry still reports them valid.
    """

    def __init__(self, handle_factory: Optional[HandleFactory] = None):
        self._handle_factory = handle_factory or default_handle_factory
        self._snapshot = PoolSnapshot()
        self._revoked: Set[str] = set()

    @property
    def snapshot(self) -> PoolSnapshot:
        return self._snapshot

    @property
    def credentials(self) -> Tuple[Credential, ...]:
        return self._snapshot.credentials

    def __len__(self) -> int:
        return len(self._snapshot.credentials)

    def __iter__(self) -> Iterator[Credential]:
        return iter(self._snapshot.credentials)

    def get(self, credential_id: str) -> Optional[Credential]:
        for credential in self._snapshot.credentials:
            if credential.id == credential_id:
                return credential
        return None

    def get_handle(self, credential_id: str) -> Optional[ProviderHandle]:
        return self._snapshot.handles.get(credential_id)

    def is_revoked(self, credential_id: str) -> bool:
        return credential_id in self._revoked

    def revoke(self, credential_id: str) -> None:
        """Mark a credential invalid for the rest of the process lifetime."""
        self._revoked.add(credential_id)
        credential = self.get(credential_id)
        if credential is not None:
            credential.is_valid = False

    def replace(self, credentials: Iterable[Credential]) -> None:
        """
        Swap in a new credential snapshot.

        Inactive, invalid and locally revoked credentials are dropped, the
        rest sorted by priority. Handles are reused for credentials that
        survive (same id and secret) and discarded for the ones that left.
        Local failure counters carry over for surviving credentials.
        """
        previous = self._snapshot
        previous_by_id: Dict[str, Credential] = {c.id: c for c in previous.credentials}

        selectable = []
        for credential in credentials:
            if not credential.is_selectable:
                continue
            if credential.id in self._revoked:
                lib_logger.debug(
                    f"Skipping locally revoked credential '{credential.name}' from registry snapshot"
                )
                continue
            old = previous_by_id.get(credential.id)
            if old is not None:
                credential.consecutive_failures = old.consecutive_failures
            selectable.append(credential)

        ordered = tuple(sorted(selectable, key=lambda c: c.priority))

        handles: Dict[str, ProviderHandle] = {}
        for credential in ordered:
            existing = previous.handles.get(credential.id)
            if existing is not None and existing.api_key == credential.api_key:
                handles[credential.id] = existing
            else:
                handles[credential.id] = self._handle_factory(credential)

        dropped = set(previous.handles) - set(handles)
        if dropped:
            lib_logger.debug(f"Discarded handles for {len(dropped)} departed credential(s)")

        self._snapshot = PoolSnapshot(credentials=ordered, handles=handles)
