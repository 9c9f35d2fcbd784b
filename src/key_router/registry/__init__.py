# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

from .client import CredentialRecord, RegistryClient
from .sync import RegistrySync

__all__ = ["CredentialRecord", "RegistryClient", "RegistrySync"]
