# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

from typing import TYPE_CHECKING

from .config import RouterConfig, load_router_config
from .errors import NoAvailableKeysError, RegistryUnavailableError
from .router import KeyRouter
from .types import CallAssignment, CapacityInfo, Credential, Tier

# For type checkers, import the executor statically.
# At runtime it's lazy-loaded via __getattr__.
if TYPE_CHECKING:
    from .executor import ExecutionResult, PlanExecutor

__all__ = [
    "KeyRouter",
    "RouterConfig",
    "load_router_config",
    "CallAssignment",
    "CapacityInfo",
    "Credential",
    "Tier",
    "NoAvailableKeysError",
    "RegistryUnavailableError",
    "PlanExecutor",
    "ExecutionResult",
]


def __getattr__(name):
    """Lazy-load the plan executor to speed up module import."""
    if name == "PlanExecutor":
        from .executor import PlanExecutor

        return PlanExecutor
    if name == "ExecutionResult":
        from .executor import ExecutionResult

        return ExecutionResult
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
