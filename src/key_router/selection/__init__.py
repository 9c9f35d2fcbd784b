# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

from .selector import Selector, fallback_assignment, pooled_assignment
from .planner import Planner

__all__ = ["Selector", "Planner", "fallback_assignment", "pooled_assignment"]
