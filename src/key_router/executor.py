# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Call plan execution with retry and fallback.

Runs a caller-supplied provider call across the router's call plan:
every entry gets a bounded number of attempts, errors are classified to
decide between retrying, moving to the next model, or abandoning the
credential, and every outcome is reported back to the router.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Optional,
    Sequence,
    Set,
    Tuple,
)

from .config.defaults import BASE_RETRY_DELAY, MAX_RETRIES_PER_MODEL, MAX_RETRY_DELAY
from .errors import (
    ERROR_RATE_LIMIT,
    NoAvailableKeysError,
    classify_error,
)
from .failure_logger import log_failure
from .types import CallAssignment

if TYPE_CHECKING:
    from .router import KeyRouter

lib_logger = logging.getLogger("key_router")

ProviderCall = Callable[[CallAssignment], Awaitable[Any]]


@dataclass
class ExecutionResult:
    """A successful call and the assignment that served it."""

    response: Any
    assignment: CallAssignment
    attempts: int


def extract_usage(response: Any) -> Tuple[int, int]:
    """
    Pull (input_tokens, total_tokens) out of a provider response.

    Accepts litellm ModelResponse objects and plain dicts. Missing usage
    counts as zero.
    """
    usage = response.get("usage") if isinstance(response, dict) else getattr(response, "usage", None)
    if usage is None:
        return 0, 0
    if isinstance(usage, dict):
        prompt = usage.get("prompt_tokens") or 0
        total = usage.get("total_tokens") or 0
    else:
        prompt = getattr(usage, "prompt_tokens", 0) or 0
        total = getattr(usage, "total_tokens", 0) or 0
    return int(prompt), int(total)


class PlanExecutor:
    """
    Executes a provider call over a call plan.

    Error handling per plan entry:
    - rate limit: mark the pair full, move to the next entry
    - model unavailable: move to the next entry
    - invalid key: skip every remaining entry of that credential
    - anything else: back off and retry the same entry
    """

    def __init__(
        self,
        router: "KeyRouter",
        max_retries_per_model: Optional[int] = None,
        base_delay: float = BASE_RETRY_DELAY,
        max_delay: float = MAX_RETRY_DELAY,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._router = router
        if max_retries_per_model is None:
            max_retries_per_model = router.config.max_retries_per_model
        self._max_retries = max(1, max_retries_per_model or MAX_RETRIES_PER_MODEL)
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._sleep = sleep

    def backoff(self, retry: int) -> float:
        return min(self._base_delay * (2**retry), self._max_delay)

    async def execute(
        self,
        call: ProviderCall,
        preferred_models: Optional[Sequence[str]] = None,
        allowed_models: Optional[Sequence[str]] = None,
    ) -> ExecutionResult:
        """
        Run ``call`` until one plan entry succeeds.

        Args:
            call: Async callable performing the provider request for an
                assignment
            preferred_models: Model order to try
            allowed_models: Optional model filter

        Returns:
            ExecutionResult for the first successful attempt

        Raises:
            NoAvailableKeysError: The plan was empty or every entry failed
        """
        plan = self._router.get_call_plan(preferred_models, allowed_models)
        if not plan:
            raise NoAvailableKeysError("No credential available for this request")

        attempts = 0
        last_error: Optional[str] = None
        abandoned: Set[str] = set()

        for assignment in plan:
            credential_id = assignment.credential_id
            if credential_id is not None and credential_id in abandoned:
                continue

            for retry in range(self._max_retries):
                attempts += 1
                try:
                    response = await call(assignment)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    classified = classify_error(e)
                    last_error = classified.error_type

                    log_failure(
                        api_key=assignment.api_key,
                        model=assignment.model,
                        attempt=attempts,
                        error=e,
                        credential_name=assignment.credential_name,
                        error_type=classified.error_type,
                    )
                    self._router.record_failure(credential_id, str(e)[:200])

                    if classified.error_type == ERROR_RATE_LIMIT:
                        self._router.record_rate_limit(credential_id, assignment.model)
                        lib_logger.info(
                            f"Rate limited on '{assignment.credential_name}' "
                            f"({assignment.model}), trying next entry"
                        )
                        break

                    if classified.skips_credential:
                        if credential_id is not None:
                            abandoned.add(credential_id)
                        lib_logger.warning(
                            f"Credential '{assignment.credential_name}' rejected by provider, "
                            f"skipping its remaining models"
                        )
                        break

                    if classified.skips_model:
                        lib_logger.info(
                            f"Model {assignment.model} unavailable on "
                            f"'{assignment.credential_name}', trying next entry"
                        )
                        break

                    if retry < self._max_retries - 1:
                        wait_time = self.backoff(retry)
                        lib_logger.info(
                            f"Transient error on '{assignment.credential_name}' "
                            f"({assignment.model}). Retrying in {wait_time:.1f}s"
                        )
                        await self._sleep(wait_time)
                    continue

                input_tokens, total_tokens = extract_usage(response)
                self._router.record_success(credential_id)
                self._router.record_usage(
                    credential_id, assignment.model, input_tokens, total_tokens
                )
                return ExecutionResult(
                    response=response, assignment=assignment, attempts=attempts
                )

        lib_logger.error(
            f"Call plan exhausted after {attempts} attempt(s) across {len(plan)} entries"
        )
        raise NoAvailableKeysError(
            f"All credentials exhausted after {attempts} attempt(s)",
            attempts=attempts,
            last_error=last_error,
        )
