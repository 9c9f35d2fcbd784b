# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Exceptions and error classification for the key router.

Routing operations (selection, planning, ledger) never raise these; they
report exhaustion as ``None`` or an empty plan. Registry errors are caught
at the background task boundary. Only the plan executor surfaces
NoAvailableKeysError to its caller.
"""

from dataclasses import dataclass
from typing import Optional

from litellm.exceptions import (
    AuthenticationError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
)


class RegistryUnavailableError(Exception):
    """The credential registry could not be reached or answered non-2xx."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NoAvailableKeysError(Exception):
    """Every credential and model in the call plan was exhausted."""

    def __init__(
        self,
        message: str,
        attempts: int = 0,
        last_error: Optional[str] = None,
    ):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


# =============================================================================
# ERROR CLASSIFICATION
# =============================================================================

ERROR_RATE_LIMIT = "rate_limit"
ERROR_MODEL_UNAVAILABLE = "model_unavailable"
ERROR_INVALID_KEY = "invalid_key"
ERROR_TRANSIENT = "transient"

_RATE_LIMIT_MARKERS = ("429", "resource_exhausted", "rate limit", "ratelimit")
_MODEL_UNAVAILABLE_MARKERS = ("404", "not found", "not supported")
_INVALID_KEY_MARKERS = ("api_key_invalid", "permission_denied", "401", "api key not valid")


@dataclass
class ClassifiedError:
    """A provider error mapped to the action the executor should take."""

    error_type: str
    message: str
    original: Optional[Exception] = None

    @property
    def skips_model(self) -> bool:
        """Retrying the same entry is pointless."""
        return self.error_type in (ERROR_RATE_LIMIT, ERROR_MODEL_UNAVAILABLE)

    @property
    def skips_credential(self) -> bool:
        """Every remaining entry of the same credential will fail too."""
        return self.error_type == ERROR_INVALID_KEY


def classify_error(error: Exception) -> ClassifiedError:
    """
    Classify a provider exception.

    litellm exception types are checked first; otherwise the message is
    matched against known provider error markers.
    """
    message = str(error)

    if isinstance(error, RateLimitError):
        return ClassifiedError(ERROR_RATE_LIMIT, message, error)
    if isinstance(error, NotFoundError):
        return ClassifiedError(ERROR_MODEL_UNAVAILABLE, message, error)
    if isinstance(error, (AuthenticationError, PermissionDeniedError)):
        return ClassifiedError(ERROR_INVALID_KEY, message, error)

    lowered = message.lower()
    if any(marker in lowered for marker in _RATE_LIMIT_MARKERS):
        return ClassifiedError(ERROR_RATE_LIMIT, message, error)
    if any(marker in lowered for marker in _INVALID_KEY_MARKERS):
        return ClassifiedError(ERROR_INVALID_KEY, message, error)
    if any(marker in lowered for marker in _MODEL_UNAVAILABLE_MARKERS):
        return ClassifiedError(ERROR_MODEL_UNAVAILABLE, message, error)

    return ClassifiedError(ERROR_TRANSIENT, message, error)


def mask_credential(secret: Optional[str], style: str = "short") -> str:
    """
    Mask a secret for safe display.

    Args:
        secret: The credential secret
        style: "short" shows the last 4 chars, "full" shows first and last 4

    Returns:
        Masked string that never contains the full secret
    """
    if not secret:
        return "<none>"
    if len(secret) <= 8:
        return "****"
    if style == "full" and len(secret) > 12:
        return f"{secret[:4]}...{secret[-4:]}"
    return f"...{secret[-4:]}"
