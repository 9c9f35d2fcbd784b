# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

import json
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from .errors import mask_credential

FAILURE_LOGGER_NAME = "key_router.failures"


class JsonFormatter(logging.Formatter):
    def format(self, record):
        log_record = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
        }
        if isinstance(record.msg, dict):
            log_record.update(record.msg)
        else:
            log_record["message"] = record.getMessage()
        return json.dumps(log_record, default=str)


def setup_failure_logger(log_dir: str = "logs") -> logging.Logger:
    """Sets up a dedicated JSON logger for failed provider calls."""
    if not os.path.exists(log_dir):
        os.makedirs(log_dir)

    logger = logging.getLogger(FAILURE_LOGGER_NAME)
    logger.setLevel(logging.INFO)

    # Keep failure records out of the console
    logger.propagate = False

    handler = RotatingFileHandler(
        os.path.join(log_dir, "failures.log"),
        maxBytes=5 * 1024 * 1024,  # 5 MB
        backupCount=2,
    )
    handler.setFormatter(JsonFormatter())

    # Add handler only if it hasn't been added before
    if not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        logger.addHandler(handler)

    return logger


def log_failure(
    api_key: str,
    model: str,
    attempt: int,
    error: Exception,
    credential_name: Optional[str] = None,
    error_type: Optional[str] = None,
):
    """Logs a structured record for a failed provider call."""
    # Without setup_failure_logger() this logger has no file handler and
    # records go wherever the host routes "key_router".
    failure_logger = logging.getLogger(FAILURE_LOGGER_NAME)

    raw_response = None
    if hasattr(error, "response") and hasattr(error.response, "text"):
        raw_response = error.response.text

    log_data = {
        "api_key_ending": mask_credential(api_key),
        "credential_name": credential_name,
        "model": model,
        "attempt_number": attempt,
        "error_type": error_type or type(error).__name__,
        "error_class": type(error).__name__,
        "error_message": str(error),
        "raw_response": raw_response,
    }
    failure_logger.error(log_data)
