# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

import json
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from .config.defaults import FAILURE_LOG_BACKUP_COUNT, FAILURE_LOG_MAX_BYTES
from .error_handler import mask_credential
from .types import AttemptOutcome, Candidate

# Writes only to failures.log; the orchestrator logs its own summary line
failure_logger = logging.getLogger("ai_fallback.failures")


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
        return json.dumps(log_record)


def configure_failure_logger(log_dir: Optional[str]) -> logging.Logger:
    """
    Attach a rotating JSON file handler writing <log_dir>/failures.log.

    Safe to call repeatedly; the handler is only added once. A None
    log_dir leaves the logger without a file handler.
    """
    failure_logger.setLevel(logging.INFO)
    failure_logger.propagate = False
    if not log_dir:
        return failure_logger

    if any(isinstance(h, RotatingFileHandler) for h in failure_logger.handlers):
        return failure_logger

    os.makedirs(log_dir, exist_ok=True)
    handler = RotatingFileHandler(
        os.path.join(log_dir, "failures.log"),
        maxBytes=FAILURE_LOG_MAX_BYTES,
        backupCount=FAILURE_LOG_BACKUP_COUNT,
    )
    handler.setFormatter(JsonFormatter())
    failure_logger.addHandler(handler)
    return failure_logger


def log_failure(
    candidate: Candidate,
    outcome: AttemptOutcome,
    error: BaseException,
    block_duration: Optional[float] = None,
):
    """Logs a structured record for a failed provider attempt."""
    log_data = {
        "provider": candidate.provider,
        "model": candidate.model,
        "credential": mask_credential(candidate.credential),
        "outcome": outcome.value,
        "error_type": type(error).__name__,
        "error_message": str(error)[:1000],
        "status_code": getattr(error, "status_code", None),
        "block_duration": block_duration,
    }
    failure_logger.error(log_data)
