"""Structured logging configuration."""

import logging
import sys
from typing import Any


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Configure structured logging for the billing core."""
    logger = logging.getLogger("maxtt_billing")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logging.DEBUG)

    # Format: timestamp - level - module - message
    formatter = logging.Formatter(
        "%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    return logger


logger = setup_logging()


def log_transition(run_id: str, from_state: str, to_state: str, **kwargs: Any) -> None:
    """Log a workflow state transition."""
    extra = " ".join(f"{k}={v}" for k, v in kwargs.items())
    logger.info(f"TRANSITION run={run_id} {from_state}->{to_state} {extra}".strip())


def log_gate(run_id: str, state: str, signal: str, **kwargs: Any) -> None:
    """Log a gating signal that kept a run where it was."""
    extra = " ".join(f"{k}={v}" for k, v in kwargs.items())
    logger.info(f"GATE run={run_id} state={state} signal={signal} {extra}".strip())


def log_error(message: str, exc: Exception | None = None, **kwargs: Any) -> None:
    """Log an error with optional exception."""
    extra = " ".join(f"{k}={v}" for k, v in kwargs.items())
    if exc:
        logger.error(f"ERROR {message} {extra}".strip(), exc_info=exc)
    else:
        logger.error(f"ERROR {message} {extra}".strip())


def log_external_call(
    service: str, operation: str, success: bool, duration_ms: float | None = None
) -> None:
    """Log a call to the billing API."""
    status = "success" if success else "failed"
    duration = f"duration_ms={duration_ms:.2f}" if duration_ms else ""
    logger.info(f"EXTERNAL {service} {operation} status={status} {duration}".strip())
