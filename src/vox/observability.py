"""Logging and tracing setup for the vox runtime."""

from __future__ import annotations

import logging
import os
from typing import Optional

from agent_framework.observability import setup_observability

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_LEVELS = ("debug", "info", "warning", "error")

_initialized = False


def configure_logging(level: str = "info") -> None:
    """Send log records to stderr at ``level``."""

    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level}")
    logging.basicConfig(level=numeric, format=LOG_FORMAT, force=True)


def _should_capture_sensitive_data() -> bool:
    raw = os.getenv("VOX_TRACING_CAPTURE_SENSITIVE", "false").strip().lower()
    return raw in {"1", "true", "yes", "on"}


def initialize_tracing(
    *,
    endpoint: Optional[str] = None,
    enable_sensitive_data: Optional[bool] = None,
) -> bool:
    """Configure OpenTelemetry tracing for the model client, once."""

    global _initialized
    if _initialized:
        return False

    otlp_endpoint = (endpoint or os.getenv("VOX_OTLP_ENDPOINT", "")).strip()
    if not otlp_endpoint:
        logging.info("Tracing skipped because no OTLP endpoint is configured.")
        return False

    try:
        setup_observability(
            otlp_endpoint=otlp_endpoint,
            enable_sensitive_data=enable_sensitive_data
            if enable_sensitive_data is not None
            else _should_capture_sensitive_data(),
        )
    except Exception as exc:  # noqa: BLE001 - tracing is optional
        logging.warning("Tracing initialization failed: %s", exc)
        return False

    _initialized = True
    logging.info("Tracing initialized with OTLP endpoint %s", otlp_endpoint)
    return True
