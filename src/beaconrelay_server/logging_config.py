"""Logging configuration for the beacon relay server."""
from __future__ import annotations

import logging
import sys
from typing import Any, Mapping

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)


def get_logger(name: str) -> logging.Logger:
    """Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def log_beacon(logger: logging.Logger, request_id: str, payload: Mapping[str, Any]) -> None:
    """Log the keys of a received beacon payload.

    Values are never logged; beacons routinely carry click ids and page URLs.

    Args:
        logger: Logger instance
        request_id: Short correlation id of the inbound request
        payload: Coerced payload mapping
    """
    keys = sorted(str(k) for k in payload.keys())
    logger.info(
        f"[{request_id}] Beacon received (keys): {', '.join(keys) or '-'}",
        extra={
            "request_id": request_id,
            "key_count": len(keys),
            "event_type": payload.get("event_type"),
        }
    )
