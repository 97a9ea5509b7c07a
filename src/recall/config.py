from __future__ import annotations

import logging
import os

logger = logging.getLogger(__name__)


def _parse_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on", "y")


def notifier_kind() -> str:
    return os.getenv("RECALL_NOTIFIER", "webpush")


def vapid_public_key() -> str | None:
    return os.getenv("VAPID_PUBLIC_KEY") or None


def vapid_private_key() -> str | None:
    return os.getenv("VAPID_PRIVATE_KEY") or None


def vapid_claim_email() -> str | None:
    return os.getenv("VAPID_CLAIM_EMAIL") or None


def anthropic_api_key() -> str:
    return os.environ.get("ANTHROPIC_API_KEY", "")


def jobs_enabled() -> bool:
    return _parse_bool("RECALL_ENABLE_JOBS", True)


def immediate_delay() -> float:
    try:
        return float(os.getenv("RECALL_IMMEDIATE_DELAY", "1"))
    except ValueError:
        logger.warning("RECALL_IMMEDIATE_DELAY is not a number, using 1 second")
        return 1.0
