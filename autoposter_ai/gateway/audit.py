"""Audit log for AI generation requests.

One structured JSON line per request: user, capability, provider, model, a
SHA-256 hash of the prompt (never the plaintext), duration and outcome.
Written to the ``autoposter_ai.audit`` logger so a deployment can route it
anywhere a logging handler can go.
"""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timezone

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("autoposter_ai.audit")

AUDIT_STATUSES = ("success", "error", "blocked")


def hash_prompt(prompt: str) -> str:
    return hashlib.sha256(prompt.encode("utf-8")).hexdigest()


def log_audit_entry(
    *,
    user_id: str,
    capability: str,
    provider: str,
    model: str,
    prompt: str,
    duration_ms: int,
    status: str,
    error_code: str | None = None,
    block_rule: str | None = None,
) -> dict | None:
    """Write one audit entry. Never raises; returns the entry for callers that want it."""
    try:
        entry = {
            "type": "AI_AUDIT",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "user_id": user_id,
            "capability": capability,
            "provider": provider,
            "model": model,
            "prompt_hash": hash_prompt(prompt or ""),
            "duration_ms": duration_ms,
            "status": status,
        }
        if error_code:
            entry["error_code"] = error_code
        if block_rule:
            entry["block_rule"] = block_rule

        audit_logger.info(json.dumps(entry, ensure_ascii=False))
        return entry
    except Exception:
        # Audit logging must never break the request
        logger.warning("Failed to write AI audit entry", exc_info=True)
        return None
