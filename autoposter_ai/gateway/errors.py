"""Canonical error taxonomy and sanitization for the AI adapter layer.

Every failure leaves an adapter as an ``AdapterError`` with one of the
``ErrorKind`` values below. Messages are sanitized on construction so that a
caller can log or display them without leaking endpoints, credentials or
infrastructure details.
"""

from __future__ import annotations

import asyncio
import re
from enum import Enum

import httpx

from autoposter_ai.gateway.types import Capability, Provider


class ErrorKind(str, Enum):
    """Canonical error kinds."""

    CAPABILITY_NOT_SUPPORTED = "CAPABILITY_NOT_SUPPORTED"
    RATE_LIMITED = "RATE_LIMITED"  # Local limiter, fail-fast mode
    RATE_LIMIT_TIMEOUT = "RATE_LIMIT_TIMEOUT"  # Local limiter, waited too long
    CIRCUIT_OPEN = "CIRCUIT_OPEN"
    TIMEOUT = "TIMEOUT"
    TASK_CREATION_FAILED = "TASK_CREATION_FAILED"
    TASK_FAILED = "TASK_FAILED"
    TASK_TIMEOUT = "TASK_TIMEOUT"
    TEXT_GENERATION_FAILED = "TEXT_GENERATION_FAILED"
    IMAGE_GENERATION_FAILED = "IMAGE_GENERATION_FAILED"
    VIDEO_GENERATION_FAILED = "VIDEO_GENERATION_FAILED"
    PROVIDER_RATE_LIMITED = "PROVIDER_RATE_LIMITED"  # Provider answered HTTP 429
    HTTP_ERROR = "HTTP_ERROR"
    PROMPT_REJECTED = "PROMPT_REJECTED"  # Prompt safety pre-screen
    INVALID_REQUEST = "INVALID_REQUEST"
    MODEL_CAPABILITY_MISMATCH = "MODEL_CAPABILITY_MISMATCH"

    @property
    def counts_as_provider_failure(self) -> bool:
        """Whether this outcome says something about the provider's health."""
        return self not in _NON_PROVIDER_KINDS


_NON_PROVIDER_KINDS = frozenset(
    {
        ErrorKind.CAPABILITY_NOT_SUPPORTED,
        ErrorKind.RATE_LIMITED,
        ErrorKind.RATE_LIMIT_TIMEOUT,
        ErrorKind.CIRCUIT_OPEN,
        ErrorKind.PROMPT_REJECTED,
        ErrorKind.INVALID_REQUEST,
        ErrorKind.MODEL_CAPABILITY_MISMATCH,
    }
)

GENERATION_FAILURE_KINDS: dict[Capability, ErrorKind] = {
    Capability.TEXT: ErrorKind.TEXT_GENERATION_FAILED,
    Capability.IMAGE: ErrorKind.IMAGE_GENERATION_FAILED,
    Capability.VIDEO: ErrorKind.VIDEO_GENERATION_FAILED,
}


# ---------------------------------------------------------------------------
# Sanitization
# ---------------------------------------------------------------------------

MAX_ERROR_MESSAGE_LENGTH = 300

# Shorter configured keys are not replaced literally; they would match ordinary words
MIN_REDACTED_SECRET_LENGTH = 8

# Order matters: URLs first so hostnames/paths inside them go in one piece.
_SANITIZE_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\b(?:https?|wss?|gs)://\S+", re.IGNORECASE), "[url]"),
    (re.compile(r"\bBearer\s+\S+", re.IGNORECASE), "Bearer [redacted]"),
    (
        re.compile(r"\b(api[_-]?key|key|token|access_token|secret|password|authorization)\s*[=:]\s*\S+", re.IGNORECASE),
        r"\1=[redacted]",
    ),
    (re.compile(r"\bAIza[0-9A-Za-z_\-]{20,}"), "[redacted-key]"),
    (re.compile(r"\bsk-[A-Za-z0-9_\-]{12,}"), "[redacted-key]"),
    (re.compile(r"\b[0-9a-fA-F]{32}\b"), "[redacted-key]"),
    (re.compile(r"\b[\w.-]+\.(?:googleapis\.com|kie\.ai|internal|local|svc\.cluster\.local)\b", re.IGNORECASE), "[host]"),
    (re.compile(r"\b(?:v\d+(?:beta|alpha)?/)?models/[\w.\-]+(?::\w+)?"), "[endpoint]"),
    (re.compile(r"[A-Za-z]:\\[^\s]+"), "[path]"),
    (re.compile(r"(?:~|\.{1,2})?(?:/[\w.\-]+){2,}/?"), "[path]"),
    (re.compile(r"\b[A-Za-z0-9_\-]{40,}\b"), "[redacted-token]"),
]


def sanitize_message(message: str, max_length: int = MAX_ERROR_MESSAGE_LENGTH) -> str:
    """Strip URLs, hosts, credentials and paths from a message and bound its length."""
    if not message:
        return ""
    text = str(message)
    for pattern, replacement in _SANITIZE_RULES:
        text = pattern.sub(replacement, text)
    text = re.sub(r"\s+", " ", text).strip()
    if len(text) > max_length:
        text = text[: max_length - 1].rstrip() + "…"
    return text


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class AdapterError(Exception):
    """The only error type that crosses the adapter boundary."""

    def __init__(
        self,
        kind: ErrorKind,
        provider: Provider,
        message: str,
        http_status: int | None = None,
        rule: str | None = None,
        retry_after_seconds: float | None = None,
    ):
        self.kind = kind
        self.provider = provider
        self.message = sanitize_message(message)
        self.http_status = http_status
        self.rule = rule
        self.retry_after_seconds = retry_after_seconds
        super().__init__(f"[{provider.value}] {self.message}")

    def redact(self, secret: str | None) -> AdapterError:
        """Replace a literal credential in the message, whatever its shape."""
        if secret and len(secret) >= MIN_REDACTED_SECRET_LENGTH and secret in self.message:
            self.message = self.message.replace(secret, "[redacted-key]")
            self.args = (f"[{self.provider.value}] {self.message}",)
        return self

    @property
    def code(self) -> str:
        return self.kind.value

    @property
    def is_transient(self) -> bool:
        """Whether retrying the same call later may succeed."""
        if self.kind in (ErrorKind.TIMEOUT, ErrorKind.PROVIDER_RATE_LIMITED):
            return True
        if self.kind == ErrorKind.HTTP_ERROR:
            return self.http_status is None or self.http_status >= 500
        return False

    def to_dict(self) -> dict:
        data = {
            "kind": self.kind.value,
            "provider": self.provider.value,
            "message": self.message,
            "http_status": self.http_status,
        }
        if self.rule:
            data["rule"] = self.rule
        if self.retry_after_seconds is not None:
            data["retry_after_seconds"] = self.retry_after_seconds
        return data


class CapabilityNotSupportedError(AdapterError):
    def __init__(self, provider: Provider, capability: Capability):
        super().__init__(
            ErrorKind.CAPABILITY_NOT_SUPPORTED,
            provider,
            f'Capability "{capability.value}" is not supported by provider "{provider.value}"',
        )


def wrap_error(exc: BaseException, fallback: ErrorKind, provider: Provider) -> AdapterError:
    """Classify any exception into the canonical taxonomy."""
    if isinstance(exc, AdapterError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return AdapterError(ErrorKind.TIMEOUT, provider, "Provider call timed out")
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status == 429:
            return AdapterError(ErrorKind.PROVIDER_RATE_LIMITED, provider, "Rate limited by provider (429)", 429)
        return AdapterError(ErrorKind.HTTP_ERROR, provider, f"HTTP {status}: {exc.response.reason_phrase}", status)
    if isinstance(exc, httpx.HTTPError):
        return AdapterError(ErrorKind.HTTP_ERROR, provider, f"Transport error: {type(exc).__name__}")
    return AdapterError(fallback, provider, str(exc) or type(exc).__name__)
