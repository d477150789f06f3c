"""Core types and DTOs for the AI adapter layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Provider(str, Enum):
    """Supported AI providers."""

    GEMINI = "gemini"
    KIEAI = "kieai"


class Capability(str, Enum):
    """Generation capabilities a provider may or may not support."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"


class TaskState(str, Enum):
    """Canonical state of an async provider task."""

    WAITING = "waiting"
    QUEUING = "queuing"
    GENERATING = "generating"
    SUCCESS = "success"
    FAIL = "fail"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskState.SUCCESS, TaskState.FAIL)


# ---------------------------------------------------------------------------
# Requests (immutable; everything beyond the prompt is optional)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TextGenerationRequest:
    prompt: str
    system_instruction: str | None = None
    temperature: float | None = None  # 0-2
    max_tokens: int | None = None


@dataclass(frozen=True)
class ImageGenerationRequest:
    prompt: str
    aspect_ratio: str | None = None  # e.g. "1:1", "16:9", "9:16"
    negative_prompt: str | None = None
    number_of_images: int | None = None


@dataclass(frozen=True)
class VideoGenerationRequest:
    prompt: str
    image_url: str | None = None  # Optional starting frame
    aspect_ratio: str | None = None
    duration_seconds: int | None = None
    negative_prompt: str | None = None
    resolution: str | None = None  # e.g. "720p", "1080p"
    person_generation: str | None = None  # e.g. "allow_all", "dont_allow"


GenerationRequest = TextGenerationRequest | ImageGenerationRequest | VideoGenerationRequest


# ---------------------------------------------------------------------------
# Responses: one shape per capability
# ---------------------------------------------------------------------------


@dataclass
class TokenUsage:
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None

    def to_dict(self) -> dict:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class TextGenerationResponse:
    text: str
    model: str
    provider: Provider
    usage: TokenUsage | None = None

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "model": self.model,
            "provider": self.provider.value,
            "usage": self.usage.to_dict() if self.usage else None,
        }


@dataclass
class GeneratedImage:
    """A single generated image, hosted (url) or inline (base64)."""

    mime_type: str = "image/png"
    url: str | None = None
    base64: str | None = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"mime_type": self.mime_type}
        if self.url:
            data["url"] = self.url
        if self.base64:
            data["base64"] = self.base64
        return data


@dataclass
class ImageGenerationResponse:
    images: list[GeneratedImage]
    model: str
    provider: Provider

    def to_dict(self) -> dict:
        return {
            "images": [image.to_dict() for image in self.images],
            "model": self.model,
            "provider": self.provider.value,
        }


@dataclass
class GeneratedVideo:
    url: str
    mime_type: str = "video/mp4"
    duration_seconds: int | None = None

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "mime_type": self.mime_type,
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class VideoGenerationResponse:
    videos: list[GeneratedVideo]
    model: str
    provider: Provider

    def to_dict(self) -> dict:
        return {
            "videos": [video.to_dict() for video in self.videos],
            "model": self.model,
            "provider": self.provider.value,
        }


GenerationResponse = TextGenerationResponse | ImageGenerationResponse | VideoGenerationResponse


# ---------------------------------------------------------------------------
# Async task handle
# ---------------------------------------------------------------------------


@dataclass
class TaskStatus:
    """Snapshot of a provider task as seen by one status check."""

    task_id: str
    state: TaskState
    result_urls: list[str] = field(default_factory=list)
    fail_message: str = ""
    # Provider metadata explaining an empty result (e.g. content filter reasons)
    filtered_reasons: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Provider config
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RateLimitConfig:
    """Sliding-window admission limits for one adapter instance."""

    max_requests: int
    window_seconds: float
    wait_for_slot: bool = True  # False → fail fast with RATE_LIMITED
    max_wait_seconds: float = 30.0


@dataclass(frozen=True)
class CircuitBreakerConfig:
    threshold: int = 5  # Consecutive failures to open the circuit
    reset_timeout_seconds: float = 60.0  # Cool-down before a probe is allowed


@dataclass(frozen=True)
class ModelOverrides:
    text: str | None = None
    image: str | None = None
    video: str | None = None

    def for_capability(self, capability: Capability) -> str | None:
        return getattr(self, capability.value)


@dataclass(frozen=True)
class ProviderConfig:
    """Everything an adapter needs. Built once, immutable for the adapter's lifetime."""

    provider: Provider
    api_key: str
    models: ModelOverrides = field(default_factory=ModelOverrides)
    polling_interval_seconds: float | None = None
    max_polling_attempts: int | None = None
    rate_limit: RateLimitConfig | None = None
    circuit_breaker: CircuitBreakerConfig | None = None
    request_timeout_seconds: float | None = None  # Hard timeout per request/response call
    poll_deadline_seconds: float | None = None  # Overall deadline for a polling sequence


# Sensible defaults per provider. Override via ProviderConfig.rate_limit.
DEFAULT_RATE_LIMITS: dict[Provider, RateLimitConfig] = {
    Provider.KIEAI: RateLimitConfig(
        max_requests=18,  # 20 official limit, buffer of 2
        window_seconds=10.0,
        wait_for_slot=True,
        max_wait_seconds=30.0,
    ),
    Provider.GEMINI: RateLimitConfig(
        max_requests=14,  # 15 RPM free tier, buffer of 1
        window_seconds=60.0,
        wait_for_slot=True,
        max_wait_seconds=60.0,
    ),
}

DEFAULT_CIRCUIT_CONFIG = CircuitBreakerConfig()

DEFAULT_REQUEST_TIMEOUT_SECONDS = 60.0
DEFAULT_MAX_POLLING_ATTEMPTS = 60
