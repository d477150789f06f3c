"""Provider Adapters — protocol-level handling for each AI provider.

Each adapter exposes the same capability interface (text / image / video)
and translates it into the provider's HTTP protocol.

Every public generation call runs the same pipeline:
  capability check → prompt validation → prompt safety → circuit breaker
  guard → rate limiter slot → timeout-bounded provider call(s) → response
  mapping → breaker bookkeeping. Only AdapterError leaves an adapter.

Provider-specific behaviors:
  - Gemini: generateContent for text and image (inline base64),
    predictLongRunning + operation polling for Veo video
  - Kie.AI: OpenAI-compatible chat for text, createTask → recordInfo polling
    for every image / video model
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx

from autoposter_ai.gateway.circuit_breaker import CircuitBreaker, CircuitBreakerStatus
from autoposter_ai.gateway.errors import (
    GENERATION_FAILURE_KINDS,
    AdapterError,
    CapabilityNotSupportedError,
    ErrorKind,
    wrap_error,
)
from autoposter_ai.gateway.kieai_models import (
    KIE_ALL_MODELS,
    KIE_MODEL_MAP,
    KieModelInfo,
    get_kie_model_ids,
    get_kie_model_info,
    get_kie_models_by_capability,
    is_valid_kie_model,
)
from autoposter_ai.gateway.normalizer import (
    empty_result_error,
    parse_gemini_images,
    parse_gemini_operation,
    parse_gemini_text,
    parse_kie_task_record,
    parse_openai_chat,
)
from autoposter_ai.gateway.prompt_safety import check_all_inputs_safety
from autoposter_ai.gateway.rate_limiter import RateLimiterStatus, SlidingWindowRateLimiter
from autoposter_ai.gateway.task_poller import TaskPoller
from autoposter_ai.gateway.timeouts import with_timeout
from autoposter_ai.gateway.types import (
    DEFAULT_CIRCUIT_CONFIG,
    DEFAULT_MAX_POLLING_ATTEMPTS,
    DEFAULT_RATE_LIMITS,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    Capability,
    GeneratedImage,
    GeneratedVideo,
    GenerationRequest,
    ImageGenerationRequest,
    ImageGenerationResponse,
    Provider,
    ProviderConfig,
    TaskState,
    TaskStatus,
    TextGenerationRequest,
    TextGenerationResponse,
    VideoGenerationRequest,
    VideoGenerationResponse,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None  # HTTP-date form, not worth parsing


class BaseProviderAdapter(ABC):
    """Base class for all provider adapters.

    Owns exactly one rate limiter and one circuit breaker; nothing is shared
    between adapter instances.
    """

    provider: Provider
    name: str
    default_models: dict[Capability, str]
    default_polling_interval_seconds: float
    default_poll_deadline_seconds: float
    capabilities: tuple[Capability, ...] = (Capability.TEXT, Capability.IMAGE, Capability.VIDEO)

    def __init__(
        self,
        config: ProviderConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api_key = config.api_key
        self.models: dict[Capability, str] = {
            capability: config.models.for_capability(capability) or default
            for capability, default in self.default_models.items()
        }

        self.polling_interval_seconds = (
            config.polling_interval_seconds
            if config.polling_interval_seconds is not None
            else self.default_polling_interval_seconds
        )
        self.max_polling_attempts = config.max_polling_attempts or DEFAULT_MAX_POLLING_ATTEMPTS
        self.request_timeout_seconds = config.request_timeout_seconds or DEFAULT_REQUEST_TIMEOUT_SECONDS
        self.poll_deadline_seconds = config.poll_deadline_seconds or self.default_poll_deadline_seconds

        self._clock = clock
        self._sleep = sleep
        self.rate_limiter = SlidingWindowRateLimiter(
            config.rate_limit or DEFAULT_RATE_LIMITS[self.provider],
            self.provider,
            clock=clock,
            sleep=sleep,
        )
        self.circuit_breaker = CircuitBreaker(
            config.circuit_breaker or DEFAULT_CIRCUIT_CONFIG,
            self.provider,
            clock=clock,
        )

    # -- Capability discovery ------------------------------------------------

    def get_supported_capabilities(self) -> list[Capability]:
        return list(self.capabilities)

    def supports_capability(self, capability: Capability) -> bool:
        return capability in self.capabilities

    # -- Public generation API -----------------------------------------------

    async def generate_text(self, request: TextGenerationRequest) -> TextGenerationResponse:
        model = self.models.get(Capability.TEXT, "")
        return await self._execute(Capability.TEXT, request, model, lambda: self._generate_text(request, model))

    async def generate_image(
        self, request: ImageGenerationRequest, model: str | None = None
    ) -> ImageGenerationResponse:
        model = model or self.models.get(Capability.IMAGE, "")
        return await self._execute(Capability.IMAGE, request, model, lambda: self._generate_image(request, model))

    async def generate_video(
        self, request: VideoGenerationRequest, model: str | None = None
    ) -> VideoGenerationResponse:
        model = model or self.models.get(Capability.VIDEO, "")
        return await self._execute(Capability.VIDEO, request, model, lambda: self._generate_video(request, model))

    @abstractmethod
    async def _generate_text(self, request: TextGenerationRequest, model: str) -> TextGenerationResponse: ...

    @abstractmethod
    async def _generate_image(self, request: ImageGenerationRequest, model: str) -> ImageGenerationResponse: ...

    @abstractmethod
    async def _generate_video(self, request: VideoGenerationRequest, model: str) -> VideoGenerationResponse: ...

    def _validate_model(self, capability: Capability, model: str) -> None:
        """Hook for providers that can reject a model before any call is made."""

    async def _execute(
        self,
        capability: Capability,
        request: GenerationRequest,
        model: str,
        call: Callable[[], Awaitable[T]],
    ) -> T:
        # Pre-guard rejections: free, and never touch the breaker
        if not self.supports_capability(capability):
            raise CapabilityNotSupportedError(self.provider, capability)
        if not request.prompt or not request.prompt.strip():
            raise AdapterError(ErrorKind.INVALID_REQUEST, self.provider, "Prompt must not be empty", http_status=400)

        safety = check_all_inputs_safety(request.prompt, getattr(request, "system_instruction", None))
        if not safety.safe:
            logger.info("Prompt rejected for %s %s (rule %s)", self.provider.value, capability.value, safety.rule)
            raise AdapterError(
                ErrorKind.PROMPT_REJECTED,
                self.provider,
                safety.reason or "Prompt rejected",
                http_status=400,
                rule=safety.rule,
            )
        self._validate_model(capability, model)

        is_probe = self.circuit_breaker.guard_request()
        outcome_recorded = False
        try:
            await self.rate_limiter.acquire()
            try:
                result = await call()
            except Exception as exc:
                error = wrap_error(exc, GENERATION_FAILURE_KINDS[capability], self.provider).redact(self.api_key)
                if error is not exc:
                    logger.debug("%s %s call failed: %s", self.provider.value, capability.value, type(exc).__name__)
                if error.kind.counts_as_provider_failure:
                    self.circuit_breaker.record_failure()
                    outcome_recorded = True
                raise error from None

            self.circuit_breaker.record_success()
            outcome_recorded = True
            return result
        finally:
            # Local admission errors and cancellation end without an outcome
            if is_probe and not outcome_recorded:
                self.circuit_breaker.release_probe()

    # -- HTTP helpers --------------------------------------------------------

    @abstractmethod
    def _headers(self) -> dict[str, str]: ...

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.request_timeout_seconds)

    async def _post_json(self, client: httpx.AsyncClient, url: str, payload: dict, *, operation: str) -> dict[str, Any]:
        """POST under the per-call timeout and decode the JSON envelope."""
        try:
            response = await with_timeout(
                client.post(url, json=payload, headers=self._headers()),
                self.request_timeout_seconds,
                provider=self.provider,
                operation=operation,
            )
        except httpx.HTTPError as exc:
            raise wrap_error(exc, ErrorKind.HTTP_ERROR, self.provider) from None
        return self._decode(response)

    async def _get_json(
        self, client: httpx.AsyncClient, url: str, params: dict[str, str] | None = None
    ) -> dict[str, Any]:
        """GET without its own timeout; the caller (TaskPoller) bounds it."""
        try:
            response = await client.get(url, params=params, headers=self._headers())
        except httpx.HTTPError as exc:
            raise wrap_error(exc, ErrorKind.HTTP_ERROR, self.provider) from None
        return self._decode(response)

    def _decode(self, response: httpx.Response) -> dict[str, Any]:
        if response.status_code == 429:
            retry_after = _parse_retry_after(response.headers.get("Retry-After"))
            raise AdapterError(
                ErrorKind.PROVIDER_RATE_LIMITED,
                self.provider,
                f"Rate limited by {self.name} (429). Retry after "
                f"{f'{retry_after:g}' if retry_after is not None else 'unknown'} seconds.",
                http_status=429,
                retry_after_seconds=retry_after,
            )
        if response.is_error:
            raise AdapterError(
                ErrorKind.HTTP_ERROR,
                self.provider,
                f"HTTP {response.status_code}: {response.reason_phrase}",
                http_status=response.status_code,
            )
        try:
            return response.json()
        except ValueError:
            raise AdapterError(
                ErrorKind.HTTP_ERROR,
                self.provider,
                f"{self.name} returned a non-JSON body",
                http_status=response.status_code,
            ) from None

    def _poller(self, fetch_status: Callable[[str], Awaitable[TaskStatus]]) -> TaskPoller:
        return TaskPoller(
            fetch_status,
            provider=self.provider,
            interval_seconds=self.polling_interval_seconds,
            max_attempts=self.max_polling_attempts,
            request_timeout_seconds=self.request_timeout_seconds,
            deadline_seconds=self.poll_deadline_seconds,
            clock=self._clock,
            sleep=self._sleep,
        )

    # -- Introspection -------------------------------------------------------

    def get_rate_limit_status(self) -> RateLimiterStatus:
        """Current limiter window usage, without consuming a slot."""
        return self.rate_limiter.status()

    def get_circuit_status(self) -> CircuitBreakerStatus:
        return self.circuit_breaker.status()

    def get_configured_models(self) -> dict[str, str]:
        return {capability.value: model for capability, model in self.models.items()}


# ---------------------------------------------------------------------------
# Gemini Adapter (Google AI)
# ---------------------------------------------------------------------------

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"

VALID_GEMINI_MODELS: dict[Capability, tuple[str, ...]] = {
    Capability.TEXT: ("gemini-2.5-flash", "gemini-2.5-pro", "gemini-2.5-flash-lite", "gemini-2.0-flash"),
    Capability.IMAGE: ("gemini-2.0-flash-exp-image-generation", "gemini-2.5-flash-image"),
    Capability.VIDEO: ("veo-2.0-generate-001", "veo-3.0-generate-preview", "veo-3.0-fast-generate-preview"),
}


class GeminiAdapter(BaseProviderAdapter):
    """Google Gemini adapter: synchronous text/image, long-running Veo video."""

    provider = Provider.GEMINI
    name = "Gemini"
    default_models = {
        Capability.TEXT: "gemini-2.5-flash",
        Capability.IMAGE: "gemini-2.0-flash-exp-image-generation",
        Capability.VIDEO: "veo-2.0-generate-001",
    }
    default_polling_interval_seconds = 10.0  # Video generation is slow
    default_poll_deadline_seconds = 600.0

    def _headers(self) -> dict[str, str]:
        return {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}

    async def _generate_text(self, request: TextGenerationRequest, model: str) -> TextGenerationResponse:
        payload: dict[str, Any] = {"contents": [{"role": "user", "parts": [{"text": request.prompt}]}]}

        generation_config: dict[str, Any] = {}
        if request.temperature is not None:
            generation_config["temperature"] = request.temperature
        if request.max_tokens is not None:
            generation_config["maxOutputTokens"] = request.max_tokens
        if generation_config:
            payload["generationConfig"] = generation_config

        # System instruction (separate from contents in Gemini API)
        if request.system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": request.system_instruction}]}

        async with self._client() as client:
            data = await self._post_json(
                client,
                f"{GEMINI_API_BASE}/models/{model}:generateContent",
                payload,
                operation="Text generation",
            )
        return parse_gemini_text(data, model)

    async def _generate_image(self, request: ImageGenerationRequest, model: str) -> ImageGenerationResponse:
        generation_config: dict[str, Any] = {"responseModalities": ["TEXT", "IMAGE"]}
        if request.number_of_images is not None:
            generation_config["candidateCount"] = request.number_of_images

        payload = {
            "contents": [{"role": "user", "parts": [{"text": request.prompt}]}],
            "generationConfig": generation_config,
        }

        async with self._client() as client:
            data = await self._post_json(
                client,
                f"{GEMINI_API_BASE}/models/{model}:generateContent",
                payload,
                operation="Image generation",
            )
        return ImageGenerationResponse(images=parse_gemini_images(data), model=model, provider=self.provider)

    async def _generate_video(self, request: VideoGenerationRequest, model: str) -> VideoGenerationResponse:
        instance: dict[str, Any] = {"prompt": request.prompt}
        if request.image_url:
            instance["image"] = {"imageUri": request.image_url}

        parameters: dict[str, Any] = {"personGeneration": request.person_generation or "allow_all"}
        if request.aspect_ratio:
            parameters["aspectRatio"] = request.aspect_ratio
        if request.negative_prompt:
            parameters["negativePrompt"] = request.negative_prompt
        if request.duration_seconds:
            parameters["durationSeconds"] = request.duration_seconds
        if request.resolution:
            parameters["resolution"] = request.resolution

        # One client for the operation start and the whole polling sequence
        async with self._client() as client:
            operation = await self._post_json(
                client,
                f"{GEMINI_API_BASE}/models/{model}:predictLongRunning",
                {"instances": [instance], "parameters": parameters},
                operation="Video operation start",
            )
            operation_name = operation.get("name")
            if not operation_name:
                raise AdapterError(
                    ErrorKind.TASK_CREATION_FAILED,
                    self.provider,
                    "Video generation did not return an operation handle",
                )

            async def fetch_status(name: str) -> TaskStatus:
                return parse_gemini_operation(await self._get_json(client, f"{GEMINI_API_BASE}/{name}"), name)

            status = parse_gemini_operation(operation, operation_name)
            if status.state == TaskState.FAIL:
                raise AdapterError(
                    ErrorKind.TASK_FAILED,
                    self.provider,
                    f"Video operation failed: {status.fail_message or 'unknown'}",
                )
            if status.state != TaskState.SUCCESS:
                status = await self._poller(fetch_status).poll_until_done(operation_name)

        videos = [GeneratedVideo(url=url, duration_seconds=request.duration_seconds) for url in status.result_urls]
        if not videos:
            raise empty_result_error(Capability.VIDEO, self.provider, details=status.filtered_reasons)
        return VideoGenerationResponse(videos=videos, model=model, provider=self.provider)


# ---------------------------------------------------------------------------
# Kie.AI Adapter (unified async-task API)
# ---------------------------------------------------------------------------

KIE_BASE_URL = "https://api.kie.ai"
KIE_TASK_ENDPOINT = f"{KIE_BASE_URL}/api/v1/jobs/createTask"
KIE_POLL_ENDPOINT = f"{KIE_BASE_URL}/api/v1/jobs/recordInfo"


class KieAIAdapter(BaseProviderAdapter):
    """Kie.AI adapter: one API key for many image/video models.

    Image and video models share the createTask → recordInfo pattern; chat
    models sit behind a per-model OpenAI-compatible endpoint.
    """

    provider = Provider.KIEAI
    name = "Kie.AI"
    default_models = {
        Capability.TEXT: "gemini-2.5-flash",  # Kie.AI hosts Gemini as a chat model
        Capability.IMAGE: "flux-2/pro-text-to-image",
        Capability.VIDEO: "kling/v2-1-pro",
    }
    default_polling_interval_seconds = 5.0
    default_poll_deadline_seconds = 300.0

    def __init__(self, config: ProviderConfig, **kwargs):
        super().__init__(config, **kwargs)
        # Unknown models are allowed through (the catalog may lag behind Kie.AI)
        for capability, model in self.models.items():
            if not is_valid_kie_model(model):
                logger.warning(
                    "Kie.AI model %r for %s is not in the catalog. Available %s models: %s",
                    model,
                    capability.value,
                    capability.value,
                    ", ".join(get_kie_model_ids(capability)),
                )

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

    def _validate_model(self, capability: Capability, model: str) -> None:
        self.assert_valid_model(model, capability)

    def assert_valid_model(self, model: str, capability: Capability) -> None:
        """Raise if a cataloged model is used for the wrong capability."""
        info = KIE_MODEL_MAP.get(model)
        if info is not None and info.capability != capability:
            raise AdapterError(
                ErrorKind.MODEL_CAPABILITY_MISMATCH,
                self.provider,
                f'Model "{model}" is a {info.capability.value} model, '
                f"but was used for {capability.value} generation.",
                http_status=400,
            )

    async def _generate_text(self, request: TextGenerationRequest, model: str) -> TextGenerationResponse:
        messages = []
        if request.system_instruction:
            messages.append({"role": "system", "content": request.system_instruction})
        messages.append({"role": "user", "content": request.prompt})

        payload: dict[str, Any] = {"messages": messages, "stream": False}
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.max_tokens is not None:
            payload["max_tokens"] = request.max_tokens

        async with self._client() as client:
            data = await self._post_json(
                client,
                f"{KIE_BASE_URL}/{model}/v1/chat/completions",
                payload,
                operation="Text generation",
            )
        return parse_openai_chat(data, model, self.provider)

    async def _generate_image(self, request: ImageGenerationRequest, model: str) -> ImageGenerationResponse:
        task_input: dict[str, Any] = {
            "prompt": request.prompt,
            "aspect_ratio": request.aspect_ratio or "1:1",  # Required by Kie.AI
        }
        if request.negative_prompt:
            task_input["negative_prompt"] = request.negative_prompt

        status = await self._run_task(model, task_input)
        images = [GeneratedImage(url=url) for url in status.result_urls]
        if not images:
            raise empty_result_error(Capability.IMAGE, self.provider)
        return ImageGenerationResponse(images=images, model=model, provider=self.provider)

    async def _generate_video(self, request: VideoGenerationRequest, model: str) -> VideoGenerationResponse:
        task_input: dict[str, Any] = {
            "prompt": request.prompt,
            "aspect_ratio": request.aspect_ratio or "16:9",
        }
        if request.image_url:
            task_input["image_url"] = request.image_url
        if request.duration_seconds:
            task_input["duration"] = str(request.duration_seconds)
        if request.negative_prompt:
            task_input["negative_prompt"] = request.negative_prompt

        status = await self._run_task(model, task_input)
        videos = [GeneratedVideo(url=url, duration_seconds=request.duration_seconds) for url in status.result_urls]
        if not videos:
            raise empty_result_error(Capability.VIDEO, self.provider)
        return VideoGenerationResponse(videos=videos, model=model, provider=self.provider)

    async def _run_task(self, model: str, task_input: dict[str, Any]) -> TaskStatus:
        """createTask, then poll recordInfo until the task is terminal."""
        async with self._client() as client:
            task_id = await self._create_task(client, {"model": model, "input": task_input})
            logger.debug("Kie.AI task %s created for model %s", task_id, model)

            async def fetch_status(tid: str) -> TaskStatus:
                return parse_kie_task_record(await self._get_json(client, KIE_POLL_ENDPOINT, {"taskId": tid}), tid)

            return await self._poller(fetch_status).poll_until_done(task_id)

    async def _create_task(self, client: httpx.AsyncClient, body: dict[str, Any]) -> str:
        data = await self._post_json(client, KIE_TASK_ENDPOINT, body, operation="Task creation")
        task_id = (data.get("data") or {}).get("taskId")
        if data.get("code") != 200 or not task_id:
            raise AdapterError(
                ErrorKind.TASK_CREATION_FAILED,
                self.provider,
                f"Failed to create task: {data.get('msg') or 'unknown error'}",
                http_status=data.get("code") if isinstance(data.get("code"), int) else None,
            )
        return task_id

    # -- Model catalog -------------------------------------------------------

    def get_available_models(self, capability: Capability | None = None) -> list[KieModelInfo]:
        if capability is None:
            return list(KIE_ALL_MODELS)
        return get_kie_models_by_capability(capability)

    def get_model_ids(self, capability: Capability) -> list[str]:
        return get_kie_model_ids(capability)

    def get_model_info(self, model_id: str) -> KieModelInfo | None:
        return get_kie_model_info(model_id)


# ---------------------------------------------------------------------------
# Adapter registry
# ---------------------------------------------------------------------------

ADAPTER_REGISTRY: dict[Provider, type[BaseProviderAdapter]] = {
    Provider.GEMINI: GeminiAdapter,
    Provider.KIEAI: KieAIAdapter,
}


def create_adapter(config: ProviderConfig, **kwargs) -> BaseProviderAdapter:
    """Factory: build the adapter for ``config.provider``."""
    cls = ADAPTER_REGISTRY.get(config.provider)
    if cls is None:
        raise ValueError(
            f"Unknown AI provider {config.provider!r}. "
            f"Supported providers: {', '.join(p.value for p in ADAPTER_REGISTRY)}"
        )
    return cls(config, **kwargs)


def get_available_providers() -> list[Provider]:
    return list(ADAPTER_REGISTRY)
