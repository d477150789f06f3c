"""AI Gateway — single entry point in front of the active provider adapter.

  1. Builds the adapter for the configured provider via the factory
  2. Dispatches a request to the capability method
  3. Records Prometheus metrics for every call
  4. Writes one audit entry per call (success / error / blocked)

Usage:
    gateway = AIGateway(get_ai_config())
    response = await gateway.generate(Capability.TEXT, TextGenerationRequest(prompt="..."), user_id="u1")

All resilience (rate limiting, circuit breaking, timeouts, prompt safety)
lives in the adapter; the gateway only observes outcomes.
"""

from __future__ import annotations

import logging
import time

from autoposter_ai.core.metrics import record_generation
from autoposter_ai.gateway.audit import log_audit_entry
from autoposter_ai.gateway.errors import AdapterError, ErrorKind
from autoposter_ai.gateway.types import (
    Capability,
    GenerationRequest,
    GenerationResponse,
    ImageGenerationRequest,
    ProviderConfig,
    TextGenerationRequest,
    VideoGenerationRequest,
)
from autoposter_ai.gateway.vendor_adapters import BaseProviderAdapter, create_adapter

logger = logging.getLogger(__name__)

_REQUEST_TYPES: dict[Capability, type] = {
    Capability.TEXT: TextGenerationRequest,
    Capability.IMAGE: ImageGenerationRequest,
    Capability.VIDEO: VideoGenerationRequest,
}


class AIGateway:
    def __init__(self, config: ProviderConfig, adapter: BaseProviderAdapter | None = None):
        self.config = config
        self.adapter = adapter or create_adapter(config)

    @property
    def provider(self):
        return self.adapter.provider

    async def generate(
        self,
        capability: Capability,
        request: GenerationRequest,
        user_id: str = "",
        model: str | None = None,
    ) -> GenerationResponse:
        """Run one generation request. Raises AdapterError on failure."""
        if not isinstance(request, _REQUEST_TYPES[capability]):
            raise AdapterError(
                ErrorKind.INVALID_REQUEST,
                self.provider,
                f"{type(request).__name__} cannot be used for {capability.value} generation",
                http_status=400,
            )

        resolved_model = model or self.adapter.models.get(capability, "")
        start = time.perf_counter()
        try:
            if capability == Capability.TEXT:
                response = await self.adapter.generate_text(request)
            elif capability == Capability.IMAGE:
                response = await self.adapter.generate_image(request, model=model)
            else:
                response = await self.adapter.generate_video(request, model=model)
        except AdapterError as e:
            status = "blocked" if e.kind == ErrorKind.PROMPT_REJECTED else "error"
            self._observe(capability, resolved_model, request.prompt, start, status, user_id, e)
            logger.warning(
                "%s %s generation failed for user %s: %s",
                self.provider.value,
                capability.value,
                user_id or "-",
                e.code,
                extra={"provider": self.provider.value, "capability": capability.value, "user_id": user_id or None},
            )
            raise

        self._observe(capability, response.model, request.prompt, start, "success", user_id)
        return response

    def _observe(
        self,
        capability: Capability,
        model: str,
        prompt: str,
        start: float,
        status: str,
        user_id: str,
        error: AdapterError | None = None,
    ) -> None:
        duration = time.perf_counter() - start
        record_generation(self.provider.value, capability.value, status, duration)
        log_audit_entry(
            user_id=user_id,
            capability=capability.value,
            provider=self.provider.value,
            model=model,
            prompt=prompt,
            duration_ms=int(duration * 1000),
            status=status,
            error_code=error.code if error and status == "error" else None,
            block_rule=error.rule if error and status == "blocked" else None,
        )

    def get_status(self) -> dict:
        """Provider, capabilities, models and resilience state. Makes no provider calls."""
        return {
            "provider": self.provider.value,
            "name": self.adapter.name,
            "capabilities": [c.value for c in self.adapter.get_supported_capabilities()],
            "models": self.adapter.get_configured_models(),
            "rate_limit": self.adapter.get_rate_limit_status().to_dict(),
            "circuit": self.adapter.get_circuit_status().to_dict(),
        }
