"""AI Provider Adapter Layer.

Interchangeable text / image / video generation providers behind one
capability interface, with:
  - Sliding-window Rate Limiter (per adapter)
  - Circuit Breaker (consecutive failures, single half-open probe)
  - Hard timeouts and an absolute polling deadline
  - Prompt Safety pre-screen (jailbreak / injection rules)
  - Canonical, sanitized errors (AdapterError)
"""

from autoposter_ai.gateway.errors import AdapterError, CapabilityNotSupportedError, ErrorKind
from autoposter_ai.gateway.gateway import AIGateway
from autoposter_ai.gateway.types import (
    Capability,
    ImageGenerationRequest,
    ImageGenerationResponse,
    ModelOverrides,
    Provider,
    ProviderConfig,
    TextGenerationRequest,
    TextGenerationResponse,
    VideoGenerationRequest,
    VideoGenerationResponse,
)
from autoposter_ai.gateway.vendor_adapters import (
    BaseProviderAdapter,
    GeminiAdapter,
    KieAIAdapter,
    create_adapter,
    get_available_providers,
)

__all__ = [
    "AIGateway",
    "AdapterError",
    "BaseProviderAdapter",
    "Capability",
    "CapabilityNotSupportedError",
    "ErrorKind",
    "GeminiAdapter",
    "ImageGenerationRequest",
    "ImageGenerationResponse",
    "KieAIAdapter",
    "ModelOverrides",
    "Provider",
    "ProviderConfig",
    "TextGenerationRequest",
    "TextGenerationResponse",
    "VideoGenerationRequest",
    "VideoGenerationResponse",
    "create_adapter",
    "get_available_providers",
]
