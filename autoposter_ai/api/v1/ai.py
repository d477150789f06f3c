"""AI diagnostics — inspect the active provider and run a test generation.

GET  /api/v1/ai/test   provider info, models and resilience state (no provider calls)
POST /api/v1/ai/test   run one generation through the gateway
"""

import logging
import time
from functools import lru_cache

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from autoposter_ai.core.config import get_ai_config
from autoposter_ai.gateway.errors import AdapterError, ErrorKind
from autoposter_ai.gateway.gateway import AIGateway
from autoposter_ai.gateway.kieai_models import KIE_CHAT_MODELS, KIE_IMAGE_MODELS, KIE_VIDEO_MODELS
from autoposter_ai.gateway.types import (
    Capability,
    ImageGenerationRequest,
    Provider,
    TextGenerationRequest,
    VideoGenerationRequest,
)
from autoposter_ai.gateway.vendor_adapters import VALID_GEMINI_MODELS, get_available_providers
from autoposter_ai.schemas.ai import AIErrorResponse, AITestRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])

_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.CAPABILITY_NOT_SUPPORTED: 400,
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.PROMPT_REJECTED: 400,
    ErrorKind.MODEL_CAPABILITY_MISMATCH: 400,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.RATE_LIMIT_TIMEOUT: 429,
    ErrorKind.PROVIDER_RATE_LIMITED: 429,
    ErrorKind.CIRCUIT_OPEN: 503,
    ErrorKind.TIMEOUT: 504,
    ErrorKind.TASK_TIMEOUT: 504,
}


def http_status_for(kind: ErrorKind) -> int:
    """HTTP status for an adapter error kind; upstream failures map to 502."""
    return _STATUS_BY_KIND.get(kind, 502)


@lru_cache
def get_gateway() -> AIGateway:
    """Process-wide gateway, so limiter and breaker state survive across requests."""
    return AIGateway(get_ai_config())


@router.get("/test")
async def ai_status(gateway: AIGateway = Depends(get_gateway)):
    response = {
        "status": "ok",
        "available_providers": [p.value for p in get_available_providers()],
        **gateway.get_status(),
    }

    if gateway.provider == Provider.GEMINI:
        response["gemini_models"] = {c.value: list(models) for c, models in VALID_GEMINI_MODELS.items()}
    elif gateway.provider == Provider.KIEAI:
        response["kieai_model_catalog"] = {
            "image_models": [m.to_dict() for m in KIE_IMAGE_MODELS],
            "video_models": [m.to_dict() for m in KIE_VIDEO_MODELS],
            "chat_models": [m.to_dict() for m in KIE_CHAT_MODELS],
            "total_models": {
                "image": len(KIE_IMAGE_MODELS),
                "video": len(KIE_VIDEO_MODELS),
                "chat": len(KIE_CHAT_MODELS),
                "total": len(KIE_IMAGE_MODELS) + len(KIE_VIDEO_MODELS) + len(KIE_CHAT_MODELS),
            },
        }

    return response


def _build_request(body: AITestRequest, capability: Capability):
    if capability == Capability.TEXT:
        return TextGenerationRequest(
            prompt=body.prompt,
            system_instruction=body.system_instruction,
            temperature=body.temperature,
            max_tokens=body.max_tokens,
        )
    if capability == Capability.IMAGE:
        return ImageGenerationRequest(
            prompt=body.prompt,
            aspect_ratio=body.aspect_ratio,
            negative_prompt=body.negative_prompt,
            number_of_images=body.number_of_images,
        )
    return VideoGenerationRequest(
        prompt=body.prompt,
        image_url=body.image_url,
        aspect_ratio=body.aspect_ratio,
        duration_seconds=body.duration_seconds,
        negative_prompt=body.negative_prompt,
        resolution=body.resolution,
        person_generation=body.person_generation,
    )


@router.post("/test")
async def ai_test_generate(body: AITestRequest, gateway: AIGateway = Depends(get_gateway)):
    if not body.capability or not body.prompt.strip():
        return JSONResponse(
            status_code=400,
            content={
                "error": 'Missing required fields: "capability" and "prompt"',
                "example": {"capability": "text", "prompt": "Write a LinkedIn post about AI automation"},
            },
        )

    try:
        capability = Capability(body.capability)
    except ValueError:
        return JSONResponse(
            status_code=400,
            content={
                "error": f'Invalid capability "{body.capability}". '
                f"Must be one of: {', '.join(c.value for c in Capability)}"
            },
        )

    start = time.perf_counter()
    try:
        result = await gateway.generate(
            capability,
            _build_request(body, capability),
            user_id="ai-test",
            model=body.model if capability != Capability.TEXT else None,
        )
    except AdapterError as e:
        error = AIErrorResponse(
            provider=e.provider.value,
            code=e.code,
            message=e.message,
            rule=e.rule,
            retry_after_seconds=e.retry_after_seconds,
        )
        return JSONResponse(status_code=http_status_for(e.kind), content=error.model_dump(exclude_none=True))

    return {
        "status": "success",
        "capability": capability.value,
        "provider": gateway.provider.value,
        "duration_ms": int((time.perf_counter() - start) * 1000),
        "result": result.to_dict(),
    }
