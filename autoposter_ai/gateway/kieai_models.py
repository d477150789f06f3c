"""Kie.AI model catalog.

Model IDs accepted by the Kie.AI API, grouped by capability, with vendor and
pricing notes (Kie.AI credits; 1 credit ≈ $0.005). Image and video models go
through createTask → recordInfo polling; chat models use the OpenAI-compatible
endpoint.
"""

from __future__ import annotations

from dataclasses import dataclass

from autoposter_ai.gateway.types import Capability


@dataclass(frozen=True)
class KieModelInfo:
    id: str
    label: str
    capability: Capability
    vendor: str
    pricing: str
    is_async: bool = True  # createTask (True) vs chat endpoint (False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "capability": self.capability.value,
            "vendor": self.vendor,
            "pricing": self.pricing,
        }


def _models(capability: Capability, rows: list[tuple[str, str, str, str]], is_async: bool = True) -> list[KieModelInfo]:
    return [KieModelInfo(id_, label, capability, vendor, pricing, is_async) for id_, label, vendor, pricing in rows]


KIE_IMAGE_MODELS: list[KieModelInfo] = _models(
    Capability.IMAGE,
    [
        ("flux-2/pro-text-to-image", "Flux 2 Pro — Text to Image", "Flux-2", "~5 credits/image (~$0.025)"),
        ("flux-2/pro-image-to-image", "Flux 2 Pro — Image to Image", "Flux-2", "~5 credits/image (~$0.025)"),
        ("flux-2/flex-text-to-image", "Flux 2 Flex — Text to Image", "Flux-2", "~3 credits/image (~$0.015)"),
        ("bytedance/seedream", "Seedream v3", "ByteDance", "~4 credits/image (~$0.02)"),
        ("bytedance/seedream-v4-text-to-image", "Seedream v4 — Text to Image", "ByteDance", "~5 credits/image (~$0.025)"),
        ("seedream/4.5-text-to-image", "Seedream 4.5 — Text to Image", "ByteDance", "~6 credits/image (~$0.03)"),
        ("google/imagen4", "Google Imagen 4", "Google", "~5 credits/image (~$0.025)"),
        ("google/imagen4-ultra", "Google Imagen 4 Ultra", "Google", "~10 credits/image (~$0.05)"),
        ("google/nano-banana-edit", "Nano Banana — Edit", "Google", "~4 credits/image (~$0.02)"),
        ("grok-imagine/text-to-image", "Grok Imagine — Text to Image", "xAI", "~5 credits/image (~$0.025)"),
        ("ideogram/v3-text-to-image", "Ideogram v3 — Text to Image", "Ideogram", "~5 credits/image (~$0.025)"),
        ("qwen/text-to-image", "Qwen — Text to Image", "Alibaba", "~4 credits/image (~$0.02)"),
        ("recraft/remove-background", "Recraft — Remove Background", "Recraft", "1 credit/image (~$0.005)"),
    ],
)

KIE_VIDEO_MODELS: list[KieModelInfo] = _models(
    Capability.VIDEO,
    [
        ("kling/v2-1-pro", "Kling v2.1 Pro", "Kuaishou", "55–110 credits/video (~$0.275–$0.55), 5–10 sec"),
        ("kling/v2-1-standard", "Kling v2.1 Standard", "Kuaishou", "35–70 credits/video (~$0.175–$0.35), 5–10 sec"),
        ("kling/v2-5-turbo-text-to-video-pro", "Kling v2.5 Turbo Pro — Text to Video", "Kuaishou", "55–110 credits/video"),
        ("kling/v3-0-text-to-video", "Kling 3.0 — Text to Video", "Kuaishou", "20–40 credits/sec (~$0.10–$0.20/sec)"),
        ("sora-2-pro-text-to-video", "Sora 2 Pro — Text to Video", "OpenAI", "35–40 credits/video (~$0.175–$0.20)"),
        ("sora-2-text-to-video-stable", "Sora 2 Stable — Text to Video", "OpenAI", "25–35 credits/video"),
        ("bytedance/v1-pro-text-to-video", "Seaweed Pro — Text to Video", "ByteDance", "~40 credits/video (~$0.20)"),
        ("bytedance/v1-lite-text-to-video", "Seaweed Lite — Text to Video", "ByteDance", "~15 credits/video (~$0.075)"),
        ("hailuo/2-3-image-to-video-pro", "Hailuo 2.3 Pro — Image to Video", "MiniMax", "~30 credits/video (~$0.15)"),
        ("grok-imagine/text-to-video", "Grok Imagine — Text to Video", "xAI", "~30 credits/video (~$0.15)"),
        ("wan/2-6-text-to-video", "Wan 2.6 — Text to Video", "Alibaba", "104.5–315 credits/video"),
    ],
)

KIE_CHAT_MODELS: list[KieModelInfo] = _models(
    Capability.TEXT,
    [
        ("gemini-2.5-flash", "Gemini 2.5 Flash", "Google", "15 input / 60 output credits per 1M tokens"),
        ("gemini-2.5-pro", "Gemini 2.5 Pro", "Google", "50 input / 200 output credits per 1M tokens"),
        ("gemini-3-flash", "Gemini 3 Flash", "Google", "30 input / 180 output credits per 1M tokens"),
        ("gemini-3-pro", "Gemini 3 Pro", "Google", "100 input / 700 output credits per 1M tokens"),
        ("claude/claude-opus-4-5", "Claude Opus 4.5", "Anthropic", "~300 input / 1500 output credits per 1M tokens"),
    ],
    is_async=False,
)

KIE_ALL_MODELS: list[KieModelInfo] = [*KIE_IMAGE_MODELS, *KIE_VIDEO_MODELS, *KIE_CHAT_MODELS]

KIE_MODEL_MAP: dict[str, KieModelInfo] = {model.id: model for model in KIE_ALL_MODELS}


def get_kie_models_by_capability(capability: Capability) -> list[KieModelInfo]:
    return [model for model in KIE_ALL_MODELS if model.capability == capability]


def get_kie_model_ids(capability: Capability) -> list[str]:
    return [model.id for model in get_kie_models_by_capability(capability)]


def is_valid_kie_model(model_id: str) -> bool:
    return model_id in KIE_MODEL_MAP


def get_kie_model_info(model_id: str) -> KieModelInfo | None:
    return KIE_MODEL_MAP.get(model_id)
