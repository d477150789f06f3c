"""Response Normalizer — maps provider JSON to the typed responses.

This module is the only place that touches untyped provider payloads. Each
function takes a decoded JSON envelope and returns a typed value, or raises
AdapterError when the payload carries no usable output.

An empty-but-"successful" media response is never returned as-is: it becomes
a generation failure whose message is derived from the provider's
finish-reason metadata where available. The reason table is best effort:
providers add new reasons over time and unknown ones get a generic message.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from autoposter_ai.gateway.errors import GENERATION_FAILURE_KINDS, AdapterError, ErrorKind
from autoposter_ai.gateway.types import (
    Capability,
    GeneratedImage,
    Provider,
    TaskState,
    TaskStatus,
    TextGenerationResponse,
    TokenUsage,
)

logger = logging.getLogger(__name__)

_FINISH_REASON_MESSAGES: dict[str, str] = {
    "RECITATION": (
        "Generation blocked (content policy / recitation). Try rephrasing your prompt "
        "as a visual description rather than a written task."
    ),
    "SAFETY": "Generation blocked by safety filters. Try a different prompt.",
    "IMAGE_SAFETY": "Generated image was blocked by safety filters. Try a different prompt.",
    "PROHIBITED_CONTENT": "Generation blocked: the prompt touches prohibited content.",
    "BLOCKLIST": "Generation blocked: the prompt contains blocked terms.",
    "MAX_TOKENS": "Response was cut off. Try a shorter prompt.",
}

_NOUNS = {Capability.TEXT: "text", Capability.IMAGE: "images", Capability.VIDEO: "videos"}


def empty_result_error(
    capability: Capability,
    provider: Provider,
    finish_reason: str | None = None,
    details: list[str] | None = None,
) -> AdapterError:
    """Turn "no output" into the capability's generation-failure error."""
    reason = (finish_reason or "").upper()
    if reason in _FINISH_REASON_MESSAGES:
        message = _FINISH_REASON_MESSAGES[reason]
    elif details:
        message = f"No {_NOUNS[capability]} returned: {'; '.join(details)}"
    else:
        message = (
            f"No {_NOUNS[capability]} returned (finishReason: {finish_reason or 'UNKNOWN'}). "
            "Try a more descriptive prompt."
        )
    return AdapterError(GENERATION_FAILURE_KINDS[capability], provider, message)


# ---------------------------------------------------------------------------
# Gemini (generateContent / predictLongRunning)
# ---------------------------------------------------------------------------


def gemini_finish_reason(data: dict[str, Any]) -> str | None:
    """First candidate's finishReason, or the prompt-level block reason."""
    candidates = data.get("candidates") or []
    if candidates and candidates[0].get("finishReason"):
        return candidates[0]["finishReason"]
    block_reason = (data.get("promptFeedback") or {}).get("blockReason")
    return block_reason or None


def _gemini_parts(data: dict[str, Any]) -> list[dict[str, Any]]:
    parts: list[dict[str, Any]] = []
    for candidate in data.get("candidates") or []:
        parts.extend((candidate.get("content") or {}).get("parts") or [])
    return parts


def parse_gemini_text(data: dict[str, Any], model: str) -> TextGenerationResponse:
    # Only the first candidate carries the answer; thought parts are skipped
    candidates = data.get("candidates") or []
    parts = ((candidates[0].get("content") or {}).get("parts") or []) if candidates else []
    text = "".join(p.get("text", "") for p in parts if "text" in p and not p.get("thought"))

    if not text:
        raise empty_result_error(Capability.TEXT, Provider.GEMINI, gemini_finish_reason(data))

    usage = None
    usage_meta = data.get("usageMetadata")
    if usage_meta:
        usage = TokenUsage(
            prompt_tokens=usage_meta.get("promptTokenCount"),
            completion_tokens=usage_meta.get("candidatesTokenCount"),
            total_tokens=usage_meta.get("totalTokenCount"),
        )

    return TextGenerationResponse(
        text=text,
        model=data.get("modelVersion") or model,
        provider=Provider.GEMINI,
        usage=usage,
    )


def parse_gemini_images(data: dict[str, Any]) -> list[GeneratedImage]:
    """Inline images from all candidates. Raises IMAGE_GENERATION_FAILED if there are none."""
    images = []
    for part in _gemini_parts(data):
        inline = part.get("inlineData") or part.get("inline_data")
        if inline and inline.get("data"):
            images.append(
                GeneratedImage(
                    mime_type=inline.get("mimeType") or inline.get("mime_type") or "image/png",
                    base64=inline["data"],
                )
            )

    if not images:
        raise empty_result_error(Capability.IMAGE, Provider.GEMINI, gemini_finish_reason(data))
    return images


def parse_gemini_operation(data: dict[str, Any], operation_name: str) -> TaskStatus:
    """Map a long-running operation to a TaskStatus."""
    if not data.get("done"):
        return TaskStatus(task_id=operation_name, state=TaskState.GENERATING)

    error = data.get("error")
    if error:
        return TaskStatus(
            task_id=operation_name,
            state=TaskState.FAIL,
            fail_message=error.get("message") or f"code {error.get('code', 'unknown')}",
        )

    video_response = (data.get("response") or {}).get("generateVideoResponse") or {}
    urls = [
        sample["video"]["uri"]
        for sample in video_response.get("generatedSamples") or []
        if (sample.get("video") or {}).get("uri")
    ]
    return TaskStatus(
        task_id=operation_name,
        state=TaskState.SUCCESS,
        result_urls=urls,
        filtered_reasons=list(video_response.get("raiMediaFilteredReasons") or []),
    )


# ---------------------------------------------------------------------------
# Kie.AI (OpenAI-compatible chat + jobs API)
# ---------------------------------------------------------------------------

_KIE_STATES = {state.value: state for state in TaskState}


def parse_openai_chat(data: dict[str, Any], model: str, provider: Provider) -> TextGenerationResponse:
    choices = data.get("choices") or []
    choice = choices[0] if choices else {}
    text = (choice.get("message") or {}).get("content") or ""

    if not text:
        raise empty_result_error(Capability.TEXT, provider, choice.get("finish_reason"))

    usage = None
    raw_usage = data.get("usage")
    if raw_usage:
        usage = TokenUsage(
            prompt_tokens=raw_usage.get("prompt_tokens"),
            completion_tokens=raw_usage.get("completion_tokens"),
            total_tokens=raw_usage.get("total_tokens"),
        )

    return TextGenerationResponse(text=text, model=data.get("model") or model, provider=provider, usage=usage)


def parse_kie_task_record(data: dict[str, Any], task_id: str) -> TaskStatus:
    """Map a ``recordInfo`` envelope to a TaskStatus."""
    record = data.get("data") or {}
    raw_state = str(record.get("state") or "").lower()
    state = _KIE_STATES.get(raw_state)
    if state is None:
        # Unknown / missing state: keep polling
        logger.debug("Kie.AI task %s reported unknown state %r", task_id, raw_state)
        state = TaskState.GENERATING

    if state == TaskState.FAIL:
        return TaskStatus(
            task_id=task_id,
            state=state,
            fail_message=record.get("failMsg") or record.get("failCode") or "",
        )

    if state != TaskState.SUCCESS:
        return TaskStatus(task_id=task_id, state=state)

    urls: list[str] = []
    result_json = record.get("resultJson")
    if result_json:
        try:
            parsed = json.loads(result_json) if isinstance(result_json, str) else result_json
        except ValueError:
            raise AdapterError(
                ErrorKind.TASK_FAILED,
                Provider.KIEAI,
                f"Task {task_id} returned a malformed result payload",
            ) from None
        urls = [url for url in (parsed or {}).get("resultUrls") or [] if url]

    return TaskStatus(task_id=task_id, state=state, result_urls=urls)
