"""Veo video download proxy.

GET /api/v1/ai/video-proxy?fileId=<id>

The Gemini key is attached server-side and the upstream body is streamed
through, so neither the key nor a whole video ever sits in the browser or in
process memory.
"""

import logging
import re

import httpx
from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse, StreamingResponse

from autoposter_ai.core.config import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])

GEMINI_DOWNLOAD_BASE = "https://generativelanguage.googleapis.com/download/v1beta/files"
FILE_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,128}$")
MAX_VIDEO_BYTES = 100 * 1024 * 1024
UPSTREAM_TIMEOUT_SECONDS = 30.0

_UPSTREAM_ERRORS: dict[int, tuple[int, str]] = {
    404: (404, "Video not found or expired"),
    401: (403, "Video access denied"),
    403: (403, "Video access denied"),
}


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.get("/video-proxy")
async def video_proxy(file_id: str | None = Query(None, alias="fileId")):
    if not file_id or not FILE_ID_PATTERN.match(file_id):
        return _error(400, "Invalid or missing fileId parameter")
    if not settings.gemini_api_key:
        logger.error("Video proxy called but GEMINI_API_KEY is not set")
        return _error(500, "Server configuration error")

    client = httpx.AsyncClient(timeout=UPSTREAM_TIMEOUT_SECONDS, follow_redirects=True)
    request = client.build_request(
        "GET",
        f"{GEMINI_DOWNLOAD_BASE}/{file_id}:download",
        params={"alt": "media"},
        headers={"x-goog-api-key": settings.gemini_api_key},
    )
    try:
        upstream = await client.send(request, stream=True)
    except httpx.HTTPError as exc:
        await client.aclose()
        if isinstance(exc, httpx.TimeoutException):
            logger.warning("Video proxy timed out fetching %s", file_id)
            return _error(504, "Upstream video fetch timed out")
        logger.warning("Video proxy transport error for %s: %s", file_id, type(exc).__name__)
        return _error(502, "Failed to proxy video")

    content_length = upstream.headers.get("content-length")
    rejection = None
    if upstream.is_error:
        logger.warning("Video proxy upstream returned %d for %s", upstream.status_code, file_id)
        rejection = _UPSTREAM_ERRORS.get(upstream.status_code, (502, "Failed to fetch video from upstream"))
    elif content_length and content_length.isdigit() and int(content_length) > MAX_VIDEO_BYTES:
        rejection = (413, "Video exceeds maximum allowed size")
    if rejection:
        await upstream.aclose()
        await client.aclose()
        return _error(*rejection)

    async def body():
        sent = 0
        try:
            async for chunk in upstream.aiter_bytes():
                sent += len(chunk)
                if sent > MAX_VIDEO_BYTES:
                    logger.warning("Video proxy stopped %s at the %d byte cap", file_id, MAX_VIDEO_BYTES)
                    break
                yield chunk
        finally:
            await upstream.aclose()
            await client.aclose()

    headers = {
        "Cache-Control": "private, max-age=3600",
        "X-Content-Type-Options": "nosniff",
    }
    if content_length:
        headers["Content-Length"] = content_length
    return StreamingResponse(
        body(),
        status_code=200,
        media_type=upstream.headers.get("content-type", "video/mp4"),
        headers=headers,
    )
