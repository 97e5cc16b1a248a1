"""
Profile image download for OAuth signups.
Best-effort: a failed avatar download never blocks account creation.
"""
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/png", "image/webp", "image/gif"}
MAX_FILE_SIZE_BYTES = 3 * 1024 * 1024  # 3 MB


async def download_image(url: str, retries: int = 1) -> Optional[dict]:
    """
    Fetch an image and return {"content_type", "blob"}, or None if it can't be used.
    Retries once on transport errors; HTTP errors and bad content are not retried.
    """
    for attempt in range(retries + 1):
        try:
            async with httpx.AsyncClient(timeout=10.0, follow_redirects=True) as client:
                response = await client.get(url)
            response.raise_for_status()
        except httpx.TransportError as exc:
            logger.warning(f"Avatar download attempt {attempt + 1} for {url} failed: {exc!r}")
            continue
        except httpx.HTTPStatusError as exc:
            logger.warning(f"Avatar download for {url} returned {exc.response.status_code}")
            return None

        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        if content_type not in ALLOWED_CONTENT_TYPES:
            logger.warning(f"Avatar at {url} has unsupported content type {content_type!r}")
            return None
        if len(response.content) > MAX_FILE_SIZE_BYTES:
            logger.warning(f"Avatar at {url} is too large ({len(response.content)} bytes)")
            return None
        return {"content_type": content_type, "blob": response.content}
    return None
