"""Character image generation through the AI gateway."""

import base64
import logging
import re
import time

import httpx

from twinlink.services import config, storage
from twinlink.services.errors import PaymentRequiredError, RateLimitedError, UpstreamError

logger = logging.getLogger(__name__)

IMAGE_TYPES = ("avatar", "background", "full-scene")
UPLOAD_TYPES = ("avatar", "background")
UPLOAD_EXTENSIONS = ("png", "jpg", "jpeg", "webp")

_DATA_URL_RE = re.compile(r"data:image/[^;]+;base64,([A-Za-z0-9+/=]+)")


def enhance_prompt(prompt: str, image_type: str) -> str:
    """Wrap the user's description in the framing for each image type."""
    if image_type == "avatar":
        return (
            f"Portrait headshot of {prompt}. Professional quality, clean background, "
            "centered face, high detail, digital art style. Square 1:1 aspect ratio."
        )
    if image_type == "background":
        return (
            f"Wide cinematic background scene featuring {prompt}. Atmospheric, mood lighting, "
            "depth of field, suitable for chat interface background. Wide 16:9 aspect ratio."
        )
    if image_type == "full-scene":
        return (
            f"Full body portrait of {prompt} in their natural environment. Character should be "
            "clearly visible and centered. Professional quality, atmospheric lighting, "
            "detailed background scene. 16:9 aspect ratio."
        )
    raise ValueError("Invalid type. Must be 'avatar', 'background', or 'full-scene'")


def object_key(user_id: str, image_type: str, ext: str = "png") -> str:
    return f"{user_id}/{image_type}-{int(time.time() * 1000)}.{ext}"


def extract_image_bytes(completion: dict) -> bytes:
    """Pull the first generated image out of a chat-completion response."""
    msg = (completion.get("choices") or [{}])[0].get("message", {}) or {}
    images = msg.get("images") or []
    if isinstance(images, list) and images:
        first = images[0] or {}
        url = (first.get("image_url") or {}).get("url") or first.get("url")
        if isinstance(url, str):
            m = _DATA_URL_RE.match(url)
            if m:
                return base64.b64decode(m.group(1))
    content = msg.get("content")
    if isinstance(content, str):
        m = _DATA_URL_RE.search(content)
        if m:
            return base64.b64decode(m.group(1))
    raise UpstreamError("No image generated")


async def generate_image(prompt: str, image_type: str) -> bytes:
    enhanced = enhance_prompt(prompt, image_type)
    api_key = config.gateway_api_key()
    if not api_key:
        raise UpstreamError("AI service not configured")

    logger.info("Generating %s image with prompt: %s", image_type, enhanced)
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    payload = {
        "model": config.GATEWAY_IMAGE_MODEL,
        "messages": [{"role": "user", "content": enhanced}],
        "modalities": ["image", "text"],
    }
    try:
        async with httpx.AsyncClient(timeout=120) as client:
            resp = await client.post(config.AI_GATEWAY_URL, headers=headers, json=payload)
    except httpx.HTTPError as e:
        logger.error("AI gateway image request failed: %s", e)
        raise UpstreamError("Failed to generate image") from e

    if resp.status_code >= 400:
        logger.error("AI gateway image error %s: %s", resp.status_code, resp.text)
        if resp.status_code == 429:
            raise RateLimitedError()
        if resp.status_code == 402:
            raise PaymentRequiredError()
        raise UpstreamError("Failed to generate image")

    try:
        data = resp.json()
    except ValueError as e:
        raise UpstreamError("AI gateway returned non-JSON for image generation") from e
    return extract_image_bytes(data)


async def generate_and_store(user_id: str, prompt: str, image_type: str) -> str:
    """Generate an image and upload it; returns the public URL."""
    img_bytes = await generate_image(prompt, image_type)
    if not img_bytes:
        raise UpstreamError("No image generated")
    return storage.put_object(object_key(user_id, image_type), img_bytes)
