"""Streaming chat relay to the upstream chat-completion providers.

Three interchangeable providers are supported:

- ``default``: the AI gateway, keyed by the server (``AI_GATEWAY_API_KEY``)
- ``groq``: Groq's OpenAI-compatible endpoint, keyed by the user
- ``gemini``: Google's Gemini SSE endpoint, keyed by the user

Each chat turn is forwarded exactly once. The upstream event stream is
relayed byte-for-byte; only the error statuses are translated.
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Tuple

import httpx

from twinlink.services import config
from twinlink.services.errors import PaymentRequiredError, RateLimitedError, UpstreamError

logger = logging.getLogger(__name__)

PROVIDERS = ("default", "groq", "gemini")

GEMINI_ACK = "I understand. I'll stay in character and help with this mission."


def build_system_prompt(character: Mapping[str, Any], mission: Mapping[str, Any]) -> str:
    """Compose the persona + mission instructions sent ahead of the turns."""
    details = json.dumps(mission.get("initial_details") or {})
    return (
        f"You are {character.get('name', '')}, a digital AI assistant. \n"
        f"Personality: {character.get('personality', '')}\n"
        f"Description: {character.get('description', '')}\n"
        "\n"
        "You are helping with the following mission:\n"
        f"Mission Type: {mission.get('mission_type', '')}\n"
        f"Mission Title: {mission.get('mission_title', '')}\n"
        f"Details: {details}\n"
        "\n"
        "Keep responses conversational and helpful. Stay in character at all times.\n"
        "When appropriate, suggest options for the user to choose from."
    )


def resolve_provider(
    ai_provider: Optional[str],
    groq_api_key: Optional[str] = None,
    gemini_api_key: Optional[str] = None,
) -> Tuple[str, str]:
    """Pick the provider actually used and the key to call it with.

    A user-selected provider without a key falls back to the gateway.
    """
    if ai_provider == "groq" and groq_api_key:
        return "groq", groq_api_key
    if ai_provider == "gemini" and gemini_api_key:
        return "gemini", gemini_api_key
    gateway_key = config.gateway_api_key()
    if not gateway_key:
        raise UpstreamError("AI gateway key is not configured")
    return "default", gateway_key


def build_upstream_request(
    provider: str,
    api_key: str,
    system_prompt: str,
    messages: List[Dict[str, str]],
) -> Tuple[str, Dict[str, str], Dict[str, str], Dict[str, Any]]:
    """Return ``(url, params, headers, json_body)`` for one streamed completion."""
    if provider == "gemini":
        contents = [
            {"role": "user", "parts": [{"text": system_prompt}]},
            {"role": "model", "parts": [{"text": GEMINI_ACK}]},
        ]
        for m in messages:
            contents.append({
                "role": "model" if m["role"] == "assistant" else "user",
                "parts": [{"text": m["content"]}],
            })
        body = {
            "contents": contents,
            "generationConfig": {"maxOutputTokens": config.MAX_OUTPUT_TOKENS},
        }
        url = config.GEMINI_URL.format(model=config.GEMINI_MODEL)
        params = {"key": api_key, "alt": "sse"}
        return url, params, {"Content-Type": "application/json"}, body

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    msg_list = [{"role": "system", "content": system_prompt}] + list(messages)
    if provider == "groq":
        body = {
            "model": config.GROQ_MODEL,
            "messages": msg_list,
            "max_tokens": config.MAX_OUTPUT_TOKENS,
            "stream": True,
        }
        return config.GROQ_URL, {}, headers, body

    body = {
        "model": config.GATEWAY_CHAT_MODEL,
        "messages": msg_list,
        "stream": True,
    }
    return config.AI_GATEWAY_URL, {}, headers, body


async def open_chat_stream(
    provider: str,
    api_key: str,
    system_prompt: str,
    messages: List[Dict[str, str]],
) -> AsyncIterator[bytes]:
    """Start a streamed completion and return an iterator over its raw bytes.

    The upstream status is checked before anything is relayed so callers can
    still answer with a proper error status: 429 raises
    :class:`RateLimitedError`, 402 :class:`PaymentRequiredError`, anything
    else non-2xx (or a transport failure) :class:`UpstreamError`.
    """
    url, params, headers, body = build_upstream_request(provider, api_key, system_prompt, messages)

    client = httpx.AsyncClient(timeout=None)
    try:
        request = client.build_request("POST", url, params=params, headers=headers, json=body)
        resp = await client.send(request, stream=True)
    except httpx.HTTPError as e:
        await client.aclose()
        logger.error("AI API request to %s failed: %s", provider, e)
        raise UpstreamError() from e

    if resp.status_code >= 400:
        error_text = (await resp.aread()).decode("utf-8", "replace")
        await resp.aclose()
        await client.aclose()
        logger.error("AI API error (%s): %s %s", provider, resp.status_code, error_text[:500])
        if resp.status_code == 429:
            raise RateLimitedError()
        if resp.status_code == 402:
            raise PaymentRequiredError()
        raise UpstreamError()

    return _relay(client, resp)


async def _relay(client, resp) -> AsyncIterator[bytes]:
    try:
        async for chunk in resp.aiter_bytes():
            yield chunk
    finally:
        await resp.aclose()
        await client.aclose()
