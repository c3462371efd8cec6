"""Async client for the chat relay, mirroring what the chat widget does.

Failures are raised as :class:`~twinlink.services.errors.TwinLinkError`
subclasses so callers can show the matching notice (``err.notice``).
"""

import logging
from typing import Any, Callable, Dict, List, Optional

import httpx

from twinlink.services.errors import ClientError, TwinLinkError, error_for_status
from twinlink.services.sse import parse_stream

logger = logging.getLogger(__name__)


def _error_text(resp) -> Optional[str]:
    try:
        data = resp.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        return data.get("error") or data.get("detail")
    return None


class ChatClient:
    def __init__(
        self,
        base_url: str,
        access_token: Optional[str] = None,
        provider: str = "default",
        timeout: Optional[float] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.provider = provider
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    async def stream_chat(
        self,
        messages: List[Dict[str, str]],
        character: Dict[str, Any],
        mission: Dict[str, Any],
        on_delta: Optional[Callable[[str], None]] = None,
        on_done: Optional[Callable[[], None]] = None,
    ) -> str:
        """Send the turn history to ``/chat`` and stream the reply.

        Returns the full assistant text once the stream completes.
        """
        body = {"messages": messages, "character": character, "mission": mission}
        return await self._stream("/chat", body, on_delta, on_done)

    async def send_link_message(
        self,
        token: str,
        message: str,
        on_delta: Optional[Callable[[str], None]] = None,
        on_done: Optional[Callable[[], None]] = None,
    ) -> str:
        return await self._stream(f"/api/s/{token}/chat", {"message": message}, on_delta, on_done)

    async def _stream(self, path, body, on_delta, on_done) -> str:
        parts: List[str] = []

        def handle(delta: str) -> None:
            parts.append(delta)
            if on_delta is not None:
                on_delta(delta)

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                async with client.stream(
                    "POST", self.base_url + path, json=body, headers=self._headers()
                ) as resp:
                    if resp.status_code >= 400:
                        await resp.aread()
                        raise error_for_status(resp.status_code, _error_text(resp))
                    provider = resp.headers.get("X-AI-Provider", self.provider)
                    await parse_stream(resp.aiter_bytes(), handle, on_done, provider)
        except TwinLinkError as e:
            logger.error("Chat error: %s", e)
            raise
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Chat error: %s", e)
            raise ClientError(str(e)) from e
        return "".join(parts)
