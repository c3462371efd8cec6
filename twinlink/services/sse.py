"""Incremental parser for the chat relay's server-sent event stream.

Bytes arrive in arbitrary network chunks. The parser buffers them, splits
on newlines, and turns every ``data: {...}`` frame into a text delta using
the JSON shape of the provider that produced the stream.
"""

import codecs
import json
from typing import AsyncIterable, Callable, Optional

DONE_SENTINEL = "[DONE]"


def extract_delta(payload: dict, provider: str = "default") -> Optional[str]:
    """Return the text delta carried by one decoded frame, if any.

    Gemini streams ``candidates[0].content.parts[0].text``; the gateway and
    Groq stream the OpenAI-compatible ``choices[0].delta.content``.
    """
    try:
        if provider == "gemini":
            return payload["candidates"][0]["content"]["parts"][0].get("text")
        return payload["choices"][0]["delta"].get("content")
    except (KeyError, IndexError, TypeError, AttributeError):
        return None


class SSEParser:
    """Line-buffering SSE decoder.

    ``on_delta`` is called for every non-empty text delta; ``on_done`` is
    called exactly once, either at the ``[DONE]`` sentinel or from
    :meth:`close` when the stream ends without one.

    A frame whose JSON does not parse is treated as incomplete: it is put
    back at the head of the buffer and parsing waits for the next chunk.
    A frame that never becomes valid therefore stalls the parser until the
    stream ends.
    """

    def __init__(
        self,
        on_delta: Callable[[str], None],
        on_done: Optional[Callable[[], None]] = None,
        provider: str = "default",
    ):
        self.on_delta = on_delta
        self.on_done = on_done
        self.provider = provider
        self.done = False
        self._buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, chunk: bytes) -> None:
        if self.done:
            return
        self._buffer += self._decoder.decode(chunk)
        self._drain()

    def close(self) -> None:
        if self.done:
            return
        self._buffer += self._decoder.decode(b"", final=True)
        self._finish()

    def _drain(self) -> None:
        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            if line.endswith("\r"):
                line = line[:-1]
            if line.startswith(":") or line.strip() == "":
                continue
            if not line.startswith("data: "):
                continue

            json_str = line[6:].strip()
            if json_str == DONE_SENTINEL:
                self._finish()
                return

            try:
                payload = json.loads(json_str)
            except json.JSONDecodeError:
                self._buffer = line + "\n" + self._buffer
                break

            delta = extract_delta(payload, self.provider)
            if delta:
                self.on_delta(delta)

    def _finish(self) -> None:
        self.done = True
        self._buffer = ""
        if self.on_done is not None:
            self.on_done()


async def parse_stream(
    chunks: AsyncIterable[bytes],
    on_delta: Callable[[str], None],
    on_done: Optional[Callable[[], None]] = None,
    provider: str = "default",
) -> None:
    """Feed an async byte stream through an :class:`SSEParser` to completion."""
    parser = SSEParser(on_delta, on_done, provider)
    async for chunk in chunks:
        parser.feed(chunk)
        if parser.done:
            break
    parser.close()
