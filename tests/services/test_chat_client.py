import json
import sys
from pathlib import Path
sys.path.append(str(Path(__file__).resolve().parents[2]))
import httpx
import pytest

from twinlink.services import chat_client
from twinlink.services.errors import (
    ClientError,
    ErrorKind,
    PaymentRequiredError,
    RateLimitedError,
    UnauthorizedError,
    UpstreamError,
)


class DummyStream:
    def __init__(self, status_code=200, chunks=(), body=b"", headers=None):
        self.status_code = status_code
        self.chunks = list(chunks)
        self.body = body
        self.headers = headers or {}

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        pass

    async def aread(self):
        return self.body

    def json(self):
        return json.loads(self.body)

    async def aiter_bytes(self):
        for c in self.chunks:
            yield c


class DummyClient:
    stream_response = None
    error = None
    calls = []

    def __init__(self, *args, **kwargs):
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        pass

    def stream(self, method, url, json=None, headers=None):
        DummyClient.calls.append({"method": method, "url": url, "json": json, "headers": headers})
        if DummyClient.error is not None:
            raise DummyClient.error
        return DummyClient.stream_response


@pytest.fixture(autouse=True)
def dummy_client(monkeypatch):
    DummyClient.stream_response = None
    DummyClient.error = None
    DummyClient.calls = []
    monkeypatch.setattr(chat_client.httpx, "AsyncClient", DummyClient)


CHARACTER = {"name": "Alex", "personality": "", "description": "", "first_mes": ""}
MISSION = {"mission_type": "custom", "mission_title": "Feedback", "initial_details": {}}


@pytest.mark.asyncio
async def test_stream_chat_collects_deltas():
    DummyClient.stream_response = DummyStream(
        200,
        [
            b'data: {"choices":[{"delta":{"content":"Sure, "}}]}\ndata: {"choi',
            b'ces":[{"delta":{"content":"Monday works"}}]}\n',
            b"data: [DONE]\n",
        ],
    )
    seen, done = [], []
    client = chat_client.ChatClient("http://api.test/", access_token="tok")
    text = await client.stream_chat(
        [{"role": "user", "content": "When?"}], CHARACTER, MISSION, seen.append, lambda: done.append(True)
    )
    assert text == "Sure, Monday works"
    assert seen == ["Sure, ", "Monday works"]
    assert done == [True]
    call = DummyClient.calls[0]
    assert call["url"] == "http://api.test/chat"
    assert call["headers"]["Authorization"] == "Bearer tok"
    assert call["json"]["mission"] == MISSION


@pytest.mark.asyncio
async def test_provider_header_selects_gemini_shape():
    DummyClient.stream_response = DummyStream(
        200,
        [b'data: {"candidates":[{"content":{"parts":[{"text":"Hola"}]}}]}\n'],
        headers={"X-AI-Provider": "gemini"},
    )
    client = chat_client.ChatClient("http://api.test")
    assert await client.send_link_message("abc", "hi") == "Hola"
    assert DummyClient.calls[0]["url"] == "http://api.test/api/s/abc/chat"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,exc,title",
    [
        (429, RateLimitedError, "Rate limit exceeded"),
        (402, PaymentRequiredError, "Credits required"),
        (401, UnauthorizedError, "Sign in required"),
    ],
)
async def test_distinct_conditions_for_limits_and_payment(status, exc, title):
    DummyClient.stream_response = DummyStream(status, body=b'{"error": "whatever"}')
    client = chat_client.ChatClient("http://api.test")
    with pytest.raises(exc) as info:
        await client.stream_chat([{"role": "user", "content": "x"}], CHARACTER, MISSION)
    assert info.value.notice[0] == title


@pytest.mark.asyncio
async def test_other_failures_are_generic_with_server_message():
    DummyClient.stream_response = DummyStream(500, body=b'{"error": "AI service error"}')
    client = chat_client.ChatClient("http://api.test")
    with pytest.raises(UpstreamError) as info:
        await client.stream_chat([{"role": "user", "content": "x"}], CHARACTER, MISSION)
    assert info.value.kind == ErrorKind.UPSTREAM
    assert info.value.message == "AI service error"


@pytest.mark.asyncio
async def test_network_failure_is_client_error():
    DummyClient.error = httpx.ConnectError("connection refused")
    client = chat_client.ChatClient("http://api.test")
    with pytest.raises(ClientError) as info:
        await client.stream_chat([{"role": "user", "content": "x"}], CHARACTER, MISSION)
    assert info.value.kind == ErrorKind.CLIENT
    assert info.value.notice[1] == "Could not reach the AI service. Please try again."
