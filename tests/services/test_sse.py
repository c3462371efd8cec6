import json
import sys
from pathlib import Path
sys.path.append(str(Path(__file__).resolve().parents[2]))
import pytest

from twinlink.services import sse


def frame(text, provider="default"):
    if provider == "gemini":
        payload = {"candidates": [{"content": {"parts": [{"text": text}]}}]}
    else:
        payload = {"choices": [{"delta": {"content": text}}]}
    return f"data: {json.dumps(payload)}\n"


class Collector:
    def __init__(self):
        self.deltas = []
        self.done_calls = 0

    def on_delta(self, text):
        self.deltas.append(text)

    def on_done(self):
        self.done_calls += 1


STREAM = (
    ": keep-alive\n"
    + frame("Hel")
    + "\n"
    + frame("lo, ")
    + frame("wörld")
    + "data: [DONE]\n"
).encode("utf-8")


def test_parses_whole_stream_in_one_chunk():
    c = Collector()
    parser = sse.SSEParser(c.on_delta, c.on_done)
    parser.feed(STREAM)
    assert "".join(c.deltas) == "Hello, wörld"
    assert c.done_calls == 1
    assert parser.done


@pytest.mark.parametrize("cut", range(1, len(STREAM)))
def test_reassembles_frames_split_at_any_byte(cut):
    c = Collector()
    parser = sse.SSEParser(c.on_delta, c.on_done)
    parser.feed(STREAM[:cut])
    parser.feed(STREAM[cut:])
    parser.close()
    assert "".join(c.deltas) == "Hello, wörld"
    assert c.done_calls == 1


def test_byte_at_a_time_with_crlf_line_endings():
    data = STREAM.replace(b"\n", b"\r\n")
    c = Collector()
    parser = sse.SSEParser(c.on_delta, c.on_done)
    for i in range(len(data)):
        parser.feed(data[i:i + 1])
    assert "".join(c.deltas) == "Hello, wörld"
    assert c.done_calls == 1


def test_gemini_shape():
    c = Collector()
    parser = sse.SSEParser(c.on_delta, c.on_done, provider="gemini")
    parser.feed((frame("Hi ", "gemini") + frame("there", "gemini")).encode())
    parser.close()
    assert c.deltas == ["Hi ", "there"]
    assert c.done_calls == 1


def test_ignores_non_data_lines_and_frames_without_text():
    c = Collector()
    parser = sse.SSEParser(c.on_delta, c.on_done)
    parser.feed(b"event: message\nid: 7\n")
    parser.feed(b'data: {"choices":[{"delta":{"role":"assistant"}}]}\n')
    parser.feed(b'data: {"choices":[]}\n')
    parser.feed(frame("ok").encode())
    parser.close()
    assert c.deltas == ["ok"]


def test_nothing_after_done_is_delivered():
    c = Collector()
    parser = sse.SSEParser(c.on_delta, c.on_done)
    parser.feed(b"data: [DONE]\n" + frame("late").encode())
    parser.feed(frame("later").encode())
    parser.close()
    assert c.deltas == []
    assert c.done_calls == 1


def test_close_without_sentinel_fires_done_once():
    c = Collector()
    parser = sse.SSEParser(c.on_delta, c.on_done)
    parser.feed(frame("partial").encode())
    parser.close()
    parser.close()
    assert c.deltas == ["partial"]
    assert c.done_calls == 1


def test_malformed_frame_stalls_until_stream_end():
    c = Collector()
    parser = sse.SSEParser(c.on_delta, c.on_done)
    parser.feed(b"data: {not json\n")
    parser.feed(frame("never").encode())
    assert c.deltas == []
    assert c.done_calls == 0
    parser.close()
    assert c.done_calls == 1


@pytest.mark.asyncio
async def test_parse_stream_over_async_chunks():
    async def chunks():
        for i in range(0, len(STREAM), 5):
            yield STREAM[i:i + 5]

    c = Collector()
    await sse.parse_stream(chunks(), c.on_delta, c.on_done)
    assert "".join(c.deltas) == "Hello, wörld"
    assert c.done_calls == 1


def test_extract_delta_tolerates_unexpected_shapes():
    assert sse.extract_delta({"choices": [{"delta": {"content": "x"}}]}) == "x"
    assert sse.extract_delta({"candidates": []}, "gemini") is None
    assert sse.extract_delta([1, 2, 3]) is None
