"""
Tests for generation backends
"""

import json

import httpx
import pytest

from strikemd.config import LLMConfig
from strikemd.llm_backend import (
    ClaudeAPIBackend,
    OllamaBackend,
    ReplayBackend,
    get_backend,
)
from strikemd.stream_parser import Completed, Failed, Fragment, Phase


def _ndjson(*chunks) -> bytes:
    return "".join(json.dumps(c) + "\n" for c in chunks).encode("utf-8")


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def _collect(backend, system="sys", user="usr"):
    return [e async for e in backend.stream(system, user)]


class TestOllamaBackend:
    """Tests for the httpx streaming backend."""

    @pytest.mark.asyncio
    async def test_stream(self):
        """Test NDJSON chunks become phase, fragments and completion."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["payload"] = json.loads(request.content)
            return httpx.Response(200, content=_ndjson(
                {"message": {"role": "assistant", "content": "1 lg"}, "done": False},
                {"message": {"role": "assistant", "content": "tm\n"}, "done": False},
                {"message": {"role": "assistant", "content": ""}, "done": True, "done_reason": "stop"},
            ))

        backend = OllamaBackend(model="m", endpoint="http://ollama:11434/", client=_client(handler))
        events = await _collect(backend)

        assert events == [Phase("answer"), Fragment("1 lg"), Fragment("tm\n"), Completed()]
        assert seen["url"] == "http://ollama:11434/api/chat"
        assert seen["payload"]["stream"] is True
        assert seen["payload"]["messages"][0] == {"role": "system", "content": "sys"}
        assert "think" not in seen["payload"]

    @pytest.mark.asyncio
    async def test_thinking_phase(self):
        """Test thinking chunks announce the reasoning phase."""
        def handler(request):
            return httpx.Response(200, content=_ndjson(
                {"message": {"thinking": "hmm"}, "done": False},
                {"message": {"content": "1 lgtm"}, "done": False},
                {"done": True},
            ))

        backend = OllamaBackend(think=True, client=_client(handler))
        events = await _collect(backend)
        assert events[0] == Phase("reasoning")
        assert events[1] == Phase("answer")
        assert events[-1] == Completed()

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        """Test a non-2xx response becomes a failure event."""
        def handler(request):
            return httpx.Response(404, content=b'{"error":"model not found"}')

        events = await _collect(OllamaBackend(client=_client(handler)))
        assert len(events) == 1
        assert isinstance(events[0], Failed)
        assert "404" in events[0].message

    @pytest.mark.asyncio
    async def test_error_chunk(self):
        """Test an error reported mid-stream ends the stream."""
        def handler(request):
            return httpx.Response(200, content=_ndjson(
                {"message": {"content": "1 lg"}, "done": False},
                {"error": "out of memory"},
            ))

        events = await _collect(OllamaBackend(client=_client(handler)))
        assert isinstance(events[-1], Failed)
        assert "out of memory" in events[-1].message

    @pytest.mark.asyncio
    async def test_transport_error(self):
        """Test connection errors never escape as exceptions."""
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        events = await _collect(OllamaBackend(client=_client(handler)))
        assert len(events) == 1
        assert isinstance(events[0], Failed)

    @pytest.mark.asyncio
    async def test_truncated_stream(self):
        """Test a stream without done chunk is a failure."""
        def handler(request):
            return httpx.Response(200, content=_ndjson({"message": {"content": "1 lgtm"}, "done": False}))

        events = await _collect(OllamaBackend(client=_client(handler)))
        assert isinstance(events[-1], Failed)


class TestReplayBackend:
    """Tests for replaying saved answers."""

    @pytest.mark.asyncio
    async def test_fragments(self):
        """Test the answer is cut into fixed-size fragments."""
        events = await _collect(ReplayBackend("abcdefg", chunk_size=3))
        assert events == [
            Phase("answer"), Fragment("abc"), Fragment("def"), Fragment("g"), Completed(),
        ]

    @pytest.mark.asyncio
    async def test_error(self):
        """Test a scripted failure."""
        events = await _collect(ReplayBackend("1 lgtm", error="boom"))
        assert events[-1] == Failed("boom")


class TestFactory:
    """Tests for get_backend()."""

    def test_backends(self):
        """Test each configured backend type."""
        assert isinstance(get_backend(LLMConfig(backend="ollama")), OllamaBackend)
        assert isinstance(get_backend(LLMConfig(backend="claude")), ClaudeAPIBackend)
        assert isinstance(get_backend(LLMConfig(backend="replay"), replay_answer="x"), ReplayBackend)

    def test_replay_requires_answer(self):
        """Test replay without an answer is a setup error."""
        with pytest.raises(ValueError):
            get_backend(LLMConfig(backend="replay"))

    def test_describe(self):
        """Test backend metadata."""
        info = get_backend(LLMConfig(backend="ollama", model="m")).describe()
        assert info == {"backend": "OllamaBackend", "model": "m", "local_only": True}
        assert ClaudeAPIBackend().is_local is False

    def test_claude_request(self):
        """Test thinking requests drop the temperature."""
        plain = ClaudeAPIBackend(temperature=0.3)._request("s", "u")
        assert plain["temperature"] == 0.3
        assert plain["system"] == "s"
        thinking = ClaudeAPIBackend(think=True)._request("s", "u")
        assert "temperature" not in thinking
        assert thinking["thinking"]["type"] == "enabled"
