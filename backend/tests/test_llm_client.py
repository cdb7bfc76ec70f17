"""
Tests for the generation service client.

The AsyncOpenAI client is replaced by a stub so the tests cover the
single-flight lock, stream cancellation and error translation without a
running llama-server.
"""

import asyncio
from types import SimpleNamespace

import httpx
import openai
import pytest

from errors import ErrorCode, GenerationFailure
from services.llm_client import GenerationService


def _chunk(text):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])


class StubStream:
    def __init__(self, tokens, tracker):
        self.tokens = tokens
        self.tracker = tracker
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for token in self.tokens:
            await asyncio.sleep(0.001)
            if isinstance(token, Exception):
                raise token
            yield _chunk(token)

    async def close(self):
        self.closed = True
        self.tracker.active -= 1


class StubCompletions:
    """Records concurrency across create() calls."""

    def __init__(self, tokens=None, error=None):
        self.tokens = tokens or ["Hello", " world"]
        self.error = error
        self.active = 0
        self.max_active = 0
        self.streams = []
        self.requests = []

    async def create(self, model, messages, stream=False, **params):
        self.requests.append({"model": model, "messages": messages, "stream": stream, **params})
        if self.error is not None:
            raise self.error
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        await asyncio.sleep(0.005)
        if stream:
            response = StubStream(list(self.tokens), self)
            self.streams.append(response)
            return response
        self.active -= 1
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="GREETING"))])


def _service(completions):
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return GenerationService(base_url="http://llm.test", model="test-model", client=client)


async def _collect(service, messages, cancel_event=None):
    tokens = []
    async for token in service.stream(messages, cancel_event=cancel_event):
        tokens.append(token)
    return tokens


class TestInvoke:
    def test_returns_text(self):
        completions = StubCompletions()
        service = _service(completions)
        text = asyncio.run(service.invoke([{"role": "user", "content": "hi"}], max_tokens=16, temperature=0.0))
        assert text == "GREETING"
        request = completions.requests[0]
        assert request["model"] == "test-model"
        assert request["max_tokens"] == 16
        assert request["temperature"] == 0.0
        assert request["stream"] is False

    def test_connection_error_wrapped(self):
        error = openai.APIConnectionError(request=httpx.Request("POST", "http://llm.test/v1/chat/completions"))
        service = _service(StubCompletions(error=error))
        with pytest.raises(GenerationFailure) as exc_info:
            asyncio.run(service.invoke([{"role": "user", "content": "hi"}]))
        assert exc_info.value.code is ErrorCode.GENERATION_UNAVAILABLE

    def test_timeout_wrapped(self):
        error = openai.APITimeoutError(request=httpx.Request("POST", "http://llm.test/v1/chat/completions"))
        service = _service(StubCompletions(error=error))
        with pytest.raises(GenerationFailure) as exc_info:
            asyncio.run(service.invoke([{"role": "user", "content": "hi"}]))
        assert exc_info.value.code is ErrorCode.GENERATION_TIMEOUT


class TestStream:
    def test_tokens_in_order(self):
        service = _service(StubCompletions(tokens=["a", "b", "c"]))
        assert asyncio.run(_collect(service, [])) == ["a", "b", "c"]

    def test_cancel_closes_response(self):
        completions = StubCompletions(tokens=["a", "b", "c", "d"])
        service = _service(completions)

        async def scenario():
            cancel = asyncio.Event()
            tokens = []
            async for token in service.stream([], cancel_event=cancel):
                tokens.append(token)
                if len(tokens) == 2:
                    cancel.set()
            return tokens

        assert asyncio.run(scenario()) == ["a", "b"]
        assert completions.streams[0].closed is True
        assert service.busy is False

    def test_mid_stream_http_error_wrapped(self):
        tokens = ["a", httpx.ReadError("connection reset")]
        service = _service(StubCompletions(tokens=tokens))
        with pytest.raises(GenerationFailure):
            asyncio.run(_collect(service, []))


class TestSingleFlight:
    def test_concurrent_streams_are_serialized(self):
        completions = StubCompletions(tokens=["x", "y", "z"])
        service = _service(completions)

        async def scenario():
            return await asyncio.gather(
                _collect(service, [{"role": "user", "content": "1"}]),
                _collect(service, [{"role": "user", "content": "2"}]),
                service.invoke([{"role": "user", "content": "3"}]),
            )

        first, second, third = asyncio.run(scenario())
        assert first == ["x", "y", "z"]
        assert second == ["x", "y", "z"]
        assert third == "GREETING"
        assert completions.max_active == 1

    def test_busy_while_streaming(self):
        service = _service(StubCompletions(tokens=["x", "y"]))

        async def scenario():
            seen = []
            async for _ in service.stream([]):
                seen.append(service.busy)
            return seen

        assert asyncio.run(scenario()) == [True, True]
