import asyncio
from types import SimpleNamespace

import pytest

from conftest import run
from satcoach.core.exceptions import GeneratorNotConfigured
from satcoach.services.gemini_client import GeminiClient


class FakeModels:
    def __init__(self, replies=None, chunks=None, chunk_delay=0.0):
        self.replies = list(replies or [])
        self.chunks = list(chunks or [])
        self.chunk_delay = chunk_delay
        self.calls = []

    async def generate_content(self, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def generate_content_stream(self, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        chunks, delay = list(self.chunks), self.chunk_delay

        async def _stream():
            for chunk in chunks:
                await asyncio.sleep(delay)
                yield chunk

        return _stream()


def make_client(models, **kwargs):
    kwargs.setdefault("timeout", 1.0)
    kwargs.setdefault("retry_backoff", 0)
    client = GeminiClient(api_key="", model="gemini-test", **kwargs)
    client._client = SimpleNamespace(aio=SimpleNamespace(models=models))
    return client


def reply(text):
    return SimpleNamespace(text=text)


class BlockedResponse:
    """Mimics a response whose .text accessor raises."""

    def __init__(self, parts):
        self.candidates = [SimpleNamespace(content=SimpleNamespace(parts=parts))]

    @property
    def text(self):
        raise ValueError("no text")


def test_unconfigured_client_refuses_calls():
    client = GeminiClient(api_key="")
    assert not client.configured
    with pytest.raises(GeneratorNotConfigured):
        run(client.generate("hello"))
    with pytest.raises(GeneratorNotConfigured):
        run(client.open_stream("hello"))


def test_generate_passes_sampling_config():
    models = FakeModels(replies=[reply('{"ok": true}')])
    client = make_client(models)
    text = run(client.generate("prompt", temperature=0.3, max_output_tokens=4096,
                               response_mime_type="application/json"))

    assert text == '{"ok": true}'
    config = models.calls[0]["config"]
    assert models.calls[0]["model"] == "gemini-test"
    assert config.temperature == 0.3
    assert config.max_output_tokens == 4096
    assert config.response_mime_type == "application/json"


def test_generate_retries_rate_limits():
    models = FakeModels(replies=[RuntimeError("429 RESOURCE_EXHAUSTED"), reply("second time")])
    client = make_client(models, max_retries=2)
    assert run(client.generate("prompt")) == "second time"
    assert len(models.calls) == 2


def test_generate_gives_up_after_max_retries():
    models = FakeModels(replies=[RuntimeError("429")] * 3)
    client = make_client(models, max_retries=1)
    with pytest.raises(RuntimeError):
        run(client.generate("prompt"))
    assert len(models.calls) == 2


def test_generate_does_not_retry_other_errors():
    models = FakeModels(replies=[RuntimeError("500 INTERNAL"), reply("unused")])
    client = make_client(models)
    with pytest.raises(RuntimeError):
        run(client.generate("prompt"))
    assert len(models.calls) == 1


def test_safe_text_falls_back_to_parts():
    blocked = BlockedResponse([SimpleNamespace(text=None), SimpleNamespace(text="from parts")])
    assert GeminiClient._safe_text(blocked) == "from parts"
    assert GeminiClient._safe_text(SimpleNamespace(text=None, candidates=None)) == ""


def test_open_stream_yields_text_fragments():
    chunks = [reply("{\"question\""), reply(""), reply(": \"x\"}\n")]
    client = make_client(FakeModels(chunks=chunks))

    async def _go():
        stream = await client.open_stream("prompt")
        return [text async for text in stream]

    assert run(_go()) == ["{\"question\"", ": \"x\"}\n"]


def test_stalled_stream_chunk_times_out():
    client = make_client(FakeModels(chunks=[reply("late")], chunk_delay=1.0), timeout=0.05)

    async def _go():
        stream = await client.open_stream("prompt")
        return [text async for text in stream]

    with pytest.raises(asyncio.TimeoutError):
        run(_go())
