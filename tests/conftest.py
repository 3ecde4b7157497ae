import os
import json
import asyncio

# Settings are read at import time: keep the rate limiter off and never touch Gemini.
os.environ["ENV"] = "test"
os.environ.pop("GOOGLE_API_KEY", None)
os.environ.pop("GOOGLE_GENAI_API_KEY", None)

import pytest

from satcoach.schemas.generator import GenerateRequest


def make_question(stem="Which choice completes the text with the most logical word?", **overrides):
    q = {
        "question": stem,
        "multipleChoiceOptions": ["A. first", "B. second", "C. third", "D. fourth"],
        "correctAnswer": "B",
        "incorrectExplanations": {
            "A": "A is too broad.",
            "B": "B is correct.",
            "C": "C contradicts the passage.",
            "D": "D is off topic.",
        },
        "correctExplanation": "B matches the claim in the second sentence.",
    }
    q.update(overrides)
    return q


def ndjson(questions):
    return "".join(json.dumps(q) + "\n" for q in questions)


def numbered(start, stop, prefix="Stream question"):
    return [make_question(f"{prefix} {i}: what is the value of x?") for i in range(start, stop)]


class FakeModel:
    """Upstream stand-in: scripted stream chunks and scripted one-shot replies.

    ``replies`` items are strings or exceptions; once exhausted every call
    returns "" (an empty reply).
    """

    def __init__(self, chunks=None, replies=None, open_error=None, configured=True):
        self.chunks = list(chunks or [])
        self.replies = list(replies or [])
        self.open_error = open_error
        self.configured = configured
        self.stream_prompts = []
        self.calls = []

    async def open_stream(self, prompt, temperature=0.6):
        self.stream_prompts.append(prompt)
        if self.open_error:
            raise self.open_error
        chunks = list(self.chunks)

        async def _stream():
            for chunk in chunks:
                await asyncio.sleep(0)
                if isinstance(chunk, Exception):
                    raise chunk
                yield chunk

        return _stream()

    async def generate(self, prompt, temperature=0.6, max_output_tokens=None, response_mime_type=None):
        self.calls.append({
            "prompt": prompt,
            "temperature": temperature,
            "max_output_tokens": max_output_tokens,
            "response_mime_type": response_mime_type,
        })
        if not self.replies:
            return ""
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class EventRecorder:
    def __init__(self):
        self.events = []

    async def __call__(self, event):
        self.events.append(event)

    def of_type(self, kind):
        return [e for e in self.events if e["type"] == kind]

    def stages(self):
        return [e["stage"] for e in self.of_type("server")]

    def core(self):
        return [e for e in self.events if e["type"] != "server"]


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def request_factory():
    def _make(**kwargs):
        data = {"section": "Reading", "topic": "Transitions"}
        data.update(kwargs)
        return GenerateRequest(**data)
    return _make
