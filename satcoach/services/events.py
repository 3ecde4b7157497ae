"""
Generation events and their NDJSON transport.

Event shapes (one minified JSON object per line on the wire):
    {"type":"server","stage":...,"t":...}         lifecycle / diagnostics
    {"type":"question","index":k,"question":{...}}
    {"type":"progress","completed":k,"total":n}
    {"type":"done"}                                always last
    {"type":"error","message":...}                 orchestrator crashed, replaces done
"""

import json
import time
import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Set

logger = logging.getLogger(__name__)

Event = Dict[str, Any]
EventSink = Callable[[Event], Awaitable[None]]

NDJSON_MEDIA_TYPE = "application/x-ndjson"

SERVER = "server"
QUESTION = "question"
PROGRESS = "progress"
DONE = "done"
ERROR = "error"

_END = object()
# Strong references so producer tasks are not garbage-collected mid-run
_producers: Set[asyncio.Task] = set()


def now_ms() -> int:
    return int(time.time() * 1000)


def server_event(stage: str, **fields: Any) -> Event:
    return {"type": SERVER, "stage": stage, "t": now_ms(), **fields}


def question_event(index: int, question: Dict[str, Any]) -> Event:
    return {"type": QUESTION, "index": index, "question": question}


def progress_event(completed: int, total: int) -> Event:
    return {"type": PROGRESS, "completed": completed, "total": total}


def done_event() -> Event:
    return {"type": DONE}


def error_event(message: str) -> Event:
    return {"type": ERROR, "message": message}


def is_diagnostic(event: Event) -> bool:
    return event.get("type") == SERVER


def encode_event(event: Event) -> str:
    return json.dumps(event, ensure_ascii=False, separators=(",", ":")) + "\n"


async def discard(event: Event) -> None:
    """Sink for callers that only want the final batch."""
    if is_diagnostic(event):
        logger.debug(f"Generation event: {event.get('stage')}")


async def iter_ndjson(generator, session, include_diagnostics: bool = True) -> AsyncIterator[str]:
    """Run ``generator.run(session, emit)`` and yield each event as an NDJSON line as it happens.

    When the consumer stops iterating (client disconnected) the session is
    marked cancelled: the orchestrator finishes the model call in flight and
    issues no new ones.
    """
    queue: asyncio.Queue = asyncio.Queue()

    async def _emit(event: Event):
        if not session.cancelled:
            await queue.put(event)

    async def _produce():
        try:
            await generator.run(session, _emit)
        except Exception as e:
            logger.error(f"Generation session crashed: {e}", exc_info=True)
            await queue.put(error_event(str(e) or "stream error"))
        finally:
            await queue.put(_END)

    task = asyncio.create_task(_produce())
    _producers.add(task)
    task.add_done_callback(_producers.discard)

    finished = False
    try:
        while True:
            event = await queue.get()
            if event is _END:
                finished = True
                return
            if not include_diagnostics and is_diagnostic(event):
                continue
            yield encode_event(event)
    finally:
        if not finished:
            session.cancelled = True
            logger.info("Client went away; generation will stop after the in-flight call")
