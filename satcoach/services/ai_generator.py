"""
AI Question-Set Generator: exactly N SAT questions from an unreliable model.

Ladder (each tier only runs while the set is still short):
  1. primary-stream         one streaming call, lines accepted as they arrive
  2. bulk-topup             one non-streaming call per TOPUP_TIERS entry (3 rounds)
  3. single-item-recovery   per slot: single prompt → variant prompt → synthetic filler

Every candidate goes through the same chain:
    parse_candidate → validation_error → sanitize_question → Deduplicator
and every accepted unit emits a question event followed by a progress event.
The synthetic filler makes the count guarantee unconditional.
"""

import time
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from satcoach.core.exceptions import GeneratorNotConfigured, ModelOutputError, UpstreamUnavailable
from satcoach.services.dedup import Deduplicator
from satcoach.services.events import (
    EventSink, discard, done_event, progress_event, question_event, server_event,
)
from satcoach.services.gemini_client import gemini_client
from satcoach.services.prompts import (
    PRIMARY_TEMPERATURE, SINGLE_TIER, TOPUP_TIERS, VARIANT_TIER,
    PromptTier, avoid_clause, build_primary_prompt, synthetic_question,
)
from satcoach.services.question_parser import (
    LineFramer, extract_first_object, parse_batch, parse_candidate,
    sanitize_question, validation_error,
)

logger = logging.getLogger(__name__)


class GenerationSession:
    """State of one generation request. Owned by a single orchestrator run."""

    def __init__(self, request, prompt: str):
        self.request = request
        self.target: int = request.count
        self.prompt = prompt
        self.accepted: List[Dict[str, Any]] = []
        self.dedup = Deduplicator()
        self.started_at = time.time()
        self.opened_at: Optional[float] = None
        self.primary: Optional[AsyncIterator[str]] = None   # streaming variant
        self.primary_text: Optional[str] = None             # non-streaming variant
        self.cancelled = False

    @property
    def completed(self) -> int:
        return len(self.accepted)

    @property
    def remaining(self) -> int:
        return max(0, self.target - self.completed)

    @property
    def is_complete(self) -> bool:
        return self.completed >= self.target

    @property
    def should_stop(self) -> bool:
        return self.is_complete or self.cancelled


class QuestionSetGenerator:

    def __init__(
        self,
        model=None,
        topup_tiers: Sequence[PromptTier] = TOPUP_TIERS,
        single_tier: PromptTier = SINGLE_TIER,
        variant_tier: PromptTier = VARIANT_TIER,
        primary_temperature: float = PRIMARY_TEMPERATURE,
    ):
        self.model = model if model is not None else gemini_client
        self.topup_tiers = tuple(topup_tiers)
        self.single_tier = single_tier
        self.variant_tier = variant_tier
        self.primary_temperature = primary_temperature

    # ========== PUBLIC API ==========

    async def open_session(self, request, streaming: bool = True) -> GenerationSession:
        """Build the prompt and establish the primary call.

        Everything that should fail the request outright fails here, before
        any event is emitted.
        """
        if not self.model.configured:
            raise GeneratorNotConfigured()

        session = GenerationSession(request, build_primary_prompt(request))
        logger.info(
            f"Generating {session.target} questions: "
            f"{request.section.value}/{request.topic}/{request.difficulty.value} "
            f"({'stream' if streaming else 'batch'})"
        )
        try:
            if streaming:
                session.primary = await self.model.open_stream(session.prompt, temperature=self.primary_temperature)
            else:
                session.primary_text = await self.model.generate(session.prompt, temperature=self.primary_temperature)
        except GeneratorNotConfigured:
            raise
        except Exception as e:
            logger.error(f"Primary generation call failed: {e}")
            raise UpstreamUnavailable(f"AI generation failed: {e}") from e
        session.opened_at = time.time()

        if not streaming and not any(c is not None for c in parse_batch(session.primary_text)):
            raise ModelOutputError("Model did not return valid JSON", raw=session.primary_text or "")
        return session

    async def run(self, session: GenerationSession, emit: EventSink) -> List[Dict[str, Any]]:
        """Drive the ladder to completion, awaiting ``emit`` for every event."""
        request = session.request
        await emit(server_event("received", t=int(session.started_at * 1000)))
        await emit(server_event(
            "prompt-built",
            section=request.section.value, topic=request.topic,
            difficulty=request.difficulty.value, count=session.target,
        ))

        if session.primary is not None:
            await self._primary_stream(session, emit)
        else:
            await self._primary_batch(session, emit)

        if not session.should_stop:
            await self._bulk_topup(session, emit)
        if not session.should_stop:
            await self._single_item_recovery(session, emit)

        if session.cancelled:
            logger.info(f"Session cancelled at {session.completed}/{session.target}")
            return session.accepted

        elapsed = time.time() - session.started_at
        logger.info(f"Question set complete: {session.completed}/{session.target} in {elapsed:.1f}s")
        await emit(done_event())
        return session.accepted

    async def generate(self, request) -> List[Dict[str, Any]]:
        """Non-streaming variant: same ladder, only the final batch is returned."""
        session = await self.open_session(request, streaming=False)
        return await self.run(session, discard)

    # ========== TIER 1: PRIMARY ==========

    async def _primary_stream(self, session: GenerationSession, emit: EventSink):
        ttfb_ms = int(((session.opened_at or time.time()) - session.started_at) * 1000)
        await emit(server_event("stream-open", ttfbMs=ttfb_ms))

        framer = LineFramer()
        stream = session.primary
        try:
            async for text in stream:
                await emit(server_event("chunk", size=len(text)))
                for line in framer.feed(text):
                    if session.should_stop:
                        break
                    await self._offer_line(session, line, emit, tier="primary")
                if session.should_stop:
                    break
        except Exception as e:
            logger.warning(f"Primary stream broke after {session.completed} questions: {e}")
            await emit(server_event("stream-error", message=str(e)[:200]))
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        for line in framer.flush():
            if session.should_stop:
                break
            await self._offer_line(session, line, emit, tier="primary-trailing")

        logger.info(f"Primary stream delivered {session.completed}/{session.target}")
        await emit(server_event("stream-complete", emitted=session.completed))

    async def _primary_batch(self, session: GenerationSession, emit: EventSink):
        for candidate in parse_batch(session.primary_text):
            if session.should_stop:
                break
            await self._offer(session, candidate, emit, tier="primary")
        logger.info(f"Primary batch delivered {session.completed}/{session.target}")

    # ========== TIER 2: BULK TOP-UP ==========

    async def _bulk_topup(self, session: GenerationSession, emit: EventSink):
        for round_no, tier in enumerate(self.topup_tiers, 1):
            if session.should_stop:
                return
            remaining = session.remaining
            await emit(server_event(tier.stage, round=round_no, emitted=session.completed, needed=remaining))

            text = await self._call(session, tier, emit, remaining=remaining)
            if text is None:
                continue

            before = session.completed
            for candidate in parse_batch(text):
                if session.should_stop:
                    break
                await self._offer(session, candidate, emit, tier=tier.stage)
            logger.info(f"Top-up round {round_no} ({tier.stage}): +{session.completed - before}, "
                        f"{session.completed}/{session.target}")

    # ========== TIER 3: SINGLE-ITEM RECOVERY ==========

    async def _single_item_recovery(self, session: GenerationSession, emit: EventSink):
        await emit(server_event("final-single-regeneration", missing=session.remaining))
        logger.info(f"Single-item recovery for {session.remaining} missing questions")

        while not session.is_complete:
            if session.cancelled:
                return
            if await self._single_attempt(session, self.single_tier, emit):
                continue
            if session.cancelled:
                return
            if await self._single_attempt(session, self.variant_tier, emit):
                continue

            position = session.completed + 1
            logger.warning(f"Slot {position}: model attempts exhausted, using synthetic filler")
            await emit(server_event("synthetic", index=position))
            unit = sanitize_question(synthetic_question(position, session.request.topic))
            session.dedup.add(unit["question"])
            await self._accept(session, unit, emit)

    async def _single_attempt(self, session: GenerationSession, tier: PromptTier, emit: EventSink) -> bool:
        avoid = avoid_clause(unit["question"] for unit in session.accepted)
        text = await self._call(session, tier, emit, avoid=avoid)
        if text is None:
            return False
        candidate = extract_first_object(text)
        if candidate is None:
            await emit(server_event("parse-error", tier=tier.stage))
            return False
        return await self._offer(session, candidate, emit, tier=tier.stage)

    # ========== SHARED CHAIN ==========

    async def _call(self, session: GenerationSession, tier: PromptTier, emit: EventSink, **extra) -> Optional[str]:
        """One non-streaming model call. Failures are reported, never raised."""
        prompt = tier.render(session.request, **extra)
        try:
            return await self.model.generate(
                prompt,
                temperature=tier.temperature,
                max_output_tokens=tier.max_output_tokens,
            )
        except Exception as e:
            logger.warning(f"{tier.stage} call failed: {e}")
            await emit(server_event("upstream-error", tier=tier.stage, message=str(e)[:200]))
            return None

    async def _offer_line(self, session: GenerationSession, line: str, emit: EventSink, tier: str) -> bool:
        return await self._offer(session, parse_candidate(line), emit, tier)

    async def _offer(self, session: GenerationSession, candidate: Any, emit: EventSink, tier: str) -> bool:
        if candidate is None:
            await emit(server_event("parse-error", tier=tier))
            return False

        reason = validation_error(candidate)
        if reason:
            logger.debug(f"Rejected candidate ({tier}): {reason}")
            await emit(server_event("invalid", tier=tier))
            return False

        unit = sanitize_question(candidate)
        if not session.dedup.add(unit["question"]):
            logger.debug(f"Rejected duplicate ({tier}): {unit['question'][:60]}")
            await emit(server_event("duplicate", tier=tier))
            return False

        await self._accept(session, unit, emit)
        return True

    async def _accept(self, session: GenerationSession, unit: Dict[str, Any], emit: EventSink):
        session.accepted.append(unit)
        index = session.completed
        await emit(question_event(index, unit))
        await emit(progress_event(index, session.target))


question_generator = QuestionSetGenerator()
