"""
Gemini access for the generation pipeline and the tutor endpoints.

Two operations, nothing more:
  - open_stream(prompt, temperature)  → async iterator of text fragments
  - generate(prompt, temperature, ...) → one text blob

Every upstream call is bounded by GEMINI_TIMEOUT_SECONDS (stream chunks are
bounded individually). Rate-limit errors (429 / RESOURCE_EXHAUSTED) are
retried a few times with linear backoff; anything else propagates to the
caller, which decides whether it is fatal.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, Optional

from satcoach.core.config import settings
from satcoach.core.exceptions import GeneratorNotConfigured

logger = logging.getLogger(__name__)


def _is_rate_limited(error: Exception) -> bool:
    err_str = str(error)
    return "429" in err_str or "RESOURCE_EXHAUSTED" in err_str


class GeminiClient:

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_backoff: Optional[float] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.GOOGLE_API_KEY
        self.model = model or settings.GEMINI_MODEL
        self.timeout = timeout or settings.GEMINI_TIMEOUT_SECONDS
        self.max_retries = settings.GEMINI_MAX_RETRIES if max_retries is None else max_retries
        self.retry_backoff = settings.GEMINI_RETRY_BACKOFF_SECONDS if retry_backoff is None else retry_backoff
        self._client = None
        self._init_client()

    def _init_client(self):
        if not self.api_key:
            logger.warning("No GOOGLE_API_KEY found; generation endpoints will return 503")
            return
        from google import genai
        self._client = genai.Client(api_key=self.api_key)
        logger.info(f"Gemini client initialized: model={self.model}, timeout={self.timeout}s")

    @property
    def configured(self) -> bool:
        return self._client is not None

    def _require_client(self):
        if not self._client:
            raise GeneratorNotConfigured()
        return self._client

    def _config(self, temperature: float, max_output_tokens: Optional[int] = None,
                response_mime_type: Optional[str] = None):
        from google.genai import types

        cfg_kwargs: Dict[str, Any] = dict(temperature=temperature)
        if max_output_tokens:
            cfg_kwargs["max_output_tokens"] = max_output_tokens
        if response_mime_type:
            cfg_kwargs["response_mime_type"] = response_mime_type
        return types.GenerateContentConfig(**cfg_kwargs)

    # ========== PUBLIC API ==========

    async def open_stream(self, prompt: str, temperature: float = 0.6) -> AsyncIterator[str]:
        """Establish a streaming call. Raises if the call cannot be opened."""
        client = self._require_client()
        response_stream = await asyncio.wait_for(
            client.aio.models.generate_content_stream(
                model=self.model,
                contents=prompt,
                config=self._config(temperature),
            ),
            timeout=self.timeout,
        )
        return self._iter_text(response_stream)

    async def _iter_text(self, response_stream) -> AsyncIterator[str]:
        iterator = response_stream.__aiter__()
        while True:
            try:
                chunk = await asyncio.wait_for(iterator.__anext__(), timeout=self.timeout)
            except StopAsyncIteration:
                return
            text = self._safe_text(chunk)
            if text:
                yield text

    async def generate(
        self,
        prompt: str,
        temperature: float = 0.6,
        max_output_tokens: Optional[int] = None,
        response_mime_type: Optional[str] = None,
    ) -> str:
        """One non-streaming call. Returns "" when the reply carries no text."""
        client = self._require_client()
        config = self._config(temperature, max_output_tokens, response_mime_type)

        for attempt in range(self.max_retries + 1):
            try:
                response = await asyncio.wait_for(
                    client.aio.models.generate_content(model=self.model, contents=prompt, config=config),
                    timeout=self.timeout,
                )
                return self._safe_text(response)
            except Exception as e:
                if _is_rate_limited(e) and attempt < self.max_retries:
                    wait = (attempt + 1) * self.retry_backoff
                    logger.warning(f"Gemini rate limited, waiting {wait:.0f}s (attempt {attempt + 1})")
                    await asyncio.sleep(wait)
                    continue
                raise
        return ""

    # ========== HELPERS ==========

    @staticmethod
    def _safe_text(response) -> str:
        # response.text raises on blocked / partless candidates
        try:
            if getattr(response, "text", None):
                return response.text
        except (ValueError, AttributeError):
            pass
        try:
            for candidate in response.candidates or []:
                for part in candidate.content.parts or []:
                    if getattr(part, "text", None):
                        return part.text
        except (AttributeError, TypeError):
            pass
        return ""


gemini_client = GeminiClient()
