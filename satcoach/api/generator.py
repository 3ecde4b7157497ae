"""
AI Question-Set Generator API.

Endpoints:
    POST /generate/stream  - NDJSON stream of question/progress/done events
    POST /generate         - Same pipeline, returns the whole set at once
"""

import logging

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse, StreamingResponse

from satcoach.core.exceptions import GeneratorNotConfigured, ModelOutputError, UpstreamUnavailable
from satcoach.schemas.generator import ErrorResponse, GenerateRequest, GenerateResponse, QuestionUnit
from satcoach.services import ai_generator
from satcoach.services.events import NDJSON_MEDIA_TYPE, iter_ndjson

logger = logging.getLogger(__name__)

router = APIRouter()

_ERROR_RESPONSES = {
    502: {"model": ErrorResponse, "description": "Model call failed or returned no JSON"},
    503: {"model": ErrorResponse, "description": "GOOGLE_API_KEY not configured"},
}


def _error(status_code: int, message: str, raw: str = None) -> JSONResponse:
    content = {"error": message}
    if raw is not None:
        content["raw"] = raw
    return JSONResponse(status_code=status_code, content=content)


@router.post("/stream", responses=_ERROR_RESPONSES)
async def generate_question_stream(
    req: GenerateRequest,
    debug: bool = Query(True, description="Include type=server diagnostic events"),
):
    """Stream a question set as NDJSON.

    The primary model call is established before the response starts, so
    configuration and upstream failures still come back as plain HTTP errors.
    """
    generator = ai_generator.question_generator
    try:
        session = await generator.open_session(req, streaming=True)
    except GeneratorNotConfigured as e:
        return _error(503, str(e))
    except UpstreamUnavailable as e:
        return _error(502, str(e))

    return StreamingResponse(
        iter_ndjson(generator, session, include_diagnostics=debug),
        media_type=NDJSON_MEDIA_TYPE,
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


@router.post("", response_model=GenerateResponse, responses=_ERROR_RESPONSES)
async def generate_questions(req: GenerateRequest):
    """Generate a question set and return it in one response."""
    try:
        generated = await ai_generator.question_generator.generate(req)
    except GeneratorNotConfigured as e:
        return _error(503, str(e))
    except ModelOutputError as e:
        return _error(502, str(e), raw=e.raw)
    except UpstreamUnavailable as e:
        return _error(502, str(e))
    except Exception as e:
        logger.error(f"Generation failed: {e}", exc_info=True)
        return _error(500, f"AI generation failed: {e}")

    return GenerateResponse(questions=[QuestionUnit(**q) for q in generated])
