"""
Tutor API: explanations, mistake coaching, and missed-question classification.

Endpoints:
    POST /learn/explain  - Markdown lesson for a weak topic
    POST /learn/coach    - Structured diagnosis of one missed question
    POST /format         - Group missed questions by section/topic
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from satcoach.core.exceptions import GeneratorNotConfigured, ModelOutputError
from satcoach.schemas.tutor import (
    ClassifyRequest, ClassifyResponse,
    CoachRequest, CoachResponse,
    ExplainRequest, ExplainResponse,
)
from satcoach.services import ai_tutor

logger = logging.getLogger(__name__)

router = APIRouter()


def _error(status_code: int, message: str, raw: str = None) -> JSONResponse:
    content = {"error": message}
    if raw is not None:
        content["raw"] = raw
    return JSONResponse(status_code=status_code, content=content)


@router.post("/learn/explain", response_model=ExplainResponse)
async def explain_topic(req: ExplainRequest):
    try:
        text = await ai_tutor.ai_tutor.explain(req.section, req.topic, req.examples)
    except GeneratorNotConfigured as e:
        return _error(503, str(e))
    except Exception as e:
        logger.error(f"Explain failed: {e}", exc_info=True)
        return _error(500, "Internal error")
    return ExplainResponse(explanation=text)


@router.post("/learn/coach", response_model=CoachResponse, response_model_exclude_none=True)
async def coach_mistake(req: CoachRequest):
    try:
        result = await ai_tutor.ai_tutor.coach(req.question, req.section, req.topic, req.student_answer)
    except GeneratorNotConfigured as e:
        return _error(503, str(e))
    except Exception as e:
        logger.error(f"Coach failed: {e}", exc_info=True)
        return _error(500, "Internal error")
    return CoachResponse(**result)


@router.post("/format", response_model=ClassifyResponse)
async def classify_questions(req: ClassifyRequest):
    try:
        groups = await ai_tutor.ai_tutor.classify(req.questions)
    except GeneratorNotConfigured as e:
        return _error(503, str(e))
    except ModelOutputError as e:
        return _error(502, str(e), raw=e.raw)
    except Exception as e:
        logger.error(f"Classify failed: {e}", exc_info=True)
        return _error(500, "Internal error")
    return ClassifyResponse(groups=groups)
