"""
AI Tutor: one-shot Gemini calls around the practice flow.

  explain   markdown lesson for a weak topic
  coach     structured diagnosis of one missed question
  classify  group missed questions by section/topic

Each is a single non-streaming call; only the coach reply needs repair and
normalization because it is free-form JSON with many optional fields.
"""

import re
import logging
from typing import Any, Dict, List

from satcoach.core.exceptions import ModelOutputError
from satcoach.services.gemini_client import gemini_client
from satcoach.services.question_parser import extract_first_object, parse_candidate

logger = logging.getLogger(__name__)

EXPLAIN_PROMPT = """You are an elite SAT tutor. Provide a concise but thorough teaching explanation for the following topic the student struggles with.
Section: {section}
Topic: {topic}
Student Miss Examples (raw references, may be paraphrased):
{examples}

RETURN FORMAT (Markdown allowed, no front-matter):
1. Core Concept (2-3 sentences)
2. Common Mistakes (bulleted)
3. Step-by-Step Approach (numbered concise algorithm)
4. Mini Drill (1 new example question with 4 choices A-D, then answer + brief rationale). Do NOT reuse earlier example content.
Keep tone encouraging, precise, test-relevant. Avoid fluff."""

COACH_PROMPT = """Role: You are an SAT coach and pattern analyst who diagnoses mistakes with precision and gives a targeted improvement plan. Respond ONLY with strict JSON matching the schema below. No markdown, no code fences, no extra commentary. If uncertain about any field, still include it with a best-effort value (never null, never omit).

QUESTION (user got wrong):
{question}

{chosen_line}
Section: {section}
Topic: {topic}

REQUIRED JSON SCHEMA:
{{
  "correctAnswer": "Single letter A-D you judge correct",
  "correctAnswerText": "Exact word/phrase of the correct answer if identifiable else empty string",
  "studentAnswer": "Student's chosen letter A-D or empty string if unknown",
  "whatTested": {{"concept": "Precise skill name", "difficulty": "Easy | Medium | Hard", "summary": "1-2 sentences"}},
  "whyWrong": {{
    "missedIdea": "Exact idea/rule the student failed to apply",
    "trapType": "Named trap type if applicable else empty string",
    "whyStudentAnswerAttractive": "One sentence",
    "otherOptions": [{{"option": "A", "issue": "Why A is wrong"}}]
  }},
  "whyCorrect": {{"reasoning": "1-3 sentences of decisive reasoning"}},
  "gameplan": ["3-5 actionable corrections or drills"]
}}

Produce the JSON now."""

CLASSIFY_INSTRUCTION = """You are an SAT question classifier. You will receive a list of user-missed SAT questions (raw text including stem and possibly answer choices). Group the questions by section and topic.

Rules:
- Section must be one of: "Reading" or "Math".
- Choose a concise, specific topic (e.g., punctuation, transitions, main idea, linear equations, quadratic functions, interpreting graphs).
- Questions with the same section and topic MAY be grouped under a single output item.
- Only use the provided questions; do not invent content.

Output strictly as a JSON array (no commentary):
[{"question": ["...one or more of the provided questions..."], "section": "Reading" | "Math", "topic": "..."}]

Here are the questions to classify:

"""

_DIFFICULTIES = ("Easy", "Medium", "Hard")


def _text(v: Any, limit: int) -> str:
    if v is None:
        return ""
    return (v if isinstance(v, str) else str(v)).strip()[:limit]


def _letter(v: Any) -> str:
    letters = [ch for ch in _text(v, 20).upper() if ch in "ABCD"]
    return letters[0] if letters else ""


def chosen_option_text(question: str, letter: str) -> str:
    """Find the text of answer choice ``letter`` ("B) ...", "B. ...", "B: ...") in a raw question."""
    if not letter:
        return ""
    pattern = re.compile(rf"(?:^|\n)\s*{re.escape(letter)}[).:]\s*([^\n]{{1,160}})", re.IGNORECASE)
    match = pattern.search(question)
    return match.group(1).strip() if match else ""


def normalize_diagnosis(data: Dict[str, Any]) -> Dict[str, Any]:
    """Force a coach reply into the documented shape, with every field present."""
    what = data.get("whatTested") if isinstance(data.get("whatTested"), dict) else {}
    wrong = data.get("whyWrong") if isinstance(data.get("whyWrong"), dict) else {}
    right = data.get("whyCorrect") if isinstance(data.get("whyCorrect"), dict) else {}

    difficulty = _text(what.get("difficulty"), 20).capitalize()
    other_options = wrong.get("otherOptions") if isinstance(wrong.get("otherOptions"), list) else []
    gameplan = data.get("gameplan") if isinstance(data.get("gameplan"), list) else []

    return {
        "correctAnswer": _letter(data.get("correctAnswer")),
        "correctAnswerText": _text(data.get("correctAnswerText"), 120),
        "studentAnswer": _letter(data.get("studentAnswer")),
        "whatTested": {
            "concept": _text(what.get("concept"), 80),
            "difficulty": difficulty if difficulty in _DIFFICULTIES else "Medium",
            "summary": _text(what.get("summary"), 300),
        },
        "whyWrong": {
            "missedIdea": _text(wrong.get("missedIdea"), 300),
            "trapType": _text(wrong.get("trapType"), 80),
            "whyStudentAnswerAttractive": _text(wrong.get("whyStudentAnswerAttractive"), 200),
            "otherOptions": [
                {"option": _letter(o.get("option")), "issue": _text(o.get("issue"), 160)}
                for o in other_options if isinstance(o, dict)
            ][:4],
        },
        "whyCorrect": {"reasoning": _text(right.get("reasoning"), 400)},
        "gameplan": [b for b in (_text(item, 140) for item in gameplan) if b][:6],
    }


class AITutor:

    def __init__(self, model=None):
        self.model = model if model is not None else gemini_client

    async def explain(self, section: str, topic: str, examples: str = "") -> str:
        prompt = EXPLAIN_PROMPT.format_map({
            "section": section,
            "topic": topic,
            "examples": examples or "(no examples)",
        })
        text = await self.model.generate(prompt, temperature=0.6, max_output_tokens=2048)
        logger.info(f"Explain {section}/{topic}: {len(text)} chars")
        return text

    async def coach(self, question: str, section: str = "", topic: str = "", student_answer: str = "") -> Dict[str, Any]:
        letter = student_answer[:1]
        if letter:
            chosen = chosen_option_text(question, letter)
            chosen_line = f"Student selected answer (incorrect): {letter}" + (f" - {chosen}" if chosen else "")
        else:
            chosen_line = "Student selected answer: (not recorded)"

        prompt = COACH_PROMPT.format_map({
            "question": question,
            "chosen_line": chosen_line,
            "section": section or "(unknown)",
            "topic": topic or "(unknown)",
        })
        raw = (await self.model.generate(prompt, temperature=0.2, max_output_tokens=10000)).strip()

        data = extract_first_object(raw)
        if data is None:
            logger.warning(f"Coach reply was not JSON. Preview: {raw[:200]}")
            return {"raw": raw, "error": "Failed to parse JSON"}

        structured = normalize_diagnosis(data)
        return {"structured": structured, "raw": structured["whyCorrect"]["reasoning"]}

    async def classify(self, questions: List[str]) -> List[Any]:
        listing = "\n\n".join(f"Q{i}: {q}" for i, q in enumerate(questions, 1))
        text = await self.model.generate(
            CLASSIFY_INSTRUCTION + listing,
            temperature=0.2,
            response_mime_type="application/json",
        )
        groups = parse_candidate(text)
        if not isinstance(groups, list):
            raise ModelOutputError("Model did not return valid JSON", raw=text)
        logger.info(f"Classified {len(questions)} questions into {len(groups)} groups")
        return groups


ai_tutor = AITutor()
