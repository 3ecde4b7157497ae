"""
Prompt data for the question-set generation ladder.

Each fallback tier is a PromptTier (template + sampling settings) so the
orchestrator can be driven with any ordered list of tiers. Templates are
rendered with str.format_map; the JSON schema line is substituted as
{schema} so templates need no brace escaping.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

QUESTION_SCHEMA_LINE = (
    '{"question":string,"multipleChoiceOptions":["A. ...","B. ...","C. ...","D. ..."],'
    '"correctAnswer":"A|B|C|D","incorrectExplanations":{"A":string,"B":string,"C":string,"D":string},'
    '"correctExplanation":string}'
)

PRIMARY_TEMPERATURE = 0.6


@dataclass(frozen=True)
class PromptTier:
    stage: str
    template: str
    temperature: float
    max_output_tokens: Optional[int] = None

    def render(self, request, **extra: Any) -> str:
        fields = prompt_fields(request)
        fields.update(extra)
        return self.template.format_map(fields)


def _value(v) -> str:
    return str(getattr(v, "value", v))


def prompt_fields(request) -> Dict[str, Any]:
    mistakes = [m for m in (request.recent_mistakes or []) if m.strip()]
    return {
        "schema": QUESTION_SCHEMA_LINE,
        "section": _value(request.section),
        "topic": request.topic,
        "difficulty": _value(request.difficulty),
        "difficulty_lower": _value(request.difficulty).lower(),
        "count": request.count,
        "mistakes": "\n\n---\n\n".join(mistakes) if mistakes else "(none provided)",
    }


PRIMARY_PROMPT = """Role: You are an expert SAT tutor and adaptive AI coach who creates highly SAT-relevant practice question sets, targeted to the student's chosen topic and skill level.
Vocabulary in context questions must always be fill in the blank questions asking for the most logical and precise word or phrase.
- Every question set you generate must match the format of the missed questions provided, so that it follows the SAT format. Copy the exact question type for the given SAT topic.

SETTINGS
Section: {section}
Topic: {topic}
Number of Questions per Set: {count}
Recent Mistake: {mistakes}

DIFFICULTY SYSTEM
Start at {difficulty_lower} difficulty unless the recent mistake suggests otherwise.
Use SAT-style difficulty tiers: Easy, Medium, Hard, Insane.

RULES FOR QUESTION CREATION
- Every question must follow official SAT format, scope, and reasoning steps. Avoid trivia.
- Math is solvable without a calculator unless labeled otherwise.
- Reading/Writing passages should be concise but reflect SAT style and complexity.
- Ensure a logical progression in the set.
- Do NOT include hints, tooltips, or any extra coaching text. Only supply the question objects.

RESPONSE FORMAT (STREAM / NDJSON)
Output format: STRICT NDJSON, exactly {count} lines. Each line must be ONE minified JSON object with NO internal newlines or trailing commas and NO commentary before/after. Do NOT wrap in an array.
Each line schema (exact keys, no extras):
{schema}
"""

# Bulk top-up rounds, in escalation order: increasingly terse and urgent.
TOPUP_TIERS = (
    PromptTier(
        stage="fallback-topup",
        template=(
            "Generate {remaining} more SAT questions in STRICT NDJSON, minified, one JSON object per line. "
            "Section: {section}; Topic: {topic}; Difficulty: {difficulty}. Each line schema: {schema}. "
            "Do NOT output anything other than {remaining} JSON lines."
        ),
        temperature=0.6,
    ),
    PromptTier(
        stage="second-retry",
        template=(
            "Generate exactly {remaining} more SAT questions. Format: Each line must be ONE valid JSON object "
            "with these exact fields: question, multipleChoiceOptions (array of 4 strings), correctAnswer (A/B/C/D), "
            "incorrectExplanations (object with A,B,C,D keys), correctExplanation. "
            "Section: {section}; Topic: {topic}; Difficulty: {difficulty}."
        ),
        temperature=0.4,
    ),
    PromptTier(
        stage="final-retry",
        template=(
            "URGENT: Generate exactly {remaining} more valid SAT questions. Must be valid JSON, one object per line. "
            "Section: {section}; Topic: {topic}."
        ),
        temperature=0.3,
        max_output_tokens=4096,
    ),
)

SINGLE_TIER = PromptTier(
    stage="single",
    template=(
        "Generate EXACTLY one SAT question ONLY as pure minified JSON (no backticks, no prose) matching this schema: "
        "{schema}. Section: {section}; Topic: {topic}; Difficulty: {difficulty}. "
        "Do NOT reuse any earlier question in this set.{avoid} Output ONLY the JSON object."
    ),
    temperature=0.5,
)

VARIANT_TIER = PromptTier(
    stage="variant",
    template=(
        "Regenerate a DIFFERENT SAT question (unique) for Section: {section}; Topic: {topic}. "
        "EXACTLY one minified JSON object, same schema: {schema}. Avoid repeating earlier wording.{avoid}"
    ),
    temperature=0.6,
)

AVOID_STEM_CHARS = 80


def build_primary_prompt(request) -> str:
    return PRIMARY_PROMPT.format_map(prompt_fields(request))


def avoid_clause(stems: Iterable[str]) -> str:
    """Short list of stems already in the set, appended to single-item prompts."""
    shortened = [s.strip()[:AVOID_STEM_CHARS] for s in stems if s and s.strip()]
    if not shortened:
        return ""
    return " Questions already in this set: " + " | ".join(shortened) + "."


def synthetic_question(position: int, topic: str) -> Dict[str, Any]:
    """Fixed, schema-valid filler used when every model attempt for a slot failed."""
    return {
        "question": f"Synthetic recovery question {position} for {topic}: Choose the best option.",
        "multipleChoiceOptions": [
            "A. Conceptual distractor",
            "B. Another distractor",
            "C. Correct answer",
            "D. Plausible but wrong",
        ],
        "correctAnswer": "C",
        "incorrectExplanations": {
            "A": "A does not address the core requirement.",
            "B": "B is irrelevant to the topic focus.",
            "C": "C best fits the topic context.",
            "D": "D introduces an unsupported idea.",
        },
        "correctExplanation": "C directly satisfies the constraints of the topic while others do not.",
    }
