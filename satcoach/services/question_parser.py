"""
Question parsing: line framing, candidate decoding, validation, sanitizing.

The model is asked for NDJSON (one minified question object per line) but
nothing about its output is guaranteed:
  1. Lines arrive split across stream chunks → LineFramer buffers partial lines
  2. Lines may be prose, fenced code, or broken JSON → parse_candidate returns None
  3. Objects may miss fields or carry 3 options → validation_error names the rule
  4. Stems/options may leak the template word "blank" → sanitize_question strips it
"""

import re
import json
import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

ANSWER_LABELS = ("A", "B", "C", "D")
MIN_STEM_LENGTH = 5
QUESTION_KEYS = (
    "question",
    "multipleChoiceOptions",
    "correctAnswer",
    "incorrectExplanations",
    "correctExplanation",
)

# ── Pre-compiled regex ──
_RE_LINE_BREAKS  = re.compile(r'\n+')
_RE_FENCE_OPEN   = re.compile(r'^```(?:json|ndjson)?\s*', re.IGNORECASE)
_RE_FENCE_CLOSE  = re.compile(r'\s*```$')
_RE_PLACEHOLDER  = re.compile(r'\bblank\b', re.IGNORECASE)
_RE_MULTI_SPACE  = re.compile(r'\s{2,}')


# ========== LINE FRAMING ==========

class LineFramer:
    """Turns an append-only stream of text chunks into complete lines.

    ``feed`` returns every newline-terminated line and keeps the remainder
    buffered; ``flush`` returns what is left at end-of-stream, since the
    model often omits the final newline.
    """

    def __init__(self):
        self._buffer = ""

    def feed(self, text: str) -> List[str]:
        self._buffer += text or ""
        lines = []
        while True:
            idx = self._buffer.find("\n")
            if idx == -1:
                break
            line = self._buffer[:idx].strip()
            self._buffer = self._buffer[idx + 1:]
            if line:
                lines.append(line)
        return lines

    def flush(self) -> List[str]:
        rest, self._buffer = self._buffer, ""
        return split_lines(rest)

    @property
    def pending(self) -> str:
        return self._buffer


def split_lines(text: str) -> List[str]:
    """Split a complete blob into trimmed, non-empty lines."""
    if not text:
        return []
    return [line.strip() for line in _RE_LINE_BREAKS.split(text) if line.strip()]


# ========== DECODING ==========

def _strip_fences(text: str) -> str:
    text = text.strip()
    if "```" not in text:
        return text
    text = _RE_FENCE_OPEN.sub('', text)
    return _RE_FENCE_CLOSE.sub('', text).strip()


def parse_candidate(line: str) -> Optional[Any]:
    """Decode one candidate line. Returns None when it is not JSON."""
    text = _strip_fences(line or "")
    if not text:
        return None
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        pass
    # Lines copied out of a JSON array keep their separator: {...},
    if text.endswith(","):
        try:
            return json.loads(text.rstrip(",").rstrip())
        except (ValueError, RecursionError):
            pass
    return None


def _first_balanced_object(text: str) -> Optional[str]:
    """Return the first brace-balanced {...} span, skipping braces inside strings."""
    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    i = start
    while i < len(text):
        ch = text[i]
        if ch == '"':
            i += 1
            while i < len(text) and text[i] != '"':
                if text[i] == '\\':
                    i += 1
                i += 1
        elif ch == '{':
            depth += 1
        elif ch == '}':
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
        i += 1
    return None


def extract_first_object(text: str) -> Optional[Dict[str, Any]]:
    """Best-effort extraction of a single JSON object from a one-shot reply."""
    if not text or not text.strip():
        return None
    whole = parse_candidate(text)
    if isinstance(whole, dict):
        return whole
    if isinstance(whole, list):
        return next((item for item in whole if isinstance(item, dict)), None)

    span = _first_balanced_object(_strip_fences(text))
    if span:
        obj = parse_candidate(span)
        if isinstance(obj, dict):
            return obj
    return None


def parse_batch(text: str) -> List[Optional[Any]]:
    """Decode a complete non-streaming reply into candidates.

    Accepts a JSON array, a ``{"questions": [...]}`` document, a single
    object, or NDJSON. Lines that fail to decode come back as None so the
    caller can report them.
    """
    if not text or not text.strip():
        return []

    whole = parse_candidate(text)
    if isinstance(whole, list):
        return whole
    if isinstance(whole, dict):
        questions = whole.get("questions")
        if isinstance(questions, list):
            return questions
        return [whole]

    return [parse_candidate(line) for line in split_lines(_strip_fences(text))]


# ========== VALIDATION ==========

def _is_filled(value: Any) -> bool:
    return isinstance(value, str) and len(value.strip()) > 0


def validation_error(q: Any) -> Optional[str]:
    """Return the first rule a candidate breaks, or None if it is a valid unit."""
    if not isinstance(q, dict):
        return "not an object"
    stem = q.get("question")
    if not isinstance(stem, str) or len(stem.strip()) < MIN_STEM_LENGTH:
        return "question stem missing or too short"
    options = q.get("multipleChoiceOptions")
    if not isinstance(options, list) or len(options) != len(ANSWER_LABELS):
        return "multipleChoiceOptions must have exactly 4 entries"
    if not all(_is_filled(opt) for opt in options):
        return "empty or non-string option"
    if q.get("correctAnswer") not in ANSWER_LABELS:
        return "correctAnswer must be one of A, B, C, D"
    explanations = q.get("incorrectExplanations")
    if not isinstance(explanations, dict):
        return "incorrectExplanations must be an object"
    for label in ANSWER_LABELS:
        if not _is_filled(explanations.get(label)):
            return f"incorrectExplanations.{label} missing"
    if not _is_filled(q.get("correctExplanation")):
        return "correctExplanation missing"
    return None


def is_valid_question(q: Any) -> bool:
    return validation_error(q) is None


# ========== SANITIZING ==========

def _clean(text: str, min_length: int) -> str:
    original = text.strip()
    cleaned = _RE_MULTI_SPACE.sub(' ', _RE_PLACEHOLDER.sub('', text)).strip()
    # Never let cleaning turn a valid field invalid
    return cleaned if len(cleaned) >= min_length else original


def sanitize_question(q: Dict[str, Any]) -> Dict[str, Any]:
    """Strip the placeholder word from stem and options; keep exactly the unit keys."""
    return {
        "question": _clean(q["question"], MIN_STEM_LENGTH),
        "multipleChoiceOptions": [_clean(opt, 1) for opt in q["multipleChoiceOptions"]],
        "correctAnswer": q["correctAnswer"],
        "incorrectExplanations": {label: q["incorrectExplanations"][label] for label in ANSWER_LABELS},
        "correctExplanation": q["correctExplanation"],
    }
