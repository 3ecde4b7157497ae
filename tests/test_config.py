import pytest
from pydantic import ValidationError

from satcoach.core.config import HARD_QUESTION_CAP, Settings
from satcoach.schemas.generator import Difficulty, GenerateRequest, Section


def test_settings_defaults():
    s = Settings()
    assert s.API_PREFIX == "/api"
    assert s.MAX_QUESTIONS == HARD_QUESTION_CAP
    assert s.GEMINI_MODEL == "gemini-2.5-flash"
    assert not s.ai_configured


def test_settings_accept_genai_key_alias():
    assert Settings(GOOGLE_GENAI_API_KEY="secret").ai_configured


def test_settings_split_cors_origins():
    s = Settings(BACKEND_CORS_ORIGINS="https://a.example.com, https://b.example.com")
    assert [str(o).rstrip("/") for o in s.BACKEND_CORS_ORIGINS] == [
        "https://a.example.com", "https://b.example.com",
    ]


@pytest.mark.parametrize("field,value", [
    ("MAX_QUESTIONS", 0),
    ("MAX_QUESTIONS", HARD_QUESTION_CAP + 1),
    ("DEFAULT_QUESTIONS", 25),
    ("GEMINI_TIMEOUT_SECONDS", 0),
])
def test_settings_reject_out_of_range(field, value):
    with pytest.raises(ValidationError):
        Settings(**{field: value})


@pytest.mark.parametrize("given,expected", [
    (None, 10), (0, 1), (-3, 1), (1, 1), (7, 7), (10, 10), (11, 10), (500, 10),
])
def test_request_count_is_clamped(given, expected):
    req = GenerateRequest(section="Math", topic="Ratios", count=given)
    assert req.count == expected


def test_request_defaults_and_case_insensitive_enums():
    req = GenerateRequest(section="MATH", topic="  Ratios  ", difficulty=None, recentMistakes=None)
    assert req.section is Section.MATH
    assert req.topic == "Ratios"
    assert req.difficulty is Difficulty.MEDIUM
    assert req.recent_mistakes == []
    assert req.count == 10


def test_request_drops_blank_mistakes():
    req = GenerateRequest(section="Reading", topic="Punctuation", recentMistakes=["", "  ", "Q1 text"])
    assert req.recent_mistakes == ["Q1 text"]


@pytest.mark.parametrize("data", [
    {"topic": "Ratios"},
    {"section": "Math"},
    {"section": "Math", "topic": ""},
    {"section": "History", "topic": "Ratios"},
    {"section": "Math", "topic": "Ratios", "difficulty": "Impossible"},
    {"section": "Math", "topic": "Ratios", "count": "many"},
])
def test_request_rejects_bad_input(data):
    with pytest.raises(ValidationError):
        GenerateRequest(**data)
