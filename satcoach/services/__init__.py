from .gemini_client import GeminiClient
from .ai_generator import QuestionSetGenerator, GenerationSession
from .ai_tutor import AITutor
