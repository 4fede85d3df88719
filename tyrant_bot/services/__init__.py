from .classifier import Classification, InsultClassifier
from .groq_client import GroqClient, LLMError
from .responder import PersonaResponder

__all__ = ["Classification", "GroqClient", "InsultClassifier", "LLMError", "PersonaResponder"]
