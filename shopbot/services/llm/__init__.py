from shopbot.services.llm.base import LLMError, LLMProvider, LLMResponse
from shopbot.services.llm.openai_provider import OpenAIProvider

__all__ = ["LLMError", "LLMProvider", "LLMResponse", "OpenAIProvider"]
