from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class LLMResponse:
    content: str
    model: str
    usage: Optional[dict] = None


class LLMError(Exception):
    """Provider call failed: timeout, auth, quota or a malformed answer."""


class LLMProvider(ABC):
    """Abstract base class for generative reply providers."""

    @abstractmethod
    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 400,
        timeout_seconds: Optional[float] = None,
    ) -> LLMResponse:
        """Generate a reply. Raises LLMError on failure."""
        pass
