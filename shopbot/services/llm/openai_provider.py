from typing import List, Optional

import httpx

from shopbot.logging_config import get_logger
from shopbot.services.llm.base import LLMError, LLMProvider, LLMResponse

logger = get_logger("llm.openai")


class OpenAIProvider(LLMProvider):
    """OpenAI chat completions over httpx."""

    def __init__(self, api_key: str, default_model: str = "gpt-4o-mini", default_timeout: float = 8.0):
        self.api_key = api_key
        self.default_model = default_model
        self.default_timeout = default_timeout
        self.base_url = "https://api.openai.com/v1/chat/completions"

    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 400,
        timeout_seconds: Optional[float] = None,
    ) -> LLMResponse:
        model = model or self.default_model
        timeout = timeout_seconds if timeout_seconds is not None else self.default_timeout
        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        logger.debug(f"OpenAI request: model={model}, messages_count={len(messages)}")

        try:
            with httpx.Client(timeout=timeout) as client:
                response = client.post(
                    self.base_url,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
        except httpx.HTTPError as e:
            raise LLMError(f"OpenAI request failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"OpenAI error: {response.status_code} {response.text[:300]}")
            raise LLMError(f"OpenAI API error: {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise LLMError("OpenAI returned invalid JSON") from e

        if not isinstance(data, dict):
            raise LLMError("OpenAI response is not an object")

        content = ""
        choices = data.get("choices")
        if choices:
            if not isinstance(choices, list) or not isinstance(choices[0], dict):
                raise LLMError("OpenAI response has malformed choices")
            message = choices[0].get("message") or {}
            if not isinstance(message, dict):
                raise LLMError("OpenAI response has malformed message")
            content = message.get("content") or ""
        logger.debug(f"OpenAI content: {content[:100] if isinstance(content, str) and content else 'EMPTY'}")

        usage = data.get("usage")
        return LLMResponse(
            content=content if isinstance(content, str) else "",
            model=data.get("model") or model,
            usage=usage if isinstance(usage, dict) else None,
        )
