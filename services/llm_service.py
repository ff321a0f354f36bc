import os
import json
import logging
import threading
from typing import Optional, Dict, Any
from openai import OpenAI

logger = logging.getLogger(__name__)

OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
LLM_TIMEOUT_SECONDS = 30.0

_client: Optional[OpenAI] = None
_client_lock = threading.Lock()


class LLMGenerationError(Exception):
    """Raised when the LLM fails to generate a response."""
    pass


class LLMJSONParseError(Exception):
    """Raised when the LLM response cannot be parsed as JSON."""
    pass


def get_client() -> OpenAI:
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                api_key = os.getenv("OPENAI_API_KEY")
                if not api_key:
                    raise LLMGenerationError("OPENAI_API_KEY environment variable is not set")
                _client = OpenAI(api_key=api_key)
    return _client


def generate_json_response(prompt: str, system_prompt: str = "", temperature: float = 0.2, model: str = OPENAI_MODEL) -> Dict[str, Any]:
    """
    Runs one JSON-mode chat completion and returns the decoded object.
    Raises:
        LLMGenerationError: If the API call fails or returns nothing.
        LLMJSONParseError: If the response is not a JSON object.
    """
    content = ""
    try:
        client = get_client()
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        response = client.chat.completions.create(
            model=model,
            messages=messages,
            temperature=temperature,
            response_format={"type": "json_object"},
            timeout=LLM_TIMEOUT_SECONDS
        )

        if not response.choices or not response.choices[0].message.content:
            logger.error("LLM returned empty response or no content")
            raise LLMGenerationError("LLM returned empty response")

        content = response.choices[0].message.content
        data = json.loads(content)
        if not isinstance(data, dict):
            raise LLMJSONParseError("LLM response is JSON but not an object")
        return data

    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse LLM JSON response: {e}. Content: {content[:500]}")
        raise LLMJSONParseError(f"Failed to parse JSON from LLM response: {e}") from e
    except (LLMGenerationError, LLMJSONParseError):
        raise
    except Exception as e:
        logger.error(f"LLM JSON Generation Failed: {e}", exc_info=True)
        raise LLMGenerationError(f"Failed to generate JSON response: {e}") from e
