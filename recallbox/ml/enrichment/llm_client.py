"""
LLM Client
Minimal client for an Anthropic-compatible messages endpoint.
"""

import json
import logging
import re
from typing import Any, Dict, Optional

import requests

from ..config import EnhancementConfig, get_ml_config
from ..errors import ProviderError

logger = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class LLMClient:
    """
    Sends a single prompt and returns the text reply.

    Every upstream failure is raised as ProviderError.
    """

    def __init__(self, config: Optional[EnhancementConfig] = None, session=None):
        self.config = config or get_ml_config().enhancement
        self.http = session or requests

    def complete(self, prompt: str, max_tokens: Optional[int] = None) -> str:
        """
        Send a prompt and return the model's text reply.

        Args:
            prompt: User prompt
            max_tokens: Maximum tokens to generate

        Returns:
            Reply text

        Raises:
            ProviderError: If the call fails or the reply is malformed
        """
        if not self.config.llm_api_key:
            raise ProviderError("LLM API key is not configured", provider="llm")

        payload = {
            "model": self.config.llm_model,
            "max_tokens": max_tokens or self.config.llm_max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        headers = {
            "x-api-key": self.config.llm_api_key,
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        }

        try:
            response = self.http.post(
                self.config.llm_api_url,
                json=payload,
                headers=headers,
                timeout=self.config.llm_timeout,
            )
            response.raise_for_status()
            body = response.json()
        except requests.Timeout as e:
            raise ProviderError(
                f"LLM request timed out after {self.config.llm_timeout}s", provider="llm", cause=e
            )
        except requests.RequestException as e:
            raise ProviderError(f"LLM request failed: {e}", provider="llm", cause=e)
        except ValueError as e:
            raise ProviderError(f"LLM returned invalid JSON: {e}", provider="llm", cause=e)

        try:
            return "".join(
                block.get("text", "") for block in body["content"] if block.get("type") == "text"
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise ProviderError(f"Malformed LLM response: {e}", provider="llm", cause=e)

    def complete_json(self, prompt: str, max_tokens: Optional[int] = None) -> Dict[str, Any]:
        """
        Send a prompt and parse the first JSON object in the reply.

        Raises:
            ProviderError: If the call fails or no JSON object can be parsed
        """
        text = self.complete(prompt, max_tokens=max_tokens)
        match = _JSON_OBJECT.search(text or "")
        if not match:
            raise ProviderError("LLM reply contained no JSON object", provider="llm")

        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise ProviderError(f"LLM reply JSON could not be parsed: {e}", provider="llm", cause=e)

        if not isinstance(parsed, dict):
            raise ProviderError("LLM reply JSON is not an object", provider="llm")
        return parsed
