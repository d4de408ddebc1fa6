"""
OpenAI Client - Chat completion backend for the remote capability client

Responsibilities:
- Hold connection settings (key, base URL, timeout, retries, model)
- Create the OpenAI SDK client lazily on first use
- Return the text of a single chat completion

Errors from the SDK propagate; RemoteCapabilityClient turns them into
failed CapabilityResults.
"""

import logging
from typing import Any, Dict, List, Optional

from openai import OpenAI

logger = logging.getLogger(__name__)


class OpenAIChatClient:
    """Thin wrapper around openai.OpenAI chat completions"""

    def __init__(self, settings: dict):
        """
        Args:
            settings: Output of load_settings()

        Raises:
            ValueError: If OPENAI_API_KEY is not provided
        """
        self.api_key = settings.get("OPENAI_API_KEY")
        if not self.api_key:
            raise ValueError("OPENAI_API_KEY is required")

        self.base_url = settings.get("OPENAI_BASE_URL")
        self.model = settings.get("OPENAI_MODEL", "gpt-4o-mini")
        self.timeout = settings.get("OPENAI_TIMEOUT", 60.0)
        self.max_retries = settings.get("OPENAI_MAX_RETRIES", 2)
        self._client: Optional[OpenAI] = None

        logger.info(f"OpenAI client configured (model={self.model})")

    def _get_client(self) -> OpenAI:
        if self._client is None:
            client_kwargs: Dict[str, Any] = {
                "api_key": self.api_key,
                "timeout": self.timeout,
                "max_retries": self.max_retries,
            }
            if self.base_url:
                client_kwargs["base_url"] = self.base_url
            self._client = OpenAI(**client_kwargs)
        return self._client

    def complete(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int = 512,
        temperature: float = 0.3
    ) -> str:
        """
        Get one chat completion.

        Args:
            messages: [{'role': ..., 'content': ...}]
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature

        Returns:
            str: Completion text ('' if the model returned no content)
        """
        response = self._get_client().chat.completions.create(
            model=self.model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature
        )
        return response.choices[0].message.content or ""

    def get_model_info(self) -> Dict[str, Any]:
        return {
            "provider": "openai",
            "model_name": self.model,
            "base_url": self.base_url
        }
