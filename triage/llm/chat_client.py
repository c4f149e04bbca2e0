"""
Async client for an OpenAI-compatible chat completions endpoint.
Handles connection management and single-shot completion requests.
"""

import logging
from typing import Dict, List, Optional, Any

import aiohttp

from app.core.config import settings

logger = logging.getLogger(__name__)


class LLMConnectionError(Exception):
    """Raised when connection to the model server fails."""
    pass


class LLMResponseError(Exception):
    """Raised when the model server returns an error or a malformed payload."""
    pass


class ChatCompletionClient:
    """Async client for chat completion inference."""

    def __init__(self, api_base: str = None, api_key: str = None, timeout: int = None):
        self.api_base = (api_base or settings.LLM_API_BASE).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.LLM_API_KEY
        self.timeout = timeout or settings.LLM_TIMEOUT
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def connect(self):
        """Initialize HTTP session."""
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )

    async def close(self):
        """Close HTTP session."""
        if self.session and not self.session.closed:
            await self.session.close()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def health_check(self) -> bool:
        """Check if the model server answers the models listing."""
        try:
            await self.connect()
            async with self.session.get(f"{self.api_base}/models", headers=self._headers()) as response:
                return response.status == 200
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return False

    async def chat(
        self,
        model: str,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Send one chat completion request and return the decoded response body."""
        payload: Dict[str, Any] = {
            "model": model,
            "messages": messages,
        }

        # Add optional parameters
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens:
            payload["max_tokens"] = max_tokens

        try:
            await self.connect()
            async with self.session.post(
                f"{self.api_base}/chat/completions",
                json=payload,
                headers=self._headers()
            ) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise LLMResponseError(f"Chat failed: {response.status} - {error_text}")

                return await response.json()

        except aiohttp.ClientError as e:
            raise LLMConnectionError(f"Connection error during chat: {e}") from e

    @staticmethod
    def extract_content(data: Dict[str, Any]) -> str:
        """Pull the first choice's message content out of a completion body."""
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise LLMResponseError(f"Malformed completion payload: {e}") from e

        if not isinstance(content, str):
            raise LLMResponseError("Completion content is not text")

        return content.strip()
