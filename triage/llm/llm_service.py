"""
LLM service for the triage assistant.
Wraps the chat client with single-shot completion and conversation summarization.
"""

import json
import logging
import re
import time
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from .chat_client import ChatCompletionClient
from .prompt_templates import TriagePromptTemplates
from app.core.config import settings

logger = logging.getLogger(__name__)


SUMMARY_UNPARSABLE = "（無法解析）"
SUMMARY_FAILED = "（總結失敗）"

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


@dataclass
class ConversationSummary:
    """Structured summary of a triage transcript."""
    chinese_summary: str
    admission_note: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def placeholder(cls, text: str) -> 'ConversationSummary':
        return cls(chinese_summary=text, admission_note=text)


def parse_summary(raw_content: str) -> ConversationSummary:
    """Parse the model's JSON reply; fall back to placeholders when it is unusable."""
    content = raw_content.strip()
    fenced = _CODE_FENCE.match(content)
    if fenced:
        content = fenced.group(1)

    try:
        parsed = json.loads(content)
    except json.JSONDecodeError as e:
        logger.error(f"Error parsing JSON from model: {e}")
        return ConversationSummary.placeholder(SUMMARY_UNPARSABLE)

    if not isinstance(parsed, dict):
        logger.error("Summary JSON is not an object")
        return ConversationSummary.placeholder(SUMMARY_UNPARSABLE)

    chinese_summary = parsed.get("chinese_summary")
    admission_note = parsed.get("admission_note")
    return ConversationSummary(
        chinese_summary=str(chinese_summary) if chinese_summary is not None else SUMMARY_UNPARSABLE,
        admission_note=str(admission_note) if admission_note is not None else SUMMARY_UNPARSABLE,
    )


class LLMService:
    """High-level service for LLM operations."""

    def __init__(self, client: Optional[ChatCompletionClient] = None):
        self.client = client or ChatCompletionClient()
        self.current_model = settings.LLM_MODEL

    async def chat_completion(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ) -> str:
        """Complete a single, stateless chat exchange.

        Transport and payload errors propagate as ``LLMConnectionError`` /
        ``LLMResponseError``; callers decide on the fallback.
        """
        data = await self.client.chat(
            model=self.current_model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens
        )
        return self.client.extract_content(data)

    async def summarize_conversation(self, conversation_text: str) -> ConversationSummary:
        """Summarize a Q&A transcript into a Chinese summary and an admission note."""
        messages = TriagePromptTemplates.conversation_summary_messages(conversation_text)

        try:
            raw_content = await self.chat_completion(
                messages,
                temperature=settings.SUMMARY_TEMPERATURE
            )
        except Exception as e:
            logger.error(f"Error in summarize_conversation: {e}")
            return ConversationSummary.placeholder(SUMMARY_FAILED)

        logger.debug(f"Model raw summary: {raw_content}")
        return parse_summary(raw_content)

    async def health_check(self) -> Dict[str, Any]:
        """Check that the model endpoint is reachable."""
        start_time = time.time()
        healthy = await self.client.health_check()
        return {
            "healthy": healthy,
            "current_model": self.current_model,
            "total_check_time_seconds": time.time() - start_time,
            "timestamp": datetime.utcnow().isoformat()
        }

    async def cleanup(self):
        """Clean up resources."""
        try:
            await self.client.close()
            logger.info("LLM service cleaned up")
        except Exception as e:
            logger.error(f"Error during cleanup: {e}")


# Global service instance
llm_service = LLMService()
