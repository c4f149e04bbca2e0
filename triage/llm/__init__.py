"""
LLM module for the triage chatbot.
Contains the chat completion client, prompt templates and summarization service.
"""

from .chat_client import ChatCompletionClient, LLMConnectionError, LLMResponseError
from .llm_service import llm_service, LLMService, ConversationSummary

__all__ = [
    'ChatCompletionClient',
    'LLMConnectionError',
    'LLMResponseError',
    'llm_service',
    'LLMService',
    'ConversationSummary'
]
