"""
Translation and enrichment through a chat-completion model.
"""

from .client import ChatClient, OpenAIChatClient, AnthropicChatClient, create_chat_client, classify_llm_error
from .enricher import TranslationClient
