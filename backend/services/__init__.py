"""
Zenbot Services - Shared infrastructure services.

- llm_client: Single-flight client for the OpenAI-compatible generation server
- chat_store: SQLite message history per session, with archiving
"""

from .chat_store import Message, MessageStore, get_message_store, set_message_store
from .llm_client import GenerationService, get_generation_service

__all__ = [
    "Message",
    "MessageStore",
    "get_message_store",
    "set_message_store",
    "GenerationService",
    "get_generation_service",
]
