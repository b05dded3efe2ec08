"""Services module - device session token and chat persistence."""

from .session_store import SessionStore, SESSION_KEY
from .chat_repository import ChatRepository

__all__ = ['SessionStore', 'SESSION_KEY', 'ChatRepository']
