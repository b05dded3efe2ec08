"""API module."""

from .session import router as session_router
from .chats import router as chats_router
from .account import router as account_router

__all__ = ['session_router', 'chats_router', 'account_router']
