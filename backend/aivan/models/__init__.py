"""Models module."""

from .chat import ChatMessage, ChatSession, Attachment, PlaceCard, PlaceType, utc_now_iso
from .session import SessionToken, SessionUser, SessionSignIn

__all__ = [
    'ChatMessage', 'ChatSession', 'Attachment', 'PlaceCard', 'PlaceType', 'utc_now_iso',
    'SessionToken', 'SessionUser', 'SessionSignIn'
]
