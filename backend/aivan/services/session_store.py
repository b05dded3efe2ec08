"""
Session Store - Remembers which user is signed in on this device.

This is a convenience cache for automatic sign-in, not a security
boundary: anything unreadable is treated as "not signed in".
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from pydantic import ValidationError

from ..models import SessionToken, SessionUser
from ..storage import KeyValueStore

logger = logging.getLogger(__name__)

SESSION_KEY = "AIVAN_SESSION"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _to_millis(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


class SessionStore:
    """Reads and writes the device sign-in token."""

    def __init__(
        self,
        store: KeyValueStore,
        max_age_days: int = 30,
        clock: Callable[[], datetime] = _utc_now,
    ):
        """
        Args:
            store: Device-local key-value store
            max_age_days: Inactivity after which the token expires
            clock: Source of the current time
        """
        self.store = store
        self.max_age = timedelta(days=max_age_days)
        self.clock = clock

    def create_session(self, email: str, name: str) -> None:
        """Sign this device in as ``email``."""
        token = SessionToken(
            email=email,
            name=name,
            last_active=_to_millis(self.clock()),
            auto_login_enabled=True,
        )
        self.store.set(SESSION_KEY, token.model_dump_json(by_alias=True))
        logger.info("Device session created", extra={"extra_fields": {"user": email}})

    def _load_token(self) -> Optional[SessionToken]:
        try:
            raw = self.store.get(SESSION_KEY)
        except OSError as e:
            logger.warning(f"Could not read device session: {e}")
            return None
        if not raw:
            return None
        try:
            return SessionToken.model_validate_json(raw)
        except ValidationError:
            logger.debug("Discarding unparseable device session")
            return None

    def get_session(self) -> Optional[SessionUser]:
        """
        Return the signed-in user, or None.

        Tokens with automatic sign-in disabled, or idle for longer than the
        maximum age, are removed as a side effect.
        """
        token = self._load_token()
        if token is None:
            return None

        idle_ms = _to_millis(self.clock()) - token.last_active
        if not token.auto_login_enabled or idle_ms > self.max_age.total_seconds() * 1000:
            logger.info(
                "Device session expired",
                extra={"extra_fields": {"user": token.email, "idle_ms": idle_ms}}
            )
            self.clear_session()
            return None

        return SessionUser(email=token.email, name=token.name)

    def touch(self) -> bool:
        """Refresh ``lastActive`` of a valid token. Returns False if there is none."""
        if self.get_session() is None:
            return False
        token = self._load_token()
        if token is None:
            return False
        token.last_active = _to_millis(self.clock())
        self.store.set(SESSION_KEY, token.model_dump_json(by_alias=True))
        return True

    def clear_session(self) -> None:
        """Sign the device out."""
        try:
            self.store.remove(SESSION_KEY)
        except OSError as e:
            logger.warning(f"Could not remove device session: {e}")
