# File: services/navigation.py
"""
Pending navigation intents ("where to go after login").

An intent is recorded before the user signs in, so it is keyed by an opaque
per-browser key rather than a user id. It is read at most once: the session
orchestrator consumes it on the first complete sign-in and it is gone after.
"""
import logging
import os
import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from cachetools import TTLCache

from services.exceptions import InvalidInputError

logger = logging.getLogger(__name__)

NAV_INTENT_TTL_SECONDS = int(os.getenv("NAV_INTENT_TTL_SECONDS", "1800"))
NAV_INTENT_MAX_ENTRIES = 10000


@dataclass(frozen=True)
class NavigationIntent:
    path: str
    created_at: datetime


def validate_intent_path(path: str) -> str:
    path = (path or "").strip()
    # Site-relative only; "//host" and absolute URLs would be open redirects
    if not path.startswith("/") or path.startswith("//") or "\\" in path:
        raise InvalidInputError("Redirect path must be a site-relative path such as /submit.")
    return path


def new_intent_key() -> str:
    return secrets.token_urlsafe(24)


class NavigationIntentStore:
    def __init__(self, ttl_seconds: int = NAV_INTENT_TTL_SECONDS, maxsize: int = NAV_INTENT_MAX_ENTRIES):
        self._intents = TTLCache(maxsize=maxsize, ttl=ttl_seconds)
        self._lock = threading.Lock()

    def remember(self, key: str, path: str) -> NavigationIntent:
        """Stores the intent for this browser; a newer prompt replaces an older one."""
        intent = NavigationIntent(path=validate_intent_path(path), created_at=datetime.now(timezone.utc))
        with self._lock:
            self._intents[key] = intent
        logger.debug(f"Remembered navigation intent {intent.path}")
        return intent

    def peek(self, key: Optional[str]) -> Optional[NavigationIntent]:
        if not key:
            return None
        with self._lock:
            return self._intents.get(key)

    def consume(self, key: Optional[str]) -> Optional[NavigationIntent]:
        if not key:
            return None
        with self._lock:
            return self._intents.pop(key, None)

    def discard(self, key: Optional[str]) -> None:
        if not key:
            return
        with self._lock:
            self._intents.pop(key, None)
