"""Session management module."""

from relaybot.session.models import Notification, Session
from relaybot.session.store import SessionStore
from relaybot.session.token import generate_token

__all__ = ["Notification", "Session", "SessionStore", "generate_token"]
