"""Who may send commands to the relay."""

from __future__ import annotations

from typing import Any, Iterable


class AuthorizationGuard:
    """
    Allow-list check for inbound commands.

    With a non-empty whitelist, a user id or chat id on the list is allowed.
    With an empty whitelist, only the configured fallback chat is allowed.
    """

    def __init__(self, whitelist: Iterable[Any] = (), fallback_chat_id: Any = None):
        self.whitelist: tuple[str, ...] = tuple(str(v) for v in whitelist)
        self.fallback_chat_id = str(fallback_chat_id) if fallback_chat_id not in (None, "") else None

    def is_authorized(self, user_id: Any, chat_id: Any) -> bool:
        user = str(user_id)
        chat = str(chat_id)
        if self.whitelist:
            return user in self.whitelist or chat in self.whitelist
        return self.fallback_chat_id is not None and chat == self.fallback_chat_id
