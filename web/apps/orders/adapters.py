"""In-process stub adapters for the order side effects.

``UserDirectoryStub`` answers display names from a dict and
``NotifierStub`` logs and records notifications instead of delivering them.
They back unit tests and local development without the user directory or
notification services.
"""

import logging
from typing import Dict, List, Optional, Tuple

from .directory import UserDirectoryPort
from .notifications import NotifierPort

logger = logging.getLogger("orders.notifications")


class UserDirectoryStub(UserDirectoryPort):
    def __init__(self):
        self.names: Dict[str, str] = {}
        self.calls = 0

    def display_name(self, user_id: str) -> Optional[str]:
        self.calls += 1
        return self.names.get(user_id)

    def clear(self):
        self.names.clear()
        self.calls = 0


class NotifierStub(NotifierPort):
    def __init__(self):
        self.sent: List[Tuple[str, dict]] = []

    def send(self, recipient_id: str, notification: dict) -> None:
        logger.info("notification", extra={"recipient_id": recipient_id, "type": notification.get("type")})
        self.sent.append((recipient_id, notification))

    def clear(self):
        self.sent.clear()


user_directory_stub = UserDirectoryStub()
notifier_stub = NotifierStub()
