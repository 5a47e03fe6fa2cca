"""
WORKER CLIENTS MODULE
=====================

The pages and notifications the offline cache manager can see: open window
clients (claimed on activation, focused or opened on notification click) and
the notifications shown for push messages.
"""

import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger("AURA")

_ids = itertools.count(1)


@dataclass
class WindowClient:
    url: str
    id: int = field(default_factory=lambda: next(_ids))
    type: str = "window"
    focused: bool = False
    controller: Optional[str] = None

    async def focus(self) -> "WindowClient":
        self.focused = True
        return self


class ClientRegistry:
    def __init__(self, clients: Optional[List[WindowClient]] = None):
        self.clients: List[WindowClient] = list(clients or [])

    def match_all(self, type: str = "window") -> List[WindowClient]:
        return [c for c in self.clients if type == "all" or c.type == type]

    def claim(self, controller: str) -> int:
        """Make `controller` control every open client without a reload."""
        for client in self.clients:
            client.controller = controller
        return len(self.clients)

    async def open_window(self, url: str) -> WindowClient:
        client = WindowClient(url=url, focused=True)
        self.clients.append(client)
        logger.info("Opened new window at %s", url)
        return client


@dataclass
class Notification:
    title: str
    body: str = ""
    icon: Optional[str] = None
    badge: Optional[str] = None
    vibrate: tuple = ()
    data: Dict[str, Any] = field(default_factory=dict)
    actions: List[Dict[str, str]] = field(default_factory=list)
    closed: bool = False

    def close(self) -> None:
        self.closed = True


class NotificationCenter:
    def __init__(self):
        self.notifications: List[Notification] = []

    async def show(self, notification: Notification) -> Notification:
        self.notifications.append(notification)
        return notification

    def open_notifications(self) -> List[Notification]:
        return [n for n in self.notifications if not n.closed]
