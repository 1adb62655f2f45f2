"""Topic-filtered WebSocket event bus for dashboard clients.

Clients subscribe to topics when they connect; server components publish
events (``toast``, ``settings_changed``) and only matching subscribers, or
those subscribed to the wildcard ``*``, receive them.

>>> parse_topics("toast, settings_changed")
['toast', 'settings_changed']
>>> parse_topics("")
['*']
"""

import json
import logging
import time
from typing import Optional

from fastapi import WebSocket

logger = logging.getLogger(__name__)

WILDCARD = "*"
TOPICS = ("toast", "settings_changed")


def parse_topics(raw: Optional[str]) -> list[str]:
    """Split a ``?topics=`` query value; empty means everything."""
    topics = [t.strip() for t in (raw or "").split(",") if t.strip()]
    return topics or [WILDCARD]


def encode_event(topic: str, payload: Optional[dict], source: Optional[str]) -> str:
    return json.dumps(
        {
            "type": topic,
            "payload": payload or {},
            "source": source or "server",
            "timestamp": int(time.time()),
        }
    )


class WebSocketRegistry:
    """Connected clients and what each one listens to.

    >>> r = WebSocketRegistry()
    >>> r.client_count, r.subscribers("toast")
    (0, 0)
    """

    def __init__(self):
        self._clients: dict[WebSocket, set[str]] = {}

    async def connect(self, ws: WebSocket, topics: Optional[list[str]] = None):
        self._clients[ws] = set(topics or [WILDCARD])
        unknown = self._clients[ws] - set(TOPICS) - {WILDCARD}
        if unknown:
            logger.debug("Client subscribed to unknown topics: %s", sorted(unknown))

    def disconnect(self, ws: WebSocket):
        """Forget a client; unknown clients are ignored.

        >>> WebSocketRegistry().disconnect(object())
        """
        self._clients.pop(ws, None)

    def subscribers(self, topic: str) -> int:
        return sum(
            1 for subs in self._clients.values() if WILDCARD in subs or topic in subs
        )

    async def broadcast(
        self, topic: str, payload: Optional[dict] = None, source: Optional[str] = None
    ) -> int:
        """Send an event to every subscriber; returns how many got it.

        Clients whose send fails are dropped.
        """
        message = encode_event(topic, payload, source)
        delivered = 0
        dead: list[WebSocket] = []
        for ws, subs in list(self._clients.items()):
            if WILDCARD not in subs and topic not in subs:
                continue
            try:
                await ws.send_text(message)
                delivered += 1
            except Exception:
                dead.append(ws)
        for ws in dead:
            self._clients.pop(ws, None)
            logger.debug("Pruned dead WebSocket client")
        return delivered

    @property
    def client_count(self) -> int:
        return len(self._clients)
