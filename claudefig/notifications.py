"""Toast notifications for dashboard clients.

A ``NotificationCenter`` is created once per application and handed to
whatever needs to tell the user something. Toasts are logged, kept in a
list until dismissed, and broadcast on the ``toast`` WebSocket topic.

>>> center = NotificationCenter()
>>> center.toasts
[]
"""

import asyncio
import logging
import time
import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Optional

from claudefig.errors import FigError

logger = logging.getLogger(__name__)

TOAST_TOPIC = "toast"


class NotificationType(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @property
    def dismiss_after(self) -> float:
        """Seconds before the toast goes away on its own.

        >>> NotificationType.ERROR.dismiss_after
        6.0
        """
        return {
            NotificationType.SUCCESS: 3.0,
            NotificationType.INFO: 4.0,
            NotificationType.WARNING: 5.0,
            NotificationType.ERROR: 6.0,
        }[self]


_LOG_LEVELS = {
    NotificationType.SUCCESS: logging.INFO,
    NotificationType.INFO: logging.INFO,
    NotificationType.WARNING: logging.WARNING,
    NotificationType.ERROR: logging.ERROR,
}


@dataclass
class AppNotification:
    type: NotificationType
    title: str
    message: Optional[str] = None
    dismiss_after: Optional[float] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["type"] = self.type.value
        return data


class NotificationCenter:
    """Holds current toasts and publishes new ones.

    Args:
        ws_registry: Optional ``WebSocketRegistry``; without one, toasts are
            only logged and listed.
    """

    def __init__(self, ws_registry=None):
        self.ws_registry = ws_registry
        self._toasts: list[AppNotification] = []
        self._timers: dict[str, asyncio.TimerHandle] = {}

    @property
    def toasts(self) -> list[AppNotification]:
        return list(self._toasts)

    async def show(
        self, type_: NotificationType, title: str, message: Optional[str] = None
    ) -> AppNotification:
        type_ = NotificationType(type_)
        toast = AppNotification(
            type=type_, title=title, message=message, dismiss_after=type_.dismiss_after
        )
        logger.log(_LOG_LEVELS[type_], "%s: %s", type_.value.capitalize(), title)
        self._toasts.append(toast)
        self._schedule_dismiss(toast)
        if self.ws_registry is not None and self.ws_registry.client_count > 0:
            await self.ws_registry.broadcast(
                TOAST_TOPIC, toast.to_dict(), source="notifications"
            )
        return toast

    async def show_success(self, title: str, message: Optional[str] = None):
        return await self.show(NotificationType.SUCCESS, title, message)

    async def show_info(self, title: str, message: Optional[str] = None):
        return await self.show(NotificationType.INFO, title, message)

    async def show_warning(self, title: str, message: Optional[str] = None):
        return await self.show(NotificationType.WARNING, title, message)

    async def show_error(self, title: str, message: Optional[str] = None):
        return await self.show(NotificationType.ERROR, title, message)

    async def show_exception(self, exc: Exception) -> AppNotification:
        """Error toast for an exception; ``FigError`` supplies its recovery hint."""
        if isinstance(exc, FigError):
            return await self.show_error(exc.message, exc.recovery_suggestion)
        return await self.show_error("Error", str(exc))

    def _schedule_dismiss(self, toast: AppNotification):
        if toast.dismiss_after is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._timers[toast.id] = loop.call_later(
            toast.dismiss_after, self.dismiss, toast.id
        )

    def dismiss(self, toast_id: str) -> bool:
        """Remove a toast. Returns False if it was already gone."""
        timer = self._timers.pop(toast_id, None)
        if timer is not None:
            timer.cancel()
        before = len(self._toasts)
        self._toasts = [t for t in self._toasts if t.id != toast_id]
        return len(self._toasts) != before

    def dismiss_all(self):
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._toasts.clear()
