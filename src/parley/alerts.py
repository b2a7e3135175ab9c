"""Signal-based transient alerts."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal

from blinker import Signal

AlertLevel = Literal["info", "success", "error"]
AlertHandler = Callable[["Alert"], None]


@dataclass(frozen=True)
class Alert:
    """A short-lived user-visible notification."""

    level: AlertLevel
    title: str
    message: str
    tab_id: str | None = None


class AlertBus:
    """In-process alert fan-out backed by a blinker signal."""

    def __init__(self) -> None:
        self._signal = Signal("parley.alert")

    def publish(self, alert: Alert) -> None:
        self._signal.send(self, alert=alert)

    def error(self, title: str, message: str, *, tab_id: str | None = None) -> None:
        self.publish(Alert(level="error", title=title, message=message, tab_id=tab_id))

    def info(self, title: str, message: str, *, tab_id: str | None = None) -> None:
        self.publish(Alert(level="info", title=title, message=message, tab_id=tab_id))

    def success(self, title: str, message: str, *, tab_id: str | None = None) -> None:
        self.publish(Alert(level="success", title=title, message=message, tab_id=tab_id))

    def subscribe(self, handler: AlertHandler) -> Callable[[], None]:
        def _receiver(sender: Any, *, alert: Alert) -> None:
            handler(alert)

        self._signal.connect(_receiver, weak=False)
        return lambda: self._signal.disconnect(_receiver)
