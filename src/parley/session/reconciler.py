"""Streamed dialogue reconciliation."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from loguru import logger

from parley.alerts import AlertBus
from parley.errors import ErrorKind
from parley.session.message import ConversationTurn
from parley.session.tabs import TabManager

DEFAULT_QUEUE_SIZE = 256


@dataclass(frozen=True)
class DialogueTurnEvent:
    """One agent turn pushed by the backend. An empty author marks an error."""

    author: str
    content: str
    session_id: str | None = None

    @property
    def is_error(self) -> bool:
        return self.author == ""


@dataclass(frozen=True)
class WorkspaceSwitchedEvent:
    workspace_id: str | None = None


Event = DialogueTurnEvent | WorkspaceSwitchedEvent
WorkspaceRefresh = Callable[[WorkspaceSwitchedEvent], Awaitable[None]]


class EventChannel:
    """Bounded async channel between the backend and the reconciler."""

    def __init__(self, maxsize: int = DEFAULT_QUEUE_SIZE) -> None:
        self._queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=maxsize)

    async def publish(self, event: Event) -> None:
        await self._queue.put(event)

    def publish_nowait(self, event: Event) -> None:
        self._queue.put_nowait(event)

    async def next(self, timeout_seconds: float | None = None) -> Event | None:
        if timeout_seconds is None:
            return await self._queue.get()
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout_seconds)
        except TimeoutError:
            return None

    def next_nowait(self) -> Event | None:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def empty(self) -> bool:
        return self._queue.empty()


class StreamingReconciler:
    """Single consumer that files streamed turns into the matching tab."""

    def __init__(
        self,
        channel: EventChannel,
        tabs: TabManager,
        alerts: AlertBus,
        *,
        on_workspace_switched: WorkspaceRefresh | None = None,
    ) -> None:
        self._channel = channel
        self._tabs = tabs
        self._alerts = alerts
        self._on_workspace_switched = on_workspace_switched
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def run(self) -> None:
        while True:
            event = await self._channel.next()
            if event is None:
                continue
            await self._handle_logged(event)

    async def drain(self) -> int:
        """Process every queued event without waiting for new ones."""
        handled = 0
        while (event := self._channel.next_nowait()) is not None:
            await self._handle_logged(event)
            handled += 1
        return handled

    async def _handle_logged(self, event: Event) -> None:
        try:
            await self.handle(event)
        except Exception as exc:
            logger.exception("reconciler.error event={}", type(event).__name__)
            self._alerts.error("Sync Error", f"{type(event).__name__} failed: {exc}")

    async def handle(self, event: Event) -> None:
        if isinstance(event, WorkspaceSwitchedEvent):
            logger.info("reconciler.workspace_switched workspace={}", event.workspace_id)
            if self._on_workspace_switched is not None:
                await self._on_workspace_switched(event)
            return
        self.file_turn(event)

    def file_turn(self, event: DialogueTurnEvent) -> ConversationTurn:
        turn = ConversationTurn.error(event.content, author="") if event.is_error else ConversationTurn.ai(event.author, event.content)

        if event.session_id is None:
            tab = self._tabs.active_tab()
        else:
            tab = self._tabs.by_session(event.session_id)

        if tab is None:
            if event.session_id is None:
                logger.warning("reconciler.dropped reason=no_active_tab author={!r}", event.author)
                self._alerts.error("Agent Error" if event.is_error else "Unrouted turn", event.content)
                return turn
            self._tabs.buffer(event.session_id, turn)
            logger.debug("reconciler.buffered session={} author={!r}", event.session_id, event.author)
            if event.is_error:
                self._alerts.error("Agent Error", event.content)
            return turn

        tab.append(turn)
        if event.is_error:
            tab.end_thinking()
            self._alerts.error("Agent Error", event.content, tab_id=tab.tab_id)
            logger.warning(
                "reconciler.error_turn kind={} tab={} session={}", ErrorKind.STREAMED_ERROR_TURN, tab.tab_id, tab.session_id
            )
        return turn
