"""Per-tab conversation state."""

from __future__ import annotations

import uuid
from collections import deque
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import StrEnum

from loguru import logger

from parley.errors import TabBusyError, TabNotFoundError
from parley.session.message import ConversationTurn, TurnKind

DEFAULT_THINKING_PERSONA = "AI"
DEFAULT_PENDING_LIMIT = 200


class AppMode(StrEnum):
    IDLE = "idle"
    AWAITING = "awaiting"
    THINKING = "thinking"


@dataclass(eq=False)
class SessionTab:
    """One open conversation bound to a backend session."""

    session_id: str
    title: str = ""
    tab_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    messages: list[ConversationTurn] = field(default_factory=list)
    pending_input: str = ""
    attached_files: list[str] = field(default_factory=list)
    is_thinking: bool = False
    thinking_persona: str = DEFAULT_THINKING_PERSONA
    is_dragging: bool = False
    auto_mode: bool = False
    awaiting_confirmation: bool = False

    @property
    def app_mode(self) -> AppMode:
        if self.is_thinking:
            return AppMode.THINKING
        if self.awaiting_confirmation:
            return AppMode.AWAITING
        return AppMode.IDLE

    def append(self, turn: ConversationTurn) -> ConversationTurn:
        self.messages.append(turn)
        return turn

    def extend(self, turns: Iterable[ConversationTurn]) -> None:
        self.messages.extend(turns)

    def begin_thinking(self, persona: str = DEFAULT_THINKING_PERSONA) -> None:
        if self.is_thinking:
            raise TabBusyError(f"tab {self.tab_id} already has an outstanding dispatch")
        self.is_thinking = True
        self.thinking_persona = persona

    def end_thinking(self) -> None:
        self.is_thinking = False
        self.thinking_persona = DEFAULT_THINKING_PERSONA

    @contextmanager
    def thinking(self, persona: str = DEFAULT_THINKING_PERSONA) -> Iterator[SessionTab]:
        self.begin_thinking(persona)
        try:
            yield self
        finally:
            self.end_thinking()

    def take_input(self) -> tuple[str, list[str]]:
        """Return and clear the pending input and attachments."""
        text, files = self.pending_input, list(self.attached_files)
        self.pending_input = ""
        self.attached_files.clear()
        return text, files

    def find_turn(self, turn_id: str) -> ConversationTurn | None:
        for turn in self.messages:
            if turn.id == turn_id:
                return turn
        return None

    def set_turn_closed(self, turn_id: str, closed: bool) -> ConversationTurn:
        turn = self.find_turn(turn_id)
        if turn is None:
            raise KeyError(turn_id)
        if turn.kind is not TurnKind.USER:
            raise ValueError(f"only user turns can be closed, got {turn.kind}")
        turn.closed = closed
        return turn


class TabManager:
    """Open tabs plus streamed turns for sessions without an open tab."""

    def __init__(self, *, pending_limit: int = DEFAULT_PENDING_LIMIT) -> None:
        self._tabs: dict[str, SessionTab] = {}
        self._order: list[str] = []
        self._active_id: str | None = None
        self._pending_limit = pending_limit
        self._pending: dict[str, deque[ConversationTurn]] = {}

    def __len__(self) -> int:
        return len(self._tabs)

    def __iter__(self) -> Iterator[SessionTab]:
        return (self._tabs[tab_id] for tab_id in self._order)

    @property
    def active_id(self) -> str | None:
        return self._active_id

    def active_tab(self) -> SessionTab | None:
        if self._active_id is None:
            return None
        return self._tabs.get(self._active_id)

    def get(self, tab_id: str) -> SessionTab:
        tab = self._tabs.get(tab_id)
        if tab is None:
            raise TabNotFoundError(tab_id)
        return tab

    def by_session(self, session_id: str) -> SessionTab | None:
        for tab in self._tabs.values():
            if tab.session_id == session_id:
                return tab
        return None

    def open_tab(
        self,
        session_id: str,
        *,
        title: str = "",
        history: Iterable[ConversationTurn] = (),
        activate: bool = True,
    ) -> SessionTab:
        existing = self.by_session(session_id)
        if existing is not None:
            if activate:
                self._active_id = existing.tab_id
            return existing

        tab = SessionTab(session_id=session_id, title=title)
        tab.extend(history)
        tab.extend(self._pending.pop(session_id, []))
        self._tabs[tab.tab_id] = tab
        self._order.append(tab.tab_id)
        if activate or self._active_id is None:
            self._active_id = tab.tab_id
        logger.debug("tab.open tab={} session={} turns={}", tab.tab_id, session_id, len(tab.messages))
        return tab

    def close_tab(self, tab_id: str) -> None:
        tab = self.get(tab_id)
        index = self._order.index(tab_id)
        del self._tabs[tab_id]
        self._order.remove(tab_id)
        if self._active_id == tab_id:
            if self._order:
                self._active_id = self._order[min(index, len(self._order) - 1)]
            else:
                self._active_id = None
        logger.debug("tab.close tab={} session={}", tab_id, tab.session_id)

    def close_all(self) -> None:
        self._tabs.clear()
        self._pending.clear()
        self._order.clear()
        self._active_id = None

    def switch_tab(self, tab_id: str) -> SessionTab:
        tab = self.get(tab_id)
        self._active_id = tab_id
        return tab

    def reorder(self, from_index: int, to_index: int) -> None:
        tab_id = self._order.pop(from_index)
        self._order.insert(to_index, tab_id)

    def rehydrate(self, tab_id: str, session_id: str, history: Iterable[ConversationTurn], *, title: str = "") -> SessionTab:
        """Replace a tab's contents with another session's persisted history."""
        old = self.get(tab_id)
        tab = SessionTab(session_id=session_id, title=title or old.title, tab_id=tab_id)
        tab.extend(history)
        tab.extend(self._pending.pop(session_id, []))
        self._tabs[tab_id] = tab
        return tab

    def buffer(self, session_id: str, turn: ConversationTurn) -> None:
        """Hold a turn for a session with no open tab; the oldest turns go first once full."""
        pending = self._pending.setdefault(session_id, deque(maxlen=self._pending_limit))
        if len(pending) == pending.maxlen:
            logger.warning("tab.pending_full session={} limit={}", session_id, self._pending_limit)
        pending.append(turn)

    def discard_pending(self, session_id: str) -> int:
        """Drop buffered turns for a session that will never be opened, e.g. a deleted one."""
        return len(self._pending.pop(session_id, ()))

    def buffered(self, session_id: str) -> list[ConversationTurn]:
        return list(self._pending.get(session_id, []))

    def set_awaiting(self, session_id: str, awaiting: bool) -> None:
        tab = self.by_session(session_id)
        if tab is not None:
            tab.awaiting_confirmation = awaiting
