"""Conversation turn model."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

SYSTEM_AUTHOR = "System"
ACTION_AUTHOR = "SYSTEM"


class TurnKind(StrEnum):
    USER = "user"
    AI = "ai"
    SYSTEM = "system"
    ERROR = "error"
    COMMAND = "command"
    TASK = "task"
    SHELL_OUTPUT = "shell_output"
    ACTION_RESULT = "action_result"


def _turn_id() -> str:
    return uuid.uuid4().hex


@dataclass(eq=False)
class ConversationTurn:
    """One transcript entry.

    Turns are append-only. `closed` is a presentation flag for user turns and
    never changes `text`.
    """

    kind: TurnKind
    author: str
    text: str
    id: str = field(default_factory=_turn_id)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    attachments: tuple[str, ...] = ()
    backend: str | None = None
    model_name: str | None = None
    closed: bool = False

    @classmethod
    def user(cls, author: str, text: str, *, attachments: tuple[str, ...] = ()) -> ConversationTurn:
        return cls(kind=TurnKind.USER, author=author, text=text, attachments=attachments)

    @classmethod
    def ai(cls, author: str, text: str, *, backend: str | None = None, model_name: str | None = None) -> ConversationTurn:
        return cls(kind=TurnKind.AI, author=author, text=text, backend=backend, model_name=model_name)

    @classmethod
    def system(cls, text: str) -> ConversationTurn:
        return cls(kind=TurnKind.SYSTEM, author=SYSTEM_AUTHOR, text=text)

    @classmethod
    def error(cls, text: str, *, author: str = SYSTEM_AUTHOR) -> ConversationTurn:
        return cls(kind=TurnKind.ERROR, author=author, text=text)

    @classmethod
    def command(cls, author: str, raw: str) -> ConversationTurn:
        return cls(kind=TurnKind.COMMAND, author=author, text=raw)

    @classmethod
    def task(cls, text: str) -> ConversationTurn:
        return cls(kind=TurnKind.TASK, author=SYSTEM_AUTHOR, text=text)

    @classmethod
    def shell_output(cls, text: str) -> ConversationTurn:
        return cls(kind=TurnKind.SHELL_OUTPUT, author=SYSTEM_AUTHOR, text=text)

    @classmethod
    def action_result(cls, text: str, *, backend: str | None = None) -> ConversationTurn:
        return cls(kind=TurnKind.ACTION_RESULT, author=ACTION_AUTHOR, text=text, backend=backend)

    @property
    def is_error(self) -> bool:
        return self.kind is TurnKind.ERROR
