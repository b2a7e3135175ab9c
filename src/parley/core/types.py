"""Shared core dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Mention:
    """An @-reference inside free text."""

    raw_token: str
    display_name: str
    start_index: int
    end_index: int


@dataclass(frozen=True)
class PlainText:
    """Ordinary dialogue sent to the agents as typed."""

    text: str
    mentions: tuple[Mention, ...] = ()

    @property
    def kind(self) -> str:
        return "plain"


@dataclass(frozen=True)
class Directive:
    """Invocation of a built-in directive such as `/help`."""

    name: str
    args: list[str] = field(default_factory=list)
    args_text: str = ""
    mentions: tuple[Mention, ...] = ()

    @property
    def kind(self) -> str:
        return "directive"


@dataclass(frozen=True)
class CustomCommand:
    """Invocation of a user-defined command."""

    name: str
    args: list[str] = field(default_factory=list)
    args_text: str = ""
    mentions: tuple[Mention, ...] = ()

    @property
    def kind(self) -> str:
        return "command"


Intent = PlainText | Directive | CustomCommand
