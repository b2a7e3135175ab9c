"""Contracts for the collaborators the engine calls out to.

Transport is not modelled here: each protocol is an awaitable remote call with
typed inputs and outputs.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from parley.core.commands import CommandDefinition

if TYPE_CHECKING:
    from parley.session.autochat import AutoChatConfig
    from parley.session.message import ConversationTurn


@dataclass(frozen=True)
class StreamedTurn:
    author: str
    content: str


@dataclass(frozen=True)
class DialogueResponse:
    """Reply to `dispatch_dialogue`.

    Current backends answer with the batch of turns they already streamed.
    Older ones answer with a single error string instead.
    """

    turns: tuple[StreamedTurn, ...] = ()
    legacy_error: str | None = None

    @classmethod
    def batch(cls, turns: Sequence[StreamedTurn] = ()) -> DialogueResponse:
        return cls(turns=tuple(turns))

    @classmethod
    def error(cls, message: str) -> DialogueResponse:
        return cls(legacy_error=message)


@dataclass(frozen=True)
class SessionInfo:
    id: str
    title: str = ""
    workspace_id: str | None = None
    awaiting_confirmation: bool = False


@dataclass(frozen=True)
class SessionWithHistory:
    session: SessionInfo
    history: tuple[ConversationTurn, ...] = ()


@dataclass(frozen=True)
class UploadedFile:
    name: str
    path: Path
    size: int = 0


@dataclass(frozen=True)
class WorkspaceInfo:
    id: str
    name: str
    root_path: Path
    files: tuple[UploadedFile, ...] = ()
    is_favorite: bool = False


@dataclass(frozen=True)
class ShellResult:
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass(frozen=True)
class ActionRequest:
    command_name: str
    prompt: str
    backend: str | None = None
    model_name: str | None = None
    persona_id: str | None = None
    thinking_level: str | None = None
    google_search: bool | None = None


@dataclass(frozen=True)
class PersonaInfo:
    name: str
    backend: str
    icon: str | None = None


@dataclass(frozen=True)
class ActionOutcome:
    result: str
    persona: PersonaInfo | None = None
    metadata: dict[str, str] = field(default_factory=dict)


class DialogueBackend(Protocol):
    """Agent-execution service."""

    async def dispatch_dialogue(self, text: str, file_paths: Sequence[str] | None = None) -> DialogueResponse: ...

    async def start_auto_chat(
        self,
        initial_input: str,
        config: AutoChatConfig,
        file_paths: Sequence[str] | None = None,
    ) -> None: ...

    async def cancel_auto_chat(self) -> None: ...

    async def get_active_session(self) -> SessionInfo | None: ...

    async def switch_session(self, session_id: str) -> SessionWithHistory: ...

    async def get_conversation_mode(self) -> str: ...

    async def set_conversation_mode(self, mode: str) -> None: ...

    async def get_talk_style(self) -> str | None: ...

    async def set_talk_style(self, style: str | None) -> None: ...


class ShellExecutor(Protocol):
    async def run(self, command: str, working_dir: str | None = None) -> ShellResult: ...


class TaskOrchestrator(Protocol):
    async def execute_task(self, session_id: str, description: str, workspace_root: Path | None) -> str: ...


class ActionExecutor(Protocol):
    async def execute_action(self, request: ActionRequest) -> ActionOutcome: ...


class CommandStore(Protocol):
    """Persistence for custom commands."""

    async def list_commands(self) -> list[CommandDefinition]: ...

    async def get_command(self, name: str) -> CommandDefinition | None: ...

    async def save_command(self, command: CommandDefinition) -> None: ...

    async def remove_command(self, name: str) -> None: ...

    async def toggle_favorite(self, name: str, is_favorite: bool) -> CommandDefinition: ...

    async def set_sort_order(self, name: str, sort_order: int) -> CommandDefinition: ...


class WorkspaceProvider(Protocol):
    async def current(self) -> WorkspaceInfo | None: ...

    async def list_workspaces(self) -> list[WorkspaceInfo]: ...

    async def switch(self, session_id: str, workspace_id: str) -> WorkspaceInfo: ...
