from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from parley.alerts import Alert, AlertBus
from parley.backend import (
    ActionOutcome,
    ActionRequest,
    DialogueResponse,
    SessionInfo,
    SessionWithHistory,
    ShellResult,
    StreamedTurn,
    WorkspaceInfo,
)
from parley.config import Settings
from parley.core.commands import CommandDefinition
from parley.core.dispatch import DialogueOutcome, DispatchEngine, DispatchResult
from parley.core.registry import CommandRegistry, ResolvedCustom
from parley.core.template import ExpansionContext
from parley.engine import ConversationEngine
from parley.errors import CommandNotFoundError
from parley.session.tabs import SessionTab


@dataclass
class FakeBackend:
    response: DialogueResponse = field(default_factory=DialogueResponse.batch)
    error: Exception | None = None
    sessions: dict[str, SessionWithHistory] = field(default_factory=dict)
    active: SessionInfo | None = None
    mode: str = "normal"
    talk_style: str | None = None
    dialogue_calls: list[tuple[str, list[str] | None]] = field(default_factory=list)
    auto_chat_calls: list[tuple[str, Any, list[str] | None]] = field(default_factory=list)
    cancel_calls: int = 0
    auto_chat_hook: Any = None

    async def dispatch_dialogue(self, text: str, file_paths: Sequence[str] | None = None) -> DialogueResponse:
        self.dialogue_calls.append((text, list(file_paths) if file_paths else None))
        if self.error is not None:
            raise self.error
        return self.response

    async def start_auto_chat(self, initial_input: str, config: Any, file_paths: Sequence[str] | None = None) -> None:
        self.auto_chat_calls.append((initial_input, config, list(file_paths) if file_paths else None))
        if self.auto_chat_hook is not None:
            await self.auto_chat_hook()
        if self.error is not None:
            raise self.error

    async def cancel_auto_chat(self) -> None:
        self.cancel_calls += 1

    async def get_active_session(self) -> SessionInfo | None:
        return self.active

    async def switch_session(self, session_id: str) -> SessionWithHistory:
        return self.sessions.get(session_id, SessionWithHistory(session=SessionInfo(id=session_id)))

    async def get_conversation_mode(self) -> str:
        return self.mode

    async def set_conversation_mode(self, mode: str) -> None:
        self.mode = mode

    async def get_talk_style(self) -> str | None:
        return self.talk_style

    async def set_talk_style(self, style: str | None) -> None:
        self.talk_style = style


@dataclass
class FakeShell:
    result: ShellResult = field(default_factory=lambda: ShellResult(exit_code=0, stdout="ok"))
    results: list[ShellResult] = field(default_factory=list)
    calls: list[tuple[str, str | None]] = field(default_factory=list)

    async def run(self, command: str, working_dir: str | None = None) -> ShellResult:
        self.calls.append((command, working_dir))
        if self.results:
            return self.results.pop(0)
        return self.result


@dataclass
class FakeTasks:
    summary: str = ""
    error: Exception | None = None
    calls: list[tuple[str, str, Path | None]] = field(default_factory=list)

    async def execute_task(self, session_id: str, description: str, workspace_root: Path | None) -> str:
        self.calls.append((session_id, description, workspace_root))
        if self.error is not None:
            raise self.error
        return self.summary


@dataclass
class FakeActions:
    outcome: ActionOutcome = field(default_factory=lambda: ActionOutcome(result="action done"))
    error: Exception | None = None
    requests: list[ActionRequest] = field(default_factory=list)

    async def execute_action(self, request: ActionRequest) -> ActionOutcome:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.outcome


class FakeStore:
    def __init__(self, commands: Sequence[CommandDefinition] = ()) -> None:
        self.commands = {command.name: command for command in commands}

    async def list_commands(self) -> list[CommandDefinition]:
        return sorted(self.commands.values(), key=lambda item: item.name)

    async def get_command(self, name: str) -> CommandDefinition | None:
        return self.commands.get(name)

    async def save_command(self, command: CommandDefinition) -> None:
        self.commands[command.name] = command

    async def remove_command(self, name: str) -> None:
        if name not in self.commands:
            raise CommandNotFoundError(name)
        del self.commands[name]

    async def toggle_favorite(self, name: str, is_favorite: bool) -> CommandDefinition:
        updated = self.commands[name].model_copy(update={"is_favorite": is_favorite})
        self.commands[name] = updated
        return updated

    async def set_sort_order(self, name: str, sort_order: int) -> CommandDefinition:
        updated = self.commands[name].model_copy(update={"sort_order": sort_order})
        self.commands[name] = updated
        return updated


@dataclass
class FakeWorkspaces:
    items: list[WorkspaceInfo] = field(default_factory=list)
    active: WorkspaceInfo | None = None
    switches: list[tuple[str, str]] = field(default_factory=list)

    async def current(self) -> WorkspaceInfo | None:
        return self.active

    async def list_workspaces(self) -> list[WorkspaceInfo]:
        return list(self.items)

    async def switch(self, session_id: str, workspace_id: str) -> WorkspaceInfo:
        self.switches.append((session_id, workspace_id))
        self.active = next(item for item in self.items if item.id == workspace_id)
        return self.active


@dataclass
class AlertLog:
    alerts: list[Alert] = field(default_factory=list)

    def __call__(self, alert: Alert) -> None:
        self.alerts.append(alert)

    @property
    def errors(self) -> list[Alert]:
        return [alert for alert in self.alerts if alert.level == "error"]


@dataclass
class EngineHarness:
    engine: ConversationEngine
    backend: FakeBackend
    shell: FakeShell
    tasks: FakeTasks
    actions: FakeActions
    store: FakeStore
    workspaces: FakeWorkspaces
    alerts: AlertLog


@dataclass
class DialogueRecorder:
    replies: list[StreamedTurn] = field(default_factory=list)
    fail_with: str | None = None
    sent: list[str] = field(default_factory=list)

    async def __call__(self, tab: SessionTab, text: str, file_paths: Sequence[str] | None) -> DialogueOutcome:
        self.sent.append(text)
        if self.fail_with is not None:
            return DialogueOutcome(success=False, error=self.fail_with)
        return DialogueOutcome(success=True, turns=tuple(self.replies))


@dataclass
class DispatchRig:
    engine: DispatchEngine
    registry: CommandRegistry
    shell: FakeShell
    tasks: FakeTasks
    actions: FakeActions
    dialogue: DialogueRecorder
    alerts: AlertLog
    tab: SessionTab

    async def dispatch(self, name: str, args: str = "", ctx: ExpansionContext | None = None) -> DispatchResult:
        command = self.registry.custom(name)
        assert command is not None
        return await self.engine.dispatch(ResolvedCustom(command), (ctx or ExpansionContext()).with_args(args), self.tab)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(home=tmp_path / "home", _env_file=None)  # type: ignore[call-arg]


@pytest.fixture
def alert_log() -> AlertLog:
    return AlertLog()


@pytest.fixture
def alert_bus(alert_log: AlertLog) -> AlertBus:
    bus = AlertBus()
    bus.subscribe(alert_log)
    return bus


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def shell() -> FakeShell:
    return FakeShell()


@pytest.fixture
def tasks() -> FakeTasks:
    return FakeTasks()


@pytest.fixture
def actions() -> FakeActions:
    return FakeActions()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def workspaces() -> FakeWorkspaces:
    return FakeWorkspaces()


@pytest.fixture
def make_rig(
    shell: FakeShell,
    tasks: FakeTasks,
    actions: FakeActions,
    alert_bus: AlertBus,
    alert_log: AlertLog,
) -> Callable[..., DispatchRig]:
    def build(*commands: CommandDefinition) -> DispatchRig:
        registry = CommandRegistry(commands)
        dialogue = DialogueRecorder()
        engine = DispatchEngine(
            registry,
            shell=shell,
            tasks=tasks,
            actions=actions,
            alerts=alert_bus,
            submit_dialogue=dialogue,
        )
        return DispatchRig(engine, registry, shell, tasks, actions, dialogue, alert_log, SessionTab(session_id="s1"))

    return build


@pytest.fixture
def harness(
    settings: Settings,
    alert_bus: AlertBus,
    alert_log: AlertLog,
    backend: FakeBackend,
    shell: FakeShell,
    tasks: FakeTasks,
    actions: FakeActions,
    store: FakeStore,
    workspaces: FakeWorkspaces,
) -> EngineHarness:
    engine = ConversationEngine(
        backend=backend,
        store=store,
        shell=shell,
        tasks=tasks,
        actions=actions,
        workspaces=workspaces,
        settings=settings,
        alerts=alert_bus,
    )
    return EngineHarness(
        engine=engine,
        backend=backend,
        shell=shell,
        tasks=tasks,
        actions=actions,
        store=store,
        workspaces=workspaces,
        alerts=alert_log,
    )
