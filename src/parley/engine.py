"""Conversation engine: input submission, directives and session wiring."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

from loguru import logger

from parley.alerts import AlertBus
from parley.backend import (
    ActionExecutor,
    CommandStore,
    DialogueBackend,
    SessionInfo,
    ShellExecutor,
    TaskOrchestrator,
    WorkspaceInfo,
    WorkspaceProvider,
)
from parley.config import Settings, get_settings
from parley.core.commands import CommandDefinition
from parley.core.directives import CONVERSATION_MODES, TALK_STYLES, BuiltinDirective
from parley.core.dispatch import DialogueOutcome, DispatchEngine, DispatchResult, DispatchStatus
from parley.core.parser import extract_slash_commands, parse
from parley.core.registry import CommandRegistry, NotFound
from parley.core.template import ExpansionContext
from parley.core.types import Intent, PlainText
from parley.errors import ErrorKind, ReservedCommandNameError
from parley.session.autochat import AutoChatConfig, AutoChatController
from parley.session.message import ConversationTurn
from parley.session.reconciler import EventChannel, StreamingReconciler, WorkspaceSwitchedEvent
from parley.session.tabs import SessionTab, TabManager
from parley.workspace import build_context

DIALOGUE_PERSONA = "AI Assistant"


class SubmitStatus(StrEnum):
    OK = "ok"
    IGNORED = "ignored"
    REJECTED = "rejected"
    UNKNOWN_COMMAND = "unknown_command"
    EXPANSION_ERROR = "expansion_error"
    EXECUTION_ERROR = "execution_error"


@dataclass(frozen=True)
class SubmitResult:
    status: SubmitStatus
    intent: Intent | None = None
    dispatch: DispatchResult | None = None
    error_kind: ErrorKind | None = None


def unknown_command_message(name: str, prefix: str = "/") -> str:
    return f"Unknown command: {prefix}{name}\n\nType {prefix}help for available commands."


def _status_for(result: DispatchResult) -> SubmitStatus:
    if result.success:
        return SubmitStatus.OK
    if result.error_kind is ErrorKind.EMPTY_EXPANSION:
        return SubmitStatus.EXPANSION_ERROR
    return SubmitStatus.EXECUTION_ERROR


class ConversationEngine:
    """Front door for everything a user can do in a tab."""

    def __init__(
        self,
        *,
        backend: DialogueBackend,
        store: CommandStore,
        shell: ShellExecutor,
        tasks: TaskOrchestrator,
        actions: ActionExecutor,
        workspaces: WorkspaceProvider,
        settings: Settings | None = None,
        alerts: AlertBus | None = None,
        registry: CommandRegistry | None = None,
        tabs: TabManager | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.alerts = alerts or AlertBus()
        self.registry = registry or CommandRegistry()
        self.tabs = tabs if tabs is not None else TabManager(pending_limit=self.settings.pending_turn_limit)
        self.workspace: WorkspaceInfo | None = None
        self._backend = backend
        self._store = store
        self._tasks = tasks
        self._workspaces = workspaces

        self.channel = EventChannel(self.settings.event_queue_size)
        self.reconciler = StreamingReconciler(
            self.channel,
            self.tabs,
            self.alerts,
            on_workspace_switched=self._on_workspace_switched,
        )
        self.autochat = AutoChatController(backend, self.alerts, user_nickname=self.settings.user_nickname)
        self.dispatcher = DispatchEngine(
            self.registry,
            shell=shell,
            tasks=tasks,
            actions=actions,
            alerts=self.alerts,
            submit_dialogue=self._dialogue,
            directive_handler=self._run_directive,
        )

    async def start(self) -> None:
        await self.registry.reload(self._store)
        self.workspace = await self._workspaces.current()
        self.reconciler.start()
        logger.info("engine.start commands={} workspace={}", len(self.registry.snapshot), self.workspace.name if self.workspace else None)

    async def close(self) -> None:
        await self.reconciler.stop()

    # Input

    async def submit(self, tab_id: str, raw: str, attachments: Sequence[str] = ()) -> SubmitResult:
        tab = self.tabs.get(tab_id)
        if tab.is_thinking:
            logger.info("submit.rejected tab={} reason=thinking", tab_id)
            return SubmitResult(status=SubmitStatus.REJECTED)
        if not raw.strip() and not attachments:
            return SubmitResult(status=SubmitStatus.IGNORED)

        intent = parse(
            raw,
            directives=self.registry.directive_names(),
            prefix=self.settings.command_prefix,
            delimiter=self.settings.mention_delimiter,
        )
        if isinstance(intent, PlainText):
            with tab.thinking(DIALOGUE_PERSONA):
                outcome = await self._dialogue(tab, raw, attachments)
            if outcome.success:
                return SubmitResult(status=SubmitStatus.OK, intent=intent)
            return SubmitResult(
                status=SubmitStatus.EXECUTION_ERROR,
                intent=intent,
                error_kind=ErrorKind.BACKEND_INVOCATION_FAILURE,
            )

        tab.append(ConversationTurn.command(self.settings.user_nickname, raw))
        resolution = self.registry.resolve(intent.name)
        if isinstance(resolution, NotFound):
            tab.append(ConversationTurn.error(unknown_command_message(intent.name, self.settings.command_prefix)))
            logger.info("submit.unknown_command name={}", intent.name)
            return SubmitResult(status=SubmitStatus.UNKNOWN_COMMAND, intent=intent, error_kind=ErrorKind.UNKNOWN_COMMAND)

        with tab.thinking(f"Running {self.settings.command_prefix}{intent.name}"):
            ctx = await self.context_for(tab, intent.args_text)
            result = await self.dispatcher.dispatch(resolution, ctx, tab, file_paths=list(attachments) or None)
        return SubmitResult(status=_status_for(result), intent=intent, dispatch=result, error_kind=result.error_kind)

    async def submit_pending(self, tab_id: str) -> SubmitResult:
        """Submit and clear the tab's composed input and attachments."""
        tab = self.tabs.get(tab_id)
        if tab.is_thinking:
            return SubmitResult(status=SubmitStatus.REJECTED)
        text, files = tab.take_input()
        return await self.submit(tab_id, text, files)

    async def submit_dialogue(self, tab: SessionTab, text: str, file_paths: Sequence[str] | None = None) -> DialogueOutcome:
        with tab.thinking(DIALOGUE_PERSONA):
            return await self._dialogue(tab, text, file_paths)

    async def run_agent_commands(self, tab_id: str, text: str) -> list[SubmitResult]:
        """Run the `<Slash>` commands an agent embedded in its reply."""
        results = []
        for line in extract_slash_commands(text, prefix=self.settings.command_prefix):
            logger.info("agent.slash tab={} line={!r}", tab_id, line)
            results.append(await self.submit(tab_id, line))
        return results

    async def context_for(self, tab: SessionTab, args: str = "") -> ExpansionContext:
        return await build_context(
            self.workspace,
            args=args,
            turns=tab.messages,
            recent_count=self.settings.recent_turn_count,
        )

    async def _dialogue(self, tab: SessionTab, text: str, file_paths: Sequence[str] | None) -> DialogueOutcome:
        paths = list(file_paths or ())
        message = text
        if paths:
            listing = "\n".join(f"📎 {path}" for path in paths)
            message = f"{text}\n\n{listing}" if text else listing
        tab.append(ConversationTurn.user(self.settings.user_nickname, message, attachments=tuple(paths)))

        logger.info("dialogue.send tab={} session={} files={}", tab.tab_id, tab.session_id, len(paths))
        try:
            response = await self._backend.dispatch_dialogue(text, paths or None)
        except Exception as exc:
            logger.exception("dialogue.error tab={}", tab.tab_id)
            tab.append(ConversationTurn.error(f"Error: {exc}"))
            self.alerts.error("Agent Error", str(exc), tab_id=tab.tab_id)
            return DialogueOutcome(success=False, error=str(exc))

        if response.legacy_error is not None:
            tab.append(ConversationTurn.error(response.legacy_error, author=""))
            self.alerts.error("Agent Error", response.legacy_error, tab_id=tab.tab_id)
            return DialogueOutcome(success=False, error=response.legacy_error)

        # Batch turns were already filed by the reconciler while streaming.
        logger.debug("dialogue.batch tab={} turns={}", tab.tab_id, len(response.turns))
        return DialogueOutcome(success=True, turns=response.turns)

    # Built-in directives

    async def _run_directive(self, directive: BuiltinDirective, args: str, tab: SessionTab) -> DispatchResult:
        result = DispatchResult(status=DispatchStatus.OK, kind="directive", name=directive.name)
        try:
            match directive.name:
                case "help":
                    self._reply(result, tab, ConversationTurn.system(self.registry.help_text(args.strip() or None)))
                case "status":
                    self._reply(result, tab, ConversationTurn.system(await self._status_text(tab)))
                case "task":
                    await self._directive_task(result, tab, args)
                case "mode":
                    await self._directive_mode(result, tab, args)
                case "talk":
                    await self._directive_talk(result, tab, args)
                case "workspace":
                    await self._directive_workspace(result, tab, args)
                case "files":
                    self._reply(result, tab, ConversationTurn.system(self._files_text()))
        except Exception as exc:
            logger.exception("directive.error name={}", directive.name)
            self._fail(result, tab, f"/{directive.name} failed: {exc}", ErrorKind.BACKEND_INVOCATION_FAILURE)
            self.alerts.error("Error", str(exc), tab_id=tab.tab_id)
        return result

    def _reply(self, result: DispatchResult, tab: SessionTab, turn: ConversationTurn) -> None:
        tab.append(turn)
        result.turns.append(turn)
        result.output = turn.text

    def _fail(self, result: DispatchResult, tab: SessionTab, message: str, kind: ErrorKind | None = None) -> None:
        self._reply(result, tab, ConversationTurn.error(message))
        result.status = DispatchStatus.FAILED
        result.error = message
        result.error_kind = kind

    async def _status_text(self, tab: SessionTab) -> str:
        mode = await self._backend.get_conversation_mode()
        style = await self._backend.get_talk_style()
        lines = [
            "Status:",
            f"  Session: {tab.title or tab.session_id}",
            f"  Workspace: {self.workspace.name if self.workspace else '(none)'}",
            f"  Mode: {mode}",
            f"  Talk style: {style or 'none'}",
            f"  Open tabs: {len(self.tabs)}",
            f"  Custom commands: {len(self.registry.snapshot)}",
        ]
        return "\n".join(lines)

    async def _directive_task(self, result: DispatchResult, tab: SessionTab, args: str) -> None:
        description = args.strip()
        if not description:
            self._fail(result, tab, "Usage: /task <description>", ErrorKind.EMPTY_EXPANSION)
            return
        self._reply(result, tab, ConversationTurn.task(f"✅ Task: {description}"))
        root = self.workspace.root_path if self.workspace else None
        summary = await self._tasks.execute_task(tab.session_id, description, root)
        if summary:
            self._reply(result, tab, ConversationTurn.task(summary))
        self.alerts.info("Task Started", description, tab_id=tab.tab_id)

    async def _directive_mode(self, result: DispatchResult, tab: SessionTab, args: str) -> None:
        mode = args.strip().lower()
        if not mode:
            current = await self._backend.get_conversation_mode()
            self._reply(
                result,
                tab,
                ConversationTurn.system(f"Current mode: {current}\nAvailable modes: {', '.join(CONVERSATION_MODES)}"),
            )
            return
        if mode not in CONVERSATION_MODES:
            self._fail(result, tab, f"Unknown mode: {mode}\nAvailable modes: {', '.join(CONVERSATION_MODES)}")
            return
        await self._backend.set_conversation_mode(mode)
        self._reply(result, tab, ConversationTurn.system(f"🔄 Conversation mode set to: {mode}"))

    async def _directive_talk(self, result: DispatchResult, tab: SessionTab, args: str) -> None:
        style = args.strip().lower()
        if not style:
            current = await self._backend.get_talk_style()
            self._reply(
                result,
                tab,
                ConversationTurn.system(f"Current talk style: {current or 'none'}\nAvailable styles: {', '.join(TALK_STYLES)}"),
            )
            return
        if style not in TALK_STYLES:
            self._fail(result, tab, f"Unknown talk style: {style}\nAvailable styles: {', '.join(TALK_STYLES)}")
            return
        await self._backend.set_talk_style(None if style == "none" else style)
        self._reply(result, tab, ConversationTurn.system(f"💬 Talk style set to: {style}"))

    async def _directive_workspace(self, result: DispatchResult, tab: SessionTab, args: str) -> None:
        workspaces = await self._workspaces.list_workspaces()
        name = args.strip()
        if not name:
            current = self.workspace.id if self.workspace else None
            lines = [f"{'→' if item.id == current else ' '} {'⭐' if item.is_favorite else ' '} {item.name}" for item in workspaces]
            self._reply(result, tab, ConversationTurn.system("Workspaces:\n" + "\n".join(lines) if lines else "No workspaces."))
            return
        target = next((item for item in workspaces if item.name.lower() == name.lower()), None)
        if target is None:
            self._fail(result, tab, f"Workspace not found: {name}")
            return
        self.workspace = await self._workspaces.switch(tab.session_id, target.id)
        self._reply(result, tab, ConversationTurn.system(f"🗂️ Switched to workspace: {self.workspace.name}"))

    def _files_text(self) -> str:
        if self.workspace is None:
            return "No workspace selected."
        if not self.workspace.files:
            return f"No files in workspace {self.workspace.name}."
        lines = [f"📄 {item.name} ({item.size / 1024:.2f} KB)" for item in self.workspace.files]
        return f"Files in {self.workspace.name}:\n" + "\n".join(lines)

    async def _on_workspace_switched(self, event: WorkspaceSwitchedEvent) -> None:
        self.workspace = await self._workspaces.current()
        if self.workspace is not None:
            self.alerts.info("Workspace", f"Switched to {self.workspace.name}")

    # AutoChat

    async def start_auto_chat(
        self,
        tab_id: str,
        initial_input: str | None = None,
        config: AutoChatConfig | None = None,
    ) -> bool:
        tab = self.tabs.get(tab_id)
        if initial_input is None:
            initial_input, files = tab.take_input()
        else:
            files = []
        config = config or AutoChatConfig(max_iterations=self.settings.default_max_iterations)
        return await self.autochat.start(tab, initial_input, config, files or None)

    async def stop_auto_chat(self, tab_id: str) -> bool:
        return await self.autochat.stop(self.tabs.get(tab_id))

    # Command persistence

    async def save_command(self, command: CommandDefinition) -> None:
        if command.name in self.registry.directive_names():
            raise ReservedCommandNameError(f"/{command.name} is a built-in directive")
        await self._store.save_command(command)
        await self.registry.reload(self._store)

    async def remove_command(self, name: str) -> None:
        await self._store.remove_command(name)
        await self.registry.reload(self._store)

    async def toggle_favorite(self, name: str, is_favorite: bool) -> CommandDefinition:
        command = await self._store.toggle_favorite(name, is_favorite)
        await self.registry.reload(self._store)
        return command

    async def set_sort_order(self, name: str, sort_order: int) -> CommandDefinition:
        command = await self._store.set_sort_order(name, sort_order)
        await self.registry.reload(self._store)
        return command

    # Sessions

    async def open_session(self, session_id: str, *, activate: bool = True) -> SessionTab:
        existing = self.tabs.by_session(session_id)
        if existing is not None:
            return self.tabs.open_tab(session_id, activate=activate)
        loaded = await self._backend.switch_session(session_id)
        tab = self.tabs.open_tab(
            session_id,
            title=loaded.session.title,
            history=loaded.history,
            activate=activate,
        )
        tab.awaiting_confirmation = loaded.session.awaiting_confirmation
        return tab

    async def switch_session(self, tab_id: str, session_id: str) -> SessionTab:
        tab = self.tabs.get(tab_id)
        if tab.is_thinking:
            await self.autochat.stop(tab)
        loaded = await self._backend.switch_session(session_id)
        tab = self.tabs.rehydrate(tab_id, session_id, loaded.history, title=loaded.session.title)
        tab.awaiting_confirmation = loaded.session.awaiting_confirmation
        logger.info("session.switch tab={} session={} turns={}", tab_id, session_id, len(tab.messages))
        return tab

    async def refresh_active_session(self) -> SessionInfo | None:
        info = await self._backend.get_active_session()
        if info is not None:
            self.tabs.set_awaiting(info.id, info.awaiting_confirmation)
        return info
