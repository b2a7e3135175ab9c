"""Dispatch of resolved commands by kind."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum

from loguru import logger

from parley.alerts import AlertBus
from parley.backend import (
    ActionExecutor,
    ActionOutcome,
    ActionRequest,
    ShellExecutor,
    StreamedTurn,
    TaskOrchestrator,
)
from parley.core.commands import CommandDefinition, CommandKind, PipelineConfig
from parley.core.directives import BuiltinDirective
from parley.core.registry import CommandRegistry, CommandSnapshot, ResolvedCommand, ResolvedDirective
from parley.core.template import ExpansionContext, expand
from parley.errors import (
    BackendInvocationError,
    CommandDefinitionError,
    EmptyExpansionError,
    ErrorKind,
    PipelineCycleError,
)
from parley.session.message import ConversationTurn
from parley.session.tabs import SessionTab

PREV_OUTPUT_PLACEHOLDER = "{prev_output}"


class DispatchStatus(StrEnum):
    OK = "ok"
    FAILED = "failed"


@dataclass(frozen=True)
class StepResult:
    index: int
    command_name: str
    success: bool
    output: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class PipelineResult:
    success: bool
    steps: tuple[StepResult, ...] = ()
    final_output: str | None = None
    error: str | None = None
    failed_index: int | None = None


@dataclass
class DispatchResult:
    """Outcome of one dispatch, with the turns it appended to the tab."""

    status: DispatchStatus
    kind: str
    name: str
    turns: list[ConversationTurn] = field(default_factory=list)
    output: str | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    pipeline: PipelineResult | None = None

    @property
    def success(self) -> bool:
        return self.status is DispatchStatus.OK


@dataclass(frozen=True)
class DialogueOutcome:
    """What the plain-dialogue path reports back to a prompt dispatch."""

    success: bool
    turns: tuple[StreamedTurn, ...] = ()
    error: str | None = None

    @property
    def last_reply(self) -> str | None:
        for turn in reversed(self.turns):
            if turn.author:
                return turn.content
        return None


SubmitDialogue = Callable[[SessionTab, str, Sequence[str] | None], Awaitable[DialogueOutcome]]
DirectiveHandler = Callable[[BuiltinDirective, str, SessionTab], Awaitable[DispatchResult]]


class _Recorder:
    """Append turns to the tab and remember them for the result."""

    def __init__(self, tab: SessionTab) -> None:
        self.tab = tab
        self.turns: list[ConversationTurn] = []

    def add(self, turn: ConversationTurn) -> ConversationTurn:
        self.tab.append(turn)
        self.turns.append(turn)
        return turn


class DispatchEngine:
    """Execute resolved commands against the external collaborators."""

    def __init__(
        self,
        registry: CommandRegistry,
        *,
        shell: ShellExecutor,
        tasks: TaskOrchestrator,
        actions: ActionExecutor,
        alerts: AlertBus,
        submit_dialogue: SubmitDialogue,
        directive_handler: DirectiveHandler | None = None,
    ) -> None:
        self._registry = registry
        self._shell = shell
        self._tasks = tasks
        self._actions = actions
        self._alerts = alerts
        self._submit_dialogue = submit_dialogue
        self._directive_handler = directive_handler

    async def dispatch(
        self,
        resolved: ResolvedCommand,
        ctx: ExpansionContext,
        tab: SessionTab,
        *,
        file_paths: Sequence[str] | None = None,
    ) -> DispatchResult:
        if isinstance(resolved, ResolvedDirective):
            if self._directive_handler is None:
                raise LookupError(f"no handler for directive /{resolved.name}")
            return await self._directive_handler(resolved.directive, ctx.args, tab)
        return await self.run_command(resolved.definition, ctx, tab, file_paths=file_paths)

    async def run_command(
        self,
        command: CommandDefinition,
        ctx: ExpansionContext,
        tab: SessionTab,
        *,
        file_paths: Sequence[str] | None = None,
        stack: tuple[str, ...] = (),
    ) -> DispatchResult:
        start = time.monotonic()
        logger.info("dispatch.start kind={} name={} tab={}", command.kind, command.name, tab.tab_id)
        recorder = _Recorder(tab)
        match command.kind:
            case CommandKind.PROMPT:
                result = await self._run_prompt(command, ctx, recorder, file_paths)
            case CommandKind.SHELL:
                result = await self._run_shell(command, ctx, recorder)
            case CommandKind.TASK:
                result = await self._run_task(command, ctx, recorder)
            case CommandKind.ACTION:
                result = await self._run_action(command, ctx, recorder)
            case CommandKind.PIPELINE:
                result = await self._run_pipeline(command, ctx, recorder, file_paths, stack)
        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "dispatch.end kind={} name={} status={} elapsed_ms={}",
            command.kind,
            command.name,
            result.status,
            elapsed_ms,
        )
        return result

    def _failed(
        self,
        command: CommandDefinition,
        recorder: _Recorder,
        message: str,
        kind: ErrorKind,
        *,
        alert_title: str | None = None,
        pipeline: PipelineResult | None = None,
    ) -> DispatchResult:
        recorder.add(ConversationTurn.error(message))
        if alert_title is not None:
            self._alerts.error(alert_title, message, tab_id=recorder.tab.tab_id)
        logger.warning("dispatch.failed name={} error_kind={} message={!r}", command.name, kind, message)
        return DispatchResult(
            status=DispatchStatus.FAILED,
            kind=command.kind,
            name=command.name,
            turns=recorder.turns,
            error=message,
            error_kind=kind,
            pipeline=pipeline,
        )

    def _ok(self, command: CommandDefinition, recorder: _Recorder, output: str | None) -> DispatchResult:
        return DispatchResult(
            status=DispatchStatus.OK,
            kind=command.kind,
            name=command.name,
            turns=recorder.turns,
            output=output,
        )

    async def _run_prompt(
        self,
        command: CommandDefinition,
        ctx: ExpansionContext,
        recorder: _Recorder,
        file_paths: Sequence[str] | None,
    ) -> DispatchResult:
        text = expand(command.content, ctx)
        if not text.strip():
            error = EmptyExpansionError(command.name)
            return self._failed(command, recorder, str(error), ErrorKind.EMPTY_EXPANSION)

        recorder.add(ConversationTurn.system(f"✨ Executing custom command: /{command.name}"))
        before = len(recorder.tab.messages)
        outcome = await self._submit_dialogue(recorder.tab, text, file_paths)
        recorder.turns.extend(recorder.tab.messages[before:])
        if not outcome.success:
            return DispatchResult(
                status=DispatchStatus.FAILED,
                kind=command.kind,
                name=command.name,
                turns=recorder.turns,
                error=outcome.error,
                error_kind=ErrorKind.BACKEND_INVOCATION_FAILURE,
            )
        return self._ok(command, recorder, outcome.last_reply or text)

    async def _run_shell(self, command: CommandDefinition, ctx: ExpansionContext, recorder: _Recorder) -> DispatchResult:
        line = expand(command.content, ctx)
        if not line.strip():
            return self._failed(command, recorder, str(EmptyExpansionError(command.name)), ErrorKind.EMPTY_EXPANSION)
        working_dir = expand(command.working_dir, ctx) if command.working_dir else None

        recorder.add(ConversationTurn.system(f"⚡ Executing shell command: /{command.name}"))
        if working_dir:
            recorder.add(ConversationTurn.shell_output(f"(cwd: {working_dir})"))
        recorder.add(ConversationTurn.shell_output(f"$ {line}"))

        try:
            result = await self._shell.run(line, working_dir)
        except Exception as exc:
            error = BackendInvocationError(f"Shell command failed: {exc}")
            return self._failed(command, recorder, str(error), ErrorKind.BACKEND_INVOCATION_FAILURE, alert_title="Error")

        output = "\n".join(part for part in (result.stdout, result.stderr) if part)
        if not result.ok:
            message = f"Shell command failed: exit={result.exit_code}: {output or '(no output)'}"
            return self._failed(command, recorder, message, ErrorKind.SHELL_NON_ZERO_EXIT, alert_title="Shell Error")

        recorder.add(ConversationTurn.shell_output(output or "(no output)"))
        return self._ok(command, recorder, output)

    async def _run_task(self, command: CommandDefinition, ctx: ExpansionContext, recorder: _Recorder) -> DispatchResult:
        description = ctx.args.strip() or expand(command.content, ctx).strip()
        if not description:
            return self._failed(command, recorder, str(EmptyExpansionError(command.name)), ErrorKind.EMPTY_EXPANSION)

        recorder.add(ConversationTurn.task(f"{command.icon} /{command.name}: {description}"))
        try:
            summary = await self._tasks.execute_task(recorder.tab.session_id, description, ctx.workspace_path)
        except Exception as exc:
            message = str(BackendInvocationError(f"Task execution failed: {exc}"))
            return self._failed(command, recorder, message, ErrorKind.BACKEND_INVOCATION_FAILURE, alert_title="Error")

        if summary:
            recorder.add(ConversationTurn.task(summary))
        self._alerts.info("Task Started", f"/{command.name} task is running", tab_id=recorder.tab.tab_id)
        return self._ok(command, recorder, summary or description)

    async def _run_action(self, command: CommandDefinition, ctx: ExpansionContext, recorder: _Recorder) -> DispatchResult:
        prompt = expand(command.content, ctx, include_session=True)
        if not prompt.strip():
            return self._failed(command, recorder, str(EmptyExpansionError(command.name)), ErrorKind.EMPTY_EXPANSION)

        config = command.action_config
        request = ActionRequest(
            command_name=command.name,
            prompt=prompt,
            backend=config.backend if config else None,
            model_name=config.model_name if config else None,
            persona_id=config.persona_id if config else None,
            thinking_level=config.thinking_level if config else None,
            google_search=config.google_search if config else None,
        )
        try:
            outcome = await self._actions.execute_action(request)
        except Exception as exc:
            message = str(BackendInvocationError(f"Action /{command.name} failed: {exc}"))
            return self._failed(command, recorder, message, ErrorKind.BACKEND_INVOCATION_FAILURE, alert_title="Error")

        recorder.add(
            ConversationTurn.action_result(
                action_header(command, outcome) + "\n\n" + outcome.result,
                backend=outcome.persona.backend if outcome.persona else request.backend,
            )
        )
        self._alerts.success("Action Completed", f"/{command.name} completed", tab_id=recorder.tab.tab_id)
        return self._ok(command, recorder, outcome.result)

    async def _run_pipeline(
        self,
        command: CommandDefinition,
        ctx: ExpansionContext,
        recorder: _Recorder,
        file_paths: Sequence[str] | None,
        stack: tuple[str, ...],
    ) -> DispatchResult:
        config = command.pipeline_config
        if config is None:
            raise CommandDefinitionError(f"pipeline /{command.name} has no pipeline config")
        stack = (*stack, command.name)
        snapshot = self._registry.snapshot
        recorder.add(ConversationTurn.system(f"🔗 Running pipeline /{command.name} ({len(config.steps)} steps)"))

        steps: list[StepResult] = []
        prev_output: str | None = None
        failed_index: int | None = None
        first_error: str | None = None
        for index, step in enumerate(config.steps):
            args = step_args(step.args, ctx.args if index == 0 else None, prev_output, config)
            step_ctx = ctx.with_args(args).with_prev_output(prev_output if config.chain_output else None)
            step_result = await self._run_step(index, step.command_name, snapshot, step_ctx, recorder, file_paths, stack)
            steps.append(step_result)
            logger.debug(
                "pipeline.step name={} index={} step={} success={}",
                command.name,
                index,
                step.command_name,
                step_result.success,
            )
            if step_result.success:
                prev_output = step_result.output
                continue
            if failed_index is None:
                failed_index = index
                first_error = step_result.error
            if config.fail_on_error:
                break

        pipeline = PipelineResult(
            success=failed_index is None,
            steps=tuple(steps),
            final_output=prev_output,
            error=first_error,
            failed_index=failed_index,
        )
        if failed_index is not None:
            failed_step = config.steps[failed_index]
            message = f"Pipeline /{command.name} failed at step {failed_index + 1} (/{failed_step.command_name}): {first_error}"
            return self._failed(
                command, recorder, message, ErrorKind.PIPELINE_STEP_FAILURE, alert_title="Pipeline Failed", pipeline=pipeline
            )

        recorder.add(ConversationTurn.system(f"✅ Pipeline /{command.name} completed"))
        result = self._ok(command, recorder, prev_output)
        result.pipeline = pipeline
        return result

    async def _run_step(
        self,
        index: int,
        name: str,
        snapshot: CommandSnapshot,
        ctx: ExpansionContext,
        recorder: _Recorder,
        file_paths: Sequence[str] | None,
        stack: tuple[str, ...],
    ) -> StepResult:
        if name in stack:
            error = PipelineCycleError([*stack, name])
            recorder.add(ConversationTurn.error(str(error)))
            return StepResult(index=index, command_name=name, success=False, error=str(error))

        definition = snapshot.get(name)
        if definition is None:
            message = f"Unknown command: /{name}"
            recorder.add(ConversationTurn.error(message))
            return StepResult(index=index, command_name=name, success=False, error=message)

        result = await self.run_command(definition, ctx, recorder.tab, file_paths=file_paths, stack=stack)
        recorder.turns.extend(result.turns)
        return StepResult(index=index, command_name=name, success=result.success, output=result.output, error=result.error)


def step_args(raw: str | None, invocation_args: str | None, prev_output: str | None, config: PipelineConfig) -> str:
    """Build one step's args, splicing in the previous step's output."""
    args = raw if raw is not None else (invocation_args or "")
    if not config.chain_output or prev_output is None:
        return args
    if PREV_OUTPUT_PLACEHOLDER in args:
        return args.replace(PREV_OUTPUT_PLACEHOLDER, prev_output)
    return f"{args}\n\n{prev_output}" if args else prev_output


def action_header(command: CommandDefinition, outcome: ActionOutcome) -> str:
    header = f"{command.icon or '⚡'} /{command.name}"
    if outcome.persona is not None:
        persona = outcome.persona
        header += f" by {persona.icon or '👤'} {persona.name} ({persona.backend})"
    return header
