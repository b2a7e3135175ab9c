"""Application-level exception types for Parley."""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    """Failure taxonomy shared by dispatch, reconciliation and the CLI."""

    # Reserved: the input grammar is deterministic, so parse never reports it.
    PARSE_AMBIGUITY = "parse_ambiguity"
    UNKNOWN_COMMAND = "unknown_command"
    EMPTY_EXPANSION = "empty_expansion"
    TEMPLATE_VARIABLE_UNRESOLVED = "template_variable_unresolved"
    SHELL_NON_ZERO_EXIT = "shell_non_zero_exit"
    PIPELINE_STEP_FAILURE = "pipeline_step_failure"
    BACKEND_INVOCATION_FAILURE = "backend_invocation_failure"
    STREAMED_ERROR_TURN = "streamed_error_turn"


class ParleyError(Exception):
    """Base exception for Parley."""


class CommandDefinitionError(ParleyError):
    """Raised when a command table cannot be accepted."""


class DuplicateCommandError(CommandDefinitionError):
    """Raised when two custom commands share one name."""


class ReservedCommandNameError(CommandDefinitionError):
    """Raised when a custom command shadows a built-in directive without override."""


class CommandNotFoundError(ParleyError):
    """Raised by stores when a mutation targets a missing command."""


class ExpansionError(ParleyError):
    """Raised when a command template cannot produce dispatchable text."""


class EmptyExpansionError(ExpansionError):
    """Raised when a template expands to whitespace only."""

    def __init__(self, command_name: str) -> None:
        super().__init__(f"Command /{command_name} produced empty content.")
        self.command_name = command_name


class BackendInvocationError(ParleyError):
    """Raised when a call to an external collaborator fails."""


class PipelineCycleError(ParleyError):
    """Raised when a pipeline step re-enters a pipeline already running."""

    def __init__(self, chain: list[str]) -> None:
        super().__init__("pipeline cycle: " + " -> ".join(f"/{name}" for name in chain))
        self.chain = chain


class TabNotFoundError(ParleyError):
    """Raised when an operation targets a tab that is not open."""


class TabBusyError(ParleyError):
    """Raised when a tab already has an outstanding dispatch."""
