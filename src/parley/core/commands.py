"""Custom command definitions."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class CommandKind(StrEnum):
    """How a custom command is executed."""

    PROMPT = "prompt"
    SHELL = "shell"
    TASK = "task"
    ACTION = "action"
    PIPELINE = "pipeline"


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore", protected_namespaces=())


class ActionConfig(_Record):
    """Execution overrides for action commands."""

    backend: str | None = None
    model_name: str | None = Field(default=None, alias="modelName")
    persona_id: str | None = Field(default=None, alias="personaId")
    thinking_level: str | None = Field(default=None, alias="geminiThinkingLevel")
    google_search: bool | None = Field(default=None, alias="geminiGoogleSearch")


class PipelineStep(_Record):
    command_name: str = Field(alias="commandName")
    args: str | None = None


class PipelineConfig(_Record):
    steps: list[PipelineStep] = Field(min_length=1)
    fail_on_error: bool = Field(default=True, alias="failOnError")
    chain_output: bool = Field(default=True, alias="chainOutput")


class CommandDefinition(_Record):
    """A user-defined command, identified by `name` alone."""

    name: str
    icon: str = "⚡"
    description: str = ""
    kind: CommandKind = Field(alias="type")
    content: str = ""
    working_dir: str | None = Field(default=None, alias="workingDir")
    args_description: str | None = Field(default=None, alias="argsDescription")
    action_config: ActionConfig | None = Field(default=None, alias="actionConfig")
    pipeline_config: PipelineConfig | None = Field(default=None, alias="pipelineConfig")
    include_in_system_prompt: bool = Field(default=False, alias="includeInSystemPrompt")
    is_favorite: bool = Field(default=False, alias="isFavorite")
    sort_order: int | None = Field(default=None, alias="sortOrder")

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        name = value.strip()
        if not name:
            raise ValueError("command name must not be empty")
        if any(ch.isspace() for ch in name):
            raise ValueError(f"command name must not contain whitespace: {value!r}")
        if name.startswith("/"):
            raise ValueError(f"command name must not start with '/': {value!r}")
        return name

    @model_validator(mode="after")
    def _check_kind_config(self) -> CommandDefinition:
        if self.kind is CommandKind.PIPELINE:
            if self.pipeline_config is None:
                raise ValueError(f"pipeline command /{self.name} needs a pipeline config")
            if any(step.command_name == self.name for step in self.pipeline_config.steps):
                raise ValueError(f"pipeline command /{self.name} cannot reference itself")
        elif self.pipeline_config is not None:
            raise ValueError(f"/{self.name} is a {self.kind} command and cannot carry a pipeline config")
        if self.action_config is not None and self.kind is not CommandKind.ACTION:
            raise ValueError(f"/{self.name} is a {self.kind} command and cannot carry an action config")
        return self

    @property
    def uses_args(self) -> bool:
        return "{args}" in self.content or "{args}" in (self.working_dir or "") or bool(self.args_description)

    @property
    def usage(self) -> str:
        return f"/{self.name} <args>" if self.uses_args else f"/{self.name}"

    def to_record(self) -> dict[str, object]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
