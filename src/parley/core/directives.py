"""Built-in directive table."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class BuiltinDirective:
    """A directive handled by the client itself."""

    name: str
    icon: str
    usage: str
    description: str
    args_description: str | None = None
    examples: tuple[str, ...] = field(default_factory=tuple)


CONVERSATION_MODES = ("normal", "concise", "brief", "discussion")
TALK_STYLES = (
    "brainstorm",
    "casual",
    "decision_making",
    "debate",
    "problem_solving",
    "review",
    "planning",
    "none",
)

BUILTIN_DIRECTIVES: tuple[BuiltinDirective, ...] = (
    BuiltinDirective(
        name="help",
        icon="❓",
        usage="/help [command]",
        description="Show available commands and their usage",
        args_description="Optional command name to show detailed help",
        examples=("/help", "/help task"),
    ),
    BuiltinDirective(
        name="status",
        icon="📊",
        usage="/status",
        description="Display current session status",
        examples=("/status",),
    ),
    BuiltinDirective(
        name="task",
        icon="✅",
        usage="/task <description>",
        description="Create an orchestrated task from the provided description",
        args_description="Describe the work you want executed",
        examples=("/task Implement login feature", "/task Fix bug in parser"),
    ),
    BuiltinDirective(
        name="mode",
        icon="🔄",
        usage="/mode [" + "|".join(CONVERSATION_MODES) + "]",
        description="Change conversation mode to control agent verbosity",
        args_description=" / ".join(CONVERSATION_MODES),
        examples=("/mode", "/mode concise"),
    ),
    BuiltinDirective(
        name="talk",
        icon="💬",
        usage="/talk [" + "|".join(TALK_STYLES) + "]",
        description="Set dialogue style for multi-agent collaboration",
        args_description=" / ".join(TALK_STYLES),
        examples=("/talk", "/talk brainstorm"),
    ),
    BuiltinDirective(
        name="workspace",
        icon="🗂️",
        usage="/workspace [name]",
        description="Switch to a different workspace or list all available workspaces",
        args_description="Workspace name (optional)",
        examples=("/workspace", "/workspace my-project"),
    ),
    BuiltinDirective(
        name="files",
        icon="📁",
        usage="/files",
        description="List files saved to workspace storage",
        examples=("/files",),
    ),
)

BUILTIN_DIRECTIVE_NAMES: frozenset[str] = frozenset(directive.name for directive in BUILTIN_DIRECTIVES)


def find_directive(name: str) -> BuiltinDirective | None:
    for directive in BUILTIN_DIRECTIVES:
        if directive.name == name:
            return directive
    return None
