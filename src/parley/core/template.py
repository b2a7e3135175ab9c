"""Command template expansion.

Templates reference runtime values with `{name}` placeholders. Expansion is
pure: every value comes from an `ExpansionContext` the caller assembled
beforehand. Placeholders that cannot be resolved are kept verbatim so newer
templates keep working with older clients.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from parley.errors import ErrorKind

if TYPE_CHECKING:
    from parley.session.message import ConversationTurn

PLACEHOLDER_RE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")
TRANSCRIPT_DELIMITER = "---\n"
DEFAULT_RECENT_COUNT = 10
UNKNOWN_BRANCH = "unknown"
UNAVAILABLE_STATUS = "unavailable"

WORKSPACE_VARIABLES = frozenset({"workspace", "workspace_path", "files"})
SESSION_VARIABLES = frozenset({"session_all", "session_recent"})


@dataclass(frozen=True)
class FileEntry:
    name: str
    path: Path


@dataclass(frozen=True)
class ExpansionContext:
    """Runtime values available to command templates."""

    workspace_name: str | None = None
    workspace_path: Path | None = None
    files: tuple[FileEntry, ...] = ()
    git_branch: str = UNKNOWN_BRANCH
    git_status: str = UNAVAILABLE_STATUS
    args: str = ""
    transcript: str = ""
    recent_count: int = DEFAULT_RECENT_COUNT
    prev_output: str | None = None

    def with_args(self, args: str) -> ExpansionContext:
        return replace(self, args=args)

    def with_prev_output(self, output: str | None) -> ExpansionContext:
        return replace(self, prev_output=output)

    @property
    def has_workspace(self) -> bool:
        return self.workspace_name is not None


@dataclass(frozen=True)
class Expansion:
    text: str
    unresolved: tuple[str, ...] = field(default_factory=tuple)


def format_file_list(files: Iterable[FileEntry]) -> str:
    return "\n".join(f"- {entry.name} ({entry.path})" for entry in files)


def recent_slice(transcript: str, count: int) -> str:
    if count <= 0:
        return ""
    blocks = transcript.split(TRANSCRIPT_DELIMITER)
    return TRANSCRIPT_DELIMITER.join(blocks[-count:])


def render_transcript(turns: Sequence[ConversationTurn]) -> str:
    """Render turns as plain text blocks separated by the transcript delimiter."""
    blocks = [f"{turn.author or 'Error'}: {turn.text}\n" for turn in turns]
    return TRANSCRIPT_DELIMITER.join(blocks)


def _value_for(name: str, ctx: ExpansionContext, *, include_session: bool) -> str | None:
    if name in WORKSPACE_VARIABLES and not ctx.has_workspace:
        return None
    if name in SESSION_VARIABLES and not include_session:
        return None
    match name:
        case "workspace":
            return ctx.workspace_name
        case "workspace_path":
            return str(ctx.workspace_path) if ctx.workspace_path is not None else ""
        case "files":
            return format_file_list(ctx.files)
        case "git_branch":
            return ctx.git_branch
        case "git_status":
            return ctx.git_status
        case "args":
            return ctx.args
        case "prev_output":
            return ctx.prev_output
        case "session_all":
            return ctx.transcript
        case "session_recent":
            return recent_slice(ctx.transcript, ctx.recent_count)
    return None


def expand_report(template: str, ctx: ExpansionContext, *, include_session: bool = False) -> Expansion:
    """Expand a template and report which placeholders were left as-is."""
    unresolved: list[str] = []

    def _substitute(match: re.Match[str]) -> str:
        value = _value_for(match.group(1), ctx, include_session=include_session)
        if value is None:
            unresolved.append(match.group(1))
            return match.group(0)
        return value

    text = PLACEHOLDER_RE.sub(_substitute, template)
    if unresolved:
        logger.warning(
            "template.unresolved kind={} placeholders={}", ErrorKind.TEMPLATE_VARIABLE_UNRESOLVED, ",".join(unresolved)
        )
    return Expansion(text=text, unresolved=tuple(unresolved))


def expand(template: str, ctx: ExpansionContext, *, include_session: bool = False) -> str:
    return expand_report(template, ctx, include_session=include_session).text
