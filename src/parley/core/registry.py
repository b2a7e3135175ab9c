"""Command registry and resolver."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

from loguru import logger
from rapidfuzz import fuzz, process

from parley.core.commands import CommandDefinition
from parley.core.directives import BUILTIN_DIRECTIVE_NAMES, BUILTIN_DIRECTIVES, BuiltinDirective, find_directive
from parley.errors import DuplicateCommandError, ReservedCommandNameError

MIN_FUZZY_SCORE = 70

if TYPE_CHECKING:
    from parley.backend import CommandStore


@dataclass(frozen=True)
class CommandSnapshot:
    """Immutable view of the custom command table."""

    version: int
    commands: MappingProxyType[str, CommandDefinition]
    overrides: frozenset[str] = field(default_factory=frozenset)

    def get(self, name: str) -> CommandDefinition | None:
        return self.commands.get(name)

    def __len__(self) -> int:
        return len(self.commands)


@dataclass(frozen=True)
class ResolvedDirective:
    directive: BuiltinDirective

    @property
    def name(self) -> str:
        return self.directive.name


@dataclass(frozen=True)
class ResolvedCustom:
    definition: CommandDefinition

    @property
    def name(self) -> str:
        return self.definition.name


@dataclass(frozen=True)
class NotFound:
    name: str


ResolvedCommand = ResolvedDirective | ResolvedCustom
Resolution = ResolvedDirective | ResolvedCustom | NotFound


@dataclass(frozen=True)
class CommandSuggestion:
    name: str
    icon: str
    usage: str
    description: str
    is_custom: bool


def _empty_snapshot() -> CommandSnapshot:
    return CommandSnapshot(version=0, commands=MappingProxyType({}))


class CommandRegistry:
    """Holds built-in directives plus the current custom command snapshot.

    Writers build a complete new snapshot and swap it in with one assignment, so
    a reader that grabbed `snapshot` never sees a partially updated table.
    """

    def __init__(self, commands: Iterable[CommandDefinition] = (), *, override: Iterable[str] = ()) -> None:
        self._snapshot = _empty_snapshot()
        self.replace(commands, override=override)

    @property
    def snapshot(self) -> CommandSnapshot:
        return self._snapshot

    @property
    def version(self) -> int:
        return self._snapshot.version

    def replace(self, commands: Iterable[CommandDefinition], *, override: Iterable[str] = ()) -> CommandSnapshot:
        overrides = frozenset(override)
        table: dict[str, CommandDefinition] = {}
        for command in commands:
            if command.name in table:
                raise DuplicateCommandError(f"duplicate command name: /{command.name}")
            if command.name in BUILTIN_DIRECTIVE_NAMES and command.name not in overrides:
                raise ReservedCommandNameError(f"/{command.name} is a built-in directive")
            table[command.name] = command

        snapshot = CommandSnapshot(
            version=self._snapshot.version + 1,
            commands=MappingProxyType(table),
            overrides=overrides,
        )
        self._snapshot = snapshot
        logger.debug("registry.replace version={} commands={}", snapshot.version, len(table))
        return snapshot

    async def reload(self, store: CommandStore) -> CommandSnapshot:
        commands = await store.list_commands()
        return self.replace(commands, override=self._snapshot.overrides)

    def directive_names(self) -> frozenset[str]:
        return BUILTIN_DIRECTIVE_NAMES - self._snapshot.overrides

    def resolve(self, name: str) -> Resolution:
        snapshot = self._snapshot
        if name not in snapshot.overrides:
            directive = find_directive(name)
            if directive is not None:
                return ResolvedDirective(directive)
        command = snapshot.get(name)
        if command is not None:
            return ResolvedCustom(command)
        return NotFound(name)

    def custom(self, name: str) -> CommandDefinition | None:
        return self._snapshot.get(name)

    def commands(self) -> list[CommandDefinition]:
        return sorted(self._snapshot.commands.values(), key=lambda item: item.name)

    def favorites(self) -> list[CommandDefinition]:
        favorites = [command for command in self._snapshot.commands.values() if command.is_favorite]
        return sorted(favorites, key=lambda item: (item.sort_order is None, item.sort_order or 0, item.name))

    def suggestions(self) -> list[CommandSuggestion]:
        rows = [
            CommandSuggestion(
                name=directive.name,
                icon=directive.icon,
                usage=directive.usage,
                description=directive.description,
                is_custom=False,
            )
            for directive in BUILTIN_DIRECTIVES
            if directive.name not in self._snapshot.overrides
        ]
        rows.extend(
            CommandSuggestion(
                name=command.name,
                icon=command.icon,
                usage=command.usage,
                description=command.description,
                is_custom=True,
            )
            for command in self.commands()
        )
        return rows

    def filter_commands(self, query: str, *, prefix: str = "/") -> list[CommandSuggestion]:
        needle = query.removeprefix(prefix).lower()
        rows = self.suggestions()
        if not needle:
            return rows
        matches = [row for row in rows if row.name.lower().startswith(needle) or needle in row.description.lower()]
        if matches:
            return matches
        by_name = {row.name: row for row in rows}
        fuzzy = process.extract(needle, list(by_name), scorer=fuzz.WRatio, score_cutoff=MIN_FUZZY_SCORE, limit=5)
        return [by_name[name] for name, _score, _index in fuzzy]

    def closest(self, name: str) -> str | None:
        """Best fuzzy match among known command names, for typo hints."""
        candidates = sorted(self.directive_names() | set(self._snapshot.commands))
        best = process.extractOne(name, candidates, scorer=fuzz.WRatio, score_cutoff=MIN_FUZZY_SCORE)
        return best[0] if best is not None else None

    def help_text(self, name: str | None = None) -> str:
        if not name:
            lines = [f"{row.icon} {row.usage:<25} - {row.description}" for row in self.suggestions()]
            return "Available commands:\n" + "\n".join(lines)

        resolved = self.resolve(name)
        if isinstance(resolved, NotFound):
            return f"Unknown command: /{name}"
        if isinstance(resolved, ResolvedDirective):
            directive = resolved.directive
            text = f"{directive.icon} {directive.usage}\n\n{directive.description}"
            if directive.args_description:
                text += f"\n\nArguments:\n  {directive.args_description}"
            if directive.examples:
                text += "\n\nExamples:\n" + "\n".join(f"  {example}" for example in directive.examples)
            return text

        command = resolved.definition
        text = f"{command.icon} {command.usage}\n\n{command.description}\n\nType: {command.kind}"
        if command.args_description:
            text += f"\n\nArguments:\n  {command.args_description}"
        return text

    def system_prompt_block(self) -> str:
        """Describe commands flagged for inclusion in agent system prompts."""
        rows = [
            f"- /{command.name}: {command.description}" + (f" (args: {command.args_description})" if command.args_description else "")
            for command in self.commands()
            if command.include_in_system_prompt
        ]
        if not rows:
            return ""
        return "Available slash commands:\n" + "\n".join(rows)
