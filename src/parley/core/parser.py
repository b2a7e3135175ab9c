"""Input classification and mention extraction."""

from __future__ import annotations

import re
from collections.abc import Collection
from functools import lru_cache

from parley.core.directives import BUILTIN_DIRECTIVE_NAMES
from parley.core.types import CustomCommand, Directive, Intent, Mention, PlainText

COMMAND_PREFIX = "/"
MENTION_DELIMITER = "@"
MENTION_SEPARATOR = "_"

SLASH_BLOCK_RE = re.compile(r"<Slash>(.*?)</Slash>", re.IGNORECASE | re.DOTALL)
SLASH_NAME_RE = re.compile(r"<Name>(.*?)</Name>", re.IGNORECASE | re.DOTALL)
SLASH_ARGS_RE = re.compile(r"<Args>(.*?)</Args>", re.IGNORECASE | re.DOTALL)


@lru_cache(maxsize=8)
def _mention_re(delimiter: str) -> re.Pattern[str]:
    return re.compile(rf"{re.escape(delimiter)}(\S+)")


def parse(
    raw: str,
    *,
    directives: Collection[str] = BUILTIN_DIRECTIVE_NAMES,
    prefix: str = COMMAND_PREFIX,
    delimiter: str = MENTION_DELIMITER,
) -> Intent:
    """Classify one line of raw input.

    Only input whose first character is the prefix, immediately followed by a
    non-whitespace character, is a command. Everything else is returned as
    plain text unchanged.
    """
    if not raw.startswith(prefix) or len(raw) == len(prefix) or raw[len(prefix)].isspace():
        return PlainText(text=raw, mentions=tuple(extract_mentions(raw, delimiter=delimiter)))

    body = raw[len(prefix) :]
    name = body.split(maxsplit=1)[0]
    tail_start = len(prefix) + len(name)
    args = raw[tail_start:].split()
    mentions = tuple(
        Mention(
            raw_token=mention.raw_token,
            display_name=mention.display_name,
            start_index=mention.start_index + tail_start,
            end_index=mention.end_index + tail_start,
        )
        for mention in extract_mentions(raw[tail_start:], delimiter=delimiter)
    )
    if name in directives:
        return Directive(name=name, args=args, args_text=" ".join(args), mentions=mentions)
    return CustomCommand(name=name, args=args, args_text=" ".join(args), mentions=mentions)


def extract_mentions(text: str, *, delimiter: str = MENTION_DELIMITER) -> list[Mention]:
    """Find every `@token` in text; the text itself is left untouched."""
    mentions: list[Mention] = []
    for match in _mention_re(delimiter).finditer(text):
        token = match.group(1)
        mentions.append(
            Mention(
                raw_token=token,
                display_name=token.replace(MENTION_SEPARATOR, " "),
                start_index=match.start(),
                end_index=match.end(),
            )
        )
    return mentions


def current_mention(text: str, cursor: int, *, delimiter: str = MENTION_DELIMITER) -> str | None:
    """Return the partial mention being typed just before the cursor, if any."""
    before = text[:cursor]
    index = before.rfind(delimiter)
    if index < 0:
        return None
    partial = before[index + len(delimiter) :]
    if any(ch.isspace() for ch in partial):
        return None
    return partial


def extract_slash_commands(text: str, *, prefix: str = COMMAND_PREFIX) -> list[str]:
    """Extract `<Slash>` blocks emitted by agents as command lines."""
    commands: list[str] = []
    for block in SLASH_BLOCK_RE.finditer(text):
        inner = block.group(1)
        name_match = SLASH_NAME_RE.search(inner)
        if name_match is None:
            continue
        name = name_match.group(1).strip().lstrip(prefix)
        if not name:
            continue
        args_match = SLASH_ARGS_RE.search(inner)
        args = args_match.group(1).strip() if args_match else ""
        commands.append(f"{prefix}{name} {args}".strip() if args else f"{prefix}{name}")
    return commands
