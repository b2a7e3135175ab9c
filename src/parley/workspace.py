"""Expansion context assembly from workspace and git state."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path

from loguru import logger

from parley.backend import WorkspaceInfo
from parley.core.template import (
    DEFAULT_RECENT_COUNT,
    UNAVAILABLE_STATUS,
    UNKNOWN_BRANCH,
    ExpansionContext,
    FileEntry,
    render_transcript,
)
from parley.session.message import ConversationTurn

GIT_TIMEOUT_SECONDS = 5


async def _git(root: Path, *args: str) -> str | None:
    try:
        process = await asyncio.create_subprocess_exec(
            "git",
            *args,
            cwd=str(root),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError as exc:
        logger.debug("workspace.git.unavailable error={}", exc)
        return None
    try:
        async with asyncio.timeout(GIT_TIMEOUT_SECONDS):
            stdout, _ = await process.communicate()
    except TimeoutError:
        process.kill()
        await process.wait()
        return None
    if process.returncode != 0:
        return None
    return (stdout or b"").decode("utf-8", errors="replace").strip()


async def read_git_branch(root: Path | None) -> str:
    if root is None:
        return UNKNOWN_BRANCH
    branch = await _git(root, "rev-parse", "--abbrev-ref", "HEAD")
    return branch or UNKNOWN_BRANCH


async def read_git_status(root: Path | None) -> str:
    if root is None:
        return UNAVAILABLE_STATUS
    status = await _git(root, "status", "--short")
    return status if status is not None else UNAVAILABLE_STATUS


async def build_context(
    workspace: WorkspaceInfo | None,
    *,
    args: str = "",
    turns: Sequence[ConversationTurn] = (),
    recent_count: int = DEFAULT_RECENT_COUNT,
) -> ExpansionContext:
    """Snapshot everything a template may reference, before expansion."""
    root = workspace.root_path if workspace is not None else None
    branch, status = await asyncio.gather(read_git_branch(root), read_git_status(root))
    return ExpansionContext(
        workspace_name=workspace.name if workspace is not None else None,
        workspace_path=root,
        files=tuple(FileEntry(name=item.name, path=item.path) for item in workspace.files) if workspace is not None else (),
        git_branch=branch,
        git_status=status,
        args=args,
        transcript=render_transcript(turns),
        recent_count=recent_count,
    )
