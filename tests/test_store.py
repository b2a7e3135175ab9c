from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from parley.core.commands import CommandDefinition
from parley.errors import CommandDefinitionError, CommandNotFoundError
from parley.shell import LocalShellExecutor
from parley.store import JSONCommandStore


def _command(name: str, kind: str = "prompt", content: str = "", **extra: Any) -> CommandDefinition:
    return CommandDefinition.model_validate({"name": name, "type": kind, "content": content, **extra})


@pytest.mark.asyncio
async def test_save_and_reload_from_disk(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "commands.json"
    store = JSONCommandStore(path)
    await store.save_command(_command("review", content="Review {args}", workingDir="/src"))

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["review"]["type"] == "prompt"
    assert data["review"]["workingDir"] == "/src"

    reopened = JSONCommandStore(path)
    command = await reopened.get_command("review")
    assert command is not None
    assert command.working_dir == "/src"
    assert [item.name for item in await reopened.list_commands()] == ["review"]


@pytest.mark.asyncio
async def test_corrupt_file_starts_empty(tmp_path: Path) -> None:
    path = tmp_path / "commands.json"
    path.write_text("{not json", encoding="utf-8")
    store = JSONCommandStore(path)
    assert await store.list_commands() == []


@pytest.mark.asyncio
async def test_invalid_records_are_skipped(tmp_path: Path) -> None:
    path = tmp_path / "commands.json"
    path.write_text(
        json.dumps({"ok": {"name": "ok", "type": "shell", "content": "ls"}, "bad": {"name": "bad", "type": "pipeline"}}),
        encoding="utf-8",
    )
    store = JSONCommandStore(path)
    assert [item.name for item in await store.list_commands()] == ["ok"]


@pytest.mark.asyncio
async def test_remove_missing_command(tmp_path: Path) -> None:
    store = JSONCommandStore(tmp_path / "commands.json")
    with pytest.raises(CommandNotFoundError):
        await store.remove_command("ghost")


@pytest.mark.asyncio
async def test_favorites_get_next_sort_order(tmp_path: Path) -> None:
    store = JSONCommandStore(tmp_path / "commands.json")
    for name in ("a", "b", "c"):
        await store.save_command(_command(name, content="x"))

    first = await store.toggle_favorite("a", True)
    second = await store.toggle_favorite("b", True)
    assert (first.sort_order, second.sort_order) == (1, 2)

    moved = await store.set_sort_order("a", 7)
    assert moved.sort_order == 7
    third = await store.toggle_favorite("c", True)
    assert third.sort_order == 8

    cleared = await store.toggle_favorite("a", False)
    assert cleared.is_favorite is False
    assert cleared.sort_order is None


@pytest.mark.asyncio
async def test_sort_order_requires_favorite(tmp_path: Path) -> None:
    store = JSONCommandStore(tmp_path / "commands.json")
    await store.save_command(_command("a", content="x"))
    with pytest.raises(CommandDefinitionError):
        await store.set_sort_order("a", 3)
    with pytest.raises(CommandNotFoundError):
        await store.toggle_favorite("ghost", True)


@pytest.mark.asyncio
async def test_local_shell_executor(tmp_path: Path) -> None:
    shell = LocalShellExecutor(default_cwd=tmp_path)

    ok = await shell.run("pwd")
    assert ok.ok
    assert Path(ok.stdout).resolve() == tmp_path.resolve()

    failed = await shell.run("echo oops >&2; exit 3")
    assert failed.exit_code == 3
    assert failed.stderr == "oops"


@pytest.mark.asyncio
async def test_local_shell_executor_missing_working_dir(tmp_path: Path) -> None:
    shell = LocalShellExecutor(default_cwd=tmp_path)

    result = await shell.run("ls", str(tmp_path / "missing"))

    assert not result.ok
    assert result.exit_code == -1
    assert "missing" in result.stderr
