from __future__ import annotations

from typing import Any

import pytest
from pydantic import ValidationError

from parley.core.commands import CommandDefinition, CommandKind
from parley.core.registry import CommandRegistry, NotFound, ResolvedCustom, ResolvedDirective
from parley.errors import DuplicateCommandError, ReservedCommandNameError


def _command(name: str, kind: str = "prompt", content: str = "", **extra: Any) -> CommandDefinition:
    return CommandDefinition.model_validate({"name": name, "type": kind, "content": content, **extra})


def test_builtin_directive_resolves_first() -> None:
    registry = CommandRegistry()
    resolved = registry.resolve("help")
    assert isinstance(resolved, ResolvedDirective)
    assert resolved.name == "help"


def test_custom_command_lookup_is_exact() -> None:
    registry = CommandRegistry([_command("review", content="Review {args}")])
    assert isinstance(registry.resolve("review"), ResolvedCustom)
    assert isinstance(registry.resolve("Review"), NotFound)
    missing = registry.resolve("nope")
    assert isinstance(missing, NotFound)
    assert missing.name == "nope"


def test_reserved_names_need_explicit_override() -> None:
    with pytest.raises(ReservedCommandNameError):
        CommandRegistry([_command("help", content="custom help")])

    registry = CommandRegistry([_command("help", content="custom help")], override=["help"])
    resolved = registry.resolve("help")
    assert isinstance(resolved, ResolvedCustom)
    assert "help" not in registry.directive_names()


def test_duplicate_names_are_rejected() -> None:
    with pytest.raises(DuplicateCommandError):
        CommandRegistry([_command("a", content="x"), _command("a", content="y")])


def test_replace_swaps_whole_snapshot() -> None:
    registry = CommandRegistry([_command("a", content="x")])
    before = registry.snapshot
    registry.replace([_command("b", content="y")])
    after = registry.snapshot

    assert after.version == before.version + 1
    assert before.get("a") is not None
    assert before.get("b") is None
    assert after.get("a") is None
    assert after.get("b") is not None


def test_failed_replace_keeps_previous_snapshot() -> None:
    registry = CommandRegistry([_command("a", content="x")])
    snapshot = registry.snapshot
    with pytest.raises(DuplicateCommandError):
        registry.replace([_command("b", content="1"), _command("b", content="2")])
    assert registry.snapshot is snapshot


@pytest.mark.asyncio
async def test_reload_reads_store(store) -> None:
    store.commands["deploy"] = _command("deploy", "shell", "make deploy")
    registry = CommandRegistry()
    await registry.reload(store)
    assert registry.custom("deploy") is not None


def test_favorites_ordered_by_sort_order() -> None:
    registry = CommandRegistry(
        [
            _command("a", content="x", isFavorite=True, sortOrder=2),
            _command("b", content="x", isFavorite=True, sortOrder=1),
            _command("c", content="x"),
            _command("d", content="x", isFavorite=True),
        ]
    )
    assert [command.name for command in registry.favorites()] == ["b", "a", "d"]


def test_filter_commands_by_prefix_and_description() -> None:
    registry = CommandRegistry([_command("review", content="x", description="Review code changes")])
    names = [row.name for row in registry.filter_commands("/rev")]
    assert names == ["review"]
    assert "review" in [row.name for row in registry.filter_commands("code")]
    assert len(registry.filter_commands("/")) == len(registry.suggestions())


def test_help_text() -> None:
    registry = CommandRegistry([_command("review", content="Review {args}", description="Review files")])
    overview = registry.help_text()
    assert overview.startswith("Available commands:")
    assert "/review <args>" in overview
    assert "/help [command]" in overview

    detail = registry.help_text("review")
    assert "Type: prompt" in detail
    assert registry.help_text("missing") == "Unknown command: /missing"


def test_system_prompt_block_lists_flagged_commands() -> None:
    registry = CommandRegistry(
        [
            _command("a", content="x", description="first", includeInSystemPrompt=True),
            _command("b", content="x", description="second"),
        ]
    )
    assert registry.system_prompt_block() == "Available slash commands:\n- /a: first"


def test_command_record_aliases() -> None:
    command = CommandDefinition.model_validate(
        {
            "name": "flow",
            "type": "pipeline",
            "pipelineConfig": {"steps": [{"commandName": "a"}, {"commandName": "b", "args": "x"}], "failOnError": False},
        }
    )
    assert command.kind is CommandKind.PIPELINE
    assert command.pipeline_config is not None
    assert command.pipeline_config.fail_on_error is False
    assert command.pipeline_config.chain_output is True
    record = command.to_record()
    assert record["type"] == "pipeline"
    assert record["pipelineConfig"]["steps"][1]["args"] == "x"  # type: ignore[index]


@pytest.mark.parametrize(
    "payload",
    [
        {"name": "", "type": "prompt"},
        {"name": "two words", "type": "prompt"},
        {"name": "/slash", "type": "prompt"},
        {"name": "loop", "type": "pipeline", "pipelineConfig": {"steps": [{"commandName": "loop"}]}},
        {"name": "bare", "type": "pipeline"},
        {"name": "p", "type": "pipeline", "pipelineConfig": {"steps": []}},
        {"name": "s", "type": "shell", "actionConfig": {"backend": "x"}},
    ],
)
def test_invalid_definitions(payload: dict[str, object]) -> None:
    with pytest.raises(ValidationError):
        CommandDefinition.model_validate(payload)


def test_typo_suggestions_fall_back_to_fuzzy_match() -> None:
    registry = CommandRegistry([_command("review", content="Review {args}", description="Review files")])
    assert [row.name for row in registry.filter_commands("/reveiw")] == ["review"]
    assert registry.closest("reviw") == "review"
    assert registry.closest("stauts") == "status"
    assert registry.closest("zzzzzz") is None
