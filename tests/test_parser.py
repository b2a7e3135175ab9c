from __future__ import annotations

import pytest

from parley.core.parser import current_mention, extract_mentions, extract_slash_commands, parse
from parley.core.types import CustomCommand, Directive, PlainText


def test_plain_text_is_returned_unchanged() -> None:
    raw = "  hello there, how are you?  "
    intent = parse(raw)
    assert isinstance(intent, PlainText)
    assert intent.text == raw


@pytest.mark.parametrize("raw", ["/", "/ help", "/\tstatus", "", "   /help", "path/to/file"])
def test_inputs_that_are_not_commands(raw: str) -> None:
    assert isinstance(parse(raw), PlainText)


def test_builtin_directive_with_args() -> None:
    intent = parse("/task   Fix   the parser ")
    assert isinstance(intent, Directive)
    assert intent.name == "task"
    assert intent.args == ["Fix", "the", "parser"]
    assert intent.args_text == "Fix the parser"


def test_unknown_name_is_custom_command() -> None:
    intent = parse("/review main.py utils.py")
    assert isinstance(intent, CustomCommand)
    assert intent.name == "review"
    assert intent.args == ["main.py", "utils.py"]


def test_directive_names_are_caller_supplied() -> None:
    intent = parse("/help", directives=frozenset({"status"}))
    assert isinstance(intent, CustomCommand)


def test_command_name_is_case_sensitive() -> None:
    assert isinstance(parse("/Help"), CustomCommand)


def test_custom_prefix() -> None:
    assert isinstance(parse("!status", prefix="!"), Directive)
    assert isinstance(parse("/status", prefix="!"), PlainText)


def test_quotes_are_not_grouped() -> None:
    intent = parse('/say "hello world"')
    assert isinstance(intent, CustomCommand)
    assert intent.args == ['"hello', 'world"']


def test_mentions_in_plain_text() -> None:
    text = "ask @Alice_Smith and @bob about it"
    mentions = extract_mentions(text)
    assert [mention.raw_token for mention in mentions] == ["Alice_Smith", "bob"]
    assert mentions[0].display_name == "Alice Smith"
    assert text[mentions[0].start_index : mentions[0].end_index] == "@Alice_Smith"


def test_mention_inside_word_is_still_a_mention() -> None:
    mentions = extract_mentions("mail me at user@example.com")
    assert [mention.raw_token for mention in mentions] == ["example.com"]


def test_mentions_in_command_args_use_absolute_offsets() -> None:
    raw = "/review @Reviewer_One now"
    intent = parse(raw)
    assert isinstance(intent, CustomCommand)
    (mention,) = intent.mentions
    assert raw[mention.start_index : mention.end_index] == "@Reviewer_One"
    assert mention.display_name == "Reviewer One"


def test_mentions_never_alter_text() -> None:
    raw = "hi @Alice_Smith"
    intent = parse(raw)
    assert isinstance(intent, PlainText)
    assert intent.text == raw
    assert len(intent.mentions) == 1


def test_current_mention() -> None:
    text = "hello @Ali"
    assert current_mention(text, len(text)) == "Ali"
    assert current_mention("hello @", 7) == ""
    assert current_mention("hello @Ali rest", len("hello @Ali rest")) is None
    assert current_mention("no mention", 5) is None


def test_extract_slash_commands_from_agent_output() -> None:
    text = (
        "I will run two commands.\n"
        "<Slash><Name>review</Name><Args>main.py</Args></Slash>\n"
        "<Slash><Name>/status</Name></Slash>\n"
        "<Slash><Args>orphan</Args></Slash>"
    )
    assert extract_slash_commands(text) == ["/review main.py", "/status"]
