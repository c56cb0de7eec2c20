import random

import pytest

from maid.command_tags import CLOSE_TAG, OPEN_TAG, CommandTagExtractor


def run_chunks(chunks: list[str]) -> tuple[str, list[str], list[str]]:
    extractor = CommandTagExtractor()
    visible_parts: list[str] = []
    commands: list[str] = []
    for chunk in chunks:
        fed = extractor.feed(chunk)
        visible_parts.append(fed.visible)
        commands.extend(fed.commands)
    flushed = extractor.flush()
    visible_parts.append(flushed.visible)
    commands.extend(flushed.commands)
    return "".join(visible_parts), commands, visible_parts


def random_split(text: str, rng: random.Random) -> list[str]:
    chunks: list[str] = []
    index = 0
    while index < len(text):
        size = rng.randint(1, 7)
        chunks.append(text[index : index + size])
        index += size
    return chunks


SAMPLES = [
    "",
    "plain answer without tags",
    "Run <command>ls -la</command> now",
    "<command>git status</command>",
    "two: <command>a</command> and <command>b</command>!",
    "empty <command>   </command> tag",
    "almost <comman but not quite </command> stray close",
    "nested-looking <command>echo <b></command> tail",
    "abc<command>def",
    "trailing partial <comm",
    "<<command>x</command>>",
]


def test_worked_example():
    visible, commands, _ = run_chunks(["Here", "'s the co", "mmand: <comm", "and>ls -la</command> done"])

    assert visible == "Here's the command:  done"
    assert commands == ["ls -la"]


@pytest.mark.parametrize("text", SAMPLES)
def test_output_is_independent_of_chunking(text):
    whole = run_chunks([text])[:2]
    per_char = run_chunks(list(text))[:2]
    rng = random.Random(len(text))
    splits = [run_chunks(random_split(text, rng))[:2] for _ in range(20)]

    assert per_char == whole
    assert all(split == whole for split in splits)


@pytest.mark.parametrize("text", SAMPLES)
def test_emitted_text_is_never_retracted(text):
    final_visible = run_chunks([text])[0]
    _, _, parts = run_chunks(list(text))

    emitted = ""
    for part in parts:
        emitted += part
        assert final_visible.startswith(emitted)


def test_held_back_tag_prefix_is_not_emitted():
    extractor = CommandTagExtractor()

    first = extractor.feed("answer: <comm")
    second = extractor.feed("and>ls</command>")

    assert first.visible == "answer: "
    assert second.visible == ""
    assert second.commands == ["ls"]


def test_per_char_feed_never_emits_a_tag_literal():
    _, _, parts = run_chunks(list("a <command>rm -rf x</command> b"))

    emitted = "".join(parts)
    assert OPEN_TAG not in emitted
    assert CLOSE_TAG not in emitted


def test_unterminated_tag_is_recovered_on_flush():
    visible, commands, _ = run_chunks(["abc<command>def"])

    assert visible == "abc<command>def"
    assert commands == []


def test_unterminated_tag_recovery_includes_held_back_text():
    visible, commands, _ = run_chunks(["x <command>ls </com"])

    assert visible == "x <command>ls </com"
    assert commands == []


def test_blank_command_is_not_reported():
    visible, commands, _ = run_chunks(["a<command> \n </command>b"])

    assert visible == "ab"
    assert commands == []


def test_extractor_state_resets_after_flush():
    extractor = CommandTagExtractor()
    extractor.feed("<command>pwd")
    extractor.flush()

    fed = extractor.feed("hello")

    assert fed.visible == "hello"
    assert extractor.in_command is False


def test_flush_can_drop_unterminated_command():
    extractor = CommandTagExtractor()
    extractor.feed("Run <command>rm -rf bu")

    assert extractor.flush(keep_unterminated=False).visible == ""
    assert extractor.in_command is False


def test_flush_without_literal_still_releases_tag_prefix():
    extractor = CommandTagExtractor()
    assert extractor.feed("see <comm").visible == "see "

    assert extractor.flush(keep_unterminated=False).visible == "<comm"
