"""Streaming extraction of ``<command>...</command>`` directives."""

import re
from dataclasses import dataclass, field

OPEN_TAG = "<command>"
CLOSE_TAG = "</command>"

MAX_COMMAND_LENGTH = 300
_FIRST_TOKEN_RE = re.compile(r"^[a-z0-9_./-]+$")
_SENTENCE_END_RE = re.compile(r"[.!?]$")
# First words that mark prose rather than a runnable command
PROSE_LEADING_WORDS = frozenset({"i", "you", "please", "check", "visit", "try", "consider", "use"})


@dataclass
class TagFeedResult:
    visible: str = ""
    commands: list[str] = field(default_factory=list)


def _longest_suffix_prefix(value: str, token: str) -> int:
    """Length of the longest suffix of ``value`` that is a proper prefix of ``token``."""
    for length in range(min(len(value), len(token) - 1), 0, -1):
        if value.endswith(token[:length]):
            return length
    return 0


class CommandTagExtractor:
    """Chunk-boundary-safe filter for one streamed answer.

    Tag literals never reach the visible text, even split across chunks.
    Text between the tags is withheld from the visible text and each closed,
    non-blank command is reported once. The output is the same however the
    input is chunked.
    """

    def __init__(self) -> None:
        self.pending = ""
        self.in_command = False
        self.command_buffer = ""

    def feed(self, chunk: str) -> TagFeedResult:
        self.pending += chunk
        result = TagFeedResult()

        while self.pending:
            if not self.in_command:
                index = self.pending.find(OPEN_TAG)
                if index == -1:
                    flush_len = len(self.pending) - _longest_suffix_prefix(self.pending, OPEN_TAG)
                    result.visible += self.pending[:flush_len]
                    self.pending = self.pending[flush_len:]
                    break
                result.visible += self.pending[:index]
                self.pending = self.pending[index + len(OPEN_TAG):]
                self.in_command = True
                self.command_buffer = ""
                continue

            index = self.pending.find(CLOSE_TAG)
            if index == -1:
                flush_len = len(self.pending) - _longest_suffix_prefix(self.pending, CLOSE_TAG)
                self.command_buffer += self.pending[:flush_len]
                self.pending = self.pending[flush_len:]
                break

            self.command_buffer += self.pending[:index]
            command = self.command_buffer.strip()
            if command:
                result.commands.append(command)
            self.pending = self.pending[index + len(CLOSE_TAG):]
            self.in_command = False
            self.command_buffer = ""

        return result

    def flush(self, keep_unterminated: bool = True) -> TagFeedResult:
        """Release held-back text at end of stream.

        An unterminated command is returned as its raw literal text, or
        dropped when ``keep_unterminated`` is false.
        """
        if self.in_command:
            visible = OPEN_TAG + self.command_buffer + self.pending if keep_unterminated else ""
        else:
            visible = self.pending
        self.pending = ""
        self.command_buffer = ""
        self.in_command = False
        return TagFeedResult(visible=visible)


def looks_executable_shell_command(command: str) -> bool:
    """Reject prose that happens to sit inside command tags."""
    trimmed = (command or "").strip()
    if not trimmed or len(trimmed) > MAX_COMMAND_LENGTH:
        return False
    if _SENTENCE_END_RE.search(trimmed):
        return False
    first_token = trimmed.split()[0]
    if not _FIRST_TOKEN_RE.match(first_token):
        return False
    return first_token not in PROSE_LEADING_WORDS
