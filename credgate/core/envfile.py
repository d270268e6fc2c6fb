"""Env-file normalization, validation and parsing.

Resolver output is a line-oriented ``KEY=value`` file. Values coming back
from the vault may contain characters that a shell-style parser would
interpret (``$``, backslashes, spaces), so unquoted values are wrapped in
single quotes before validation. Validation is a sanity check that catches
corruption and obvious injection payloads; normalization is what actually
defuses them.
"""

from __future__ import annotations

import logging
import re
import shlex

from credgate.core.errors import ContentValidationError

logger = logging.getLogger(__name__)

_COMMENT = re.compile(r"^\s*#")
_BLANK = re.compile(r"^\s*$")
_ASSIGNMENT = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)=(.*)$", re.DOTALL)
_ASSIGNMENT_PREFIX = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*=")
_COMMAND_SUBSTITUTION = re.compile(r"\$\(|`.*`")


def _is_skippable(line: str) -> bool:
    return _BLANK.match(line) is not None or _COMMENT.match(line) is not None


def _is_quoted(value: str) -> bool:
    return len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"')


def _lines(text: str) -> list[str]:
    """Split on newline only; other control characters belong to the value.

    A trailing newline does not introduce an extra empty line, and a
    trailing ``\\r`` from CRLF output is dropped.
    """
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def strip_comments(text: str) -> str:
    """Drop comment-only lines, keeping everything else verbatim."""
    kept = [line for line in _lines(text) if not _COMMENT.match(line)]
    return "".join(f"{line}\n" for line in kept)


def normalize(text: str) -> str:
    """Quote unquoted values so they survive a later shell-style parse.

    Blank lines, comments and non-assignment lines pass through unchanged.
    Values already wrapped in matching quotes pass through. Anything else is
    wrapped in single quotes with embedded single quotes escaped as ``'\\''``.
    """
    out: list[str] = []
    for line in _lines(text):
        if _is_skippable(line):
            out.append(line)
            continue

        match = _ASSIGNMENT.match(line)
        if not match:
            out.append(line)
            continue

        key, value = match.group(1), match.group(2)
        if _is_quoted(value):
            out.append(line)
        else:
            escaped = value.replace("'", "'\\''")
            out.append(f"{key}='{escaped}'")

    return "".join(f"{line}\n" for line in out)


def validate(text: str) -> None:
    """Reject malformed lines and command-substitution payloads.

    Raises:
        ContentValidationError: On the first offending line. The message
            names the line number only, never its content.
    """
    for line_number, line in enumerate(_lines(text), start=1):
        if _is_skippable(line):
            continue

        if not _ASSIGNMENT_PREFIX.match(line):
            logger.debug(f"Line {line_number}: not a valid assignment")
            raise ContentValidationError(
                f"Line {line_number} is not a valid assignment", line_number
            )

        value = line.split("=", 1)[1]
        # Single-quoted values can't execute these, but double-quoted can
        if _COMMAND_SUBSTITUTION.search(value):
            logger.debug(f"Line {line_number}: contains command substitution pattern")
            raise ContentValidationError(
                f"Line {line_number} contains a command substitution pattern", line_number
            )


def parse(text: str) -> dict[str, str]:
    """Parse a normalized, validated env file into assignments.

    Quoting follows POSIX shell rules via :mod:`shlex`. No parameter
    expansion is performed. Each value must parse to exactly one word.

    Raises:
        ContentValidationError: If a value does not parse to a single word.
    """
    assignments: dict[str, str] = {}
    for line_number, line in enumerate(_lines(text), start=1):
        if _is_skippable(line):
            continue

        match = _ASSIGNMENT.match(line)
        if not match:
            raise ContentValidationError(
                f"Line {line_number} is not a valid assignment", line_number
            )

        key, raw_value = match.group(1), match.group(2)
        if raw_value == "":
            assignments[key] = ""
            continue

        try:
            words = shlex.split(raw_value, comments=False, posix=True)
        except ValueError:
            raise ContentValidationError(f"Line {line_number} has unbalanced quotes", line_number)

        if len(words) != 1:
            raise ContentValidationError(
                f"Line {line_number} does not contain a single value", line_number
            )
        assignments[key] = words[0]

    return assignments

