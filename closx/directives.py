"""Extraction of `<shell>` directives from agent responses.

A directive is a command wrapped in `<shell>` and `</shell>` markers.
Markdown backticks inside a directive are dropped. Unclosed markers are
not directives and stay in the display text unchanged.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

SHELL_TAG_PATTERN = re.compile(r"<shell>(.*?)</shell>", re.DOTALL)


@dataclass(frozen=True)
class Directive:
    """A command found in a response, with its span in the source text."""

    command: str
    start: int
    end: int


@dataclass(frozen=True)
class ParsedResponse:
    display_text: str
    directives: tuple[Directive, ...]

    @property
    def commands(self) -> list[str]:
        return [directive.command for directive in self.directives]


def _clean_command(raw: str) -> str:
    return raw.strip().replace("`", "").strip()


def extract_directives(text: str) -> list[Directive]:
    """Return directives in the order they appear. Empty ones are skipped."""
    directives = []
    for match in SHELL_TAG_PATTERN.finditer(text):
        command = _clean_command(match.group(1))
        if command:
            directives.append(Directive(command=command, start=match.start(), end=match.end()))
    return directives


def split_response(text: str) -> ParsedResponse:
    """Separate a response into display text and directives.

    Every closed `<shell>` span is removed from the display text, including
    empty ones.
    """
    display_parts = []
    last = 0
    for match in SHELL_TAG_PATTERN.finditer(text):
        display_parts.append(text[last:match.start()])
        last = match.end()
    display_parts.append(text[last:])
    return ParsedResponse(
        display_text="".join(display_parts),
        directives=tuple(extract_directives(text)),
    )


__all__ = ["Directive", "ParsedResponse", "SHELL_TAG_PATTERN", "extract_directives", "split_response"]
