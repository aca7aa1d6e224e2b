"""
vql/principle_import.py -- Read principles from a headed text document.

Each principle starts at a heading line of the form::

    # Architecture Principles (a)

The title becomes the long name and the single lower-case letter the short
name.  Every following line up to the next such heading (or end of file) is
that principle's guidance, joined with newlines.  Lines before the first
heading are ignored.

Usage:
    from vql.principle_import import read_principle_file

    items = read_principle_file("~/docs/principles.md")
    store.import_principles(items)
"""

from __future__ import annotations

import logging
import re

from vql.errors import RegistryIOError
from vql.utils import expand_home

logger = logging.getLogger(__name__)

_HEADER_RE = re.compile(r"^# (.*) \(([a-z])\)$")


def parse_principle_document(text: str) -> list[tuple[str, str, str]]:
    """Return ``(short_name, long_name, guidance)`` items in document order."""
    items = []
    current = None
    guidance_lines: list[str] = []

    for line in text.splitlines():
        match = _HEADER_RE.match(line)
        if match:
            if current is not None:
                items.append((current[0], current[1], "\n".join(guidance_lines)))
            current = (match.group(2), match.group(1))
            guidance_lines = []
        elif current is not None:
            guidance_lines.append(line)

    if current is not None:
        items.append((current[0], current[1], "\n".join(guidance_lines)))
    return items


def read_principle_file(path: str) -> list[tuple[str, str, str]]:
    """Read and parse a principle document, expanding a leading ``~``.

    Raises
    ------
    RegistryIOError
        If the file cannot be opened or read.
    """
    expanded = expand_home(path)
    try:
        with open(expanded, "r", encoding="utf-8") as fh:
            text = fh.read()
    except OSError as exc:
        raise RegistryIOError("open principles file", expanded, str(exc)) from exc

    items = parse_principle_document(text)
    logger.debug("Parsed %d principle(s) from %s", len(items), expanded)
    return items
