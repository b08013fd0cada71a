"""
Cocina Druid Retriever - Druid parsing and archive path derivation.

A druid such as ``druid:ab123cd4567`` splits into a fixed 2-3-2-4 tree of
path segments. Archived responses are laid out as:
    <base_dir>/ab/123/cd/4567/<ISO-8601 UTC timestamp>.json
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone

from cocina_retriever.constants import ARCHIVE_FILE_SUFFIX

_DRUID_PATTERN = re.compile(r"\A(?:druid:)?([a-z]{2})(\d{3})([a-z]{2})(\d{4})\Z")


class InvalidDruidError(ValueError):
    """Raised when a string does not follow the druid naming scheme."""


@dataclass(frozen=True)
class DruidParts:
    """The four tree segments of a druid, without the ``druid:`` prefix."""

    segments: tuple[str, str, str, str]


def parse_druid(druid: str) -> DruidParts:
    """
    Split a druid into its tree segments.

    Accepts an optional ``druid:`` prefix. Raises InvalidDruidError for
    anything that is not two letters, three digits, two letters, four digits.
    """
    if not isinstance(druid, str):
        raise InvalidDruidError(f"Druid must be a string, got {type(druid).__name__}")
    match = _DRUID_PATTERN.match(druid.strip())
    if not match:
        raise InvalidDruidError(f"Invalid druid: {druid!r}")
    return DruidParts(segments=match.groups())


def is_valid_druid(druid: str) -> bool:
    """Return True if ``druid`` parses."""
    try:
        parse_druid(druid)
    except InvalidDruidError:
        return False
    return True


def druid_tree(druid: str) -> list[str]:
    """Return the directory segments for a druid, e.g. ['ab', '123', 'cd', '4567']."""
    return list(parse_druid(druid).segments)


def current_time_str(now: datetime | None = None) -> str:
    """Current UTC time as ISO-8601 with second precision (2024-06-15T14:30:00+00:00)."""
    ts = now or datetime.now(timezone.utc)
    return ts.astimezone(timezone.utc).replace(microsecond=0).isoformat()


def druid_path(druid: str, base_dir: str, now: datetime | None = None) -> str:
    """
    Return the archive file path for one retrieval attempt of ``druid``.

    The timestamp is taken fresh on every call, so repeated attempts on the
    same druid land in distinct files unless they fall within one second.
    """
    tree = druid_tree(druid)
    filename = f"{current_time_str(now)}{ARCHIVE_FILE_SUFFIX}"
    return os.path.join(base_dir, *tree, filename)
