"""
Cocina Druid Retriever - Response archiving.

Writes the full DSA response for one retrieval attempt to disk as a single
JSON document, using the druid tree layout from cocina_retriever.druid.
Archiving is best-effort: failures are logged and reported in the result,
never raised.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass

from cocina_retriever.constants import ARCHIVE_FILE_MODE, HTTP_OK
from cocina_retriever.druid import druid_path
from cocina_retriever.dsa_client import CocinaResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutputTarget:
    """Whether to archive one kind of outcome, and where."""

    should_output: bool
    location: str


@dataclass(frozen=True)
class ArchivePolicy:
    success: OutputTarget
    failure: OutputTarget

    def target_for(self, response: CocinaResponse) -> OutputTarget:
        return self.success if response.status == HTTP_OK else self.failure


@dataclass(frozen=True)
class ArchiveResult:
    """Outcome of an archive attempt. ``path`` is None when nothing was written."""

    path: str | None = None
    skipped: bool = False
    error: str | None = None


def _parse_body(body: str):
    """
    Return the body as a JSON object or array when it is one, else the raw
    string. Bare scalars such as ``null`` or ``123`` stay strings.
    """
    if not body:
        return body
    try:
        parsed = json.loads(body)
    except (json.JSONDecodeError, TypeError):
        return body
    if isinstance(parsed, (dict, list)):
        return parsed
    return body


def response_to_json(response: CocinaResponse) -> str:
    """Serialize status, reason phrase, headers and body into one JSON document."""
    document = {
        "status": response.status,
        "reason_phrase": response.reason_phrase,
        "headers": dict(response.headers),
        "body": _parse_body(response.body),
    }
    return json.dumps(document, ensure_ascii=False, indent=2)


def _ensure_containing_dir(filepath: str) -> None:
    dir_path = os.path.dirname(filepath)
    if dir_path:
        os.makedirs(dir_path, exist_ok=True)


def archive_response(
    druid: str, response: CocinaResponse, target: OutputTarget
) -> ArchiveResult:
    """
    Archive ``response`` for ``druid`` according to ``target``.

    Returns an ArchiveResult with the written path, or with ``skipped`` set
    when output is disabled for this outcome, or with ``error`` set when
    path derivation, serialization or the write failed.
    """
    if not target.should_output:
        logger.debug("Output disabled; not archiving response for %s", druid)
        return ArchiveResult(skipped=True)

    try:
        document = response_to_json(response)
        filepath = druid_path(druid, target.location)
        _ensure_containing_dir(filepath)
        with open(filepath, "w", encoding="utf-8") as fh:
            fh.write(document)
        os.chmod(filepath, ARCHIVE_FILE_MODE)
    except (OSError, ValueError, TypeError) as exc:
        logger.error(
            "Unexpected error trying to write response for %s to %s: %s",
            druid,
            target.location,
            exc,
            exc_info=True,
        )
        return ArchiveResult(error=f"{type(exc).__name__}: {exc}")

    logger.debug("Archived response for %s -> %s", druid, filepath)
    return ArchiveResult(path=filepath)


def archive_for_outcome(
    druid: str, response: CocinaResponse, policy: ArchivePolicy
) -> ArchiveResult:
    """Archive using the success target for a 200, the failure target otherwise."""
    return archive_response(druid, response, policy.target_for(response))
