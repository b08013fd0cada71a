"""
Cocina Druid Retriever - Attempt recording.

Links one retrieval attempt (status, reason phrase, archived path) to the
druid's registry row, creating the row on first sight.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from cocina_retriever.db import DruidRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordResult:
    attempt_id: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class AttemptRecorder:
    def __init__(self, registry: DruidRegistry) -> None:
        self.registry = registry

    def record(
        self,
        druid: str,
        response_status: int,
        response_reason_phrase: str | None,
        output_path: str | None,
    ) -> RecordResult:
        """
        Append an attempt for ``druid``. Database errors are rolled back and
        returned in the result rather than raised.
        """
        try:
            entry = self.registry.refresh(self.registry.get_or_create(druid))
            attempt = self.registry.add_attempt(
                entry, response_status, response_reason_phrase, output_path
            )
        except SQLAlchemyError as exc:
            self.registry.rollback()
            return RecordResult(error=f"{type(exc).__name__}: {exc}")
        logger.debug(
            "Recorded attempt %s for %s (status %s, output %s)",
            attempt.id,
            druid,
            response_status,
            output_path or "none",
        )
        return RecordResult(attempt_id=attempt.id)
