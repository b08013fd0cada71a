"""
Cocina Druid Retriever - Retrieval workflow.

For each druid: fetch the cocina from DSA, archive the response according
to the success/failure output policy, then record the attempt. Druids are
processed one at a time; an error on one druid is logged and the batch
moves on to the next.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from sqlalchemy.orm import Session

from cocina_retriever.archive import ArchivePolicy, archive_for_outcome
from cocina_retriever.config import archive_policy, max_unseen_to_retrieve
from cocina_retriever.constants import MAX_LOGGED_BODY_CHARS
from cocina_retriever.db import DruidRegistry
from cocina_retriever.dsa_client import CocinaResponse, DsaClient
from cocina_retriever.recorder import AttemptRecorder

logger = logging.getLogger(__name__)


def _truncate(body: str) -> str:
    if len(body) <= MAX_LOGGED_BODY_CHARS:
        return body
    return body[:MAX_LOGGED_BODY_CHARS] + "..."


class CocinaRetriever:
    """
    Drives retrieval attempts.

    Args:
        client: Anything with ``object_show(druid) -> CocinaResponse``.
        policy: Where (and whether) to archive success and failure responses.
        recorder: Persists one attempt row per fetch.
        unretrieved: Callable returning up to N druids still to retrieve.
            Defaults to the recorder's registry query.
        max_unseen: Batch size used when try_retrieving_unseen_druids is
            called without one.
    """

    def __init__(
        self,
        client: DsaClient,
        policy: ArchivePolicy,
        recorder: AttemptRecorder,
        unretrieved: Callable[[int], Iterable[str]] | None = None,
        max_unseen: int | None = None,
    ) -> None:
        self.client = client
        self.policy = policy
        self.recorder = recorder
        self.unretrieved = unretrieved or recorder.registry.unretrieved
        self.max_unseen = max_unseen

    @classmethod
    def from_config(cls, config: dict, session: Session) -> "CocinaRetriever":
        recorder = AttemptRecorder(DruidRegistry(session))
        return cls(
            client=DsaClient.from_config(config),
            policy=archive_policy(config),
            recorder=recorder,
            max_unseen=max_unseen_to_retrieve(config),
        )

    def try_retrieval_and_log_result(self, druid: str) -> CocinaResponse | None:
        """
        Run one fetch/archive/record cycle for ``druid``.

        Returns the DSA response, or None if the attempt could not be
        recorded or anything unexpected went wrong.
        """
        try:
            logger.info("retrieving %s", druid)
            response = self.client.object_show(druid)
            if response.ok:
                logger.info("success: 200 OK retrieving %s", druid)
            else:
                logger.warning(
                    "failure: %s %s retrieving %s : %s",
                    response.status,
                    response.reason_phrase,
                    druid,
                    _truncate(response.body),
                )

            archived = archive_for_outcome(druid, response, self.policy)
            recorded = self.recorder.record(
                druid, response.status, response.reason_phrase, archived.path
            )
            if not recorded.ok:
                logger.error(
                    "Unable to record retrieval attempt for %s: %s",
                    druid,
                    recorded.error,
                )
                return None
            return response
        except Exception:
            logger.exception(
                "Unexpected error trying to retrieve %s and log result", druid
            )
            return None

    def try_retrieving(self, druids: Iterable[str]) -> dict:
        """
        Attempt each druid in turn, never stopping early.

        Returns a stats dict with keys: attempted, succeeded, failed, errors.
        """
        stats = {"attempted": 0, "succeeded": 0, "failed": 0, "errors": 0}
        for druid in druids:
            stats["attempted"] += 1
            response = self.try_retrieval_and_log_result(druid)
            if response is None:
                stats["errors"] += 1
            elif response.ok:
                stats["succeeded"] += 1
            else:
                stats["failed"] += 1

        logger.info(
            "Retrieval run complete: %d druid(s) attempted, %d succeeded, "
            "%d failed, %d error(s).",
            stats["attempted"],
            stats["succeeded"],
            stats["failed"],
            stats["errors"],
        )
        return stats

    def try_retrieving_unseen_druids(self, max_to_retrieve: int | None = None) -> None:
        """Attempt up to ``max_to_retrieve`` druids that have not been retrieved yet."""
        limit = max_to_retrieve if max_to_retrieve is not None else self.max_unseen
        if limit is None or limit < 1:
            logger.warning("Nothing to retrieve: batch size is %s.", limit)
            return None

        try:
            druids = list(self.unretrieved(limit))[:limit]
        except Exception:
            logger.exception("Failed to look up unretrieved druids")
            return None

        logger.info("Retrieving %d unseen druid(s) (limit %d).", len(druids), limit)
        self.try_retrieving(druids)
        return None
