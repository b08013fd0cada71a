"""
Cocina Druid Retriever - Persistent druid registry and attempt log.

Two tables:
    druids                    one row per druid string (unique)
    druid_retrieval_attempts  append-only log of every retrieval attempt

DruidRegistry is the only thing that talks to the session; it exposes the
find-or-create, refresh and query operations the retriever needs.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    String,
    create_engine,
    func,
    select,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    Session,
    mapped_column,
    relationship,
    sessionmaker,
)

from cocina_retriever.constants import HTTP_OK

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Druid(Base):
    """A repository object we have tried, or intend to try, to retrieve."""

    __tablename__ = "druids"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    druid: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now, nullable=False
    )

    retrieval_attempts: Mapped[list["DruidRetrievalAttempt"]] = relationship(
        back_populates="druid",
        order_by=lambda: (DruidRetrievalAttempt.created_at, DruidRetrievalAttempt.id),
    )

    def __repr__(self) -> str:
        return f"<Druid id={self.id} druid={self.druid!r}>"


class DruidRetrievalAttempt(Base):
    """One fetch of a druid's cocina: the response status and where it was archived."""

    __tablename__ = "druid_retrieval_attempts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    druid_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("druids.id"), nullable=False, index=True
    )
    response_status: Mapped[int] = mapped_column(Integer, nullable=False)
    response_reason_phrase: Mapped[str | None] = mapped_column(
        String(1024), nullable=True
    )
    output_path: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, nullable=False
    )

    druid: Mapped[Druid] = relationship(back_populates="retrieval_attempts")

    def __repr__(self) -> str:
        return (
            f"<DruidRetrievalAttempt id={self.id} druid_id={self.druid_id} "
            f"status={self.response_status}>"
        )


# ---------------------------------------------------------------------------
# Engine / session setup
# ---------------------------------------------------------------------------


def create_db_engine(database_url: str) -> Engine:
    """
    Create an engine for ``database_url``.

    For file-backed SQLite URLs the containing directory is created first.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
        db_dir = os.path.dirname(url.database)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)
    return create_engine(url)


def init_db(engine: Engine) -> None:
    """Create any missing tables."""
    Base.metadata.create_all(engine)
    logger.debug("Database tables ensured on %s", engine.url)


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class DruidRegistry:
    """Find-or-create access to druid rows and their retrieval attempts."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def find(self, druid: str) -> Druid | None:
        return self.session.execute(
            select(Druid).where(Druid.druid == druid)
        ).scalar_one_or_none()

    def get_or_create(self, druid: str) -> Druid:
        """
        Return the row for ``druid``, inserting it if there isn't one yet.

        If another writer inserts the same druid first, the unique constraint
        rejects our insert and the existing row is returned instead.
        """
        entry = self.find(druid)
        if entry is not None:
            return entry
        entry = Druid(druid=druid)
        self.session.add(entry)
        try:
            self.session.commit()
        except IntegrityError:
            self.rollback()
            entry = self.find(druid)
            if entry is None:
                raise
            return entry
        logger.debug("Registered new druid %s", druid)
        return entry

    def refresh(self, entry: Druid) -> Druid:
        """Reload ``entry`` from the database."""
        self.session.refresh(entry)
        return entry

    def add_attempt(
        self,
        entry: Druid,
        response_status: int,
        response_reason_phrase: str | None,
        output_path: str | None,
    ) -> DruidRetrievalAttempt:
        """Append a retrieval attempt to ``entry`` and commit it."""
        attempt = DruidRetrievalAttempt(
            druid_id=entry.id,
            response_status=response_status,
            response_reason_phrase=response_reason_phrase,
            output_path=output_path,
        )
        self.session.add(attempt)
        entry.updated_at = _utc_now()
        self.session.commit()
        return attempt

    def register(self, druids: Iterable[str]) -> int:
        """Find-or-create every druid in ``druids``. Returns how many were new."""
        created = 0
        for druid in druids:
            if self.find(druid) is None:
                self.get_or_create(druid)
                created += 1
        return created

    def unretrieved(self, limit: int) -> list[str]:
        """
        Druids with no successful retrieval attempt yet.

        Never-attempted druids come first, in registration order. Druids that
        have only failed follow, least recently attempted first, so permanent
        failures cannot crowd newer druids out of every batch.
        """
        succeeded = (
            select(DruidRetrievalAttempt.id)
            .where(
                DruidRetrievalAttempt.druid_id == Druid.id,
                DruidRetrievalAttempt.response_status == HTTP_OK,
            )
            .exists()
        )
        # attempt ids only grow, so the max id marks the latest attempt
        last_attempt = (
            select(func.max(DruidRetrievalAttempt.id))
            .where(DruidRetrievalAttempt.druid_id == Druid.id)
            .scalar_subquery()
        )
        stmt = (
            select(Druid.druid)
            .where(~succeeded)
            .order_by(last_attempt.is_not(None), last_attempt, Druid.id)
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars())

    def rollback(self) -> None:
        """Discard the pending transaction after a failed write."""
        self.session.rollback()

    def attempts_for(self, druid: str) -> list[DruidRetrievalAttempt]:
        stmt = (
            select(DruidRetrievalAttempt)
            .join(Druid)
            .where(Druid.druid == druid)
            .order_by(DruidRetrievalAttempt.created_at, DruidRetrievalAttempt.id)
        )
        return list(self.session.execute(stmt).scalars())

    def count_druids(self) -> int:
        return self.session.execute(select(func.count(Druid.id))).scalar_one()

    def count_attempts(self) -> int:
        return self.session.execute(
            select(func.count(DruidRetrievalAttempt.id))
        ).scalar_one()
