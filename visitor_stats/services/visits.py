from contextlib import asynccontextmanager
from typing import Any
from sqlalchemy import delete, func, insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from visitor_stats.models.visit import (
    STATS_ROW_ID,
    SiteSession,
    SiteStats,
    SiteVisit,
    utcnow,
)
import structlog

logger = structlog.get_logger()

DEFAULT_PAGE_PATH = "/"

# Writes go through Core so rowcount reflects ON CONFLICT outcomes
site_visit = SiteVisit.__table__
site_session = SiteSession.__table__
site_stats = SiteStats.__table__

# Dialects whose INSERT supports ON CONFLICT
UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class CounterIntegrityError(Exception):
    """A visitor table constraint was violated (corrupt or hand-edited data)"""


def normalize_page_path(page_path: str | None) -> str:
    if page_path is None or not page_path.strip():
        return DEFAULT_PAGE_PATH
    return page_path.strip()


class VisitService:
    """Service for deduplicated visit tracking and the site-wide counters"""

    def __init__(self, db: AsyncSession):
        self.db = db
        dialect = db.get_bind().dialect.name
        if dialect not in UPSERT_INSERTS:
            raise ValueError(f"Unsupported database dialect for visit tracking: {dialect}")
        self._insert = UPSERT_INSERTS[dialect]

    @asynccontextmanager
    async def _transaction(self, operation: str):
        """Commit on success, roll back everything on any failure"""
        try:
            yield
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.critical("counter_integrity_violation", operation=operation, error=str(e))
            raise CounterIntegrityError(str(e)) from e
        except Exception:
            await self.db.rollback()
            raise

    def _stats_upsert(self, values: dict[str, Any], on_conflict: dict[str, Any]):
        stmt = self._insert(site_stats).values(id=STATS_ROW_ID, **values)
        return stmt.on_conflict_do_update(index_elements=["id"], set_=on_conflict)

    async def record_visit(
            self,
            session_id: str,
            page_path: str | None = DEFAULT_PAGE_PATH
    ) -> dict[str, bool]:
        """
        Record a visit unless this session already visited this page.

        The unique constraint on (session_id, page_path) decides whether the
        visit is new, and the site_session primary key decides whether the
        session is new. Both are read before the counters move, so a
        concurrent duplicate can neither double count a visit nor a session.

        Returns:
            dict with 'tracked' (a visit row was inserted) and 'new_session'
        """
        session_id = (session_id or "").strip()
        if not session_id:
            raise ValueError("session_id is required")
        page_path = normalize_page_path(page_path)
        now = utcnow()

        async with self._transaction("record_visit"):
            visit_stmt = self._insert(site_visit).values(
                session_id=session_id,
                page_path=page_path,
                visited_at=now
            ).on_conflict_do_nothing(index_elements=["session_id", "page_path"])

            result = await self.db.execute(visit_stmt)
            if result.rowcount == 0:
                logger.debug("visit_already_tracked", page_path=page_path)
                return {"tracked": False, "new_session": False}

            session_stmt = self._insert(site_session).values(
                session_id=session_id,
                first_seen_at=now
            ).on_conflict_do_nothing(index_elements=["session_id"])

            result = await self.db.execute(session_stmt)
            new_session = result.rowcount > 0
            session_increment = 1 if new_session else 0

            # A missing row is bootstrapped at 1/1 (the current session counts
            # even when site_session already knew it), later visits increment
            await self.db.execute(self._stats_upsert(
                {
                    "total_visits": 1,
                    "unique_sessions": 1,
                    "created_at": now,
                    "updated_at": now
                },
                {
                    "total_visits": site_stats.c.total_visits + 1,
                    "unique_sessions": site_stats.c.unique_sessions + session_increment,
                    "updated_at": now
                }
            ))

        logger.info("visit_tracked", page_path=page_path, new_session=new_session)
        return {"tracked": True, "new_session": new_session}

    async def get_stats(self) -> dict[str, Any]:
        """Current aggregate, zeros if nothing was ever tracked (no row is created)"""
        stmt = select(
            SiteStats.total_visits,
            SiteStats.unique_sessions,
            SiteStats.created_at,
            SiteStats.updated_at
        ).where(SiteStats.id == STATS_ROW_ID)

        row = (await self.db.execute(stmt)).one_or_none()

        if row is None:
            now = utcnow()
            return {
                "total_visits": 0,
                "unique_sessions": 0,
                "since": now,
                "last_updated": now
            }

        return {
            "total_visits": row.total_visits or 0,
            "unique_sessions": row.unique_sessions or 0,
            "since": row.created_at,
            "last_updated": row.updated_at
        }

    async def reset_counters(self) -> None:
        """Delete the visit log and zero the aggregate in one transaction"""
        now = utcnow()

        async with self._transaction("reset_counters"):
            # Aggregate row first: trackers mid-transaction either finish before
            # the deletes run or add their increment after the reset commits
            await self.db.execute(self._stats_upsert(
                {"total_visits": 0, "unique_sessions": 0, "created_at": now, "updated_at": now},
                {"total_visits": 0, "unique_sessions": 0, "updated_at": now}
            ))
            deleted = await self.db.execute(delete(site_visit))
            await self.db.execute(delete(site_session))

        logger.info("counter_reset", visits_deleted=deleted.rowcount)

    async def _lock_stats_row(self) -> None:
        """Write-lock the aggregate row (creating it at zero if absent)"""
        now = utcnow()
        await self.db.execute(self._stats_upsert(
            {"total_visits": 0, "unique_sessions": 0, "created_at": now, "updated_at": now},
            {"updated_at": site_stats.c.updated_at}
        ))

    async def _drift_report(self) -> dict[str, Any]:
        stored = await self.get_stats()

        total_visits = await self.db.scalar(select(func.count()).select_from(SiteVisit))
        unique_sessions = await self.db.scalar(
            select(func.count(func.distinct(SiteVisit.session_id)))
        )
        missing_sessions = await self.db.scalar(
            select(func.count(func.distinct(SiteVisit.session_id)))
            .where(SiteVisit.session_id.not_in(select(SiteSession.session_id)))
        )
        orphan_sessions = await self.db.scalar(
            select(func.count())
            .select_from(SiteSession)
            .where(SiteSession.session_id.not_in(select(SiteVisit.session_id)))
        )

        return {
            "stored": {
                "total_visits": stored["total_visits"],
                "unique_sessions": stored["unique_sessions"]
            },
            "actual": {
                "total_visits": total_visits,
                "unique_sessions": unique_sessions
            },
            "missing_sessions": missing_sessions,
            "orphan_sessions": orphan_sessions,
            "drift": (
                stored["total_visits"] != total_visits
                or stored["unique_sessions"] != unique_sessions
                or missing_sessions > 0
                or orphan_sessions > 0
            ),
            "applied": False
        }

    async def reconcile_counters(self, apply: bool = False) -> dict[str, Any]:
        """
        Recount the aggregate from the visit log and report drift.

        With apply=True the aggregate row is locked before counting, then the
        session table is rebuilt from the visit log and the aggregate is
        overwritten with the recounted values, all in one transaction.
        Visits recorded meanwhile wait for the lock and land on top of the
        repaired values.
        """
        if not apply:
            report = await self._drift_report()
            self._log_report(report)
            return report

        now = utcnow()
        async with self._transaction("reconcile_counters"):
            await self._lock_stats_row()
            report = await self._drift_report()
            self._log_report(report)

            if report["drift"]:
                actual = report["actual"]
                await self.db.execute(
                    insert(site_session).from_select(
                        ["session_id", "first_seen_at"],
                        select(SiteVisit.session_id, func.min(SiteVisit.visited_at))
                        .where(SiteVisit.session_id.not_in(select(SiteSession.session_id)))
                        .group_by(SiteVisit.session_id)
                    )
                )
                await self.db.execute(
                    delete(site_session)
                    .where(SiteSession.session_id.not_in(select(SiteVisit.session_id)))
                )
                await self.db.execute(self._stats_upsert(
                    {**actual, "created_at": now, "updated_at": now},
                    {**actual, "updated_at": now}
                ))
                report["applied"] = True

        if report["applied"]:
            logger.info("counters_reconciled", **report["actual"])
        return report

    @staticmethod
    def _log_report(report: dict[str, Any]) -> None:
        if report["drift"]:
            logger.warning("counter_drift_detected", **{k: v for k, v in report.items() if k != "applied"})
        else:
            logger.info("counters_consistent", **report["actual"])
