# SQLAlchemy models

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import declarative_base
from datetime import datetime, timezone
import uuid

Base = declarative_base()

# The aggregate lives in exactly one row with this primary key
STATS_ROW_ID = 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SiteVisit(Base):
    """One deduplicated (session_id, page_path) visit. Never updated."""
    __tablename__ = "site_visit"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id = Column(String(255), nullable=False, index=True)
    page_path = Column(String(500), nullable=False, default="/")
    visited_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("session_id", "page_path", name="uq_site_visit_session_page"),
    )


class SiteSession(Base):
    """A session that has produced at least one tracked visit"""
    __tablename__ = "site_session"

    session_id = Column(String(255), primary_key=True)
    first_seen_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class SiteStats(Base):
    """Running totals derived from the visit log"""
    __tablename__ = "site_stats"

    id = Column(Integer, primary_key=True, default=STATS_ROW_ID, autoincrement=False)
    total_visits = Column(Integer, nullable=False, default=0)
    unique_sessions = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint(f"id = {STATS_ROW_ID}", name="ck_site_stats_singleton"),
        CheckConstraint("total_visits >= 0", name="ck_site_stats_total_visits"),
        CheckConstraint("unique_sessions >= 0", name="ck_site_stats_unique_sessions"),
    )
