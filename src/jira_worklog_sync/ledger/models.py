"""SQLAlchemy tables of the local ledger."""

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, Text, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from jira_worklog_sync.utils.timefmt import utcnow_iso


class Base(DeclarativeBase):
    pass


class WorklogRow(Base):
    """A finalized time entry, optionally linked to a Jira worklog."""

    __tablename__ = "worklogs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    issue_key: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    # ISO 8601 with the local offset at the time the work happened
    started_at: Mapped[str] = mapped_column(Text, nullable=False)
    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    sync_status: Mapped[str] = mapped_column(Text, nullable=False, default="pending", index=True)
    jira_worklog_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Jira's "updated" marker, compared verbatim and never parsed
    jira_updated_at: Mapped[str | None] = mapped_column(Text, nullable=True)
    sync_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[str] = mapped_column(Text, nullable=False, default=utcnow_iso)
    updated_at: Mapped[str] = mapped_column(
        Text, nullable=False, default=utcnow_iso, onupdate=utcnow_iso
    )

    __table_args__ = (
        Index("ix_worklogs_started_at", "started_at"),
        Index(
            "ix_worklogs_jira_worklog_id_unique",
            "jira_worklog_id",
            unique=True,
            sqlite_where=text("jira_worklog_id IS NOT NULL"),
        ),
        CheckConstraint("duration_seconds >= 0", name="ck_worklogs_duration"),
        CheckConstraint(
            "sync_status IN ('pending', 'synced', 'error')", name="ck_worklogs_sync_status"
        ),
    )


class ActiveTimerRow(Base):
    """The single in-progress timer."""

    __tablename__ = "active_timer"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    issue_key: Mapped[str] = mapped_column(Text, nullable=False)
    started_at: Mapped[str] = mapped_column(Text, nullable=False)
    accumulated_secs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_paused: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    paused_at: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    __table_args__ = (CheckConstraint("id = 1", name="ck_active_timer_singleton"),)


class IssueRow(Base):
    """Advisory cache of issues seen in searches."""

    __tablename__ = "issues"

    issue_key: Mapped[str] = mapped_column(Text, primary_key=True)
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    project_key: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str | None] = mapped_column(Text, nullable=True)
    issue_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[str] = mapped_column(
        Text, nullable=False, default=utcnow_iso, onupdate=utcnow_iso
    )
