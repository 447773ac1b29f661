"""History of fail-safe sweeper passes."""

import uuid
from datetime import datetime

from sqlalchemy import Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from notifier.models.base import Base


class SweepRun(Base):
    """
    One sweeper pass: when it ran, what threshold it used and how many
    stuck jobs it returned to the queue.

    A run with reclaimed > 0 means some worker died mid-delivery; operators
    watch this to spot crashing workers or a hanging channel.
    """

    __tablename__ = "sweep_runs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    trigger: Mapped[str] = mapped_column(String(20))  # scheduled, manual
    started_at: Mapped[datetime] = mapped_column(index=True)
    finished_at: Mapped[datetime]
    stale_after_seconds: Mapped[int] = mapped_column(Integer)
    reclaimed: Mapped[int] = mapped_column(Integer, default=0)
    outcome: Mapped[str] = mapped_column(String(20))  # success, error
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    def __repr__(self) -> str:
        return f"<SweepRun {self.started_at:%Y-%m-%d %H:%M:%S} {self.outcome} reclaimed={self.reclaimed}>"
