"""
db/models/dataset.py

Dataset model: one uploaded tabular file plus its quality audit state.
The quality_* columns form the audit state machine; quality_status doubles as
the mutual-exclusion flag for "an audit is currently running".
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, JSONType, TimestampMixin

if TYPE_CHECKING:
    from db.models.team import Team
    from db.models.user import User


class QualityStatus:
    """Valid quality audit states for a dataset."""

    NOT_RUN = "not_run"
    PROCESSING = "processing"
    OK = "ok"
    WARNING = "warning"
    ERROR = "error"

    TERMINAL = frozenset({OK, WARNING, ERROR})
    ALL = frozenset({NOT_RUN, PROCESSING, OK, WARNING, ERROR})


class Dataset(Base, TimestampMixin):
    """
    Represents one uploaded dataset file.

    schema_info stores the ordered header descriptors ({name, type}) captured
    at upload; column_descriptions maps column name to the user's free-text
    description. Both must be complete before an audit may start.
    """

    __tablename__ = "datasets"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    team_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("teams.id", ondelete="SET NULL"),
        nullable=True,
        comment="Set when the dataset is shared with a team",
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    original_filename: Mapped[str | None] = mapped_column(String(512), nullable=True)

    storage_path: Mapped[str] = mapped_column(
        String(1024),
        nullable=False,
        unique=True,
        comment="Key of the raw file inside dataset storage",
    )

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    schema_info: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
    )

    column_descriptions: Mapped[dict[str, str]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
    )

    quality_status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=QualityStatus.NOT_RUN,
        comment="Audit state: not_run → processing → ok | warning | error",
    )

    quality_audit_requested_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    quality_audit_completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    quality_report: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType,
        nullable=True,
        comment="Final report, or an {error, timestamp} envelope on failure",
    )

    # ── Relationships ──────────────────────────────────────────────────────────

    owner: Mapped["User"] = relationship("User", lazy="joined")

    team: Mapped["Team | None"] = relationship("Team", lazy="joined")

    # ── Indexes ────────────────────────────────────────────────────────────────

    __table_args__ = (
        Index("ix_datasets_owner_id", "owner_id"),
        Index("ix_datasets_team_id", "team_id"),
        Index("ix_datasets_quality_status", "quality_status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Dataset id={self.id} name={self.name!r} "
            f"owner_id={self.owner_id} quality_status={self.quality_status!r}>"
        )
