from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from form_engine.db.base import Base, JSONType, utcnow


class TaskForm(Base):
    """A task's filled-in form. Any row here freezes its form version."""

    __tablename__ = "task_forms"
    __table_args__ = (
        UniqueConstraint("task_id", name="uq_task_forms_task"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    task_id: Mapped[int] = mapped_column(Integer, nullable=False)
    form_version_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("form_versions.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # answers keyed by field id
    data: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    created_by_user_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    form_version = relationship("FormVersion", lazy="selectin")
