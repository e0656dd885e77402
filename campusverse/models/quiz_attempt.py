from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from campusverse.db.base_class import Base, JSONType


class QuizAttempt(Base):
    __tablename__ = "quiz_attempts"
    # One attempt per student per quiz, enforced by the database
    __table_args__ = (UniqueConstraint("quiz_id", "student_id", name="uq_quiz_attempts_quiz_student"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    quiz_id: Mapped[int] = mapped_column(ForeignKey("quizzes.id"), index=True, nullable=False)
    student_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)

    # [{"question": 0, "selected_option": 2 | None}, ...] in question order
    answers_json: Mapped[list[dict]] = mapped_column(JSONType, nullable=False, default=list)
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    passed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Client-observed
    start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # Server-observed
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_late: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    late_by_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
