from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from plans.core.db import Base


class ActivityOption(Base):
    __tablename__ = "hangout_activity_options"
    __table_args__ = (
        UniqueConstraint("hangout_id", "display_order", name="uq_activity_option_order"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    hangout_id: Mapped[int] = mapped_column(ForeignKey("hangouts.id", ondelete="CASCADE"), index=True)

    activity_ref: Mapped[str] = mapped_column(String(128), nullable=False)  # external catalog id
    title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False)

    added_by_profile_id: Mapped[int | None] = mapped_column(ForeignKey("profiles.id"), nullable=True)
    added_by_guest_id: Mapped[int | None] = mapped_column(ForeignKey("guest_profiles.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    hangout = relationship("Hangout", back_populates="activity_options", foreign_keys=[hangout_id])
    votes = relationship("Vote", back_populates="option", cascade="all, delete-orphan")

    @property
    def display_name(self) -> str:
        return self.title or self.activity_ref
