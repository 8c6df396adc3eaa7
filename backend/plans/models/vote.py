from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from plans.core.db import Base


class Vote(Base):
    __tablename__ = "votes"
    __table_args__ = (
        UniqueConstraint("activity_option_id", "profile_id", name="uq_vote_option_profile"),
        UniqueConstraint("activity_option_id", "guest_id", name="uq_vote_option_guest"),
        CheckConstraint("(profile_id IS NULL) <> (guest_id IS NULL)", name="ck_vote_one_identity"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    activity_option_id: Mapped[int] = mapped_column(
        ForeignKey("hangout_activity_options.id", ondelete="CASCADE"), index=True
    )
    profile_id: Mapped[int | None] = mapped_column(ForeignKey("profiles.id"), nullable=True)
    guest_id: Mapped[int | None] = mapped_column(ForeignKey("guest_profiles.id"), nullable=True)

    value: Mapped[int] = mapped_column(Integer, nullable=False)  # never 0: 0 means "no row"

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    option = relationship("ActivityOption", back_populates="votes")
