from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from plans.core.db import Base


class TimeOption(Base):
    __tablename__ = "hangout_time_options"
    __table_args__ = (
        UniqueConstraint("hangout_id", "display_order", name="uq_time_option_order"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    hangout_id: Mapped[int] = mapped_column(ForeignKey("hangouts.id", ondelete="CASCADE"), index=True)
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    hangout = relationship("Hangout", back_populates="time_options", foreign_keys=[hangout_id])
    votes = relationship("TimeVote", back_populates="option", cascade="all, delete-orphan")


class TimeVote(Base):
    __tablename__ = "time_votes"
    __table_args__ = (
        UniqueConstraint("time_option_id", "profile_id", name="uq_time_vote_option_profile"),
        UniqueConstraint("time_option_id", "guest_id", name="uq_time_vote_option_guest"),
        CheckConstraint("(profile_id IS NULL) <> (guest_id IS NULL)", name="ck_time_vote_one_identity"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    time_option_id: Mapped[int] = mapped_column(ForeignKey("hangout_time_options.id", ondelete="CASCADE"), index=True)
    profile_id: Mapped[int | None] = mapped_column(ForeignKey("profiles.id"), nullable=True)
    guest_id: Mapped[int | None] = mapped_column(ForeignKey("guest_profiles.id"), nullable=True)

    value: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    option = relationship("TimeOption", back_populates="votes")
