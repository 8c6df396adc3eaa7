from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from plans.core.db import Base


class HangoutParticipant(Base):
    __tablename__ = "hangout_participants"
    __table_args__ = (
        UniqueConstraint("hangout_id", "profile_id", name="uq_hangout_participant_profile"),
        UniqueConstraint("hangout_id", "guest_id", name="uq_hangout_participant_guest"),
        CheckConstraint("(profile_id IS NULL) <> (guest_id IS NULL)", name="ck_hangout_participant_one_identity"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    hangout_id: Mapped[int] = mapped_column(ForeignKey("hangouts.id", ondelete="CASCADE"), index=True)
    profile_id: Mapped[int | None] = mapped_column(ForeignKey("profiles.id"), nullable=True, index=True)
    guest_id: Mapped[int | None] = mapped_column(ForeignKey("guest_profiles.id"), nullable=True, index=True)

    role: Mapped[str] = mapped_column(String(16), nullable=False)  # CREATOR/MEMBER
    is_mandatory: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    rsvp_status: Mapped[str | None] = mapped_column(String(16), nullable=True)  # None = not answered
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    hangout = relationship("Hangout", back_populates="participants")
    profile = relationship("Profile")
    guest = relationship("GuestProfile")
