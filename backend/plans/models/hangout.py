from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from plans.core.db import Base


class Hangout(Base):
    __tablename__ = "hangouts"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    creator_id: Mapped[int] = mapped_column(ForeignKey("profiles.id"), index=True)

    # stored as string, validated against HangoutStatus in code
    status: Mapped[str] = mapped_column(String(16), default="PLANNING", nullable=False, index=True)

    consensus_threshold: Mapped[int] = mapped_column(Integer, default=60, nullable=False)  # percent, UI hint
    allow_participant_suggestions: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_voting_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    voting_ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    scheduled_for: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # decision: written once, by resolution
    final_option_id: Mapped[int | None] = mapped_column(
        ForeignKey("hangout_activity_options.id", use_alter=True, name="fk_hangouts_final_option"),
        nullable=True,
    )
    final_activity_ref: Mapped[str | None] = mapped_column(String(128), nullable=True)
    final_time_option_id: Mapped[int | None] = mapped_column(
        ForeignKey("hangout_time_options.id", use_alter=True, name="fk_hangouts_final_time_option"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    creator = relationship("Profile")
    participants = relationship(
        "HangoutParticipant",
        back_populates="hangout",
        cascade="all, delete-orphan",
        order_by="HangoutParticipant.id",
    )
    activity_options = relationship(
        "ActivityOption",
        back_populates="hangout",
        cascade="all, delete-orphan",
        foreign_keys="ActivityOption.hangout_id",
        order_by="ActivityOption.display_order",
    )
    time_options = relationship(
        "TimeOption",
        back_populates="hangout",
        cascade="all, delete-orphan",
        foreign_keys="TimeOption.hangout_id",
        order_by="TimeOption.display_order",
    )
    final_option = relationship("ActivityOption", foreign_keys=[final_option_id], post_update=True)
    final_time_option = relationship("TimeOption", foreign_keys=[final_time_option_id], post_update=True)
    invite = relationship("HangoutInvite", back_populates="hangout", cascade="all, delete-orphan", uselist=False)
