from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from plans.core.db import Base


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        CheckConstraint("(profile_id IS NULL) <> (guest_id IS NULL)", name="ck_notification_one_recipient"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    profile_id: Mapped[int | None] = mapped_column(ForeignKey("profiles.id"), nullable=True, index=True)
    guest_id: Mapped[int | None] = mapped_column(ForeignKey("guest_profiles.id"), nullable=True, index=True)

    kind: Mapped[str] = mapped_column(String(32), nullable=False)  # HANGOUT_UPDATE/FRIEND_REQUEST
    content: Mapped[str] = mapped_column(Text, nullable=False)
    link: Mapped[str | None] = mapped_column(String(512), nullable=True)

    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
