from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import relationship

from plans.core.db import Base


class HangoutInvite(Base):
    __tablename__ = "hangout_invites"

    id = Column(Integer, primary_key=True)

    # one shareable link per hangout
    hangout_id = Column(Integer, ForeignKey("hangouts.id", ondelete="CASCADE"), nullable=False, unique=True)
    token = Column(String(64), nullable=False, unique=True, index=True)

    created_by_participant_id = Column(
        Integer, ForeignKey("hangout_participants.id", ondelete="SET NULL"), nullable=True
    )
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    hangout = relationship("Hangout", back_populates="invite")
