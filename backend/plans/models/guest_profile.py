from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import relationship

from plans.core.db import Base


class GuestProfile(Base):
    __tablename__ = "guest_profiles"

    id = Column(Integer, primary_key=True)

    token = Column(String(64), nullable=False, unique=True, index=True)  # bearer, lives in cookie
    # handed only to the guest itself; claim is keyed on it
    public_id = Column(String(32), nullable=False, unique=True, index=True)
    display_name = Column(String(128), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    # one-way: set when the guest later signs in
    converted_to_profile_id = Column(Integer, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)

    # "<hangout_id>:<client key>", dedupes retried join requests
    idempotency_key = Column(String(160), nullable=True, unique=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    converted_to_profile = relationship("Profile")
