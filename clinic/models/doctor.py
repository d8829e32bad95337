"""Doctor model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String
from clinic.database import Base


class Doctor(Base):
    """Represents a doctor who publishes availability."""
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    crm = Column(String, unique=True, index=True, nullable=False)
    specialty = Column(String, nullable=False)
    email = Column(String, unique=True, index=True)
    # Bumped by every scheduling write so concurrent writers for one doctor serialise on this row.
    booking_version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.now)
