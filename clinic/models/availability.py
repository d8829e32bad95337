"""Availability model definitions."""

from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, Time
from sqlalchemy.orm import relationship
from clinic.database import Base


class Availability(Base):
    """Represents a dated window during which a doctor can be booked."""
    __tablename__ = "availability"

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    slots = relationship(
        "AvailabilitySlot",
        back_populates="availability",
        cascade="all, delete-orphan",
        order_by="AvailabilitySlot.start_time",
    )


class AvailabilitySlot(Base):
    """Represents a fixed-length bookable piece of an availability window."""
    __tablename__ = "availability_slots"

    id = Column(Integer, primary_key=True)
    availability_id = Column(Integer, ForeignKey("availability.id", ondelete="CASCADE"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    active = Column(Boolean, nullable=False, default=True)

    availability = relationship("Availability", back_populates="slots")
