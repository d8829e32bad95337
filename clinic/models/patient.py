"""Patient model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String
from clinic.database import Base


class Patient(Base):
    """Represents a patient who books appointments."""
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    cpf = Column(String, unique=True, index=True)
    created_at = Column(DateTime, default=datetime.now)
