from fastapi import Depends
from sqlalchemy.orm import Session

from clinic.database import get_db
from clinic.services.availability_store import AvailabilityStore
from clinic.services.booking_engine import BookingEngine


def get_availability_store(db: Session = Depends(get_db)) -> AvailabilityStore:
    return AvailabilityStore(db)


def get_booking_engine(db: Session = Depends(get_db)) -> BookingEngine:
    return BookingEngine(db)
