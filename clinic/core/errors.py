"""Scheduling error taxonomy.

Every rejection carries a stable ``code`` so callers can tell a business
rule collision (pick another time) apart from a store failure.
"""


class SchedulingError(Exception):
    code = 'scheduling_error'
    default_message = 'Scheduling request rejected.'

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class ValidationError(SchedulingError):
    code = 'validation_error'
    default_message = 'Invalid scheduling request.'


class TimeFormatError(ValidationError):
    code = 'invalid_time_format'
    default_message = 'Invalid time format. Use HH:MM (24h).'


class OrderError(ValidationError):
    code = 'invalid_time_order'
    default_message = 'Start time must be before end time.'


class DurationError(ValidationError):
    code = 'invalid_duration'
    default_message = 'Appointment duration is out of bounds.'


class PastDateError(ValidationError):
    code = 'past_date'
    default_message = 'Cannot schedule in the past.'


class InvalidRangeError(ValidationError):
    code = 'invalid_range'
    default_message = 'End date must not be before start date.'


class OverlapError(SchedulingError):
    code = 'availability_overlap'
    default_message = 'Availability overlaps an existing active entry.'


class DuplicateAvailabilityError(OverlapError):
    code = 'availability_duplicate'
    default_message = 'This availability already exists.'


class ConflictError(SchedulingError):
    code = 'conflict'
    default_message = 'This time is already booked.'


class UnavailableError(SchedulingError):
    code = 'unavailable'
    default_message = 'The doctor is not available at this time.'


class NotFoundError(SchedulingError):
    code = 'not_found'
    default_message = 'Record not found.'


class InvalidTransitionError(SchedulingError):
    code = 'invalid_transition'
    default_message = 'Invalid appointment status transition.'


class InternalError(SchedulingError):
    code = 'internal_error'
    default_message = 'Database unavailable. Please try again later.'
