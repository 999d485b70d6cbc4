"""
Custom exceptions for the scheduling engine.
"""


class InvalidSchedulingRequestError(Exception):
    """Raised when a scheduling request is invalid."""

    def __init__(self, message: str):
        super().__init__(message)


class MalformedAppointmentRecordError(Exception):
    """Raised when an existing appointment record cannot be parsed."""

    def __init__(self, record_id=None, message: str = None):
        self.record_id = record_id
        self.message = message or f"Appointment record {record_id} is malformed"
        super().__init__(self.message)


class ExternalCalendarUnavailableError(Exception):
    """Raised when the external calendar conflict service cannot be reached."""

    def __init__(self, message: str = "External calendar is unavailable"):
        self.message = message
        super().__init__(self.message)


class AlreadyOnWaitlistError(Exception):
    """Raised when a patient is already waiting for the same service."""

    def __init__(self, patient_id: str, service_id: str = None):
        self.patient_id = patient_id
        self.service_id = service_id
        self.message = "You are already on the waiting list for this service."
        super().__init__(self.message)


class OfferError(Exception):
    """Base class for waitlist offer redemption failures.

    `message` is safe to show to the patient.
    """

    message = "Error occurred"

    def __init__(self, token: str = None, message: str = None):
        self.token = token
        if message:
            self.message = message
        super().__init__(self.message)


class InvalidTokenError(OfferError):
    """Raised when no waitlist entry carries the token."""

    message = "Invalid link"


class OfferNoLongerAvailableError(OfferError):
    """Raised when the offer was already confirmed or lost to another patient."""

    message = "No longer available"


class OfferExpiredError(OfferError):
    """Raised when the offer's 24 hour window has passed."""

    message = "Expired"
