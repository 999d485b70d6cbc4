"""
Waiting List API Endpoints
Join the waiting list, feed cancellations in, and redeem offer links.
"""

import logging
import datetime as dt
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, model_validator

from clinic_scheduling.api.dependencies import get_waitlist_matcher
from clinic_scheduling.exceptions import (
    AlreadyOnWaitlistError,
    InvalidTokenError,
    OfferError,
    OfferExpiredError,
    OfferNoLongerAvailableError,
)
from clinic_scheduling.models.waitlist import (
    Appointment,
    CancellationEvent,
    WaitlistEntry,
    WaitlistEntryCreate,
)
from clinic_scheduling.services.locks import OfferLockBusyError
from clinic_scheduling.services.waitlist_service import WaitlistMatcher
from clinic_scheduling.utils.timezone_utils import to_location_local

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/waitlist", tags=["waitlist"])

OFFER_ERROR_STATUS = {
    InvalidTokenError: 404,
    OfferNoLongerAvailableError: 409,
    OfferExpiredError: 410,
}


def offer_error_to_http(error: OfferError) -> HTTPException:
    """Map an offer failure to its status; only the patient-facing message leaves."""
    status_code = OFFER_ERROR_STATUS.get(type(error), 400)
    return HTTPException(status_code=status_code, detail=error.message)


# Request/Response Models
class CancellationRequest(BaseModel):
    """A cancelled appointment, as local time or as UTC plus the location's timezone"""
    appointment_id: str
    local_datetime: Optional[dt.datetime] = None
    appointment_datetime: Optional[dt.datetime] = Field(None, description="Stored UTC datetime")
    timezone: Optional[str] = Field(None, description="Location timezone, e.g. Europe/Madrid")
    location_id: Optional[str] = None

    @model_validator(mode="after")
    def require_datetime(self):
        if self.local_datetime is None and self.appointment_datetime is None:
            raise ValueError("Either local_datetime or appointment_datetime is required")
        return self

    def to_event(self) -> CancellationEvent:
        if self.local_datetime is not None:
            local = self.local_datetime.replace(tzinfo=None)
        else:
            local = to_location_local(self.appointment_datetime, self.timezone)
        return CancellationEvent(
            appointment_id=self.appointment_id,
            local_datetime=local,
            location_id=self.location_id,
        )


class CancellationResponse(BaseModel):
    offered_count: int
    offered_entry_ids: List[str]


class OfferDetailsResponse(BaseModel):
    success: bool = True
    entry: WaitlistEntry
    appointment_date: dt.datetime
    expires_at: Optional[dt.datetime] = None
    original_appointment: Optional[Appointment] = None


class ConfirmOfferResponse(BaseModel):
    success: bool = True
    message: str
    appointment: Appointment


@router.post("", response_model=WaitlistEntry, status_code=201)
async def join_waitlist(
    request: WaitlistEntryCreate,
    matcher: WaitlistMatcher = Depends(get_waitlist_matcher)
):
    """Add a patient to the waiting list"""
    try:
        return await matcher.join_waitlist(request)
    except AlreadyOnWaitlistError as e:
        raise HTTPException(status_code=409, detail=e.message)
    except Exception as e:
        logger.error(f"Failed to join waitlist for patient {request.patient_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to join waiting list")


@router.post("/cancellations", response_model=CancellationResponse)
async def process_cancellation(
    request: CancellationRequest,
    matcher: WaitlistMatcher = Depends(get_waitlist_matcher)
):
    """Offer a freed slot to matching waiting patients"""
    try:
        offered = await matcher.match_and_offer(request.to_event())
    except OfferLockBusyError as e:
        logger.warning(str(e))
        raise HTTPException(status_code=409, detail="Cancellation is already being processed")
    except Exception as e:
        logger.error(f"Failed to process cancellation {request.appointment_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to process cancellation")

    return CancellationResponse(
        offered_count=len(offered),
        offered_entry_ids=[e.id for e in offered],
    )


@router.get("/offers/{token}", response_model=OfferDetailsResponse)
async def get_offer(
    token: str,
    matcher: WaitlistMatcher = Depends(get_waitlist_matcher)
):
    """Offer details for the acceptance page"""
    try:
        details = await matcher.get_offer_details(token)
    except OfferError as e:
        raise offer_error_to_http(e)

    return OfferDetailsResponse(
        entry=details.entry,
        appointment_date=details.appointment_date,
        expires_at=details.expires_at,
        original_appointment=details.original_appointment,
    )


@router.post("/offers/{token}/confirm", response_model=ConfirmOfferResponse)
async def confirm_offer(
    token: str,
    matcher: WaitlistMatcher = Depends(get_waitlist_matcher)
):
    """Redeem an offer link; the first patient of the batch wins"""
    try:
        confirmation = await matcher.confirm_offer(token)
    except OfferError as e:
        logger.info(f"Offer confirmation rejected: {e.message}")
        raise offer_error_to_http(e)
    except Exception as e:
        logger.error(f"Failed to confirm waitlist offer: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to confirm appointment")

    return ConfirmOfferResponse(
        message=confirmation.message,
        appointment=confirmation.appointment,
    )
