import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field

from backend.auth.dependencies import get_current_person_id
from backend.booking.orchestrator import BookingOrchestrator
from backend.core.errors import ServiceError
from backend.dependencies import get_booking_orchestrator

router = APIRouter(tags=['booking'])

logger = logging.getLogger(__name__)


class BookRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    slot_id: str | None = Field(default=None, alias='slotId')


class BookResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    appointment_id: str = Field(alias='appointmentId')


@router.post('/book', response_model=BookResponse)
async def book_slot(
    data: BookRequest,
    person_id: str = Depends(get_current_person_id),
    orchestrator: BookingOrchestrator = Depends(get_booking_orchestrator),
):
    try:
        result = await orchestrator.book(data.slot_id, person_id)
    except ServiceError as exc:
        if exc.status_code >= 500:
            logger.error('Booking slot %s failed: %s', data.slot_id, exc.message)
        raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc
    except Exception as exc:
        logger.exception('Unexpected error while booking slot %s', data.slot_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={'error': 'Unexpected error while booking.'},
        ) from exc

    return BookResponse(message=result.message, appointment_id=result.appointment_id)
