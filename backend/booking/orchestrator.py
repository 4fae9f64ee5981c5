import logging
from dataclasses import dataclass

from backend.booking.builder import build_booking_operations
from backend.booking.conflicts import find_active_reservation
from backend.booking.executor import execute_booking
from backend.booking.gate import SlotGate
from backend.booking.resolution import resolve_booking_context
from backend.core.errors import BookingValidationError, SlotUnavailableError
from backend.fhir.client import FhirBackend
from backend.fhir.references import is_valid_id

logger = logging.getLogger(__name__)

BOOKED_MESSAGE = 'Appointment booked.'
UPDATED_MESSAGE = 'Appointment updated.'
ALREADY_BOOKED_MESSAGE = 'Appointment already booked.'


@dataclass(frozen=True)
class BookingResult:
    message: str
    appointment_id: str
    replaced_appointment_id: str | None = None


class BookingOrchestrator:
    """Books a slot for a person, replacing their reservation on the same schedule.

    Steps run in a fixed order under the slot gate: resolve the ownership
    chain, look for an active reservation, build the operations and submit
    them as one transaction. The gate is released on every exit path.
    """

    def __init__(self, backend: FhirBackend, gate: SlotGate):
        self.backend = backend
        self.gate = gate

    async def book(self, slot_id: str | None, person_id: str) -> BookingResult:
        slot_id = (slot_id or '').strip()
        if not slot_id:
            raise BookingValidationError('slotId is required.')
        if not is_valid_id(slot_id):
            raise BookingValidationError(f'Invalid slotId: {slot_id!r}')

        async with self.gate.hold(slot_id):
            context = await resolve_booking_context(self.backend, slot_id, person_id)
            existing = await find_active_reservation(self.backend, context.patient_ref, context.schedule_ref)

            if existing is not None and existing.slot_ref == context.slot_ref:
                logger.info('%s already holds %s on %s', context.patient_ref, existing.appointment_ref, context.slot_ref)
                return BookingResult(ALREADY_BOOKED_MESSAGE, existing.appointment_ref.id)

            if (context.slot.get('status') or 'free') != 'free':
                raise SlotUnavailableError(slot_id)

            if existing is not None:
                logger.info('Replacing %s (slot %s) for %s', existing.appointment_ref, existing.slot_ref, context.patient_ref)

            operations = build_booking_operations(context, existing)
            appointment_id = await execute_booking(self.backend, operations)

        logger.info('Booked Appointment/%s on %s for %s', appointment_id, context.slot_ref, context.patient_ref)
        if existing is None:
            return BookingResult(BOOKED_MESSAGE, appointment_id)
        return BookingResult(UPDATED_MESSAGE, appointment_id, replaced_appointment_id=existing.appointment_ref.id)
