"""Find the caller's active reservation on a schedule.

Only one booked reservation is allowed per (patient, schedule); a new booking
anywhere on the schedule replaces it.
"""

import logging
from dataclasses import dataclass

from backend.fhir.client import FhirBackend
from backend.fhir.references import AppointmentRef, PatientRef, ScheduleRef, SlotRef, reference_of

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExistingReservation:
    appointment_ref: AppointmentRef
    slot_ref: SlotRef | None
    # Current state of the bound slot, None when it no longer exists.
    slot: dict | None = None


def bound_slot_of(appointment: dict) -> SlotRef | None:
    slots = appointment.get('slot') or []
    raw_reference = reference_of(slots[0]) if slots else None
    if raw_reference is None:
        return None
    try:
        return SlotRef.parse(raw_reference)
    except ValueError:
        logger.warning('Appointment/%s has an unreadable slot reference %r', appointment.get('id'), raw_reference)
        return None


async def find_active_reservation(
    backend: FhirBackend,
    patient_ref: PatientRef,
    schedule_ref: ScheduleRef,
) -> ExistingReservation | None:
    appointments = await backend.search(
        'Appointment',
        {
            'patient': str(patient_ref),
            'supporting-information': str(schedule_ref),
            'status': 'booked',
        },
    )
    if not appointments:
        return None
    if len(appointments) > 1:
        logger.warning('%s holds %d booked appointments on %s', patient_ref, len(appointments), schedule_ref)

    appointment = appointments[0]
    slot_ref = bound_slot_of(appointment)
    slot = await backend.read(slot_ref) if slot_ref else None
    return ExistingReservation(
        appointment_ref=AppointmentRef(appointment['id']),
        slot_ref=slot_ref,
        slot=slot,
    )
