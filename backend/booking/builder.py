"""Assemble the operations for one booking.

Order matters: the superseded reservation's slot is freed and the reservation
deleted before the replacement is created and its slot marked busy. The list
is always submitted as a single transaction.
"""

from backend.booking.conflicts import ExistingReservation
from backend.booking.resolution import BookingContext
from backend.fhir import transaction
from backend.fhir.transaction import TransactionOperation


def version_tag(resource: dict) -> str | None:
    version_id = (resource.get('meta') or {}).get('versionId')
    return f'W/"{version_id}"' if version_id else None


def with_status(slot: dict, status: str) -> dict:
    return {**slot, 'status': status}


def new_appointment(context: BookingContext) -> dict:
    return {
        'resourceType': 'Appointment',
        'status': 'booked',
        'slot': [context.slot_ref.as_fhir()],
        'supportingInformation': [context.schedule_ref.as_fhir()],
        'start': context.slot.get('start'),
        'end': context.slot.get('end'),
        'participant': [
            {'actor': context.patient_ref.as_fhir(), 'status': 'accepted'},
            {'actor': context.practitioner_ref.as_fhir(), 'status': 'accepted'},
        ],
    }


def build_booking_operations(
    context: BookingContext,
    existing: ExistingReservation | None = None,
) -> list[TransactionOperation]:
    operations: list[TransactionOperation] = []

    if existing is not None:
        if existing.slot_ref is not None and existing.slot is not None:
            operations.append(transaction.update(str(existing.slot_ref), with_status(existing.slot, 'free')))
        operations.append(transaction.delete(str(existing.appointment_ref)))

    operations.append(transaction.create(new_appointment(context)))
    operations.append(
        transaction.update(
            str(context.slot_ref),
            with_status(context.slot, 'busy'),
            if_match=version_tag(context.slot),
        )
    )
    return operations
