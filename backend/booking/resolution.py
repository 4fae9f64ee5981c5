"""Resolve a slot id into everything needed to book it.

Organization scope is not stored on the slot or its schedule. It is derived
from the schedule's practitioner through that practitioner's role binding,
and then selects which of the caller's patient records to book with (a person
holds one Patient per organization).

Each step either returns its value or raises, so the chain stops at the first
missing link.
"""

import logging
from dataclasses import dataclass

from backend.core import config
from backend.core.errors import (
    OrganizationMissingError,
    PatientNotRegisteredError,
    RoleNotFoundError,
    ScheduleNotFoundError,
    SlotNotFoundError,
    UnsupportedActorTypeError,
)
from backend.fhir.client import FhirBackend
from backend.fhir.references import (
    OrganizationRef,
    PatientRef,
    PractitionerRef,
    ScheduleRef,
    SlotRef,
    reference_of,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingContext:
    slot_ref: SlotRef
    slot: dict
    schedule_ref: ScheduleRef
    schedule: dict
    practitioner_ref: PractitionerRef
    organization_ref: OrganizationRef
    patient_ref: PatientRef


async def fetch_slot(backend: FhirBackend, slot_ref: SlotRef) -> dict:
    slot = await backend.read(slot_ref)
    if slot is None:
        raise SlotNotFoundError(slot_ref.id)
    return slot


async def fetch_schedule(backend: FhirBackend, slot: dict) -> tuple[ScheduleRef, dict]:
    raw_reference = reference_of(slot.get('schedule'))
    try:
        schedule_ref = ScheduleRef.parse(raw_reference)
    except ValueError as exc:
        raise ScheduleNotFoundError(raw_reference) from exc

    schedule = await backend.read(schedule_ref)
    if schedule is None:
        raise ScheduleNotFoundError(str(schedule_ref))
    return schedule_ref, schedule


def practitioner_of(schedule_ref: ScheduleRef, schedule: dict) -> PractitionerRef:
    actors = schedule.get('actor') or []
    raw_reference = reference_of(actors[0]) if actors else None
    try:
        return PractitionerRef.parse(raw_reference)
    except ValueError as exc:
        raise UnsupportedActorTypeError(str(schedule_ref), raw_reference) from exc


async def organization_of(backend: FhirBackend, practitioner_ref: PractitionerRef) -> OrganizationRef:
    roles = await backend.search('PractitionerRole', {'practitioner': str(practitioner_ref)})
    if not roles:
        raise RoleNotFoundError(str(practitioner_ref))

    raw_reference = reference_of(roles[0].get('organization'))
    try:
        return OrganizationRef.parse(raw_reference)
    except ValueError as exc:
        raise OrganizationMissingError(str(practitioner_ref)) from exc


def person_identifier(person_id: str) -> str:
    return f'{config.PERSON_IDENTIFIER_SYSTEM}|{person_id}'


async def patient_in_organization(
    backend: FhirBackend,
    person_id: str,
    organization_ref: OrganizationRef,
) -> PatientRef | None:
    patients = await backend.search(
        'Patient',
        {'identifier': person_identifier(person_id), 'organization': str(organization_ref)},
    )
    if not patients:
        return None
    return PatientRef(patients[0]['id'])


async def resolve_booking_context(backend: FhirBackend, slot_id: str, person_id: str) -> BookingContext:
    slot_ref = SlotRef(slot_id)
    slot = await fetch_slot(backend, slot_ref)
    schedule_ref, schedule = await fetch_schedule(backend, slot)
    practitioner_ref = practitioner_of(schedule_ref, schedule)
    organization_ref = await organization_of(backend, practitioner_ref)
    logger.info('Slot %s belongs to %s via %s', slot_ref, organization_ref, practitioner_ref)

    patient_ref = await patient_in_organization(backend, person_id, organization_ref)
    if patient_ref is None:
        raise PatientNotRegisteredError(str(organization_ref))

    return BookingContext(
        slot_ref=slot_ref,
        slot=slot,
        schedule_ref=schedule_ref,
        schedule=schedule,
        practitioner_ref=practitioner_ref,
        organization_ref=organization_ref,
        patient_ref=patient_ref,
    )
