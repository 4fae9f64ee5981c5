import asyncio

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field

from backend.auth.dependencies import get_current_person_id
from backend.booking.resolution import person_identifier
from backend.core import config
from backend.core.errors import ServiceError
from backend.dependencies import get_fhir_backend
from backend.fhir.client import FhirBackend
from backend.fhir.references import OrganizationRef, ScheduleRef, is_valid_id, parse_reference, reference_of

router = APIRouter(tags=['schedules'])

UNNAMED_ORGANIZATION = 'Unnamed organization'
UNDESCRIBED_SCHEDULE = '(no description)'


class OrganizationResponse(BaseModel):
    id: str
    name: str


class SlotResponse(BaseModel):
    id: str
    start: str | None = None
    end: str | None = None
    status: str


class ScheduleResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    schedule_id: str = Field(alias='scheduleId')
    comment: str
    slots: list[SlotResponse]


class ScheduleListResponse(BaseModel):
    schedules: list[ScheduleResponse]


class SlotListResponse(BaseModel):
    slots: list[SlotResponse]


def require_id(value: str | None, name: str) -> str:
    normalized = (value or '').strip()
    if not normalized:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f'{name} is required.')
    if not is_valid_id(normalized):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f'Invalid {name}.')
    return normalized


def to_slot_response(slot: dict) -> SlotResponse:
    return SlotResponse(
        id=slot['id'],
        start=slot.get('start'),
        end=slot.get('end'),
        status=slot.get('status') or 'free',
    )


async def list_schedule_slots(backend: FhirBackend, schedule_ref: ScheduleRef) -> list[SlotResponse]:
    slots = await backend.search('Slot', {'schedule': str(schedule_ref)})
    return [to_slot_response(slot) for slot in slots]


async def registered_organization_ids(backend: FhirBackend, person_id: str) -> set[str]:
    patients = await backend.search('Patient', {'identifier': person_identifier(person_id)})
    organization_ids = set()
    for patient in patients:
        raw_reference = reference_of(patient.get('managingOrganization'))
        if not raw_reference:
            continue
        try:
            reference = parse_reference(raw_reference)
        except ValueError:
            continue
        if isinstance(reference, OrganizationRef):
            organization_ids.add(reference.id)
    return organization_ids


async def organization_practitioners(backend: FhirBackend, organization_ref: OrganizationRef) -> list[str]:
    roles = await backend.search('PractitionerRole', {'organization': str(organization_ref)})
    return [reference for reference in (reference_of(role.get('practitioner')) for role in roles) if reference]


@router.get('/organizations', response_model=list[OrganizationResponse])
async def list_organizations(backend: FhirBackend = Depends(get_fhir_backend)):
    params = {'name': config.ORGANIZATION_NAME_FILTER} if config.ORGANIZATION_NAME_FILTER else {}
    try:
        organizations = await backend.search('Organization', params)
    except ServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc

    return [
        OrganizationResponse(id=organization['id'], name=organization.get('name') or UNNAMED_ORGANIZATION)
        for organization in organizations
    ]


@router.get('/schedules', response_model=ScheduleListResponse)
async def list_schedules(
    organization_id: str | None = Query(default=None, alias='organizationId'),
    person_id: str = Depends(get_current_person_id),
    backend: FhirBackend = Depends(get_fhir_backend),
):
    organization_ref = OrganizationRef(require_id(organization_id, 'organizationId'))

    try:
        if organization_ref.id not in await registered_organization_ids(backend, person_id):
            return ScheduleListResponse(schedules=[])

        actors = [str(organization_ref), *await organization_practitioners(backend, organization_ref)]
        schedules = await backend.search('Schedule', {'actor': ','.join(actors)})

        slot_lists = await asyncio.gather(
            *(list_schedule_slots(backend, ScheduleRef(schedule['id'])) for schedule in schedules)
        )
    except ServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc

    return ScheduleListResponse(
        schedules=[
            ScheduleResponse(
                schedule_id=schedule['id'],
                comment=schedule.get('comment') or UNDESCRIBED_SCHEDULE,
                slots=slots,
            )
            for schedule, slots in zip(schedules, slot_lists)
        ]
    )


@router.get('/slots', response_model=SlotListResponse)
async def list_slots(
    schedule_id: str | None = Query(default=None, alias='scheduleId'),
    person_id: str = Depends(get_current_person_id),
    backend: FhirBackend = Depends(get_fhir_backend),
):
    del person_id
    schedule_ref = ScheduleRef(require_id(schedule_id, 'scheduleId'))

    try:
        slots = await list_schedule_slots(backend, schedule_ref)
    except ServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc

    return SlotListResponse(slots=slots)
