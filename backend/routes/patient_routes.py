import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field, field_validator

from backend.auth.dependencies import get_current_person_id
from backend.booking.resolution import patient_in_organization, person_identifier
from backend.core import config
from backend.core.errors import PatientAlreadyRegisteredError, ServiceError
from backend.dependencies import get_fhir_backend
from backend.fhir.client import FhirBackend
from backend.fhir.references import OrganizationRef, ScheduleRef, is_valid_id, parse_reference, reference_of

router = APIRouter(tags=['patients'])

logger = logging.getLogger(__name__)

APPOINTMENT_PAGE_SIZE = 50
UNKNOWN_SCHEDULE_NAME = '(schedule unavailable)'


class PatientResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    patient_id: str = Field(alias='patientId')
    org_ref: str | None = Field(default=None, alias='orgRef')


class CreatePatientRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    organization_id: str = Field(alias='organizationId')
    email: str

    @field_validator('organization_id')
    @classmethod
    def validate_organization_id(cls, value: str) -> str:
        normalized = value.strip()
        if not is_valid_id(normalized):
            raise ValueError('Invalid organizationId.')
        return normalized

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError('Email is required.')
        return normalized


class CreatePatientResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    patient_id: str = Field(alias='patientId')


class AppointmentSummaryResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    appointment_id: str = Field(alias='appointmentId')
    schedule_id: str = Field(alias='scheduleId')
    schedule_name: str = Field(alias='scheduleName')
    start: str | None = None
    end: str | None = None
    status: str | None = None


def schedule_id_of(appointment: dict) -> str:
    supporting = appointment.get('supportingInformation') or []
    raw_reference = reference_of(supporting[0]) if supporting else None
    if not raw_reference:
        return ''
    try:
        reference = parse_reference(raw_reference)
    except ValueError:
        return ''
    return reference.id if isinstance(reference, ScheduleRef) else ''


async def schedule_names(backend: FhirBackend, schedule_ids: list[str]) -> dict[str, str]:
    if not schedule_ids:
        return {}
    try:
        schedules = await backend.search('Schedule', {'_id': ','.join(schedule_ids)})
    except ServiceError as exc:
        logger.warning('Could not load schedule names: %s', exc.message)
        return {}
    return {schedule['id']: schedule.get('comment') or '(no description)' for schedule in schedules}


@router.get('/patient', response_model=PatientResponse)
async def get_patient(
    organization_id: str | None = Query(default=None, alias='organizationId'),
    managing_organization: str | None = Query(default=None, alias='managingOrganization'),
    person_id: str = Depends(get_current_person_id),
    backend: FhirBackend = Depends(get_fhir_backend),
):
    organization_id = (organization_id or managing_organization or '').strip() or None
    if organization_id is not None and not is_valid_id(organization_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Invalid organizationId.')

    params = {'identifier': person_identifier(person_id)}
    if organization_id:
        params['organization'] = str(OrganizationRef(organization_id))

    try:
        patients = await backend.search('Patient', params)
    except ServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc

    if not patients:
        detail = 'No Patient registered with this organization.' if organization_id else 'No Patient registered yet.'
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)

    patient = patients[0]
    return PatientResponse(
        patient_id=patient['id'],
        org_ref=reference_of(patient.get('managingOrganization')),
    )


@router.post('/patient', response_model=CreatePatientResponse, status_code=status.HTTP_201_CREATED)
async def create_patient(
    data: CreatePatientRequest,
    person_id: str = Depends(get_current_person_id),
    backend: FhirBackend = Depends(get_fhir_backend),
):
    organization_ref = OrganizationRef(data.organization_id)

    try:
        if await patient_in_organization(backend, person_id, organization_ref) is not None:
            raise PatientAlreadyRegisteredError(str(organization_ref))

        created = await backend.create({
            'resourceType': 'Patient',
            'identifier': [
                {'system': config.PERSON_IDENTIFIER_SYSTEM, 'value': person_id},
                {'system': config.EMAIL_IDENTIFIER_SYSTEM, 'value': data.email},
            ],
            'managingOrganization': organization_ref.as_fhir(),
        })
    except ServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc

    logger.info('Registered Patient/%s with %s', created['id'], organization_ref)
    return CreatePatientResponse(patient_id=created['id'])


@router.get('/appointments', response_model=list[AppointmentSummaryResponse])
async def list_my_appointments(
    person_id: str = Depends(get_current_person_id),
    backend: FhirBackend = Depends(get_fhir_backend),
):
    try:
        patients = await backend.search('Patient', {'identifier': person_identifier(person_id)})
        if not patients:
            return []

        patient_refs = ','.join(f"Patient/{patient['id']}" for patient in patients)
        appointments = await backend.search(
            'Appointment',
            {'patient': patient_refs, '_count': str(APPOINTMENT_PAGE_SIZE), '_sort': '-date'},
        )
    except ServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc

    schedule_ids = sorted({schedule_id for schedule_id in map(schedule_id_of, appointments) if schedule_id})
    names = await schedule_names(backend, schedule_ids)

    return [
        AppointmentSummaryResponse(
            appointment_id=appointment['id'],
            schedule_id=schedule_id_of(appointment),
            schedule_name=names.get(schedule_id_of(appointment), UNKNOWN_SCHEDULE_NAME),
            start=appointment.get('start'),
            end=appointment.get('end'),
            status=appointment.get('status'),
        )
        for appointment in appointments
    ]
