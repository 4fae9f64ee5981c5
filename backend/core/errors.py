"""Service error taxonomy.

Every error carries the HTTP status class it is reported with. Client-class
errors (4xx) mean the caller can fix the request; server-class errors (5xx)
carry backend detail for diagnosis.
"""

from typing import Any


class ServiceError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str, detail: Any = None):
        self.message = message
        self.detail = detail
        super().__init__(message)

    def to_detail(self) -> dict:
        payload = {'error': self.message}
        if self.detail is not None:
            payload['detail'] = self.detail
        return payload


class BookingValidationError(ServiceError):
    status_code = 400


class SlotBusyError(ServiceError):
    """Another booking attempt for the same slot is in flight."""

    status_code = 409

    def __init__(self, slot_id: str):
        self.slot_id = slot_id
        super().__init__('This slot is being processed, please try again shortly.')


class SlotUnavailableError(ServiceError):
    """The slot is already held by another reservation."""

    status_code = 409

    def __init__(self, slot_id: str):
        self.slot_id = slot_id
        super().__init__(f'Slot {slot_id} is already booked.')


class ResourceNotFoundError(ServiceError):
    status_code = 404


class SlotNotFoundError(ResourceNotFoundError):
    def __init__(self, slot_id: str):
        self.slot_id = slot_id
        super().__init__(f'Slot {slot_id} not found.')


class ScheduleNotFoundError(ResourceNotFoundError):
    def __init__(self, schedule_ref: str | None):
        self.schedule_ref = schedule_ref
        if schedule_ref:
            super().__init__(f'Schedule {schedule_ref} not found.')
        else:
            super().__init__('Slot does not reference a schedule.')


class RoleNotFoundError(ResourceNotFoundError):
    def __init__(self, practitioner_ref: str):
        self.practitioner_ref = practitioner_ref
        super().__init__(f'No PractitionerRole found for {practitioner_ref}.')


class PatientNotRegisteredError(ResourceNotFoundError):
    def __init__(self, organization_ref: str):
        self.organization_ref = organization_ref
        super().__init__(f'No Patient record for this account in {organization_ref}. Register with the organization first.')


class PatientAlreadyRegisteredError(ServiceError):
    status_code = 409

    def __init__(self, organization_ref: str):
        self.organization_ref = organization_ref
        super().__init__(f'Already registered with {organization_ref}.')


class UpstreamConfigurationError(ServiceError):
    """Backend records are shaped in a way booking cannot work with."""

    status_code = 500


class UnsupportedActorTypeError(UpstreamConfigurationError):
    def __init__(self, schedule_ref: str, actor: str | None):
        self.schedule_ref = schedule_ref
        self.actor = actor
        super().__init__(f'Schedule {schedule_ref} actor is not a Practitioner: {actor}')


class OrganizationMissingError(UpstreamConfigurationError):
    def __init__(self, practitioner_ref: str):
        self.practitioner_ref = practitioner_ref
        super().__init__(f'PractitionerRole for {practitioner_ref} has no organization reference.')


class FhirServerError(ServiceError):
    """The FHIR server could not be reached or answered with an error."""

    status_code = 502

    def __init__(self, message: str, status: int | None = None, detail: Any = None):
        self.status = status
        super().__init__(message, detail)


class BookingFailedError(ServiceError):
    status_code = 502


class InvariantViolationError(ServiceError):
    status_code = 500
