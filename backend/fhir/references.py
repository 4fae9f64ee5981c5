"""Typed FHIR references.

A reference string such as ``Patient/123`` mixes the resource kind with the
logical id. Each kind gets its own value type so a schedule reference can't be
passed where a slot reference is expected.
"""

import re
from dataclasses import dataclass
from typing import ClassVar

FHIR_ID_PATTERN = re.compile(r'^[A-Za-z0-9\-.]{1,64}$')


class ReferenceKindError(ValueError):
    pass


def is_valid_id(value: str | None) -> bool:
    return bool(value) and FHIR_ID_PATTERN.match(value) is not None


def split_reference(value: str) -> tuple[str, str]:
    """Return ``(resource_type, id)`` from a relative or absolute reference.

    Handles ``Slot/1``, ``http://server/fhir/Slot/1`` and versioned forms like
    ``Appointment/7/_history/1``.
    """
    if not value:
        raise ValueError('Empty reference.')

    parts = [part for part in value.split('/') if part]
    if '_history' in parts:
        parts = parts[:parts.index('_history')]
    if len(parts) < 2:
        raise ValueError(f'Malformed reference: {value!r}')

    resource_type, resource_id = parts[-2], parts[-1]
    if not is_valid_id(resource_id):
        raise ValueError(f'Malformed reference id: {value!r}')
    return resource_type, resource_id


@dataclass(frozen=True)
class Reference:
    resource_type: ClassVar[str] = ''

    id: str

    def __str__(self) -> str:
        return f'{self.resource_type}/{self.id}'

    def as_fhir(self) -> dict:
        return {'reference': str(self)}

    @classmethod
    def parse(cls, value: str) -> 'Reference':
        resource_type, resource_id = split_reference(value)
        if resource_type != cls.resource_type:
            raise ReferenceKindError(f'Expected a {cls.resource_type} reference, got {value!r}')
        return cls(resource_id)


class SlotRef(Reference):
    resource_type = 'Slot'


class ScheduleRef(Reference):
    resource_type = 'Schedule'


class PractitionerRef(Reference):
    resource_type = 'Practitioner'


class OrganizationRef(Reference):
    resource_type = 'Organization'


class PatientRef(Reference):
    resource_type = 'Patient'


class AppointmentRef(Reference):
    resource_type = 'Appointment'


REFERENCE_TYPES: dict[str, type[Reference]] = {
    ref_type.resource_type: ref_type
    for ref_type in (SlotRef, ScheduleRef, PractitionerRef, OrganizationRef, PatientRef, AppointmentRef)
}


def parse_reference(value: str) -> Reference:
    """Parse a reference into the value type matching its resource kind."""
    resource_type, _ = split_reference(value)
    ref_type = REFERENCE_TYPES.get(resource_type)
    if ref_type is None:
        raise ReferenceKindError(f'Unsupported reference kind: {value!r}')
    return ref_type.parse(value)


def reference_of(element: dict | None) -> str | None:
    """Pull the ``reference`` string out of a FHIR Reference element."""
    if not isinstance(element, dict):
        return None
    return element.get('reference') or None
