import asyncio
from collections import defaultdict
from copy import deepcopy

import pytest

from backend.booking.gate import SlotGate
from backend.core.errors import FhirServerError
from backend.fhir.references import split_reference
from backend.fhir.transaction import OperationOutcome

PERSON_ID = 'person-1'
PERSON_SYSTEM = 'http://example.org/fhir/person'

_IGNORED_PARAMS = {'_count', '_sort'}


def _ref(element) -> str | None:
    return element.get('reference') if isinstance(element, dict) else None


def _refs(elements) -> set[str]:
    return {_ref(element) for element in elements or [] if _ref(element)}


def _matches(resource_type: str, resource: dict, key: str, value: str) -> bool:
    values = set(value.split(','))
    if key == '_id':
        return resource.get('id') in values
    if key == 'identifier':
        system, _, identifier_value = value.partition('|')
        return any(
            identifier.get('system') == system and identifier.get('value') == identifier_value
            for identifier in resource.get('identifier') or []
        )
    if key == 'organization':
        field = 'managingOrganization' if resource_type == 'Patient' else 'organization'
        return _ref(resource.get(field)) == value
    if key == 'practitioner':
        return _ref(resource.get('practitioner')) == value
    if key == 'patient':
        return bool(values & {_ref(participant.get('actor')) for participant in resource.get('participant') or []})
    if key == 'supporting-information':
        return value in _refs(resource.get('supportingInformation'))
    if key == 'actor':
        return bool(values & _refs(resource.get('actor')))
    if key == 'schedule':
        return _ref(resource.get('schedule')) == value
    if key in ('status', 'name'):
        return resource.get(key) == value
    raise AssertionError(f'Unsupported search parameter {key!r} for {resource_type}')


class InMemoryFhirBackend:
    """Dict-backed FHIR server with all-or-nothing transactions."""

    def __init__(self):
        self.store: dict[str, dict[str, dict]] = defaultdict(dict)
        self.transactions: list[list] = []
        self.searches: list[tuple[str, dict]] = []
        self.reject_transactions = False
        self.omit_creation_outcome = False
        self.read_barrier: asyncio.Event | None = None
        self._next_id = 100

    def add(self, resource: dict) -> dict:
        self.store[resource['resourceType']][resource['id']] = deepcopy(resource)
        return resource

    def get(self, resource_type: str, resource_id: str) -> dict | None:
        return self.store[resource_type].get(resource_id)

    def all(self, resource_type: str) -> list[dict]:
        return list(self.store[resource_type].values())

    def _new_id(self) -> str:
        self._next_id += 1
        return str(self._next_id)

    async def read(self, reference) -> dict | None:
        if self.read_barrier is not None:
            await self.read_barrier.wait()
        resource = self.store[reference.resource_type].get(reference.id)
        return deepcopy(resource) if resource is not None else None

    async def search(self, resource_type: str, params) -> list[dict]:
        self.searches.append((resource_type, dict(params)))
        criteria = {key: value for key, value in params.items() if key not in _IGNORED_PARAMS}
        return [
            deepcopy(resource)
            for resource in self.store[resource_type].values()
            if all(_matches(resource_type, resource, key, value) for key, value in criteria.items())
        ]

    async def create(self, resource: dict) -> dict:
        created = {**deepcopy(resource), 'id': self._new_id()}
        self.store[created['resourceType']][created['id']] = created
        return deepcopy(created)

    async def apply(self, operations) -> list[OperationOutcome]:
        self.transactions.append(list(operations))
        if self.reject_transactions:
            raise FhirServerError('Transaction rejected with HTTP 409.', status=409, detail={'issue': 'conflict'})

        staged = deepcopy(self.store)
        outcomes = []
        for operation in operations:
            if operation.method == 'POST':
                resource_id = self._new_id()
                staged[operation.url][resource_id] = {**deepcopy(operation.resource), 'id': resource_id}
                outcomes.append(OperationOutcome('201 Created', f'{operation.url}/{resource_id}/_history/1'))
            elif operation.method == 'PUT':
                resource_type, resource_id = split_reference(operation.url)
                current = staged[resource_type].get(resource_id) or {}
                version = (current.get('meta') or {}).get('versionId')
                if operation.if_match and operation.if_match != f'W/"{version}"':
                    raise FhirServerError('Transaction rejected with HTTP 412.', status=412, detail='version conflict')
                next_version = str(int(version) + 1) if version else '1'
                staged[resource_type][resource_id] = {
                    **deepcopy(operation.resource),
                    'id': resource_id,
                    'meta': {'versionId': next_version},
                }
                outcomes.append(OperationOutcome('200 OK', f'{operation.url}/_history/{next_version}'))
            elif operation.method == 'DELETE':
                resource_type, resource_id = split_reference(operation.url)
                staged[resource_type].pop(resource_id, None)
                outcomes.append(OperationOutcome('204 No Content'))
            else:
                raise FhirServerError(f'Unsupported method {operation.method}', status=400)

        self.store = staged
        if self.omit_creation_outcome:
            outcomes = [outcome for outcome in outcomes if not outcome.is_created]
        return outcomes


def _slot(slot_id: str, start: str, end: str, status: str = 'free', schedule: str = 'Schedule/sch1') -> dict:
    return {
        'resourceType': 'Slot',
        'id': slot_id,
        'meta': {'versionId': '1'},
        'schedule': {'reference': schedule},
        'status': status,
        'start': start,
        'end': end,
    }


@pytest.fixture
def fhir_backend() -> InMemoryFhirBackend:
    backend = InMemoryFhirBackend()
    backend.add({'resourceType': 'Organization', 'id': 'org1', 'name': 'Tzu Chi University'})
    backend.add({'resourceType': 'Practitioner', 'id': 'pr1'})
    backend.add({
        'resourceType': 'PractitionerRole',
        'id': 'role1',
        'practitioner': {'reference': 'Practitioner/pr1'},
        'organization': {'reference': 'Organization/org1'},
    })
    backend.add({
        'resourceType': 'Schedule',
        'id': 'sch1',
        'comment': 'Flu vaccination',
        'actor': [{'reference': 'Practitioner/pr1'}],
    })
    backend.add(_slot('s1', '2026-11-02T09:00:00Z', '2026-11-02T09:15:00Z'))
    backend.add(_slot('s2', '2026-11-02T09:15:00Z', '2026-11-02T09:30:00Z'))
    backend.add(_slot('s3', '2026-11-02T09:30:00Z', '2026-11-02T09:45:00Z', status='busy'))
    backend.add({
        'resourceType': 'Patient',
        'id': 'p1',
        'identifier': [{'system': PERSON_SYSTEM, 'value': PERSON_ID}],
        'managingOrganization': {'reference': 'Organization/org1'},
    })
    return backend


@pytest.fixture
def slot_gate() -> SlotGate:
    return SlotGate()
