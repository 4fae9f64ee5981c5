"""Value types for atomic multi-operation submissions."""

from dataclasses import dataclass
from typing import Sequence

from backend.fhir.references import split_reference


@dataclass(frozen=True)
class TransactionOperation:
    """One create/update/delete entry in a transaction."""

    method: str
    url: str
    resource: dict | None = None
    if_match: str | None = None

    def to_entry(self) -> dict:
        request = {'method': self.method, 'url': self.url}
        if self.if_match:
            request['ifMatch'] = self.if_match
        entry: dict = {'request': request}
        if self.resource is not None:
            entry['resource'] = self.resource
        return entry


@dataclass(frozen=True)
class OperationOutcome:
    """Per-operation result reported by the backend."""

    status: str
    location: str | None = None

    @property
    def status_code(self) -> int | None:
        code = self.status.strip().split(' ', 1)[0] if self.status else ''
        return int(code) if code.isdigit() else None

    @property
    def is_created(self) -> bool:
        return self.status_code == 201

    @property
    def location_type(self) -> str | None:
        if not self.location:
            return None
        try:
            return split_reference(self.location)[0]
        except ValueError:
            return None


def create(resource: dict) -> TransactionOperation:
    return TransactionOperation('POST', resource['resourceType'], resource=resource)


def update(url: str, resource: dict, if_match: str | None = None) -> TransactionOperation:
    return TransactionOperation('PUT', url, resource=resource, if_match=if_match)


def delete(url: str) -> TransactionOperation:
    return TransactionOperation('DELETE', url)


def to_bundle(operations: Sequence[TransactionOperation]) -> dict:
    return {
        'resourceType': 'Bundle',
        'type': 'transaction',
        'entry': [operation.to_entry() for operation in operations],
    }


def parse_transaction_response(bundle: dict) -> list[OperationOutcome]:
    outcomes = []
    for entry in bundle.get('entry') or []:
        response = entry.get('response') or {}
        outcomes.append(OperationOutcome(status=str(response.get('status', '')), location=response.get('location')))
    return outcomes
