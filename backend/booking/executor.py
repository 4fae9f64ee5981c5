import logging
from typing import Sequence

from backend.core.errors import BookingFailedError, FhirServerError, InvariantViolationError
from backend.fhir.client import TransactionApplier
from backend.fhir.references import AppointmentRef
from backend.fhir.transaction import OperationOutcome, TransactionOperation

logger = logging.getLogger(__name__)


def _creation_index(operations: Sequence[TransactionOperation]) -> int | None:
    for index, operation in enumerate(operations):
        if operation.method == 'POST' and operation.url == 'Appointment':
            return index
    return None


def find_created_appointment(
    operations: Sequence[TransactionOperation],
    outcomes: Sequence[OperationOutcome],
) -> AppointmentRef | None:
    """Locate the reservation created by the transaction.

    Response entries line up with request entries; when the counts differ the
    outcomes are scanned for an Appointment creation instead.
    """
    index = _creation_index(operations)
    if index is not None and len(outcomes) == len(operations):
        candidates = [outcomes[index]]
    else:
        candidates = list(outcomes)

    for outcome in candidates:
        if outcome.is_created and outcome.location_type == AppointmentRef.resource_type:
            return AppointmentRef.parse(outcome.location)
    return None


async def execute_booking(applier: TransactionApplier, operations: Sequence[TransactionOperation]) -> str:
    """Submit the operations atomically and return the new reservation id."""
    try:
        outcomes = await applier.apply(operations)
    except FhirServerError as exc:
        logger.warning('Booking transaction rejected: %s (%s)', exc.message, exc.detail)
        raise BookingFailedError('Booking transaction failed.', detail=exc.detail or exc.message) from exc

    appointment_ref = find_created_appointment(operations, outcomes)
    if appointment_ref is None:
        logger.error(
            'Transaction succeeded but no Appointment creation was reported: %s',
            [(outcome.status, outcome.location) for outcome in outcomes],
        )
        raise InvariantViolationError(
            'Transaction succeeded but the new appointment could not be found in the response.',
            detail=[{'status': outcome.status, 'location': outcome.location} for outcome in outcomes],
        )
    return appointment_ref.id
