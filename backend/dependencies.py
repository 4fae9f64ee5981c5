from fastapi import Depends, Request

from backend.booking.gate import SlotGate
from backend.booking.orchestrator import BookingOrchestrator
from backend.fhir.client import FhirBackend


def get_fhir_backend(request: Request) -> FhirBackend:
    return request.app.state.fhir_client


def get_slot_gate(request: Request) -> SlotGate:
    return request.app.state.slot_gate


def get_booking_orchestrator(
    backend: FhirBackend = Depends(get_fhir_backend),
    gate: SlotGate = Depends(get_slot_gate),
) -> BookingOrchestrator:
    return BookingOrchestrator(backend=backend, gate=gate)
