import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.booking.gate import SlotGate
from backend.core import config
from backend.fhir.client import FhirClient
from backend.routes import booking_routes, patient_routes, schedule_routes

logging.basicConfig(level=config.LOG_LEVEL)

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
async def initialize_services() -> None:
    config.validate_runtime_config()
    app.state.fhir_client = FhirClient()
    app.state.slot_gate = SlotGate()
    logger.info('Using FHIR server at %s', config.FHIR_SERVER_BASE)


@app.on_event('shutdown')
async def shutdown_services() -> None:
    gate = getattr(app.state, 'slot_gate', None)
    if gate is not None and len(gate):
        logger.warning('Shutting down with %d slot(s) still held', len(gate))
        gate.clear()
    client = getattr(app.state, 'fhir_client', None)
    if client is not None:
        await client.aclose()


@app.get('/')
def root():
    return {'status': 'Slot Booking API Running'}


app.include_router(booking_routes.router, prefix='/api')
app.include_router(schedule_routes.router, prefix='/api')
app.include_router(patient_routes.router, prefix='/api')
