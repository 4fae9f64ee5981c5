from backend.booking.builder import build_booking_operations, version_tag
from backend.booking.conflicts import ExistingReservation
from backend.booking.resolution import BookingContext
from backend.fhir.references import AppointmentRef, OrganizationRef, PatientRef, PractitionerRef, ScheduleRef, SlotRef


def _context() -> BookingContext:
    return BookingContext(
        slot_ref=SlotRef('s2'),
        slot={
            'resourceType': 'Slot',
            'id': 's2',
            'meta': {'versionId': '4'},
            'status': 'free',
            'start': '2026-11-02T09:15:00Z',
            'end': '2026-11-02T09:30:00Z',
        },
        schedule_ref=ScheduleRef('sch1'),
        schedule={'resourceType': 'Schedule', 'id': 'sch1'},
        practitioner_ref=PractitionerRef('pr1'),
        organization_ref=OrganizationRef('org1'),
        patient_ref=PatientRef('p1'),
    )


def test_new_booking_creates_appointment_then_busies_slot() -> None:
    operations = build_booking_operations(_context())

    assert [(operation.method, operation.url) for operation in operations] == [
        ('POST', 'Appointment'),
        ('PUT', 'Slot/s2'),
    ]

    appointment = operations[0].resource
    assert appointment['status'] == 'booked'
    assert appointment['slot'] == [{'reference': 'Slot/s2'}]
    assert appointment['supportingInformation'] == [{'reference': 'Schedule/sch1'}]
    assert appointment['start'] == '2026-11-02T09:15:00Z'
    assert appointment['end'] == '2026-11-02T09:30:00Z'
    assert appointment['participant'] == [
        {'actor': {'reference': 'Patient/p1'}, 'status': 'accepted'},
        {'actor': {'reference': 'Practitioner/pr1'}, 'status': 'accepted'},
    ]

    assert operations[1].resource['status'] == 'busy'
    assert operations[1].if_match == 'W/"4"'


def test_superseding_booking_frees_old_slot_and_deletes_old_appointment_first() -> None:
    existing = ExistingReservation(
        appointment_ref=AppointmentRef('a1'),
        slot_ref=SlotRef('s1'),
        slot={'resourceType': 'Slot', 'id': 's1', 'status': 'busy'},
    )

    operations = build_booking_operations(_context(), existing)

    assert [(operation.method, operation.url) for operation in operations] == [
        ('PUT', 'Slot/s1'),
        ('DELETE', 'Appointment/a1'),
        ('POST', 'Appointment'),
        ('PUT', 'Slot/s2'),
    ]
    assert operations[0].resource == {'resourceType': 'Slot', 'id': 's1', 'status': 'free'}
    assert operations[1].resource is None


def test_superseded_appointment_without_slot_is_only_deleted() -> None:
    existing = ExistingReservation(appointment_ref=AppointmentRef('a1'), slot_ref=SlotRef('gone'), slot=None)

    operations = build_booking_operations(_context(), existing)

    assert [operation.method for operation in operations] == ['DELETE', 'POST', 'PUT']


def test_builder_does_not_mutate_the_resolved_slot() -> None:
    context = _context()

    build_booking_operations(context)

    assert context.slot['status'] == 'free'


def test_version_tag_requires_version_id() -> None:
    assert version_tag({'meta': {'versionId': '2'}}) == 'W/"2"'
    assert version_tag({}) is None


def test_operation_entries_carry_if_match() -> None:
    operations = build_booking_operations(_context())

    assert operations[1].to_entry()['request'] == {'method': 'PUT', 'url': 'Slot/s2', 'ifMatch': 'W/"4"'}
    assert 'ifMatch' not in operations[0].to_entry()['request']
