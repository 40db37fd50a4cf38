import pytest

from horario.core.config import Settings
from horario.core.exceptions import NotEditableError, PreconditionViolation, TransportError, ValidationRejectedError
from horario.schemas.allocation import AllocationCreate, AllocationValidationResult
from horario.schemas.conflict import ConflictType
from horario.schemas.proposal import CourseRef, ProposalCreate, ProposalEvent, ProposalStatus
from horario.schemas.timetable import Weekday
from horario.services.allocation_service import AllocationValidator, CellErrorTracker
from horario.services.cache import CacheKeys
from horario.services.notifications import NotificationType
from horario.services.proposal_workflow import ProposalWorkflow
from tests.factories import PERIOD_ID, make_section


@pytest.fixture
def validator(fake_remote, cache, notifier, settings, proposal):
    return AllocationValidator(fake_remote, cache, notifier, proposal_id=proposal.id, settings=settings)


def test_rejected_validation_never_creates(validator, fake_remote, notifier):
    fake_remote.validation_result = AllocationValidationResult(valid=False, error="Professor Ana is busy")
    with pytest.raises(ValidationRejectedError) as exc_info:
        validator.create_allocation("alg", "SEGUNDA", "07:30", "08:20")

    assert exc_info.value.message == "Professor Ana is busy"
    assert fake_remote.count("validate_allocation") == 1
    assert fake_remote.count("create_allocation") == 0
    assert validator.allocations == {}
    assert notifier.of_type(NotificationType.error)[0].message == "Professor Ana is busy"


def test_successful_create_merges_and_invalidates(validator, fake_remote, cache, notifier, proposal):
    assert validator.get_proposal().allocation_count == 0

    allocation = validator.create_allocation("alg", Weekday.monday, "07:30:00", "08:20:00")

    assert fake_remote.calls[-2:] == ["validate_allocation", "create_allocation"]
    assert validator.allocations == {allocation.id: allocation}
    assert allocation.proposal_id == proposal.id
    assert allocation.start == "07:30"
    assert set(CacheKeys.allocation_mutation(proposal.id)) <= set(cache.invalidations)
    assert notifier.of_type(NotificationType.success)[0].title == "Allocation created"
    assert validator.get_proposal().allocation_count == 1

    validator.remove_allocation(allocation.id)
    assert validator.allocations == {}
    assert validator.get_proposal().allocation_count == 0


def test_not_editable_fails_before_any_validation(fake_remote, cache, notifier, settings, store, proposal):
    store.create_allocation(
        AllocationCreate(section_id="web", weekday="SEGUNDA", start="07:30", end="08:20", proposal_id=proposal.id)
    )
    store.apply_transition(proposal.id, ProposalEvent.submit)
    validator = AllocationValidator(fake_remote, cache, notifier, proposal_id=proposal.id, settings=settings)

    with pytest.raises(NotEditableError):
        validator.create_allocation("alg", "TERCA", "07:30", "08:20")
    assert fake_remote.calls == ["get_proposal"]
    assert not validator.can_edit()
    assert validator.available_sections([], Weekday.tuesday, "07:30", "08:20") == []


def test_invalid_input_is_a_precondition_violation(validator, fake_remote):
    with pytest.raises(PreconditionViolation):
        validator.create_allocation("alg", "DOMINGO", "07:30", "08:20")
    with pytest.raises(PreconditionViolation):
        validator.create_allocation("alg", "SEGUNDA", "08:20", "07:30")
    assert fake_remote.count("validate_allocation") == 0


def test_transport_failure_is_notified(validator, fake_remote, notifier):
    fake_remote.fail_on.add("validate_allocation")
    with pytest.raises(TransportError):
        validator.create_allocation("alg", "SEGUNDA", "07:30", "08:20")
    assert fake_remote.count("create_allocation") == 0
    assert notifier.of_type(NotificationType.error)[0].title == "Could not create allocation"


def test_server_rejects_professor_double_booking(validator):
    validator.create_allocation("alg", "SEGUNDA", "07:30", "08:20")
    result = validator.validate_allocation("bd", "SEGUNDA", "07:30", "08:20")
    assert not result.valid
    assert "Ana" in result.error
    with pytest.raises(ValidationRejectedError):
        validator.create_allocation("bd", "SEGUNDA", "07:30", "08:20")
    assert len(validator.allocations) == 1


def test_find_local_conflict(validator, sections):
    validator.create_allocation("alg", "SEGUNDA", "07:30", "08:20")

    professor = validator.find_local_conflict(sections["bd"], Weekday.monday, "08:00", "08:50")
    assert professor.startswith("Professor Ana")
    section = validator.find_local_conflict(sections["alg"], Weekday.monday, "07:30", "08:20")
    assert section.startswith("Section ALG-A")
    assert validator.find_local_conflict(sections["bd"], Weekday.monday, "08:20", "09:10") is None
    assert validator.find_local_conflict(sections["web"], Weekday.monday, "07:30", "08:20") is None


def test_available_sections(validator, sections):
    validator.create_allocation("alg", "SEGUNDA", "07:30", "08:20")
    other_period = make_section("old", professor_id="prof-dora", period_id="period-2024-2")

    available = validator.available_sections(
        [*sections.values(), other_period], Weekday.monday, "07:30", "08:20"
    )
    assert [section.id for section in available] == ["web", "redes"]


def test_grid_and_conflict_views(validator):
    first = validator.create_allocation("web", "SEGUNDA", "07:30", "08:20")
    second = validator.create_allocation("redes", "SEGUNDA", "07:30", "08:20")

    assert [item.id for item in validator.grid()[(Weekday.monday, 0)]] == [first.id, second.id]
    conflicts = validator.detect_conflicts()
    assert [conflict.type for conflict in conflicts] == [ConflictType.slot_overlap]
    assert validator.conflict_service().stats().auto_resolvable == 1


def test_refresh_loads_the_proposal_allocations(validator, store, proposal):
    store.create_allocation(
        AllocationCreate(section_id="web", weekday="QUINTA", start="13:00", end="13:50", proposal_id=proposal.id)
    )
    allocations = validator.refresh()
    assert [item.section_id for item in allocations] == ["web"]


def test_period_scope_includes_other_proposals(fake_remote, cache, notifier, store, proposal):
    store.add_course(CourseRef(id="course-eng", name="Software Engineering"))
    other = store.create_proposal(ProposalCreate(course_id="course-eng", period_id=PERIOD_ID))
    store.create_allocation(
        AllocationCreate(section_id="web", weekday="SEGUNDA", start="07:30", end="08:20", proposal_id=other.id)
    )

    scoped = AllocationValidator(
        fake_remote, cache, notifier, proposal_id=proposal.id, settings=Settings(conflict_scope="proposal")
    )
    scoped.create_allocation("alg", "SEGUNDA", "07:30", "08:20")
    assert scoped.detect_conflicts() == []

    period = AllocationValidator(
        fake_remote, cache, notifier, proposal_id=proposal.id, settings=Settings(conflict_scope="period")
    )
    period.refresh()
    conflicts = period.detect_conflicts()
    assert len(conflicts) == 1
    assert len(conflicts[0].allocations) == 2


def test_create_in_cell_marks_the_cell_on_failure(validator, fake_remote):
    fake_remote.validation_result = AllocationValidationResult(valid=False, error="Slot is taken")
    with pytest.raises(ValidationRejectedError):
        validator.create_in_cell("alg", "QUARTA", 3)
    assert validator.cell_errors.is_errored((Weekday.wednesday, 3))

    fake_remote.validation_result = None
    allocation = validator.create_in_cell("alg", "QUARTA", 4)
    assert (allocation.start, allocation.end) == ("13:50", "14:40")


def test_cell_error_tracker_expires():
    now = [100.0]
    tracker = CellErrorTracker(cooldown_seconds=3.0, clock=lambda: now[0])
    key = (Weekday.friday, 2)
    tracker.mark(key)
    assert tracker.is_errored(key)
    assert tracker.active() == [key]

    now[0] += 2.9
    assert tracker.is_errored(key)
    now[0] += 0.1
    assert not tracker.is_errored(key)
    assert tracker.active() == []


@pytest.mark.parametrize("slot_index", [-1, 6])
def test_create_in_cell_rejects_slots_outside_the_catalog(validator, fake_remote, notifier, slot_index):
    with pytest.raises(PreconditionViolation):
        validator.create_in_cell("alg", "QUARTA", slot_index)

    assert fake_remote.count("validate_allocation") == 0
    assert validator.allocations == {}
    assert validator.cell_errors.is_errored((Weekday.wednesday, slot_index))
    assert notifier.of_type(NotificationType.error)[0].title == "Could not create allocation"


def test_services_share_the_default_cache(fake_remote, notifier, settings, proposal):
    workflow = ProposalWorkflow(fake_remote, notifier=notifier)
    validator = AllocationValidator(fake_remote, notifier=notifier, proposal_id=proposal.id, settings=settings)
    assert workflow.get_proposal(proposal.id).allocation_count == 0

    validator.create_allocation("alg", "SEGUNDA", "07:30", "08:20")
    submitted = workflow.submit(proposal.id)

    assert submitted.status == ProposalStatus.pending_approval
    assert workflow.cache is validator.cache
