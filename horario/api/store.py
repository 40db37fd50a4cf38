from __future__ import annotations

import uuid
from datetime import datetime, timezone
from threading import Lock

from horario.core.exceptions import NotEditableError, ResourceNotFoundError, ValidationRejectedError
from horario.schemas.allocation import (
    Allocation,
    AllocationCreate,
    AllocationFilter,
    AllocationValidationRequest,
    AllocationValidationResult,
)
from horario.schemas.proposal import (
    AcademicPeriodRef,
    CoordinatorRef,
    CourseRef,
    Proposal,
    ProposalCreate,
    ProposalEvent,
    ProposalFilter,
    ProposalStatus,
)
from horario.schemas.section import Section
from horario.schemas.timetable import WEEKDAY_LABELS, ScheduleSlotCatalog
from horario.services.proposal_workflow import check_transition


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryStore:
    """Authoritative state for the reference server.

    Professor and section double-booking are checked against every
    allocation whose section belongs to the same academic period, whatever
    proposal it sits in.
    """

    def __init__(
        self,
        catalog: ScheduleSlotCatalog | None = None,
        *,
        allow_sub_slot_ranges: bool = False,
    ) -> None:
        self.catalog = catalog or ScheduleSlotCatalog()
        self.allow_sub_slot_ranges = allow_sub_slot_ranges
        self.sections: dict[str, Section] = {}
        self.courses: dict[str, CourseRef] = {}
        self.periods: dict[str, AcademicPeriodRef] = {}
        self.coordinator: CoordinatorRef | None = None
        self.proposals: dict[str, Proposal] = {}
        self.allocations: dict[str, Allocation] = {}
        self._lock = Lock()

    # seeding

    def add_section(self, section: Section) -> Section:
        self.sections[section.id] = section
        return section

    def add_course(self, course: CourseRef) -> CourseRef:
        self.courses[course.id] = course
        return course

    def add_period(self, period: AcademicPeriodRef) -> AcademicPeriodRef:
        self.periods[period.id] = period
        return period

    # allocations

    def _section(self, section_id: str) -> Section:
        section = self.sections.get(section_id)
        if section is None:
            raise ResourceNotFoundError("Section", section_id)
        return section

    def _proposal(self, proposal_id: str) -> Proposal:
        proposal = self.proposals.get(proposal_id)
        if proposal is None:
            raise ResourceNotFoundError("Proposal", proposal_id)
        return proposal

    def validate(self, request: AllocationValidationRequest) -> AllocationValidationResult:
        section = self.sections.get(request.section_id)
        if section is None:
            return AllocationValidationResult(valid=False, error=f"Section {request.section_id} not found")

        slot = self.catalog.find_slot(request.time_range, allow_sub_range=self.allow_sub_slot_ranges)
        if slot is None:
            return AllocationValidationResult(
                valid=False,
                error=f"{request.start}-{request.end} does not match any configured class slot",
                details={"start": request.start, "end": request.end},
            )

        day = WEEKDAY_LABELS[request.weekday]
        for existing in self.allocations.values():
            if existing.section.period_id != section.period_id or existing.weekday != request.weekday:
                continue
            if not existing.time_range.overlaps(request.time_range):
                continue
            if existing.section_id == section.id:
                return AllocationValidationResult(
                    valid=False,
                    error=f"Section {section.code} is already allocated on {day} {existing.start}-{existing.end}",
                    details={"conflictingAllocationId": existing.id, "type": "SECTION_OVERLAP"},
                )
            if section.professor_id is not None and existing.professor_id == section.professor_id:
                return AllocationValidationResult(
                    valid=False,
                    error=(
                        f"Professor {section.professor.name} is already allocated on {day} "
                        f"{existing.start}-{existing.end} with section {existing.section.code}"
                    ),
                    details={"conflictingAllocationId": existing.id, "type": "PROFESSOR_OVERLAP"},
                )
        return AllocationValidationResult(valid=True)

    def create_allocation(self, payload: AllocationCreate) -> Allocation:
        with self._lock:
            if payload.proposal_id is not None:
                proposal = self._proposal(payload.proposal_id)
                if proposal.status != ProposalStatus.draft:
                    raise NotEditableError(proposal.id, proposal.status.value)

            # Re-check: the slot may have been taken since the client validated.
            result = self.validate(AllocationValidationRequest(**payload.model_dump(exclude={"proposal_id"})))
            if not result.valid:
                raise ValidationRejectedError(result.error or "Invalid allocation", details=result.details)

            allocation = Allocation(
                id=str(uuid.uuid4()),
                section=self.sections[payload.section_id],
                **payload.model_dump(),
            )
            self.allocations[allocation.id] = allocation
            self._touch(payload.proposal_id)
            return allocation

    def delete_allocation(self, allocation_id: str) -> None:
        with self._lock:
            allocation = self.allocations.get(allocation_id)
            if allocation is None:
                raise ResourceNotFoundError("Allocation", allocation_id)
            if allocation.proposal_id is not None:
                proposal = self._proposal(allocation.proposal_id)
                if proposal.status != ProposalStatus.draft:
                    raise NotEditableError(proposal.id, proposal.status.value)
            del self.allocations[allocation_id]
            self._touch(allocation.proposal_id)

    def list_allocations(self, filters: AllocationFilter) -> list[Allocation]:
        return [allocation for allocation in self.allocations.values() if filters.matches(allocation)]

    # proposals

    def _touch(self, proposal_id: str | None) -> None:
        if proposal_id is None or proposal_id not in self.proposals:
            return
        count = sum(1 for allocation in self.allocations.values() if allocation.proposal_id == proposal_id)
        self.proposals[proposal_id] = self.proposals[proposal_id].model_copy(
            update={"allocation_count": count, "updated_at": _now()}
        )

    def get_proposal(self, proposal_id: str) -> Proposal:
        return self._proposal(proposal_id)

    def list_proposals(self, filters: ProposalFilter) -> list[Proposal]:
        proposals = list(self.proposals.values())
        if filters.status:
            proposals = [proposal for proposal in proposals if proposal.status in filters.status]
        if filters.course_id:
            proposals = [proposal for proposal in proposals if proposal.course.id == filters.course_id]
        if filters.period_id:
            proposals = [proposal for proposal in proposals if proposal.academic_period.id == filters.period_id]
        return proposals

    def create_proposal(self, payload: ProposalCreate) -> Proposal:
        course = self.courses.get(payload.course_id)
        if course is None:
            raise ResourceNotFoundError("Course", payload.course_id)
        period = self.periods.get(payload.period_id)
        if period is None:
            raise ResourceNotFoundError("AcademicPeriod", payload.period_id)
        for existing in self.proposals.values():
            if (
                existing.course.id == course.id
                and existing.academic_period.id == period.id
                and existing.status in {ProposalStatus.draft, ProposalStatus.pending_approval}
            ):
                raise ValidationRejectedError(
                    "An open proposal already exists for this course and academic period",
                    details={"proposalId": existing.id},
                )
        now = _now()
        proposal = Proposal(
            id=str(uuid.uuid4()),
            course=course,
            academic_period=period,
            coordinator=self.coordinator,
            status=ProposalStatus.draft,
            coordinator_notes=payload.coordinator_notes,
            allocation_count=0,
            created_at=now,
            updated_at=now,
        )
        self.proposals[proposal.id] = proposal
        return proposal

    def delete_proposal(self, proposal_id: str) -> None:
        with self._lock:
            proposal = self._proposal(proposal_id)
            if proposal.status != ProposalStatus.draft:
                raise NotEditableError(proposal.id, proposal.status.value)
            del self.proposals[proposal_id]
            for allocation_id in [key for key, item in self.allocations.items() if item.proposal_id == proposal_id]:
                del self.allocations[allocation_id]

    def apply_transition(self, proposal_id: str, event: ProposalEvent, **changes) -> Proposal:
        with self._lock:
            proposal = self._proposal(proposal_id)
            transition = check_transition(proposal, event)
            now = _now()
            update = {"status": transition.target, "updated_at": now, **changes}
            if event == ProposalEvent.submit:
                update["submitted_at"] = now
            elif event in {ProposalEvent.approve, ProposalEvent.reject}:
                update["decided_at"] = now
            else:
                update["decided_at"] = None
                update["rejection_justification"] = None
            self.proposals[proposal_id] = proposal.model_copy(update=update)
            return self.proposals[proposal_id]
