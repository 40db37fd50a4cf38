from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable

from pydantic import ValidationError

from horario.core.config import Settings, get_settings
from horario.core.exceptions import (
    AppError,
    NotEditableError,
    ValidationRejectedError,
    precondition_from_validation,
)
from horario.schemas.allocation import (
    Allocation,
    AllocationCreate,
    AllocationFilter,
    AllocationValidationRequest,
    AllocationValidationResult,
)
from horario.schemas.conflict import ConflictDetail
from horario.schemas.proposal import Proposal, ProposalStatus
from horario.schemas.section import Section
from horario.schemas.timetable import WEEKDAY_LABELS, ScheduleSlotCatalog, TimeRange, Weekday
from horario.services.cache import CacheKeys, QueryCache, get_query_cache
from horario.services.conflict_service import ConflictService
from horario.services.grid import GridKey, GridPositionMapper
from horario.services.notifications import LogNotifier, NotificationPort
from horario.services.remote import RemoteAuthority

logger = logging.getLogger(__name__)

SLOT_CATALOG_KEY = "slot-catalog"


class CellErrorTracker:
    """Remembers grid cells whose last create failed, for a short cooldown."""

    def __init__(self, cooldown_seconds: float = 3.0, clock: Callable[[], float] = time.monotonic):
        self.cooldown_seconds = cooldown_seconds
        self.clock = clock
        self._errors: dict[GridKey, float] = {}

    def mark(self, key: GridKey) -> None:
        self._errors[key] = self.clock() + self.cooldown_seconds

    def is_errored(self, key: GridKey) -> bool:
        expires_at = self._errors.get(key)
        if expires_at is None:
            return False
        if self.clock() >= expires_at:
            del self._errors[key]
            return False
        return True

    def active(self) -> list[GridKey]:
        return [key for key in list(self._errors) if self.is_errored(key)]


class AllocationValidator:
    """Validate-then-create protocol for allocations, optionally scoped to a proposal.

    Keeps the working set of allocations in memory; every successful create
    or delete merges into that set and drops the cached remote reads it made
    stale. Conflicts and grid views are recomputed from the working set on
    each call.
    """

    def __init__(
        self,
        remote: RemoteAuthority,
        cache: QueryCache | None = None,
        notifier: NotificationPort | None = None,
        *,
        proposal_id: str | None = None,
        settings: Settings | None = None,
        log: logging.Logger | None = None,
    ):
        self.remote = remote
        self.cache = cache if cache is not None else get_query_cache()
        self.notifier = notifier if notifier is not None else LogNotifier()
        self.proposal_id = proposal_id
        self.settings = settings or get_settings()
        self.log = log or logger
        self.allocations: dict[str, Allocation] = {}
        self.cell_errors = CellErrorTracker(self.settings.error_cooldown_seconds)

    # reads

    def get_proposal(self) -> Proposal | None:
        if self.proposal_id is None:
            return None
        return self.cache.get_or_fetch(
            CacheKeys.proposal(self.proposal_id), lambda: self.remote.get_proposal(self.proposal_id)
        )

    def get_slot_catalog(self) -> ScheduleSlotCatalog:
        return self.cache.get_or_fetch(SLOT_CATALOG_KEY, self.remote.get_schedule_slot_catalog)

    def list_allocations(self) -> list[Allocation]:
        if self.proposal_id is None:
            key, filters = CacheKeys.ALL_ALLOCATIONS, None
        else:
            key, filters = CacheKeys.proposal_allocations(self.proposal_id), AllocationFilter(proposal_id=self.proposal_id)
        return self.cache.get_or_fetch(key, lambda: self.remote.list_allocations(filters))

    def refresh(self) -> list[Allocation]:
        self.allocations = {allocation.id: allocation for allocation in self.list_allocations()}
        return list(self.allocations.values())

    def conflict_scope_allocations(self) -> list[Allocation]:
        """Allocations conflicts are computed over, per ``settings.conflict_scope``."""
        proposal = self.get_proposal()
        if self.settings.conflict_scope == "proposal" or proposal is None:
            return list(self.allocations.values())
        period_id = proposal.academic_period.id
        filters = AllocationFilter(period_id=period_id)
        key = f"{CacheKeys.ALL_ALLOCATIONS}?period={period_id}"
        period_allocations = self.cache.get_or_fetch(key, lambda: self.remote.list_allocations(filters))
        merged = {allocation.id: allocation for allocation in period_allocations}
        merged.update(self.allocations)
        return list(merged.values())

    # derived views

    def detect_conflicts(self) -> list[ConflictDetail]:
        return ConflictService(self.conflict_scope_allocations()).detect_conflicts()

    def conflict_service(self) -> ConflictService:
        return ConflictService(
            self.conflict_scope_allocations(),
            self.get_slot_catalog(),
            allow_sub_slot_ranges=self.settings.allow_sub_slot_ranges,
        )

    def grid_mapper(self) -> GridPositionMapper:
        return GridPositionMapper(self.get_slot_catalog(), allow_sub_slot_ranges=self.settings.allow_sub_slot_ranges)

    def grid(self) -> dict[GridKey, list[Allocation]]:
        return self.grid_mapper().group_by_position(self.allocations.values())

    # guards

    def can_edit(self) -> bool:
        proposal = self.get_proposal()
        return proposal is None or proposal.status == ProposalStatus.draft

    def ensure_editable(self) -> None:
        proposal = self.get_proposal()
        if proposal is not None and proposal.status != ProposalStatus.draft:
            raise NotEditableError(proposal.id, proposal.status.value)

    def find_local_conflict(self, section: Section, weekday: Weekday, start: str, end: str) -> str | None:
        """Pre-flight check of a candidate against the working set; the server stays authoritative."""
        candidate = TimeRange(start=start, end=end)
        same_day = [allocation for allocation in self.allocations.values() if allocation.weekday == weekday]

        for allocation in same_day:
            if allocation.section_id == section.id and candidate.overlaps(allocation.time_range):
                return (
                    f"Section {section.code} is already allocated from {allocation.start} to {allocation.end} "
                    f"on {WEEKDAY_LABELS[weekday]}"
                )

        if section.professor_id is not None:
            for allocation in same_day:
                if allocation.professor_id == section.professor_id and candidate.overlaps(allocation.time_range):
                    return (
                        f"Professor {section.professor.name} is already allocated from {allocation.start} "
                        f"to {allocation.end} with section {allocation.section.code}"
                    )
        return None

    def available_sections(
        self, sections: Iterable[Section], weekday: Weekday, start: str, end: str
    ) -> list[Section]:
        if not self.can_edit():
            return []

        proposal = self.get_proposal()
        period_id = proposal.academic_period.id if proposal is not None else None
        in_cell = {
            allocation.section_id
            for allocation in self.allocations.values()
            if allocation.weekday == weekday and allocation.start == start and allocation.end == end
        }

        available = []
        for section in sections:
            if period_id is not None and section.period_id != period_id:
                continue
            if section.id in in_cell or section.professor is None:
                continue
            if self.find_local_conflict(section, weekday, start, end) is None:
                available.append(section)
        return available

    # mutations

    def validate_allocation(self, section_id: str, weekday: Weekday | str, start: str, end: str) -> AllocationValidationResult:
        request = self._build(AllocationValidationRequest, section_id=section_id, weekday=weekday, start=start, end=end)
        return self.remote.validate_allocation(request)

    def create_allocation(self, section_id: str, weekday: Weekday | str, start: str, end: str) -> Allocation:
        try:
            self.ensure_editable()
            request = self._build(
                AllocationValidationRequest, section_id=section_id, weekday=weekday, start=start, end=end
            )
            self.log.debug("Validating allocation of section %s at %s %s-%s", section_id, request.weekday.value, start, end)
            result = self.remote.validate_allocation(request)
            if not result.valid:
                details = result.details
                if not isinstance(details, dict):
                    details = {"details": details} if details is not None else {}
                raise ValidationRejectedError(result.error or "Invalid allocation", details=details)

            payload = AllocationCreate(**request.model_dump(), proposal_id=self.proposal_id)
            allocation = self.remote.create_allocation(payload)
        except AppError as exc:
            self.log.warning("Allocation of section %s rejected: %s", section_id, exc.message)
            self.notifier.error("Could not create allocation", exc.message)
            raise

        self.allocations[allocation.id] = allocation
        self.cache.invalidate(*CacheKeys.allocation_mutation(self.proposal_id))
        self.notifier.success("Allocation created")
        self.log.info("Created allocation %s for section %s (proposal %s)", allocation.id, section_id, self.proposal_id)
        return allocation

    def remove_allocation(self, allocation_id: str) -> None:
        try:
            self.ensure_editable()
            self.remote.delete_allocation(allocation_id)
        except AppError as exc:
            self.log.warning("Removal of allocation %s failed: %s", allocation_id, exc.message)
            self.notifier.error("Could not remove allocation", exc.message)
            raise

        self.allocations.pop(allocation_id, None)
        self.cache.invalidate(*CacheKeys.allocation_mutation(self.proposal_id))
        self.notifier.success("Allocation removed")
        self.log.info("Removed allocation %s (proposal %s)", allocation_id, self.proposal_id)

    def create_in_cell(self, section_id: str, weekday: Weekday | str, slot_index: int) -> Allocation:
        """Create an allocation from a grid cell, flagging the cell for a cooldown on failure."""
        weekday = Weekday(weekday)
        try:
            slot = self.grid_mapper().slot_at(slot_index)
        except AppError as exc:
            self.log.warning("Could not resolve slot %s for section %s: %s", slot_index, section_id, exc.message)
            self.notifier.error("Could not create allocation", exc.message)
            self.cell_errors.mark((weekday, slot_index))
            raise

        try:
            return self.create_allocation(section_id, weekday, slot.start, slot.end)
        except AppError:
            self.cell_errors.mark((weekday, slot_index))
            raise

    def _build(self, model, **values):
        try:
            return model(**values)
        except ValidationError as exc:
            raise precondition_from_validation(exc, "Invalid allocation") from exc
