from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence

from horario.schemas.allocation import Allocation
from horario.schemas.conflict import (
    SEVERITY_ORDER,
    ConflictDetail,
    ConflictSeverity,
    ConflictStats,
    ConflictType,
    ResolutionCheck,
    ResolutionStrategy,
)
from horario.schemas.timetable import WEEKDAY_LABELS, ScheduleSlotCatalog
from horario.services.grid import GridKey, GridPositionMapper

STRATEGIES_BY_TYPE: dict[ConflictType, list[ResolutionStrategy]] = {
    ConflictType.slot_overlap: [
        ResolutionStrategy.move_to_free_slot,
        ResolutionStrategy.keep_priority,
        ResolutionStrategy.manual,
    ],
    ConflictType.professor_overlap: [ResolutionStrategy.move_to_free_slot, ResolutionStrategy.manual],
    ConflictType.section_overlap: [ResolutionStrategy.move_to_free_slot, ResolutionStrategy.manual],
}

KEEP_STRATEGIES = {
    ResolutionStrategy.keep_first,
    ResolutionStrategy.keep_last,
    ResolutionStrategy.keep_priority,
}


def _group_by(allocations: Iterable[Allocation], key: Callable[[Allocation], object]) -> dict:
    groups: dict = defaultdict(list)
    for allocation in allocations:
        value = key(allocation)
        if value is not None:
            groups[value].append(allocation)
    return groups


def _pairwise_overlaps(group: Sequence[Allocation]) -> Iterable[tuple[Allocation, Allocation]]:
    for i in range(len(group)):
        for j in range(i + 1, len(group)):
            if group[i].overlaps(group[j]):
                yield group[i], group[j]


def detect_professor_conflicts(allocations: Sequence[Allocation]) -> list[ConflictDetail]:
    conflicts: list[ConflictDetail] = []
    for professor_id, group in _group_by(allocations, lambda item: item.professor_id).items():
        for first, second in _pairwise_overlaps(group):
            professor_name = first.section.professor.name or "Professor"
            conflicts.append(
                ConflictDetail(
                    id=f"professor-{professor_id}-{first.id}-{second.id}",
                    type=ConflictType.professor_overlap,
                    severity=ConflictSeverity.critical,
                    allocations=[first, second],
                    description=(
                        f"{professor_name} is allocated to overlapping time slots: "
                        f"{first.section.code} and {second.section.code} on {WEEKDAY_LABELS[first.weekday]}"
                    ),
                    suggestions=[
                        "Move one of the allocations to another time slot",
                        "Assign another professor to one of the sections",
                        "Check that the times are correct",
                    ],
                    can_auto_resolve=False,
                )
            )
    return conflicts


def detect_section_conflicts(allocations: Sequence[Allocation]) -> list[ConflictDetail]:
    conflicts: list[ConflictDetail] = []
    for section_id, group in _group_by(allocations, lambda item: item.section_id).items():
        for first, second in _pairwise_overlaps(group):
            conflicts.append(
                ConflictDetail(
                    id=f"section-{section_id}-{first.id}-{second.id}",
                    type=ConflictType.section_overlap,
                    severity=ConflictSeverity.critical,
                    allocations=[first, second],
                    description=(
                        f"Section {first.section.display_name} is allocated to overlapping time slots "
                        f"on {WEEKDAY_LABELS[first.weekday]}"
                    ),
                    suggestions=[
                        "Move one of the allocations to another time slot",
                        "Check whether the section really needs several allocations",
                        "Check that the times are correct",
                    ],
                    can_auto_resolve=False,
                )
            )
    return conflicts


def detect_slot_conflicts(allocations: Sequence[Allocation]) -> list[ConflictDetail]:
    conflicts: list[ConflictDetail] = []
    for (weekday, start, end), group in _group_by(allocations, lambda item: item.slot_key).items():
        if len(group) < 2:
            continue
        conflicts.append(
            ConflictDetail(
                id=f"slot-{weekday.value}-{start}-{end}",
                type=ConflictType.slot_overlap,
                severity=ConflictSeverity.high,
                allocations=list(group),
                description=f"{len(group)} allocations share the slot {WEEKDAY_LABELS[weekday]} {start}-{end}",
                suggestions=[
                    "Move some allocations to other time slots",
                    "Check whether every allocation is needed",
                    "Consider splitting the slot into shorter periods",
                ],
                can_auto_resolve=True,
            )
        )
    return conflicts


def sort_by_severity(conflicts: Iterable[ConflictDetail]) -> list[ConflictDetail]:
    return sorted(conflicts, key=lambda conflict: SEVERITY_ORDER[conflict.severity])


def detect_all_conflicts(allocations: Sequence[Allocation]) -> list[ConflictDetail]:
    conflicts = [
        *detect_professor_conflicts(allocations),
        *detect_section_conflicts(allocations),
        *detect_slot_conflicts(allocations),
    ]
    return sort_by_severity(conflicts)


def filter_by_severity(conflicts: Iterable[ConflictDetail], severities: Iterable[ConflictSeverity]) -> list[ConflictDetail]:
    wanted = set(severities)
    return [conflict for conflict in conflicts if conflict.severity in wanted]


def filter_by_type(conflicts: Iterable[ConflictDetail], types: Iterable[ConflictType]) -> list[ConflictDetail]:
    wanted = set(types)
    return [conflict for conflict in conflicts if conflict.type in wanted]


def find_conflicts_for_allocation(conflicts: Iterable[ConflictDetail], allocation_id: str) -> list[ConflictDetail]:
    return [conflict for conflict in conflicts if conflict.involves(allocation_id)]


def calculate_conflict_stats(conflicts: Iterable[ConflictDetail]) -> ConflictStats:
    stats = ConflictStats()
    for conflict in conflicts:
        stats.total += 1
        if conflict.severity == ConflictSeverity.critical:
            stats.critical += 1
        elif conflict.severity == ConflictSeverity.high:
            stats.high += 1
        elif conflict.severity == ConflictSeverity.medium:
            stats.medium += 1
        else:
            stats.low += 1
        if conflict.can_auto_resolve:
            stats.auto_resolvable += 1
        stats.by_type[conflict.type] += 1
    return stats


def has_critical_conflicts(conflicts: Iterable[ConflictDetail]) -> bool:
    return any(conflict.severity == ConflictSeverity.critical for conflict in conflicts)


def auto_resolvable_conflicts(conflicts: Iterable[ConflictDetail]) -> list[ConflictDetail]:
    return [conflict for conflict in conflicts if conflict.can_auto_resolve]


def most_severe(conflicts: Iterable[ConflictDetail]) -> ConflictSeverity | None:
    severities = [conflict.severity for conflict in conflicts]
    if not severities:
        return None
    return min(severities, key=SEVERITY_ORDER.__getitem__)


def suggest_resolution_strategies(conflict: ConflictDetail) -> list[ResolutionStrategy]:
    return list(STRATEGIES_BY_TYPE.get(conflict.type, [ResolutionStrategy.manual]))


class ConflictService:
    def __init__(
        self,
        allocations: Sequence[Allocation],
        catalog: ScheduleSlotCatalog | None = None,
        *,
        allow_sub_slot_ranges: bool = False,
    ):
        self.allocations: list[Allocation] = list(allocations)
        self.mapper = (
            GridPositionMapper(catalog, allow_sub_slot_ranges=allow_sub_slot_ranges) if catalog is not None else None
        )

    def detect_conflicts(self) -> list[ConflictDetail]:
        return detect_all_conflicts(self.allocations)

    def stats(self) -> ConflictStats:
        return calculate_conflict_stats(self.detect_conflicts())

    def conflicts_for_allocation(self, allocation_id: str) -> list[ConflictDetail]:
        return find_conflicts_for_allocation(self.detect_conflicts(), allocation_id)

    def generate_resolutions(self, conflict: ConflictDetail) -> list[ResolutionStrategy]:
        return suggest_resolution_strategies(conflict)

    def validate_resolution(self, conflict: ConflictDetail, strategy: ResolutionStrategy | str) -> ResolutionCheck:
        try:
            strategy = ResolutionStrategy(strategy)
        except ValueError:
            return ResolutionCheck(valid=False, reason=f"Unrecognised strategy: {strategy}")

        if strategy == ResolutionStrategy.manual:
            return ResolutionCheck(valid=True)

        if strategy in KEEP_STRATEGIES:
            if not conflict.can_auto_resolve:
                return ResolutionCheck(
                    valid=False,
                    reason=f"{strategy.value} would silently drop an allocation of a {conflict.type.value} conflict",
                )
            return ResolutionCheck(valid=True)

        return self._check_move(conflict)

    def _check_move(self, conflict: ConflictDetail) -> ResolutionCheck:
        if self.mapper is None:
            return ResolutionCheck(valid=False, reason="A slot catalog is required to look for free slots")

        # The first allocation stays; every other member needs its own free cell.
        to_move = conflict.allocations[1:]
        moving_ids = {allocation.id for allocation in to_move}
        placed = [allocation for allocation in self.allocations if allocation.id not in moving_ids]
        chosen: list[GridKey] = []

        for allocation in to_move:
            target = self._first_free_cell_for(allocation, placed)
            if target is None:
                return ResolutionCheck(
                    valid=False,
                    reason=f"No free slot can take section {allocation.section.code} without a new conflict",
                    candidate_cells=[(day.value, index) for day, index in chosen],
                )
            weekday, slot_index = target
            slot = self.mapper.slot_at(slot_index)
            placed.append(allocation.model_copy(update={"weekday": weekday, "start": slot.start, "end": slot.end}))
            chosen.append(target)

        return ResolutionCheck(valid=True, candidate_cells=[(day.value, index) for day, index in chosen])

    def _first_free_cell_for(self, allocation: Allocation, placed: list[Allocation]) -> GridKey | None:
        for weekday, slot_index in self.mapper.free_cells(placed):
            slot = self.mapper.slot_at(slot_index)
            moved = allocation.model_copy(update={"weekday": weekday, "start": slot.start, "end": slot.end})
            clash = any(
                moved.overlaps(other)
                and (
                    other.section_id == moved.section_id
                    or (moved.professor_id is not None and other.professor_id == moved.professor_id)
                )
                for other in placed
            )
            if not clash:
                return (weekday, slot_index)
        return None
