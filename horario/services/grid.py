from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from horario.core.exceptions import PreconditionViolation
from horario.schemas.allocation import Allocation
from horario.schemas.timetable import WEEKDAYS, ClassSlot, ScheduleSlotCatalog, TimeRange, Weekday

GridKey = tuple[Weekday, int]


@dataclass(frozen=True)
class GridPosition:
    weekday: Weekday
    day_index: int
    slot_index: int
    slot: ClassSlot

    @property
    def key(self) -> GridKey:
        return (self.weekday, self.slot_index)


@dataclass
class AllocationStats:
    total_slots: int
    allocated_slots: int
    free_slots: int
    utilization_rate: float
    overlap_count: int
    overlapping_pairs: list[tuple[Allocation, Allocation]] = field(default_factory=list)


def find_overlapping_pairs(allocations: Sequence[Allocation]) -> list[tuple[Allocation, Allocation]]:
    pairs: list[tuple[Allocation, Allocation]] = []
    for i in range(len(allocations)):
        for j in range(i + 1, len(allocations)):
            if allocations[i].overlaps(allocations[j]):
                pairs.append((allocations[i], allocations[j]))
    return pairs


class GridPositionMapper:
    """Places allocations on the weekday x class-slot grid.

    Slots are looked up by their exact (start, end) pair. With
    ``allow_sub_slot_ranges`` an allocation whose range sits inside a single
    slot is placed in that slot as well. Allocations that match no slot, or
    fall on a weekday not shown, are left unpositioned.
    """

    def __init__(
        self,
        catalog: ScheduleSlotCatalog,
        days: Sequence[Weekday] = WEEKDAYS,
        *,
        allow_sub_slot_ranges: bool = False,
    ) -> None:
        self.catalog = catalog
        self.days: tuple[Weekday, ...] = tuple(days)
        self.allow_sub_slot_ranges = allow_sub_slot_ranges
        self.slots: list[ClassSlot] = catalog.class_slots()
        self._slots_by_range: dict[tuple[str, str], ClassSlot] = {}
        for slot in self.slots:
            self._slots_by_range.setdefault((slot.start, slot.end), slot)
        self._day_index = {day: index for index, day in enumerate(self.days)}

    @property
    def cell_count(self) -> int:
        return len(self.slots) * len(self.days)

    def slot_for_range(self, time_range: TimeRange) -> ClassSlot | None:
        slot = self._slots_by_range.get((time_range.start, time_range.end))
        if slot is not None or not self.allow_sub_slot_ranges:
            return slot
        for candidate in self.slots:
            if candidate.time_range.contains(time_range):
                return candidate
        return None

    def find_position(self, allocation: Allocation) -> GridPosition | None:
        day_index = self._day_index.get(allocation.weekday)
        if day_index is None:
            return None
        slot = self.slot_for_range(allocation.time_range)
        if slot is None:
            return None
        return GridPosition(weekday=allocation.weekday, day_index=day_index, slot_index=slot.index, slot=slot)

    def group_by_position(self, allocations: Iterable[Allocation]) -> dict[GridKey, list[Allocation]]:
        grouped: dict[GridKey, list[Allocation]] = defaultdict(list)
        for allocation in allocations:
            position = self.find_position(allocation)
            if position is not None:
                grouped[position.key].append(allocation)
        return dict(grouped)

    def unpositioned(self, allocations: Iterable[Allocation]) -> list[Allocation]:
        return [allocation for allocation in allocations if self.find_position(allocation) is None]

    def cells(self) -> list[GridKey]:
        return [(day, slot.index) for day in self.days for slot in self.slots]

    def free_cells(self, allocations: Iterable[Allocation]) -> list[GridKey]:
        occupied = self.group_by_position(allocations)
        return [key for key in self.cells() if key not in occupied]

    def slot_at(self, slot_index: int) -> ClassSlot:
        if not 0 <= slot_index < len(self.slots):
            raise PreconditionViolation(
                f"Slot index {slot_index} is outside the catalog (0-{len(self.slots) - 1})",
                details={"slot_index": slot_index, "slot_count": len(self.slots)},
            )
        return self.slots[slot_index]

    def calculate_allocation_stats(self, allocations: Sequence[Allocation]) -> AllocationStats:
        total = self.cell_count
        allocated = len(self.group_by_position(allocations))
        pairs = find_overlapping_pairs(allocations)
        return AllocationStats(
            total_slots=total,
            allocated_slots=allocated,
            free_slots=total - allocated,
            utilization_rate=(allocated / total * 100) if total else 0.0,
            overlap_count=len(pairs),
            overlapping_pairs=pairs,
        )
