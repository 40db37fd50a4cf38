from enum import Enum

from pydantic import BaseModel, Field

from horario.schemas.allocation import Allocation


class ConflictType(str, Enum):
    professor_overlap = "PROFESSOR_OVERLAP"
    section_overlap = "SECTION_OVERLAP"
    slot_overlap = "SLOT_OVERLAP"
    # Reserved; no detector emits it yet.
    hours_exceeded = "HOURS_EXCEEDED"


class ConflictSeverity(str, Enum):
    critical = "CRITICAL"
    high = "HIGH"
    medium = "MEDIUM"
    low = "LOW"


SEVERITY_ORDER: dict[ConflictSeverity, int] = {
    ConflictSeverity.critical: 0,
    ConflictSeverity.high: 1,
    ConflictSeverity.medium: 2,
    ConflictSeverity.low: 3,
}


class ResolutionStrategy(str, Enum):
    move_to_free_slot = "MOVE_TO_FREE_SLOT"
    keep_first = "KEEP_FIRST"
    keep_last = "KEEP_LAST"
    keep_priority = "KEEP_PRIORITY"
    manual = "MANUAL"


class ConflictDetail(BaseModel):
    id: str
    type: ConflictType
    severity: ConflictSeverity
    allocations: list[Allocation] = Field(min_length=1)
    description: str
    suggestions: list[str] = Field(default_factory=list)
    can_auto_resolve: bool = False

    @property
    def allocation_ids(self) -> list[str]:
        return [allocation.id for allocation in self.allocations]

    def involves(self, allocation_id: str) -> bool:
        return any(allocation.id == allocation_id for allocation in self.allocations)


class ConflictStats(BaseModel):
    total: int = 0
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    auto_resolvable: int = 0
    by_type: dict[ConflictType, int] = Field(default_factory=lambda: {kind: 0 for kind in ConflictType})


class ResolutionCheck(BaseModel):
    valid: bool
    reason: str | None = None
    # Free (weekday, slot index) cells a move could target, when relevant.
    candidate_cells: list[tuple[str, int]] = Field(default_factory=list)
