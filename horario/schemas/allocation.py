from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from horario.schemas.section import Section
from horario.schemas.timetable import TimeRange, Weekday, normalise_time


class _AllocationSlotFields(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    section_id: str = Field(min_length=1, alias="idTurma")
    weekday: Weekday = Field(alias="diaDaSemana")
    start: str = Field(alias="horaInicio")
    end: str = Field(alias="horaFim")

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, value: str) -> str:
        return normalise_time(value)

    @model_validator(mode="after")
    def validate_order(self):
        # Builds the range once so a reversed start/end fails here.
        TimeRange(start=self.start, end=self.end)
        return self

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)


class AllocationValidationRequest(_AllocationSlotFields):
    pass


class AllocationCreate(_AllocationSlotFields):
    proposal_id: str | None = Field(default=None, alias="idPropostaHorario")


class AllocationValidationResult(BaseModel):
    valid: bool
    error: str | None = None
    details: dict | list | str | None = None


class Allocation(_AllocationSlotFields):
    id: str
    section: Section = Field(alias="turma")
    proposal_id: str | None = Field(default=None, alias="idPropostaHorario")

    @property
    def professor_id(self) -> str | None:
        return self.section.professor_id

    @property
    def slot_key(self) -> tuple[Weekday, str, str]:
        return (self.weekday, self.start, self.end)

    def overlaps(self, other: Allocation) -> bool:
        return self.weekday == other.weekday and self.time_range.overlaps(other.time_range)


class AllocationFilter(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    period_id: str | None = Field(default=None, alias="idPeriodoLetivo")
    section_id: str | None = Field(default=None, alias="idTurma")
    professor_id: str | None = Field(default=None, alias="idProfessor")
    proposal_id: str | None = Field(default=None, alias="idPropostaHorario")

    def as_query_params(self) -> dict[str, str]:
        return self.model_dump(by_alias=True, exclude_none=True)

    def matches(self, allocation: Allocation) -> bool:
        if self.period_id is not None and allocation.section.period_id != self.period_id:
            return False
        if self.section_id is not None and allocation.section_id != self.section_id:
            return False
        if self.professor_id is not None and allocation.professor_id != self.professor_id:
            return False
        if self.proposal_id is not None and allocation.proposal_id != self.proposal_id:
            return False
        return True
