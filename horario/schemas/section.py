from pydantic import BaseModel, ConfigDict, Field


class ProfessorRef(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str = Field(default="", alias="nome")


class DisciplineRef(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str = Field(default="", alias="nome")


class OfferedDiscipline(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    period_id: str | None = Field(default=None, alias="idPeriodoLetivo")
    total_hours: int | None = Field(default=None, alias="cargaHoraria", ge=0)
    discipline: DisciplineRef | None = Field(default=None, alias="disciplina")


class Section(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    code: str = Field(alias="codigoDaTurma")
    professor: ProfessorRef | None = Field(default=None, alias="professorAlocado")
    offered_discipline: OfferedDiscipline | None = Field(default=None, alias="disciplinaOfertada")

    @property
    def professor_id(self) -> str | None:
        return self.professor.id if self.professor is not None else None

    @property
    def period_id(self) -> str | None:
        return self.offered_discipline.period_id if self.offered_discipline is not None else None

    @property
    def discipline_name(self) -> str | None:
        if self.offered_discipline is None or self.offered_discipline.discipline is None:
            return None
        return self.offered_discipline.discipline.name

    @property
    def display_name(self) -> str:
        discipline = self.discipline_name
        return f"{discipline} ({self.code})" if discipline else self.code
