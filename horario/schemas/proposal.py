from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

NOTES_MAX_LENGTH = 1000
JUSTIFICATION_MIN_LENGTH = 10
JUSTIFICATION_MAX_LENGTH = 2000
REASON_MIN_LENGTH = 10
REASON_MAX_LENGTH = 500


class ProposalStatus(str, Enum):
    draft = "DRAFT"
    pending_approval = "PENDENTE_APROVACAO"
    approved = "APROVADA"
    rejected = "REJEITADA"


class ProposalEvent(str, Enum):
    submit = "submit"
    approve = "approve"
    reject = "reject"
    reopen = "reopen"
    send_back = "send_back"


class UserRole(str, Enum):
    admin = "ADMIN"
    director = "DIRETOR"
    coordinator = "COORDENADOR"
    professor = "PROFESSOR"


def _require_min_trimmed(value: str, minimum: int, label: str) -> str:
    if len(value.strip()) < minimum:
        raise ValueError(f"{label} must have at least {minimum} non-blank characters")
    return value


class CourseRef(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str = Field(default="", alias="nome")
    code: str | None = Field(default=None, alias="codigo")


class AcademicPeriodRef(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    year: int = Field(alias="ano")
    semester: int = Field(alias="semestre")
    starts_on: date | None = Field(default=None, alias="dataInicio")
    ends_on: date | None = Field(default=None, alias="dataFim")

    @property
    def label(self) -> str:
        return f"{self.year}/{self.semester}"


class CoordinatorRef(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str = Field(default="", alias="nome")
    email: str | None = None


class Proposal(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    course: CourseRef = Field(alias="curso")
    academic_period: AcademicPeriodRef = Field(alias="periodoLetivo")
    coordinator: CoordinatorRef | None = Field(default=None, alias="coordenadorQueSubmeteu")
    status: ProposalStatus
    submitted_at: datetime | None = Field(default=None, alias="dataSubmissao")
    decided_at: datetime | None = Field(default=None, alias="dataAprovacaoRejeicao")
    rejection_justification: str | None = Field(default=None, alias="justificativaRejeicao")
    coordinator_notes: str | None = Field(default=None, alias="observacoesCoordenador")
    director_notes: str | None = Field(default=None, alias="observacoesDiretor")
    allocation_count: int = Field(default=0, ge=0, alias="quantidadeAlocacoes")
    created_at: datetime | None = Field(default=None, alias="dataCriacao")
    updated_at: datetime | None = Field(default=None, alias="dataAtualizacao")


class ProposalCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    course_id: str = Field(min_length=1, alias="idCurso")
    period_id: str = Field(min_length=1, alias="idPeriodoLetivo")
    coordinator_notes: str | None = Field(default=None, max_length=NOTES_MAX_LENGTH, alias="observacoesCoordenador")


class ProposalFilter(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: list[ProposalStatus] = Field(default_factory=list)
    course_id: str | None = Field(default=None, alias="idCurso")
    period_id: str | None = Field(default=None, alias="idPeriodoLetivo")

    def as_query_params(self) -> dict:
        params = self.model_dump(by_alias=True, exclude_none=True, mode="json")
        if not params.get("status"):
            params.pop("status", None)
        return params


class SubmitProposalPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    coordinator_notes: str | None = Field(default=None, max_length=NOTES_MAX_LENGTH, alias="observacoesCoordenador")


class ApproveProposalPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    director_notes: str | None = Field(default=None, max_length=NOTES_MAX_LENGTH, alias="observacoesDiretor")


class RejectProposalPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    justification: str = Field(
        min_length=JUSTIFICATION_MIN_LENGTH,
        max_length=JUSTIFICATION_MAX_LENGTH,
        alias="justificativaRejeicao",
    )
    director_notes: str | None = Field(default=None, max_length=NOTES_MAX_LENGTH, alias="observacoesDiretor")

    @field_validator("justification")
    @classmethod
    def reject_blank_justification(cls, value: str) -> str:
        return _require_min_trimmed(value, JUSTIFICATION_MIN_LENGTH, "Justification")


class ReopenProposalPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reason: str | None = Field(
        default=None,
        min_length=REASON_MIN_LENGTH,
        max_length=REASON_MAX_LENGTH,
        alias="motivoReabertura",
    )

    @field_validator("reason")
    @classmethod
    def reject_blank_reason(cls, value: str | None) -> str | None:
        if value is None:
            return value
        return _require_min_trimmed(value, REASON_MIN_LENGTH, "Reason")


class SendBackProposalPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reason: str = Field(min_length=REASON_MIN_LENGTH, max_length=REASON_MAX_LENGTH, alias="motivoDevolucao")

    @field_validator("reason")
    @classmethod
    def reject_blank_reason(cls, value: str) -> str:
        return _require_min_trimmed(value, REASON_MIN_LENGTH, "Reason")
