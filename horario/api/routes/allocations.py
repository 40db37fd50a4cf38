from fastapi import APIRouter, Depends, Query, status

from horario.api.deps import get_store
from horario.api.store import InMemoryStore
from horario.schemas.allocation import (
    Allocation,
    AllocationCreate,
    AllocationFilter,
    AllocationValidationRequest,
    AllocationValidationResult,
)

router = APIRouter()


@router.post("/validate", response_model=AllocationValidationResult)
def validate_allocation(
    payload: AllocationValidationRequest,
    store: InMemoryStore = Depends(get_store),
) -> AllocationValidationResult:
    return store.validate(payload)


@router.post("", response_model=Allocation, status_code=status.HTTP_201_CREATED)
def create_allocation(
    payload: AllocationCreate,
    store: InMemoryStore = Depends(get_store),
) -> Allocation:
    return store.create_allocation(payload)


@router.get("", response_model=list[Allocation])
def list_allocations(
    period_id: str | None = Query(default=None, alias="idPeriodoLetivo"),
    section_id: str | None = Query(default=None, alias="idTurma"),
    professor_id: str | None = Query(default=None, alias="idProfessor"),
    proposal_id: str | None = Query(default=None, alias="idPropostaHorario"),
    store: InMemoryStore = Depends(get_store),
) -> list[Allocation]:
    filters = AllocationFilter(
        period_id=period_id,
        section_id=section_id,
        professor_id=professor_id,
        proposal_id=proposal_id,
    )
    return store.list_allocations(filters)


@router.delete("/{allocation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_allocation(allocation_id: str, store: InMemoryStore = Depends(get_store)) -> None:
    store.delete_allocation(allocation_id)
