from fastapi import APIRouter, Depends, Query, status

from horario.api.deps import get_store
from horario.api.store import InMemoryStore
from horario.schemas.proposal import (
    ApproveProposalPayload,
    Proposal,
    ProposalCreate,
    ProposalEvent,
    ProposalFilter,
    ProposalStatus,
    RejectProposalPayload,
    ReopenProposalPayload,
    SendBackProposalPayload,
    SubmitProposalPayload,
)

router = APIRouter()


@router.get("", response_model=list[Proposal])
def list_proposals(
    status_filter: list[ProposalStatus] = Query(default=[], alias="status"),
    course_id: str | None = Query(default=None, alias="idCurso"),
    period_id: str | None = Query(default=None, alias="idPeriodoLetivo"),
    store: InMemoryStore = Depends(get_store),
) -> list[Proposal]:
    return store.list_proposals(ProposalFilter(status=status_filter, course_id=course_id, period_id=period_id))


@router.post("", response_model=Proposal, status_code=status.HTTP_201_CREATED)
def create_proposal(payload: ProposalCreate, store: InMemoryStore = Depends(get_store)) -> Proposal:
    return store.create_proposal(payload)


@router.get("/{proposal_id}", response_model=Proposal)
def get_proposal(proposal_id: str, store: InMemoryStore = Depends(get_store)) -> Proposal:
    return store.get_proposal(proposal_id)


@router.delete("/{proposal_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_proposal(proposal_id: str, store: InMemoryStore = Depends(get_store)) -> None:
    store.delete_proposal(proposal_id)


@router.post("/{proposal_id}/submit", response_model=Proposal)
def submit_proposal(
    proposal_id: str,
    payload: SubmitProposalPayload,
    store: InMemoryStore = Depends(get_store),
) -> Proposal:
    changes = {}
    if payload.coordinator_notes is not None:
        changes["coordinator_notes"] = payload.coordinator_notes
    return store.apply_transition(proposal_id, ProposalEvent.submit, **changes)


@router.post("/{proposal_id}/approve", response_model=Proposal)
def approve_proposal(
    proposal_id: str,
    payload: ApproveProposalPayload,
    store: InMemoryStore = Depends(get_store),
) -> Proposal:
    changes = {}
    if payload.director_notes is not None:
        changes["director_notes"] = payload.director_notes
    return store.apply_transition(proposal_id, ProposalEvent.approve, **changes)


@router.post("/{proposal_id}/reject", response_model=Proposal)
def reject_proposal(
    proposal_id: str,
    payload: RejectProposalPayload,
    store: InMemoryStore = Depends(get_store),
) -> Proposal:
    changes = {"rejection_justification": payload.justification}
    if payload.director_notes is not None:
        changes["director_notes"] = payload.director_notes
    return store.apply_transition(proposal_id, ProposalEvent.reject, **changes)


@router.post("/{proposal_id}/reopen", response_model=Proposal)
def reopen_proposal(
    proposal_id: str,
    payload: ReopenProposalPayload,
    store: InMemoryStore = Depends(get_store),
) -> Proposal:
    return store.apply_transition(proposal_id, ProposalEvent.reopen)


@router.post("/{proposal_id}/send-back", response_model=Proposal)
def send_back_proposal(
    proposal_id: str,
    payload: SendBackProposalPayload,
    store: InMemoryStore = Depends(get_store),
) -> Proposal:
    return store.apply_transition(proposal_id, ProposalEvent.send_back, director_notes=payload.reason)
