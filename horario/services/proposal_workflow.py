from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from pydantic import BaseModel, ValidationError

from horario.core.exceptions import (
    AppError,
    NotEditableError,
    PermissionDeniedError,
    PreconditionViolation,
    TransitionNotAllowedError,
    precondition_from_validation,
)
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
    UserRole,
)
from horario.services.cache import CacheKeys, QueryCache, get_query_cache
from horario.services.notifications import LogNotifier, NotificationPort
from horario.services.remote import RemoteAuthority

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Transition:
    source: ProposalStatus
    event: ProposalEvent
    target: ProposalStatus
    actor: UserRole
    success_message: str
    failure_message: str


TRANSITIONS: dict[tuple[ProposalStatus, ProposalEvent], Transition] = {
    (ProposalStatus.draft, ProposalEvent.submit): Transition(
        ProposalStatus.draft,
        ProposalEvent.submit,
        ProposalStatus.pending_approval,
        UserRole.coordinator,
        "Proposal submitted for approval",
        "Could not submit proposal",
    ),
    (ProposalStatus.pending_approval, ProposalEvent.approve): Transition(
        ProposalStatus.pending_approval,
        ProposalEvent.approve,
        ProposalStatus.approved,
        UserRole.director,
        "Proposal approved",
        "Could not approve proposal",
    ),
    (ProposalStatus.pending_approval, ProposalEvent.reject): Transition(
        ProposalStatus.pending_approval,
        ProposalEvent.reject,
        ProposalStatus.rejected,
        UserRole.director,
        "Proposal rejected",
        "Could not reject proposal",
    ),
    (ProposalStatus.rejected, ProposalEvent.reopen): Transition(
        ProposalStatus.rejected,
        ProposalEvent.reopen,
        ProposalStatus.draft,
        UserRole.coordinator,
        "Proposal reopened for editing",
        "Could not reopen proposal",
    ),
    (ProposalStatus.approved, ProposalEvent.send_back): Transition(
        ProposalStatus.approved,
        ProposalEvent.send_back,
        ProposalStatus.draft,
        UserRole.director,
        "Proposal sent back for editing",
        "Could not send proposal back",
    ),
}


@dataclass(frozen=True)
class StatusConfig:
    label: str
    description: str
    color: str
    variant: str
    can_edit: bool
    can_submit: bool
    can_reopen: bool
    can_approve: bool
    can_reject: bool
    can_send_back: bool


PROPOSAL_STATUS_CONFIG: dict[ProposalStatus, StatusConfig] = {
    ProposalStatus.draft: StatusConfig(
        label="Rascunho",
        description="Proposta em elaboração",
        color="blue",
        variant="secondary",
        can_edit=True,
        can_submit=True,
        can_reopen=False,
        can_approve=False,
        can_reject=False,
        can_send_back=False,
    ),
    ProposalStatus.pending_approval: StatusConfig(
        label="Pendente",
        description="Aguardando aprovação da direção",
        color="yellow",
        variant="warning",
        can_edit=False,
        can_submit=False,
        can_reopen=False,
        can_approve=True,
        can_reject=True,
        can_send_back=False,
    ),
    ProposalStatus.approved: StatusConfig(
        label="Aprovada",
        description="Proposta aprovada pela direção",
        color="green",
        variant="success",
        can_edit=False,
        can_submit=False,
        can_reopen=False,
        can_approve=False,
        can_reject=False,
        can_send_back=True,
    ),
    ProposalStatus.rejected: StatusConfig(
        label="Rejeitada",
        description="Proposta rejeitada pela direção",
        color="red",
        variant="destructive",
        can_edit=False,
        can_submit=False,
        can_reopen=True,
        can_approve=False,
        can_reject=False,
        can_send_back=False,
    ),
}


def get_status_label(status: ProposalStatus | str) -> str:
    try:
        return PROPOSAL_STATUS_CONFIG[ProposalStatus(status)].label
    except ValueError:
        return "Desconhecido"


def get_status_color(status: ProposalStatus | str) -> str:
    try:
        return PROPOSAL_STATUS_CONFIG[ProposalStatus(status)].color
    except ValueError:
        return "gray"


def can_edit(status: ProposalStatus) -> bool:
    return PROPOSAL_STATUS_CONFIG[status].can_edit


def can_submit(status: ProposalStatus) -> bool:
    return PROPOSAL_STATUS_CONFIG[status].can_submit


def can_reopen(status: ProposalStatus) -> bool:
    return PROPOSAL_STATUS_CONFIG[status].can_reopen


def can_approve(status: ProposalStatus) -> bool:
    return PROPOSAL_STATUS_CONFIG[status].can_approve


def can_reject(status: ProposalStatus) -> bool:
    return PROPOSAL_STATUS_CONFIG[status].can_reject


def can_send_back(status: ProposalStatus) -> bool:
    return PROPOSAL_STATUS_CONFIG[status].can_send_back


def can_submit_proposal(proposal: Proposal) -> bool:
    return can_submit(proposal.status) and proposal.allocation_count > 0


def allowed_events(status: ProposalStatus) -> list[ProposalEvent]:
    return [event for (source, event) in TRANSITIONS if source == status]


def get_transition(status: ProposalStatus, event: ProposalEvent) -> Transition:
    transition = TRANSITIONS.get((status, event))
    if transition is None:
        raise TransitionNotAllowedError(status.value, event.value)
    return transition


def check_transition(proposal: Proposal, event: ProposalEvent, role: UserRole | None = None) -> Transition:
    """Run the local guards for ``event``; raises before any remote call is made."""
    transition = get_transition(proposal.status, event)
    if role is not None and role not in (transition.actor, UserRole.admin):
        raise PermissionDeniedError(role.value, event.value)
    if event == ProposalEvent.submit and proposal.allocation_count < 1:
        raise PreconditionViolation(
            "A proposal needs at least one allocation before it can be submitted",
            details={"proposal_id": proposal.id, "allocation_count": proposal.allocation_count},
        )
    return transition


def _build_payload(model: type[BaseModel], **values) -> BaseModel:
    try:
        return model(**{key: value for key, value in values.items() if value is not None})
    except ValidationError as exc:
        raise precondition_from_validation(exc) from exc


class ProposalWorkflow:
    def __init__(
        self,
        remote: RemoteAuthority,
        cache: QueryCache | None = None,
        notifier: NotificationPort | None = None,
        *,
        role: UserRole | None = None,
        log: logging.Logger | None = None,
    ):
        self.remote = remote
        self.cache = cache if cache is not None else get_query_cache()
        self.notifier = notifier if notifier is not None else LogNotifier()
        self.role = role
        self.log = log or logger

    def get_proposal(self, proposal_id: str) -> Proposal:
        return self.cache.get_or_fetch(CacheKeys.proposal(proposal_id), lambda: self.remote.get_proposal(proposal_id))

    def list_proposals(self, filters: ProposalFilter | None = None) -> list[Proposal]:
        key = CacheKeys.ALL_PROPOSALS
        if filters is not None and filters.as_query_params():
            key = f"{key}?{filters.model_dump_json(by_alias=True, exclude_none=True)}"
        return self.cache.get_or_fetch(key, lambda: self.remote.list_proposals(filters))

    def permissions(self, proposal_id: str) -> StatusConfig:
        return PROPOSAL_STATUS_CONFIG[self.get_proposal(proposal_id).status]

    def create_proposal(self, course_id: str, period_id: str, notes: str | None = None) -> Proposal:
        payload = self._guard(
            "Could not create proposal",
            lambda: _build_payload(ProposalCreate, course_id=course_id, period_id=period_id, coordinator_notes=notes),
        )
        proposal = self._call(lambda: self.remote.create_proposal(payload), "Could not create proposal")
        self.cache.invalidate(CacheKeys.ALL_PROPOSALS)
        self.notifier.success("Proposal created")
        self.log.info("Created proposal %s for course %s period %s", proposal.id, course_id, period_id)
        return proposal

    def delete_proposal(self, proposal_id: str) -> None:
        proposal = self._call(lambda: self.get_proposal(proposal_id), "Could not delete proposal")

        def ensure_draft() -> None:
            if not can_edit(proposal.status):
                raise NotEditableError(proposal_id, proposal.status.value)

        self._guard("Could not delete proposal", ensure_draft)
        self._call(lambda: self.remote.delete_proposal(proposal_id), "Could not delete proposal")
        self.cache.invalidate(
            CacheKeys.proposal(proposal_id),
            CacheKeys.ALL_PROPOSALS,
            CacheKeys.proposal_allocations(proposal_id),
            CacheKeys.ALL_ALLOCATIONS,
        )
        self.notifier.success("Proposal deleted")
        self.log.info("Deleted proposal %s", proposal_id)

    def submit(self, proposal_id: str, notes: str | None = None) -> Proposal:
        return self._transition(
            proposal_id,
            ProposalEvent.submit,
            lambda: _build_payload(SubmitProposalPayload, coordinator_notes=notes),
            self.remote.submit_proposal,
        )

    def approve(self, proposal_id: str, notes: str | None = None) -> Proposal:
        return self._transition(
            proposal_id,
            ProposalEvent.approve,
            lambda: _build_payload(ApproveProposalPayload, director_notes=notes),
            self.remote.approve_proposal,
        )

    def reject(self, proposal_id: str, justification: str, notes: str | None = None) -> Proposal:
        return self._transition(
            proposal_id,
            ProposalEvent.reject,
            lambda: _build_payload(RejectProposalPayload, justification=justification, director_notes=notes),
            self.remote.reject_proposal,
        )

    def reopen(self, proposal_id: str, reason: str | None = None) -> Proposal:
        return self._transition(
            proposal_id,
            ProposalEvent.reopen,
            lambda: _build_payload(ReopenProposalPayload, reason=reason),
            self.remote.reopen_proposal,
        )

    def send_back(self, proposal_id: str, reason: str) -> Proposal:
        return self._transition(
            proposal_id,
            ProposalEvent.send_back,
            lambda: _build_payload(SendBackProposalPayload, reason=reason),
            self.remote.send_back_proposal,
        )

    def _transition(
        self,
        proposal_id: str,
        event: ProposalEvent,
        build_payload: Callable[[], BaseModel],
        call: Callable[[str, BaseModel], Proposal],
    ) -> Proposal:
        failure_title = f"Could not {event.value.replace('_', ' ')} proposal"
        proposal = self._call(lambda: self.get_proposal(proposal_id), failure_title)
        known = TRANSITIONS.get((proposal.status, event))
        if known is not None:
            failure_title = known.failure_message
        transition, payload = self._guard(
            failure_title, lambda: (check_transition(proposal, event, self.role), build_payload())
        )

        self.log.debug("Proposal %s: %s (%s -> %s)", proposal_id, event.value, transition.source.value, transition.target.value)
        updated = self._call(lambda: call(proposal_id, payload), transition.failure_message)

        self.cache.invalidate(*CacheKeys.proposal_transition(proposal_id))
        self.notifier.success(transition.success_message)
        self.log.info("Proposal %s is now %s", proposal_id, updated.status.value)
        return updated

    def _guard(self, failure_title: str, check: Callable[[], object]):
        try:
            return check()
        except PreconditionViolation as exc:
            self.notifier.error(failure_title, exc.message)
            raise

    def _call(self, operation: Callable[[], object], failure_title: str):
        try:
            return operation()
        except AppError as exc:
            self.log.warning("%s: %s", failure_title, exc.message)
            self.notifier.error(failure_title, exc.message)
            raise
