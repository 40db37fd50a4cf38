import pytest

from horario.core.exceptions import (
    NotEditableError,
    PermissionDeniedError,
    PreconditionViolation,
    ResourceNotFoundError,
    TransitionNotAllowedError,
    TransportError,
)
from horario.schemas.allocation import AllocationCreate
from horario.schemas.proposal import ProposalEvent, ProposalFilter, ProposalStatus, UserRole
from horario.services.cache import CacheKeys
from horario.services.notifications import NotificationType
from horario.services.proposal_workflow import (
    PROPOSAL_STATUS_CONFIG,
    TRANSITIONS,
    ProposalWorkflow,
    allowed_events,
    can_submit_proposal,
    check_transition,
    get_status_color,
    get_status_label,
    get_transition,
)

LEGAL = {
    (ProposalStatus.draft, ProposalEvent.submit): ProposalStatus.pending_approval,
    (ProposalStatus.pending_approval, ProposalEvent.approve): ProposalStatus.approved,
    (ProposalStatus.pending_approval, ProposalEvent.reject): ProposalStatus.rejected,
    (ProposalStatus.rejected, ProposalEvent.reopen): ProposalStatus.draft,
    (ProposalStatus.approved, ProposalEvent.send_back): ProposalStatus.draft,
}


@pytest.fixture
def workflow(fake_remote, cache, notifier):
    return ProposalWorkflow(fake_remote, cache, notifier)


def allocate(store, proposal, section_id="alg"):
    return store.create_allocation(
        AllocationCreate(section_id=section_id, weekday="SEGUNDA", start="07:30", end="08:20", proposal_id=proposal.id)
    )


@pytest.mark.parametrize("status", list(ProposalStatus))
@pytest.mark.parametrize("event", list(ProposalEvent))
def test_transition_table(status, event):
    if (status, event) in LEGAL:
        assert get_transition(status, event).target == LEGAL[(status, event)]
    else:
        with pytest.raises(TransitionNotAllowedError):
            get_transition(status, event)


def test_status_config_matches_transition_table():
    assert len(TRANSITIONS) == len(LEGAL)
    for status, config in PROPOSAL_STATUS_CONFIG.items():
        events = set(allowed_events(status))
        assert config.can_submit == (ProposalEvent.submit in events)
        assert config.can_approve == (ProposalEvent.approve in events)
        assert config.can_reject == (ProposalEvent.reject in events)
        assert config.can_reopen == (ProposalEvent.reopen in events)
        assert config.can_send_back == (ProposalEvent.send_back in events)
        assert config.can_edit == (status == ProposalStatus.draft)


def test_status_labels_and_colors():
    assert get_status_label(ProposalStatus.pending_approval) == "Pendente"
    assert get_status_label("APROVADA") == "Aprovada"
    assert get_status_label("ARQUIVADA") == "Desconhecido"
    assert get_status_color(ProposalStatus.rejected) == "red"
    assert get_status_color("ARQUIVADA") == "gray"


def test_submit_requires_an_allocation(workflow, fake_remote, notifier, proposal):
    assert not can_submit_proposal(proposal)
    with pytest.raises(PreconditionViolation):
        workflow.submit(proposal.id)
    assert fake_remote.count("submit_proposal") == 0
    assert notifier.of_type(NotificationType.error)[0].title == "Could not submit proposal"


def test_role_is_checked_before_the_remote_call(fake_remote, cache, notifier, store, proposal):
    allocate(store, proposal)
    workflow = ProposalWorkflow(fake_remote, cache, notifier, role=UserRole.professor)
    with pytest.raises(PermissionDeniedError) as exc_info:
        workflow.submit(proposal.id)
    assert exc_info.value.status_code == 403
    assert fake_remote.count("submit_proposal") == 0


def test_admin_may_trigger_any_edge(store, proposal):
    allocate(store, proposal)
    fresh = store.get_proposal(proposal.id)
    assert check_transition(fresh, ProposalEvent.submit, UserRole.admin).target == ProposalStatus.pending_approval
    with pytest.raises(PermissionDeniedError):
        check_transition(fresh, ProposalEvent.submit, UserRole.director)


def test_illegal_event_is_rejected_locally(workflow, fake_remote, proposal):
    with pytest.raises(TransitionNotAllowedError):
        workflow.approve(proposal.id)
    assert fake_remote.count("approve_proposal") == 0


def test_short_justification_is_rejected_locally(workflow, fake_remote, store, proposal):
    allocate(store, proposal)
    workflow.submit(proposal.id)
    with pytest.raises(PreconditionViolation) as exc_info:
        workflow.reject(proposal.id, "  too short  ")
    assert "Justification" in exc_info.value.message
    assert fake_remote.count("reject_proposal") == 0


def test_full_lifecycle(workflow, fake_remote, cache, notifier, store, proposal):
    allocate(store, proposal)

    submitted = workflow.submit(proposal.id, notes="First version")
    assert submitted.status == ProposalStatus.pending_approval
    assert submitted.submitted_at is not None
    assert CacheKeys.proposal(proposal.id) in cache.invalidations
    assert CacheKeys.ALL_PROPOSALS in cache.invalidations

    approved = workflow.approve(proposal.id, notes="Looks good")
    assert approved.status == ProposalStatus.approved
    assert approved.director_notes == "Looks good"
    assert approved.decided_at is not None

    sent_back = workflow.send_back(proposal.id, "Room shortage on Mondays")
    assert sent_back.status == ProposalStatus.draft
    assert sent_back.decided_at is None

    workflow.submit(proposal.id)
    rejected = workflow.reject(proposal.id, "Professor workload is unbalanced")
    assert rejected.status == ProposalStatus.rejected
    assert rejected.rejection_justification == "Professor workload is unbalanced"

    reopened = workflow.reopen(proposal.id)
    assert reopened.status == ProposalStatus.draft
    assert reopened.rejection_justification is None

    titles = [item.title for item in notifier.of_type(NotificationType.success)]
    assert titles == [
        "Proposal submitted for approval",
        "Proposal approved",
        "Proposal sent back for editing",
        "Proposal submitted for approval",
        "Proposal rejected",
        "Proposal reopened for editing",
    ]
    assert notifier.of_type(NotificationType.error) == []


def test_reads_are_cached_until_invalidated(workflow, fake_remote, store, proposal):
    allocate(store, proposal)
    workflow.get_proposal(proposal.id)
    workflow.get_proposal(proposal.id)
    assert fake_remote.count("get_proposal") == 1

    workflow.list_proposals()
    workflow.list_proposals(ProposalFilter(status=[ProposalStatus.draft]))
    workflow.list_proposals()
    assert fake_remote.count("list_proposals") == 2

    workflow.submit(proposal.id)
    workflow.list_proposals()
    assert fake_remote.count("list_proposals") == 3
    assert workflow.permissions(proposal.id).can_approve


def test_remote_failure_is_notified_and_reraised(workflow, fake_remote, notifier, store, proposal):
    allocate(store, proposal)
    fake_remote.fail_on.add("submit_proposal")
    with pytest.raises(TransportError):
        workflow.submit(proposal.id)
    assert notifier.of_type(NotificationType.error)[0].message == "submit_proposal is unavailable"
    assert store.get_proposal(proposal.id).status == ProposalStatus.draft


def test_create_and_delete_proposal(workflow, fake_remote, cache, store):
    created = workflow.create_proposal("course-ads", "period-2025-1", notes="Draft for 2025/1")
    assert created.status == ProposalStatus.draft
    assert created.coordinator_notes == "Draft for 2025/1"

    workflow.delete_proposal(created.id)
    assert created.id not in store.proposals
    assert CacheKeys.proposal_allocations(created.id) in cache.invalidations


def test_notes_longer_than_limit_are_rejected(workflow, fake_remote):
    with pytest.raises(PreconditionViolation):
        workflow.create_proposal("course-ads", "period-2025-1", notes="x" * 1001)
    assert fake_remote.count("create_proposal") == 0


def test_delete_requires_draft(workflow, fake_remote, store, proposal):
    allocate(store, proposal)
    workflow.submit(proposal.id)
    with pytest.raises(NotEditableError):
        workflow.delete_proposal(proposal.id)
    assert fake_remote.count("delete_proposal") == 0


def test_missing_proposal_is_notified_on_transition(workflow, fake_remote, notifier):
    with pytest.raises(ResourceNotFoundError):
        workflow.submit("missing")
    errors = notifier.of_type(NotificationType.error)
    assert [item.title for item in errors] == ["Could not submit proposal"]
    assert fake_remote.count("submit_proposal") == 0


def test_failed_read_is_notified_on_delete(workflow, fake_remote, notifier, proposal):
    fake_remote.fail_on.add("get_proposal")
    with pytest.raises(TransportError):
        workflow.delete_proposal(proposal.id)
    assert [item.title for item in notifier.of_type(NotificationType.error)] == ["Could not delete proposal"]
    assert fake_remote.count("delete_proposal") == 0
