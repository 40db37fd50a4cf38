from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from horario.core.config import Settings
from horario.core.exceptions import ResourceNotFoundError, TransportError, ValidationRejectedError
from horario.schemas.allocation import (
    Allocation,
    AllocationCreate,
    AllocationFilter,
    AllocationValidationRequest,
    AllocationValidationResult,
)
from horario.schemas.proposal import (
    ApproveProposalPayload,
    Proposal,
    ProposalCreate,
    ProposalFilter,
    RejectProposalPayload,
    ReopenProposalPayload,
    SendBackProposalPayload,
    SubmitProposalPayload,
)
from horario.schemas.timetable import ScheduleSlotCatalog

logger = logging.getLogger(__name__)

ALLOCATIONS_PATH = "/alocacoes-horarios"
PROPOSALS_PATH = "/propostas-horario"
SLOT_CATALOG_PATH = "/configuracoes-horario"


class RemoteAuthority(Protocol):
    """Operations served by the server that owns allocations and proposals."""

    def validate_allocation(self, request: AllocationValidationRequest) -> AllocationValidationResult: ...

    def create_allocation(self, payload: AllocationCreate) -> Allocation: ...

    def delete_allocation(self, allocation_id: str) -> None: ...

    def list_allocations(self, filters: AllocationFilter | None = None) -> list[Allocation]: ...

    def get_schedule_slot_catalog(self) -> ScheduleSlotCatalog: ...

    def list_proposals(self, filters: ProposalFilter | None = None) -> list[Proposal]: ...

    def get_proposal(self, proposal_id: str) -> Proposal: ...

    def create_proposal(self, payload: ProposalCreate) -> Proposal: ...

    def delete_proposal(self, proposal_id: str) -> None: ...

    def submit_proposal(self, proposal_id: str, payload: SubmitProposalPayload) -> Proposal: ...

    def approve_proposal(self, proposal_id: str, payload: ApproveProposalPayload) -> Proposal: ...

    def reject_proposal(self, proposal_id: str, payload: RejectProposalPayload) -> Proposal: ...

    def reopen_proposal(self, proposal_id: str, payload: ReopenProposalPayload) -> Proposal: ...

    def send_back_proposal(self, proposal_id: str, payload: SendBackProposalPayload) -> Proposal: ...


def _error_message(response: httpx.Response) -> tuple[str, dict]:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase, {}
    if not isinstance(body, dict):
        return str(body), {}

    message = body.get("message", body.get("detail", response.reason_phrase))
    if isinstance(message, list):
        message = "; ".join(str(item.get("msg", item)) if isinstance(item, dict) else str(item) for item in message)
    details = body.get("details")
    if not isinstance(details, dict):
        details = {"details": details} if details is not None else {}
    return str(message), details


def _body(payload) -> dict:
    return payload.model_dump(by_alias=True, exclude_none=True, mode="json")


class HttpRemoteAuthority:
    def __init__(self, client: httpx.Client):
        self.client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpRemoteAuthority":
        headers = {"Accept": "application/json"}
        if settings.api_token:
            headers["Authorization"] = f"Bearer {settings.api_token}"
        client = httpx.Client(
            base_url=settings.api_base_url,
            headers=headers,
            timeout=settings.request_timeout_seconds,
        )
        return cls(client)

    def close(self) -> None:
        self.client.close()

    def _request(self, method: str, path: str, *, not_found: tuple[str, str] | None = None, **kwargs) -> Any:
        try:
            response = self.client.request(method, path, **kwargs)
        except httpx.RequestError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise TransportError(f"Request to {path} failed: {exc}") from exc

        if response.status_code >= 500:
            message, details = _error_message(response)
            raise TransportError(message, details={"status_code": response.status_code, **details})
        if response.status_code == 404 and not_found is not None:
            raise ResourceNotFoundError(*not_found)
        if response.status_code >= 400:
            message, details = _error_message(response)
            raise ValidationRejectedError(message, details={"status_code": response.status_code, **details})

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def validate_allocation(self, request: AllocationValidationRequest) -> AllocationValidationResult:
        data = self._request("POST", f"{ALLOCATIONS_PATH}/validate", json=_body(request))
        return AllocationValidationResult.model_validate(data)

    def create_allocation(self, payload: AllocationCreate) -> Allocation:
        data = self._request("POST", ALLOCATIONS_PATH, json=_body(payload))
        return Allocation.model_validate(data)

    def delete_allocation(self, allocation_id: str) -> None:
        self._request("DELETE", f"{ALLOCATIONS_PATH}/{allocation_id}", not_found=("Allocation", allocation_id))

    def list_allocations(self, filters: AllocationFilter | None = None) -> list[Allocation]:
        params = filters.as_query_params() if filters is not None else {}
        data = self._request("GET", ALLOCATIONS_PATH, params=params)
        return [Allocation.model_validate(item) for item in data or []]

    def get_schedule_slot_catalog(self) -> ScheduleSlotCatalog:
        return ScheduleSlotCatalog.model_validate(self._request("GET", SLOT_CATALOG_PATH))

    def list_proposals(self, filters: ProposalFilter | None = None) -> list[Proposal]:
        params = filters.as_query_params() if filters is not None else {}
        data = self._request("GET", PROPOSALS_PATH, params=params)
        return [Proposal.model_validate(item) for item in data or []]

    def get_proposal(self, proposal_id: str) -> Proposal:
        data = self._request("GET", f"{PROPOSALS_PATH}/{proposal_id}", not_found=("Proposal", proposal_id))
        return Proposal.model_validate(data)

    def create_proposal(self, payload: ProposalCreate) -> Proposal:
        return Proposal.model_validate(self._request("POST", PROPOSALS_PATH, json=_body(payload)))

    def delete_proposal(self, proposal_id: str) -> None:
        self._request("DELETE", f"{PROPOSALS_PATH}/{proposal_id}", not_found=("Proposal", proposal_id))

    def _transition(self, proposal_id: str, action: str, payload) -> Proposal:
        data = self._request(
            "POST",
            f"{PROPOSALS_PATH}/{proposal_id}/{action}",
            json=_body(payload),
            not_found=("Proposal", proposal_id),
        )
        return Proposal.model_validate(data)

    def submit_proposal(self, proposal_id: str, payload: SubmitProposalPayload) -> Proposal:
        return self._transition(proposal_id, "submit", payload)

    def approve_proposal(self, proposal_id: str, payload: ApproveProposalPayload) -> Proposal:
        return self._transition(proposal_id, "approve", payload)

    def reject_proposal(self, proposal_id: str, payload: RejectProposalPayload) -> Proposal:
        return self._transition(proposal_id, "reject", payload)

    def reopen_proposal(self, proposal_id: str, payload: ReopenProposalPayload) -> Proposal:
        return self._transition(proposal_id, "reopen", payload)

    def send_back_proposal(self, proposal_id: str, payload: SendBackProposalPayload) -> Proposal:
        return self._transition(proposal_id, "send-back", payload)
