"""GitHub webhook event models.

This module defines the data models for the ``repository`` webhook
events that trigger invitation reconciliation, the delivery headers,
and the acknowledgment returned to GitHub.

The models use Pydantic for validation, consistent with config.py.
"""

from enum import Enum
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


class RepositoryAction(str, Enum):
    """Repository event actions that trigger reconciliation."""

    CREATED = "created"


class RepositoryCreatedEvent(BaseModel):
    """Parsed ``repository.created`` webhook event.

    Attributes:
        repository_name: The repository name without owner prefix.
        owner_login: Login of the repository owner (user or organization).
        organization_login: Login of the organization, when the event
                            was delivered for an organization.
    """

    model_config = ConfigDict(frozen=True)

    repository_name: str = Field(..., min_length=1)

    owner_login: str = Field(..., min_length=1)

    organization_login: Optional[str] = None

    @property
    def account(self) -> str:
        """The account that owns the repository for API calls."""
        return self.organization_login or self.owner_login

    @property
    def full_repository(self) -> str:
        """Repository path in format "{account}/{repository_name}"."""
        return f"{self.account}/{self.repository_name}"


class WebhookHeaders(BaseModel):
    """GitHub delivery headers relevant to dispatch."""

    event: Optional[str] = None
    delivery: Optional[str] = None
    signature: Optional[str] = None

    @classmethod
    def from_mapping(cls, headers: Mapping[str, str]) -> "WebhookHeaders":
        """Read headers from a case-insensitive mapping (e.g. request.headers)."""
        lowered = {key.lower(): value for key, value in headers.items()}
        return cls(
            event=lowered.get("x-github-event"),
            delivery=lowered.get("x-github-delivery"),
            signature=lowered.get("x-hub-signature-256"),
        )


class DispatchStatus(str, Enum):
    """Outcome of dispatching one delivery.

    Attributes:
        ACCEPTED: Reconciliation was scheduled (HTTP 202).
        IGNORED: Authentic but not a repository created event (HTTP 200).
        UNAUTHORIZED: Signature missing or invalid (HTTP 401).
        INVALID: Signature valid but payload malformed (HTTP 400).
    """

    ACCEPTED = "accepted"
    IGNORED = "ignored"
    UNAUTHORIZED = "unauthorized"
    INVALID = "invalid"


_STATUS_CODES = {
    DispatchStatus.ACCEPTED: 202,
    DispatchStatus.IGNORED: 200,
    DispatchStatus.UNAUTHORIZED: 401,
    DispatchStatus.INVALID: 400,
}


class WebhookAck(BaseModel):
    """Acknowledgment sent back to GitHub for a delivery."""

    status: DispatchStatus
    message: str
    delivery: Optional[str] = None
    repository: Optional[str] = None

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self.status]

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"status": self.status.value, "message": self.message}
        if self.repository is not None:
            body["repository"] = self.repository
        return body
