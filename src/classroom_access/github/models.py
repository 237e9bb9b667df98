"""GitHub access-control models.

This module defines the data models exchanged with the GitHub REST API
for repository collaborators and invitations:
- Permission: collaborator permission levels accepted by the API
- Invitation: a pending repository invitation
- CollaboratorStatus: a point-in-time read of a user's access
- OperationResult: uniform envelope returned by every mutating call
- RateLimitStatus: core rate limit snapshot

The models use Pydantic for validation, consistent with the webhook models.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class Permission(str, Enum):
    """Permission levels accepted when adding a collaborator."""

    PULL = "pull"
    PUSH = "push"
    ADMIN = "admin"
    MAINTAIN = "maintain"
    TRIAGE = "triage"

    @classmethod
    def from_invitation(cls, value: Optional[str]) -> Optional["Permission"]:
        """Map an invitation permission to a collaborator permission.

        The invitations API reports ``read`` and ``write`` where the
        collaborators API expects ``pull`` and ``push``.

        Returns:
            The matching Permission, or None if the value is unknown.
        """
        if not value:
            return None
        value = value.lower()
        aliases = {"read": cls.PULL, "write": cls.PUSH}
        if value in aliases:
            return aliases[value]
        try:
            return cls(value)
        except ValueError:
            return None


class Invitation(BaseModel):
    """A pending repository collaborator invitation.

    Attributes:
        id: Invitation identifier used for deletion.
        inviter_login: Login of the account that issued the invitation.
        invitee_login: Login of the invited user, if GitHub resolved one.
        permission: Permission as reported by the invitations API.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    inviter_login: Optional[str] = None
    invitee_login: Optional[str] = None
    permission: Optional[str] = None

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "Invitation":
        """Build an Invitation from a GitHub API invitation object."""
        inviter = data.get("inviter") or {}
        invitee = data.get("invitee") or {}
        return cls(
            id=data["id"],
            inviter_login=inviter.get("login"),
            invitee_login=invitee.get("login"),
            permission=data.get("permissions"),
        )


class CollaboratorStatus(BaseModel):
    """A user's collaborator status on a repository at the time of reading.

    Attributes:
        exists: Whether the user is currently a collaborator.
        permission: The user's current permission when they are one.
        needs_update: Whether access differs from the configured default.
    """

    model_config = ConfigDict(frozen=True)

    exists: bool
    permission: Optional[str] = None
    needs_update: bool = True


class OperationResult(BaseModel):
    """Outcome of a mutating access-control call.

    Attributes:
        success: Whether the operation took effect (or would have, in dry run).
        message: Human-readable summary of the outcome.
        details: Structured context (owner, repo, username, permission...).
        error: Description of the failure, if any.
        status_code: HTTP status of the failing response, if any.
    """

    success: bool
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    status_code: Optional[int] = None

    @property
    def dry_run(self) -> bool:
        return bool(self.details.get("dry_run"))


class RateLimitStatus(BaseModel):
    """Snapshot of the core REST API rate limit."""

    remaining: int
    reset: datetime
    limit: Optional[int] = None
