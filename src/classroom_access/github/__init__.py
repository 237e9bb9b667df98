"""GitHub API access for repository collaborators and invitations.

- GitHubClient: single-attempt REST calls with error mapping and pagination
- AccessService: retry, rate-limit absorption and dry-run on top of the client
"""

from src.classroom_access.github.access import AccessService
from src.classroom_access.github.client import (
    AuthenticationError,
    GitHubAPIError,
    GitHubClient,
    NotFoundError,
    RateLimitError,
)
from src.classroom_access.github.models import (
    CollaboratorStatus,
    Invitation,
    OperationResult,
    Permission,
    RateLimitStatus,
)

__all__ = [
    "AccessService",
    "AuthenticationError",
    "CollaboratorStatus",
    "GitHubAPIError",
    "GitHubClient",
    "Invitation",
    "NotFoundError",
    "OperationResult",
    "Permission",
    "RateLimitError",
    "RateLimitStatus",
]
