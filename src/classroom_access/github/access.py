"""Retrying, dry-run aware access-control service.

AccessService wraps the GitHubClient operations used by the invitation
reconciler with:

- Bounded retry: up to ``max_retries`` additional attempts with at least
  ``retry_delay`` seconds between attempts.
- Rate-limit absorption: primary and secondary rate limits are retried
  like transient failures, honouring ``retry_after`` when it is larger
  than the minimum delay.
- Dry-run short-circuit: mutating operations return a synthetic
  successful OperationResult without contacting GitHub.
- Not-found normalization: a 404 when checking a collaborator means
  "not a collaborator", not an error.

Mutating calls return an OperationResult for expected failures.
AuthenticationError always propagates to the caller.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import structlog

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


logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Upper bound for a single wait, whatever the server asks for
MAX_RETRY_WAIT_SECONDS = 60.0

# Collaborator permission reported by the permission endpoint, per level
_REPORTED_PERMISSION = {
    Permission.PULL: "read",
    Permission.PUSH: "write",
    Permission.ADMIN: "admin",
    Permission.MAINTAIN: "maintain",
    Permission.TRIAGE: "triage",
}


class AccessService:
    """Access-control operations with retry and dry-run support.

    Attributes:
        client: The underlying GitHub API client.
        dry_run: When True, mutating operations are only described.
        default_permission: Permission used when none is given.
        max_retries: Additional attempts after the first failure.
        retry_delay: Minimum delay in seconds between attempts.
    """

    def __init__(
        self,
        client: GitHubClient,
        dry_run: bool = False,
        default_permission: Permission = Permission.PUSH,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.dry_run = dry_run
        self.default_permission = default_permission
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._sleep = sleep
        self._last_rate_limit = RateLimitStatus(
            remaining=5000,
            reset=datetime.now(timezone.utc),
        )

    def _retry_wait(self, error: GitHubAPIError) -> float:
        wait = self.retry_delay
        if isinstance(error, RateLimitError) and error.retry_after is not None:
            wait = max(wait, float(error.retry_after))
        return min(wait, MAX_RETRY_WAIT_SECONDS)

    async def _with_retry(
        self,
        operation: str,
        call: Callable[[], Awaitable[T]],
        **context: Any,
    ) -> T:
        """Run ``call`` until it succeeds or the retry budget is spent.

        Only retryable failures (rate limits, 408/5xx, network errors) are
        retried; anything else is raised on the first attempt.

        Raises:
            GitHubAPIError: The last failure once attempts are exhausted.
        """
        attempt = 0
        while True:
            try:
                return await call()
            except GitHubAPIError as e:
                if not e.retryable or attempt >= self.max_retries:
                    raise
                attempt += 1
                delay = self._retry_wait(e)
                logger.warning(
                    "Failed attempt, retrying",
                    operation=operation,
                    attempt=attempt,
                    max_retries=self.max_retries,
                    delay=delay,
                    status_code=e.status_code,
                    error=e.message,
                    **context,
                )
                await self._sleep(delay)

    async def check_collaborator_access(
        self,
        owner: str,
        repo: str,
        username: str,
    ) -> CollaboratorStatus:
        """Read a user's current collaborator status on a repository.

        Raises:
            GitHubAPIError: If the status cannot be determined.
        """
        context = {"owner": owner, "repo": repo, "username": username}

        async def check() -> bool:
            try:
                return await self.client.check_collaborator(owner, repo, username)
            except NotFoundError:
                return False

        exists = await self._with_retry("check_collaborator", check, **context)
        if not exists:
            return CollaboratorStatus(exists=False, needs_update=True)

        permission = await self._with_retry(
            "get_collaborator_permission",
            lambda: self.client.get_collaborator_permission(owner, repo, username),
            **context,
        )
        return CollaboratorStatus(
            exists=True,
            permission=permission,
            needs_update=permission != _REPORTED_PERMISSION[self.default_permission],
        )

    def _dry_run_result(self, message: str, **details: Any) -> OperationResult:
        logger.info("Dry run, skipping upstream call", action=message, **details)
        return OperationResult(
            success=True,
            message=f"DRY RUN: Would {message}",
            details={"dry_run": True, **details},
        )

    def _failure(self, message: str, error: GitHubAPIError, details: Dict[str, Any]) -> OperationResult:
        logger.error(message, error=error.message, status_code=error.status_code, **details)
        return OperationResult(
            success=False,
            message=f"{message}: {error.message}",
            details=details,
            error=error.message,
            status_code=error.status_code,
        )

    async def add_or_invite_collaborator(
        self,
        owner: str,
        repo: str,
        username: str,
        permission: Optional[Permission] = None,
    ) -> OperationResult:
        """Invite a user to a repository from the authenticated account.

        Args:
            permission: Permission to grant; defaults to ``default_permission``.
        """
        final_permission = permission or self.default_permission
        details: Dict[str, Any] = {
            "owner": owner,
            "repo": repo,
            "username": username,
            "permission": final_permission.value,
        }

        if self.dry_run:
            return self._dry_run_result(
                f"send invitation to {username} with {final_permission.value} permission",
                **details,
            )

        try:
            invitation = await self._with_retry(
                "add_collaborator",
                lambda: self.client.add_collaborator(owner, repo, username, final_permission),
                owner=owner,
                repo=repo,
                username=username,
            )
        except AuthenticationError:
            raise
        except GitHubAPIError as e:
            return self._failure(f"Failed to send invitation to {username}", e, details)

        if invitation is not None:
            details["invitation_id"] = invitation.get("id")
        logger.info("Successfully sent invitation", **details)
        return OperationResult(
            success=True,
            message=(
                f"Successfully sent invitation to {username} "
                f"with {final_permission.value} permission"
            ),
            details=details,
        )

    async def update_collaborator_permission(
        self,
        owner: str,
        repo: str,
        username: str,
        permission: Permission,
    ) -> OperationResult:
        """Change an existing collaborator's permission level."""
        details: Dict[str, Any] = {
            "owner": owner,
            "repo": repo,
            "username": username,
            "permission": permission.value,
        }

        if self.dry_run:
            return self._dry_run_result(
                f"update {username} permission to {permission.value}",
                **details,
            )

        try:
            await self._with_retry(
                "update_collaborator_permission",
                lambda: self.client.add_collaborator(owner, repo, username, permission),
                owner=owner,
                repo=repo,
                username=username,
            )
        except AuthenticationError:
            raise
        except GitHubAPIError as e:
            return self._failure(f"Failed to update {username} permission", e, details)

        logger.info("Successfully updated collaborator permission", **details)
        return OperationResult(
            success=True,
            message=f"Successfully updated {username} permission to {permission.value}",
            details=details,
        )

    async def list_pending_invitations(self, owner: str, repo: str) -> List[Invitation]:
        """List pending invitations, degrading to an empty list on failure."""
        try:
            return await self._with_retry(
                "list_invitations",
                lambda: self.client.list_invitations(owner, repo),
                owner=owner,
                repo=repo,
            )
        except AuthenticationError:
            raise
        except GitHubAPIError as e:
            logger.error(
                "Failed to list repository invitations",
                owner=owner,
                repo=repo,
                error=e.message,
                status_code=e.status_code,
            )
            return []

    async def delete_invitation(
        self,
        owner: str,
        repo: str,
        invitation_id: int,
    ) -> OperationResult:
        """Delete a pending invitation by id."""
        details: Dict[str, Any] = {
            "owner": owner,
            "repo": repo,
            "invitation_id": invitation_id,
        }

        if self.dry_run:
            return self._dry_run_result(f"delete invitation {invitation_id}", **details)

        try:
            await self._with_retry(
                "delete_invitation",
                lambda: self.client.delete_invitation(owner, repo, invitation_id),
                owner=owner,
                repo=repo,
                invitation_id=invitation_id,
            )
        except AuthenticationError:
            raise
        except NotFoundError:
            # Gone already, e.g. an earlier attempt succeeded but its response was lost
            details["already_deleted"] = True
            logger.info("Invitation already deleted", **details)
            return OperationResult(
                success=True,
                message=f"Invitation {invitation_id} was already deleted",
                details=details,
            )
        except GitHubAPIError as e:
            return self._failure("Failed to delete invitation", e, details)

        logger.info("Successfully deleted invitation", **details)
        return OperationResult(
            success=True,
            message=f"Successfully deleted invitation {invitation_id}",
            details=details,
        )

    async def list_org_members(self, org: str) -> List[str]:
        """List organization member logins, or [] if they cannot be read."""
        try:
            return await self._with_retry(
                "list_org_members",
                lambda: self.client.list_org_members(org),
                org=org,
            )
        except AuthenticationError:
            raise
        except GitHubAPIError as e:
            logger.error("Failed to get organization members", org=org, error=e.message)
            return []

    async def get_authenticated_user(self) -> Dict[str, Any]:
        return await self._with_retry("get_authenticated_user", self.client.get_authenticated_user)

    async def user_exists(self, username: str) -> bool:
        try:
            await self._with_retry(
                "get_user",
                lambda: self.client.get_user(username),
                username=username,
            )
        except NotFoundError:
            return False
        return True

    async def get_repository(self, owner: str, repo: str) -> Dict[str, Any]:
        return await self._with_retry(
            "get_repository",
            lambda: self.client.get_repository(owner, repo),
            owner=owner,
            repo=repo,
        )

    async def get_rate_limit(self) -> RateLimitStatus:
        """Get the rate limit status, or the last known one if unavailable."""
        try:
            self._last_rate_limit = await self.client.get_rate_limit()
        except GitHubAPIError as e:
            logger.error("Failed to get rate limit", error=e.message)
        return self._last_rate_limit

    async def test_connection(self) -> bool:
        """Verify the token is accepted by GitHub."""
        try:
            await self.client.get_authenticated_user()
            return True
        except GitHubAPIError as e:
            logger.error("Failed to test GitHub connection", error=e.message)
            return False
