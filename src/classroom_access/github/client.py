"""GitHub REST API client for repository access control.

This module provides an async wrapper around the GitHub API for:
- Checking collaborators and their permission level
- Adding collaborators (which issues an invitation for non-members)
- Listing and deleting pending repository invitations
- Listing organization members
- Reading the authenticated identity and rate limit status

Each call makes a single HTTP request (following pagination where the
endpoint is paginated) and maps failure responses onto the exception
hierarchy below. Retrying is the caller's concern; see access.py.
"""

import time
from typing import Any, Dict, List, Optional

import httpx
import structlog

from src.classroom_access.github.models import Invitation, Permission, RateLimitStatus


logger = structlog.get_logger(__name__)


# HTTP status codes that indicate a transient upstream failure
RETRYABLE_STATUS_CODES = frozenset({408, 500, 502, 503, 504})


class GitHubAPIError(Exception):
    """Raised when a GitHub API request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response, None for
                     network failures that produced no response.
        response_body: Response body from GitHub API.
        request_url: The URL that was requested.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        """Whether retrying the same request may succeed."""
        return self.status_code is None or self.status_code in RETRYABLE_STATUS_CODES


class NotFoundError(GitHubAPIError):
    """Raised when the requested resource does not exist (HTTP 404)."""

    @property
    def retryable(self) -> bool:
        return False


class AuthenticationError(GitHubAPIError):
    """Raised when the API token is missing, invalid or revoked (HTTP 401)."""

    @property
    def retryable(self) -> bool:
        return False


class RateLimitError(GitHubAPIError):
    """Raised when a primary or secondary rate limit is hit.

    Attributes:
        reset_at: Unix timestamp when the primary limit resets.
        retry_after: Seconds to wait before retrying, if known.
        secondary: True for secondary (abuse) limits.
    """

    def __init__(
        self,
        message: str,
        reset_at: Optional[int] = None,
        retry_after: Optional[int] = None,
        secondary: bool = False,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.reset_at = reset_at
        self.retry_after = retry_after
        self.secondary = secondary

    @property
    def retryable(self) -> bool:
        return True


def _parse_int_header(headers: httpx.Headers, name: str) -> Optional[int]:
    """Parse an integer header value, returning None if absent or invalid."""
    value = headers.get(name)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            pass
    return None


class GitHubClient:
    """Async GitHub API client for collaborator and invitation endpoints.

    Supports both github.com and GitHub Enterprise Server through
    ``base_url``.

    Attributes:
        token: GitHub API token (PAT or GitHub App token).
        base_url: Base URL for GitHub API (default: https://api.github.com).
        timeout: Request timeout in seconds.
        per_page: Page size for paginated endpoints.

    Example:
        >>> client = GitHubClient(token="ghp_xxx")
        >>> async with client:
        ...     invitations = await client.list_invitations("org", "repo")
    """

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.github.com",
        timeout: float = 30.0,
        per_page: int = 100,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the GitHub client.

        Args:
            token: GitHub API token for authentication.
            base_url: Base URL for GitHub API.
            timeout: Request timeout in seconds.
            per_page: Page size requested from paginated endpoints.
            transport: Optional httpx transport, used to stub the API in tests.
        """
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.per_page = per_page
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if necessary."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._default_headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def _default_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "classroom-access-fixer/1.0",
        }

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _rate_limit_error(self, response: httpx.Response) -> Optional[RateLimitError]:
        """Detect primary and secondary rate limit responses.

        Primary limits are signalled by ``x-ratelimit-remaining: 0`` (or a
        bare 429). Secondary limits come as 403/429 with a ``retry-after``
        header or a message mentioning the secondary rate limit.

        Returns:
            A RateLimitError describing the limit, or None if the response
            is not rate limited (e.g. a plain permission denied 403).
        """
        if response.status_code not in (403, 429):
            return None

        remaining = _parse_int_header(response.headers, "x-ratelimit-remaining")
        reset_at = _parse_int_header(response.headers, "x-ratelimit-reset")
        retry_after = _parse_int_header(response.headers, "retry-after")
        body = response.text.lower()

        if "secondary rate limit" in body or (retry_after is not None and remaining != 0):
            secondary = True
        elif remaining == 0 or response.status_code == 429:
            secondary = False
        else:
            return None

        if retry_after is None and reset_at is not None:
            retry_after = max(0, reset_at - int(time.time()))

        logger.warning(
            "GitHub API rate limit exceeded",
            secondary=secondary,
            reset_at=reset_at,
            retry_after=retry_after,
            limit=_parse_int_header(response.headers, "x-ratelimit-limit"),
            used=_parse_int_header(response.headers, "x-ratelimit-used"),
        )

        return RateLimitError(
            message=(
                "GitHub API secondary rate limit exceeded"
                if secondary
                else "GitHub API rate limit exceeded"
            ),
            status_code=response.status_code,
            reset_at=reset_at,
            retry_after=retry_after,
            secondary=secondary,
            response_body=response.text,
            request_url=str(response.url),
        )

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Make a single HTTP request and map failures to exceptions.

        Args:
            method: HTTP method (GET, PUT, DELETE, ...).
            path: API path or absolute URL (pagination links are absolute).
            json_data: Optional JSON body.
            params: Optional query parameters.

        Returns:
            The successful HTTP response.

        Raises:
            RateLimitError: If a primary or secondary rate limit was hit.
            AuthenticationError: On HTTP 401.
            NotFoundError: On HTTP 404.
            GitHubAPIError: On any other error status or network failure.
        """
        try:
            response = await self.client.request(
                method=method,
                url=path,
                json=json_data,
                params=params,
            )
        except httpx.TimeoutException as e:
            raise GitHubAPIError(
                message=f"Request timed out: {e}",
                request_url=f"{self.base_url}{path}",
            ) from e
        except httpx.RequestError as e:
            raise GitHubAPIError(
                message=f"Request error: {e}",
                request_url=f"{self.base_url}{path}",
            ) from e

        if response.status_code < 400:
            return response

        rate_limited = self._rate_limit_error(response)
        if rate_limited is not None:
            raise rate_limited

        error_body = response.text
        kwargs = {
            "status_code": response.status_code,
            "response_body": error_body,
            "request_url": str(response.url),
        }
        if response.status_code == 401:
            raise AuthenticationError(message="GitHub API authentication failed", **kwargs)
        if response.status_code == 404:
            raise NotFoundError(message=f"Not found: {path}", **kwargs)

        logger.error(
            "GitHub API error",
            status_code=response.status_code,
            path=path,
            method=method,
            response_body=error_body[:500],
        )
        raise GitHubAPIError(
            message=f"GitHub API error: {response.status_code}",
            **kwargs,
        )

    async def _paginate(self, path: str) -> List[Any]:
        """Collect every item of a paginated list endpoint.

        Follows the ``rel="next"`` entry of the Link header until the
        last page.
        """
        items: List[Any] = []
        url: Optional[str] = path
        params: Optional[Dict[str, Any]] = {"per_page": self.per_page}

        while url:
            response = await self._request("GET", url, params=params)
            page = response.json()
            if isinstance(page, list):
                items.extend(page)
            url = response.links.get("next", {}).get("url")
            # The next link already carries the query string
            params = None

        return items

    async def check_collaborator(self, owner: str, repo: str, username: str) -> bool:
        """Check whether a user is a collaborator on a repository.

        Returns:
            True when GitHub answers 204.

        Raises:
            NotFoundError: When the user is not a collaborator.
        """
        path = f"/repos/{owner}/{repo}/collaborators/{username}"
        logger.debug("Checking collaborator", owner=owner, repo=repo, username=username)
        response = await self._request("GET", path)
        return response.status_code == 204

    async def get_collaborator_permission(self, owner: str, repo: str, username: str) -> str:
        """Get a collaborator's permission level (admin/write/read/none...)."""
        path = f"/repos/{owner}/{repo}/collaborators/{username}/permission"
        response = await self._request("GET", path)
        return response.json().get("permission", "none")

    async def add_collaborator(
        self,
        owner: str,
        repo: str,
        username: str,
        permission: Permission,
    ) -> Optional[Dict[str, Any]]:
        """Add a collaborator, inviting them if they are not yet one.

        The request is made with the client's own token, so the resulting
        invitation names the authenticated account as inviter.

        Returns:
            The created invitation (HTTP 201), or None when the user already
            had access and only the permission was updated (HTTP 204).
        """
        path = f"/repos/{owner}/{repo}/collaborators/{username}"
        logger.info(
            "Adding collaborator",
            owner=owner,
            repo=repo,
            username=username,
            permission=permission.value,
        )
        response = await self._request(
            "PUT",
            path,
            json_data={"permission": permission.value},
        )
        if response.status_code == 201 and response.content:
            return response.json()
        return None

    async def list_invitations(self, owner: str, repo: str) -> List[Invitation]:
        """List every pending invitation on a repository."""
        path = f"/repos/{owner}/{repo}/invitations"
        data = await self._paginate(path)
        invitations = [Invitation.from_github_response(item) for item in data]
        logger.info(
            "Listed repository invitations",
            owner=owner,
            repo=repo,
            count=len(invitations),
        )
        return invitations

    async def delete_invitation(self, owner: str, repo: str, invitation_id: int) -> None:
        """Delete a pending repository invitation."""
        path = f"/repos/{owner}/{repo}/invitations/{invitation_id}"
        logger.info(
            "Deleting repository invitation",
            owner=owner,
            repo=repo,
            invitation_id=invitation_id,
        )
        await self._request("DELETE", path)

    async def list_org_members(self, org: str) -> List[str]:
        """List the logins of every member of an organization."""
        data = await self._paginate(f"/orgs/{org}/members")
        return [member["login"] for member in data if member.get("login")]

    async def get_authenticated_user(self) -> Dict[str, Any]:
        response = await self._request("GET", "/user")
        return response.json()

    async def get_user(self, username: str) -> Dict[str, Any]:
        response = await self._request("GET", f"/users/{username}")
        return response.json()

    async def get_repository(self, owner: str, repo: str) -> Dict[str, Any]:
        response = await self._request("GET", f"/repos/{owner}/{repo}")
        return response.json()

    async def get_rate_limit(self) -> RateLimitStatus:
        """Get the core REST API rate limit status."""
        response = await self._request("GET", "/rate_limit")
        rate = response.json().get("rate", {})
        return RateLimitStatus(
            remaining=rate.get("remaining", 0),
            reset=rate.get("reset", 0),
            limit=rate.get("limit"),
        )
