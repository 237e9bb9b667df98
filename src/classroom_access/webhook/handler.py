"""GitHub webhook payload parsing.

This module provides the WebhookHandler class for turning raw
``repository`` webhook payloads into RepositoryCreatedEvent objects.

GitHub Webhook Payload Structure (repository event):
{
  "action": "created",
  "repository": {
    "name": "assignment1-johndoe",
    "owner": {"login": "cs101-fall"}
  },
  "organization": {"login": "cs101-fall"}
}
"""

from typing import Any, Dict, Optional

import structlog

from src.classroom_access.webhook.models import RepositoryAction, RepositoryCreatedEvent

logger = structlog.get_logger(__name__)


class WebhookHandler:
    """Parser for repository webhook payloads.

    Signature verification happens before parsing, in the dispatcher.
    """

    def parse_repository_event(
        self, payload: Dict[str, Any]
    ) -> Optional[RepositoryCreatedEvent]:
        """Parse a ``repository.created`` event from a webhook payload.

        Args:
            payload: The decoded webhook payload.

        Returns:
            RepositoryCreatedEvent if parsing succeeds, None for any other
            action or for a malformed payload.
        """
        if not isinstance(payload, dict):
            logger.warning("Invalid payload type", payload_type=type(payload).__name__)
            return None

        action = self._parse_action(payload.get("action"))
        if action is None:
            logger.debug("Ignoring unsupported action", action=payload.get("action"))
            return None

        repo_data = payload.get("repository")
        if not isinstance(repo_data, dict):
            logger.warning("Missing or invalid 'repository' field in payload")
            return None

        repo_name = repo_data.get("name")
        if not isinstance(repo_name, str) or not repo_name.strip():
            logger.warning("Invalid or empty repository name", repository=repo_name)
            return None

        owner = self._extract_login(repo_data.get("owner"))
        if owner is None:
            logger.warning("Missing or invalid repository owner", repository=repo_name)
            return None

        # Personal repositories carry no organization block
        organization = self._extract_login(payload.get("organization"))

        return RepositoryCreatedEvent(
            repository_name=repo_name.strip(),
            owner_login=owner,
            organization_login=organization,
        )

    def _parse_action(self, action: Any) -> Optional[RepositoryAction]:
        if not isinstance(action, str):
            return None
        try:
            return RepositoryAction(action)
        except ValueError:
            return None

    def _extract_login(self, account: Any) -> Optional[str]:
        if not isinstance(account, dict):
            return None
        login = account.get("login")
        if not isinstance(login, str) or not login.strip():
            return None
        return login.strip()
