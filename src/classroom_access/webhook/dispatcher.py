"""Webhook dispatch: authenticate, filter and schedule reconciliation.

The dispatcher acknowledges every delivery synchronously. Matching
``repository.created`` events are handed to the reconciler in a
background asyncio task, so GitHub gets its response before any API
calls are made and reconciliation failures only show up in logs and
metrics.
"""

import asyncio
import json
from typing import Any, Awaitable, Callable, Mapping, Optional, Set, Union

import structlog

from src.classroom_access.webhook.handler import WebhookHandler
from src.classroom_access.webhook.models import (
    DispatchStatus,
    RepositoryAction,
    RepositoryCreatedEvent,
    WebhookAck,
    WebhookHeaders,
)
from src.classroom_access.webhook.signature import verify_signature

logger = structlog.get_logger(__name__)

REPOSITORY_EVENT = "repository"

ReconcileFn = Callable[[RepositoryCreatedEvent], Awaitable[Any]]


class WebhookDispatcher:
    """Routes authenticated repository created events to the reconciler.

    Attributes:
        secret: Shared webhook secret used to verify signatures.
        reconcile: Coroutine function run for each accepted event.
        handler: Payload parser.
    """

    def __init__(
        self,
        secret: str,
        reconcile: ReconcileFn,
        handler: Optional[WebhookHandler] = None,
    ):
        self.secret = secret
        self.reconcile = reconcile
        self.handler = handler or WebhookHandler()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        """Number of reconciliations still running."""
        return len(self._tasks)

    def dispatch(
        self,
        raw_body: Union[str, bytes],
        headers: Mapping[str, str],
    ) -> WebhookAck:
        """Acknowledge a delivery, scheduling reconciliation if it qualifies.

        Must be called from a running event loop when the delivery can be
        accepted.

        Args:
            raw_body: The exact request body GitHub signed.
            headers: Request headers (event, delivery id, signature).
        """
        meta = WebhookHeaders.from_mapping(headers)
        log = logger.bind(event=meta.event, delivery=meta.delivery)
        log.info("Received webhook")

        if not verify_signature(raw_body, meta.signature, self.secret):
            log.error("Invalid webhook signature")
            return WebhookAck(
                status=DispatchStatus.UNAUTHORIZED,
                message="Invalid signature",
                delivery=meta.delivery,
            )

        if meta.event != REPOSITORY_EVENT:
            log.debug("Ignoring non-repository event")
            return WebhookAck(
                status=DispatchStatus.IGNORED,
                message="Event ignored",
                delivery=meta.delivery,
            )

        try:
            payload = json.loads(raw_body)
        except ValueError:
            log.warning("Webhook body is not valid JSON")
            return WebhookAck(
                status=DispatchStatus.INVALID,
                message="Invalid JSON payload",
                delivery=meta.delivery,
            )

        event = self.handler.parse_repository_event(payload)
        if event is None:
            action = payload.get("action") if isinstance(payload, dict) else None
            if action == RepositoryAction.CREATED.value:
                log.warning("Repository created payload is missing required fields")
                return WebhookAck(
                    status=DispatchStatus.INVALID,
                    message="Invalid repository payload",
                    delivery=meta.delivery,
                )
            log.debug("Ignoring non-created action", action=action)
            return WebhookAck(
                status=DispatchStatus.IGNORED,
                message="Action ignored",
                delivery=meta.delivery,
            )

        self._schedule(event, meta.delivery)
        return WebhookAck(
            status=DispatchStatus.ACCEPTED,
            message="Processing webhook",
            delivery=meta.delivery,
            repository=event.full_repository,
        )

    def _schedule(self, event: RepositoryCreatedEvent, delivery: Optional[str]) -> None:
        task = asyncio.get_running_loop().create_task(self._run(event, delivery))
        # The loop only keeps weak references to tasks
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, event: RepositoryCreatedEvent, delivery: Optional[str]) -> None:
        try:
            await self.reconcile(event)
        except Exception:
            logger.exception(
                "Failed to process webhook",
                delivery=delivery,
                repository=event.full_repository,
            )

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight reconciliations, e.g. during shutdown."""
        if not self._tasks:
            return
        logger.info("Waiting for in-flight reconciliations", count=len(self._tasks))
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            logger.warning("Reconciliations still running at shutdown", count=len(pending))
