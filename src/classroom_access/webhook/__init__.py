"""GitHub webhook handling for invitation reconciliation.

This module verifies and parses GitHub webhook deliveries, specifically:
- repository.created - A repository was created (e.g. by GitHub Classroom)

Every other event or action is acknowledged and ignored. Deliveries with
a missing or invalid X-Hub-Signature-256 header are rejected before any
parsing happens.
"""

from .dispatcher import WebhookDispatcher
from .handler import WebhookHandler
from .models import (
    DispatchStatus,
    RepositoryAction,
    RepositoryCreatedEvent,
    WebhookAck,
    WebhookHeaders,
)
from .signature import generate_signature, verify_signature

__all__ = [
    "DispatchStatus",
    "RepositoryAction",
    "RepositoryCreatedEvent",
    "WebhookAck",
    "WebhookDispatcher",
    "WebhookHandler",
    "WebhookHeaders",
    "generate_signature",
    "verify_signature",
]
