"""Invitation reconciliation for classroom repositories.

When GitHub Classroom creates a repository it invites the student from
its bot account. The InvitationReconciler replaces each such invitation
with one issued by the authenticated account:

    list invitations -> keep bot invitations -> for each invitation:
        no invitee            -> skip
        invitee has access    -> skip
        delete bot invitation -> failed? count failure, next invitation
        auto-add enabled      -> send replacement invitation
        auto-add disabled     -> stop after the revoke

Every decision is taken from state read from GitHub during the same
reconciliation. Replaying an event therefore converges: once the bot
invitation is gone there is nothing left to replace.

Concurrent reconciliations share nothing but the metrics sink. The
read-then-act sequence is not transactional against other actors on the
same repository; a concurrent change is observed on the next delivery.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import structlog

from src.classroom_access.classifier import (
    IndividualRepository,
    TeamRepository,
    classify,
    extract_students_from_team,
)
from src.classroom_access.config import PermissionPolicy
from src.classroom_access.github.access import AccessService
from src.classroom_access.github.models import Invitation, Permission
from src.classroom_access.metrics import MetricsSink
from src.classroom_access.webhook.models import RepositoryCreatedEvent

logger = structlog.get_logger(__name__)

DEFAULT_BOT_LOGIN = "github-classroom[bot]"


class InvitationOutcome(str, Enum):
    """Terminal state of one bot invitation.

    Attributes:
        SKIPPED_NO_INVITEE: The invitation names no resolvable user.
        SKIPPED_ALREADY_COLLABORATOR: The invitee already has access.
        REVOKE_FAILED: Deleting the bot invitation failed.
        REVOKED: Deleted; no replacement because auto-add is disabled.
        REPLACEMENT_SENT: Deleted and re-issued from the authenticated account.
        REPLACEMENT_FAILED: Deleted, but the replacement invitation failed.
        ERROR: An unexpected error interrupted processing of the invitation.
    """

    SKIPPED_NO_INVITEE = "skipped_no_invitee"
    SKIPPED_ALREADY_COLLABORATOR = "skipped_already_collaborator"
    REVOKE_FAILED = "revoke_failed"
    REVOKED = "revoked"
    REPLACEMENT_SENT = "replacement_sent"
    REPLACEMENT_FAILED = "replacement_failed"
    ERROR = "error"


@dataclass(frozen=True)
class InvitationStep:
    """What happened to one bot invitation."""

    invitation_id: int
    invitee: Optional[str]
    outcome: InvitationOutcome
    message: str = ""


@dataclass
class ReconciliationReport:
    """Summary of one reconciliation, returned for logging and tests.

    Attributes:
        repository: Repository path "{account}/{name}".
        classroom: Whether the name was classified as a classroom repository.
        students: Logins the repository was reconciled for.
        steps: Per-invitation outcomes, in processing order.
        error: Description of an unexpected failure, if any.
    """

    repository: str
    classroom: bool = False
    students: List[str] = field(default_factory=list)
    steps: List[InvitationStep] = field(default_factory=list)
    error: Optional[str] = None

    def outcomes(self) -> List[InvitationOutcome]:
        return [step.outcome for step in self.steps]


class InvitationReconciler:
    """Replaces classroom bot invitations on newly created repositories.

    Attributes:
        access: Retrying access service used for every GitHub call.
        metrics: Sink receiving processed/success/failed increments.
        bot_login: Inviter login of the classroom bot.
        auto_add_collaborator: Whether to re-invite after revoking.
        default_permission: Permission for replacement invitations.
        permission_policy: Whether replacements keep the bot's permission.
    """

    def __init__(
        self,
        access: AccessService,
        metrics: MetricsSink,
        bot_login: str = DEFAULT_BOT_LOGIN,
        auto_add_collaborator: bool = True,
        default_permission: Permission = Permission.PUSH,
        permission_policy: PermissionPolicy = PermissionPolicy.PRESERVE,
    ):
        self.access = access
        self.metrics = metrics
        self.bot_login = bot_login
        self.auto_add_collaborator = auto_add_collaborator
        self.default_permission = default_permission
        self.permission_policy = permission_policy

    async def reconcile(self, event: RepositoryCreatedEvent) -> ReconciliationReport:
        """Reconcile access for one repository created event.

        Never raises: unexpected failures are logged and counted as failed.
        """
        self.metrics.record_processed()

        owner = event.account
        repo = event.repository_name
        report = ReconciliationReport(repository=event.full_repository)

        logger.info("Processing repository created event", owner=owner, repo=repo)

        classification = classify(repo)
        if isinstance(classification, IndividualRepository):
            report.classroom = True
            report.students = [classification.student_username]
            logger.info(
                "Handling individual assignment",
                owner=owner,
                repo=repo,
                student=classification.student_username,
            )
            await self._reconcile_invitations(owner, repo, report)
        elif isinstance(classification, TeamRepository):
            report.classroom = True
            await self._reconcile_team(owner, repo, classification.team_name, report)
        else:
            logger.info("Not a classroom repository, skipping", owner=owner, repo=repo)

        return report

    async def _reconcile_team(
        self,
        owner: str,
        repo: str,
        team_name: str,
        report: ReconciliationReport,
    ) -> None:
        logger.info("Handling team assignment", owner=owner, repo=repo, team=team_name)

        try:
            members = await self.access.list_org_members(owner)
        except Exception as e:
            logger.exception("Error handling team assignment", owner=owner, repo=repo, team=team_name)
            report.error = str(e)
            self.metrics.record_failed()
            return

        students = extract_students_from_team(team_name, members)
        if not students:
            logger.warning("Could not extract student usernames from team name", team=team_name)
            report.error = f"No students resolved from team {team_name}"
            self.metrics.record_failed()
            return

        logger.info("Extracted students from team name", team=team_name, students=students)
        report.students = students

        # One listing for the whole team: each bot invitation is visited once
        await self._reconcile_invitations(owner, repo, report)

    async def _reconcile_invitations(
        self,
        owner: str,
        repo: str,
        report: ReconciliationReport,
    ) -> None:
        """Replace every bot invitation on the repository, each exactly once.

        A failure on one invitation does not stop the others.
        """
        try:
            invitations = await self.access.list_pending_invitations(owner, repo)
        except Exception as e:
            logger.exception("Error listing repository invitations", owner=owner, repo=repo)
            report.error = str(e)
            self.metrics.record_failed()
            return

        bot_invitations: List[Invitation] = []
        seen = set()
        for invitation in invitations:
            # Pages can overlap when invitations change between requests
            if invitation.inviter_login == self.bot_login and invitation.id not in seen:
                seen.add(invitation.id)
                bot_invitations.append(invitation)
        if not bot_invitations:
            logger.info("No classroom bot invitations found", owner=owner, repo=repo)
            self.metrics.record_success()
            return

        for invitation in bot_invitations:
            try:
                step = await self._replace_invitation(owner, repo, invitation)
            except Exception as e:
                logger.exception(
                    "Error replacing bot invitation",
                    owner=owner,
                    repo=repo,
                    invitation_id=invitation.id,
                )
                report.error = str(e)
                self.metrics.record_failed()
                step = InvitationStep(
                    invitation.id,
                    invitation.invitee_login,
                    InvitationOutcome.ERROR,
                    str(e),
                )
            report.steps.append(step)

    def _replacement_permission(self, invitation: Invitation) -> Permission:
        if self.permission_policy == PermissionPolicy.PRESERVE:
            return Permission.from_invitation(invitation.permission) or self.default_permission
        return self.default_permission

    async def _replace_invitation(
        self,
        owner: str,
        repo: str,
        invitation: Invitation,
    ) -> InvitationStep:
        """Drive one bot invitation to a terminal outcome."""
        invitee = invitation.invitee_login
        log = logger.bind(owner=owner, repo=repo, invitation_id=invitation.id, invitee=invitee)

        if not invitee:
            log.warning("Bot invitation has no invitee username")
            return InvitationStep(invitation.id, None, InvitationOutcome.SKIPPED_NO_INVITEE)

        log.info("Found classroom bot invitation", permission=invitation.permission)

        status = await self.access.check_collaborator_access(owner, repo, invitee)
        if status.exists:
            log.info("Invitee already has access, skipping", permission=status.permission)
            return InvitationStep(
                invitation.id,
                invitee,
                InvitationOutcome.SKIPPED_ALREADY_COLLABORATOR,
                f"{invitee} already has {status.permission} access",
            )

        deleted = await self.access.delete_invitation(owner, repo, invitation.id)
        if not deleted.success:
            log.error("Failed to delete bot invitation", message=deleted.message)
            self.metrics.record_failed()
            return InvitationStep(invitation.id, invitee, InvitationOutcome.REVOKE_FAILED, deleted.message)

        log.info("Removed bot invitation")

        if not self.auto_add_collaborator:
            log.info("Auto-add collaborator is disabled, not re-inviting")
            self.metrics.record_success()
            return InvitationStep(invitation.id, invitee, InvitationOutcome.REVOKED, deleted.message)

        permission = self._replacement_permission(invitation)
        sent = await self.access.add_or_invite_collaborator(owner, repo, invitee, permission)
        if sent.success:
            log.info("Sent replacement invitation", details=sent.details)
            self.metrics.record_success()
            return InvitationStep(invitation.id, invitee, InvitationOutcome.REPLACEMENT_SENT, sent.message)

        log.error("Failed to send replacement invitation", message=sent.message)
        self.metrics.record_failed()
        return InvitationStep(invitation.id, invitee, InvitationOutcome.REPLACEMENT_FAILED, sent.message)
