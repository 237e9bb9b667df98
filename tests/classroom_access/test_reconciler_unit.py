"""Unit tests for InvitationReconciler.

The reconciler runs against an in-memory stand-in for AccessService that
keeps per-repository invitations and collaborators, so repeated runs see
the state left by earlier ones.
"""

import asyncio
from typing import Dict, List, Optional, Set, Tuple
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.classroom_access.config import PermissionPolicy
from src.classroom_access.github.access import AccessService
from src.classroom_access.github.client import (
    AuthenticationError,
    GitHubAPIError,
    GitHubClient,
    NotFoundError,
)
from src.classroom_access.github.models import (
    CollaboratorStatus,
    Invitation,
    OperationResult,
    Permission,
)
from src.classroom_access.reconciler import (
    InvitationOutcome,
    InvitationReconciler,
)
from src.classroom_access.webhook.models import RepositoryCreatedEvent


BOT = "github-classroom[bot]"
OWNER = "cs101-fall"
INSTRUCTOR = "instructor-account"


def run_async(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


class FakeAccess:
    """In-memory repository access state with call recording."""

    def __init__(self, org_members: Optional[List[str]] = None):
        self.invitations: Dict[str, List[Invitation]] = {}
        self.collaborators: Dict[str, Set[str]] = {}
        self.org_members = org_members or []
        self.calls: List[Tuple] = []
        self.fail_delete = False
        self.fail_invite = False
        self.raise_on_list: Optional[Exception] = None
        self.raise_on_check: Optional[Exception] = None
        self.raise_on_members: Optional[Exception] = None
        self._next_id = 1000

    def add_invitation(self, repo, invitee, inviter=BOT, permission="write"):
        self._next_id += 1
        invitation = Invitation(
            id=self._next_id,
            inviter_login=inviter,
            invitee_login=invitee,
            permission=permission,
        )
        self.invitations.setdefault(repo, []).append(invitation)
        return invitation

    @property
    def mutations(self):
        return [c for c in self.calls if c[0] in ("delete_invitation", "add_or_invite_collaborator")]

    async def list_pending_invitations(self, owner, repo):
        self.calls.append(("list_pending_invitations", owner, repo))
        if self.raise_on_list:
            raise self.raise_on_list
        return list(self.invitations.get(repo, []))

    async def check_collaborator_access(self, owner, repo, username):
        self.calls.append(("check_collaborator_access", owner, repo, username))
        if self.raise_on_check:
            raise self.raise_on_check
        if username in self.collaborators.get(repo, set()):
            return CollaboratorStatus(exists=True, permission="write", needs_update=False)
        return CollaboratorStatus(exists=False, needs_update=True)

    async def delete_invitation(self, owner, repo, invitation_id):
        self.calls.append(("delete_invitation", owner, repo, invitation_id))
        if self.fail_delete:
            return OperationResult(success=False, message="Failed to delete invitation", status_code=500)
        self.invitations[repo] = [i for i in self.invitations.get(repo, []) if i.id != invitation_id]
        return OperationResult(success=True, message=f"Successfully deleted invitation {invitation_id}")

    async def add_or_invite_collaborator(self, owner, repo, username, permission=None):
        self.calls.append(("add_or_invite_collaborator", owner, repo, username, permission))
        if self.fail_invite:
            return OperationResult(success=False, message=f"Failed to send invitation to {username}")
        # Replacement invitations are issued by the authenticated account
        self.add_invitation(repo, username, inviter=INSTRUCTOR, permission=permission.value)
        return OperationResult(success=True, message=f"Successfully sent invitation to {username}")

    async def list_org_members(self, org):
        self.calls.append(("list_org_members", org))
        if self.raise_on_members:
            raise self.raise_on_members
        return list(self.org_members)


def _make_event(name: str) -> RepositoryCreatedEvent:
    return RepositoryCreatedEvent(repository_name=name, owner_login=OWNER, organization_login=OWNER)


def _make_reconciler(access, metrics, **kwargs) -> InvitationReconciler:
    return InvitationReconciler(access=access, metrics=metrics, bot_login=BOT, **kwargs)


def _counts(metrics):
    snapshot = metrics.snapshot()
    return snapshot.processed, snapshot.success, snapshot.failed


# ---------------------------------------------------------------------------
# Individual repositories
# ---------------------------------------------------------------------------


class TestIndividualReconciliation:

    def test_bot_invitation_is_replaced(self, metrics):
        access = FakeAccess()
        bot_invitation = access.add_invitation("assignment1-johndoe", "johndoe")
        reconciler = _make_reconciler(access, metrics)

        report = run_async(reconciler.reconcile(_make_event("assignment1-johndoe")))

        assert report.classroom
        assert report.students == ["johndoe"]
        assert report.outcomes() == [InvitationOutcome.REPLACEMENT_SENT]
        assert access.mutations == [
            ("delete_invitation", OWNER, "assignment1-johndoe", bot_invitation.id),
            ("add_or_invite_collaborator", OWNER, "assignment1-johndoe", "johndoe", Permission.PUSH),
        ]
        assert _counts(metrics) == (1, 1, 0)

        remaining = access.invitations["assignment1-johndoe"]
        assert [(i.inviter_login, i.invitee_login) for i in remaining] == [(INSTRUCTOR, "johndoe")]

    def test_replaying_the_event_converges(self, metrics):
        access = FakeAccess()
        access.add_invitation("assignment1-johndoe", "johndoe")
        reconciler = _make_reconciler(access, metrics)
        event = _make_event("assignment1-johndoe")

        run_async(reconciler.reconcile(event))
        first_mutations = len(access.mutations)
        report = run_async(reconciler.reconcile(event))

        assert first_mutations == 2
        assert len(access.mutations) == 2
        assert report.steps == []
        assert _counts(metrics) == (2, 2, 0)

    def test_no_bot_invitations_is_success(self, metrics):
        access = FakeAccess()
        access.add_invitation("assignment1-johndoe", "johndoe", inviter=INSTRUCTOR)
        reconciler = _make_reconciler(access, metrics)

        report = run_async(reconciler.reconcile(_make_event("assignment1-johndoe")))

        assert report.steps == []
        assert access.mutations == []
        assert _counts(metrics) == (1, 1, 0)

    def test_invitation_without_invitee_is_skipped(self, metrics):
        access = FakeAccess()
        access.add_invitation("assignment1-johndoe", None)
        reconciler = _make_reconciler(access, metrics)

        report = run_async(reconciler.reconcile(_make_event("assignment1-johndoe")))

        assert report.outcomes() == [InvitationOutcome.SKIPPED_NO_INVITEE]
        assert access.mutations == []
        assert not any(c[0] == "check_collaborator_access" for c in access.calls)
        assert _counts(metrics) == (1, 0, 0)

    def test_existing_collaborator_is_skipped(self, metrics):
        access = FakeAccess()
        access.add_invitation("assignment1-johndoe", "johndoe")
        access.collaborators["assignment1-johndoe"] = {"johndoe"}
        reconciler = _make_reconciler(access, metrics)

        report = run_async(reconciler.reconcile(_make_event("assignment1-johndoe")))

        assert report.outcomes() == [InvitationOutcome.SKIPPED_ALREADY_COLLABORATOR]
        assert access.mutations == []
        assert _counts(metrics) == (1, 0, 0)

    def test_failed_delete_does_not_invite(self, metrics):
        access = FakeAccess()
        access.add_invitation("assignment1-johndoe", "johndoe")
        access.fail_delete = True
        reconciler = _make_reconciler(access, metrics)

        report = run_async(reconciler.reconcile(_make_event("assignment1-johndoe")))

        assert report.outcomes() == [InvitationOutcome.REVOKE_FAILED]
        assert [c[0] for c in access.mutations] == ["delete_invitation"]
        assert _counts(metrics) == (1, 0, 1)

    def test_lost_delete_response_still_sends_replacement(self, metrics):
        client = MagicMock(spec=GitHubClient)
        client.list_invitations = AsyncMock(
            return_value=[Invitation(id=7, inviter_login=BOT, invitee_login="johndoe", permission="write")]
        )
        client.check_collaborator = AsyncMock(side_effect=NotFoundError("Not found", status_code=404))
        client.delete_invitation = AsyncMock(
            side_effect=[GitHubAPIError("Request error: connection reset"), NotFoundError("Not found", status_code=404)]
        )
        client.add_collaborator = AsyncMock(return_value={"id": 8})
        access = AccessService(client=client, max_retries=2, retry_delay=0)
        reconciler = _make_reconciler(access, metrics)

        report = run_async(reconciler.reconcile(_make_event("assignment1-johndoe")))

        assert report.outcomes() == [InvitationOutcome.REPLACEMENT_SENT]
        client.add_collaborator.assert_awaited_once_with("cs101-fall", "assignment1-johndoe", "johndoe", Permission.PUSH)
        assert _counts(metrics) == (1, 1, 0)

    def test_failed_replacement_is_counted(self, metrics):
        access = FakeAccess()
        access.add_invitation("assignment1-johndoe", "johndoe")
        access.fail_invite = True
        reconciler = _make_reconciler(access, metrics)

        report = run_async(reconciler.reconcile(_make_event("assignment1-johndoe")))

        assert report.outcomes() == [InvitationOutcome.REPLACEMENT_FAILED]
        assert _counts(metrics) == (1, 0, 1)

    def test_auto_add_disabled_only_revokes(self, metrics):
        access = FakeAccess()
        access.add_invitation("assignment1-johndoe", "johndoe")
        reconciler = _make_reconciler(access, metrics, auto_add_collaborator=False)

        report = run_async(reconciler.reconcile(_make_event("assignment1-johndoe")))

        assert report.outcomes() == [InvitationOutcome.REVOKED]
        assert [c[0] for c in access.mutations] == ["delete_invitation"]
        assert access.invitations["assignment1-johndoe"] == []
        assert _counts(metrics) == (1, 1, 0)

    def test_every_bot_invitation_is_handled(self, metrics):
        access = FakeAccess()
        access.add_invitation("assignment1-johndoe", "johndoe")
        access.add_invitation("assignment1-johndoe", "janedoe")
        access.add_invitation("assignment1-johndoe", "someone", inviter=INSTRUCTOR)
        reconciler = _make_reconciler(access, metrics)

        report = run_async(reconciler.reconcile(_make_event("assignment1-johndoe")))

        assert [step.invitee for step in report.steps] == ["johndoe", "janedoe"]
        assert report.outcomes() == [InvitationOutcome.REPLACEMENT_SENT] * 2
        assert _counts(metrics) == (1, 2, 0)

    def test_error_on_one_invitation_does_not_stop_the_next(self, metrics):
        access = FakeAccess()
        access.add_invitation("assignment1-johndoe", "johndoe")
        access.add_invitation("assignment1-johndoe", "janedoe")
        reconciler = _make_reconciler(access, metrics)

        original_check = access.check_collaborator_access

        async def flaky_check(owner, repo, username):
            if username == "johndoe":
                raise GitHubAPIError("GitHub API error: 502", status_code=502)
            return await original_check(owner, repo, username)

        access.check_collaborator_access = flaky_check

        report = run_async(reconciler.reconcile(_make_event("assignment1-johndoe")))

        assert report.outcomes() == [InvitationOutcome.ERROR, InvitationOutcome.REPLACEMENT_SENT]
        assert report.error == "GitHub API error: 502"
        assert _counts(metrics) == (1, 1, 1)

    def test_listing_failure_counts_as_failed(self, metrics):
        access = FakeAccess()
        access.raise_on_list = AuthenticationError("GitHub API authentication failed", status_code=401)
        reconciler = _make_reconciler(access, metrics)

        report = run_async(reconciler.reconcile(_make_event("assignment1-johndoe")))

        assert report.error == "GitHub API authentication failed"
        assert access.mutations == []
        assert _counts(metrics) == (1, 0, 1)


# ---------------------------------------------------------------------------
# Replacement permission
# ---------------------------------------------------------------------------


class TestReplacementPermission:

    @pytest.mark.parametrize(
        "invitation_permission, expected",
        [
            ("read", Permission.PULL),
            ("write", Permission.PUSH),
            ("admin", Permission.ADMIN),
            ("triage", Permission.TRIAGE),
            (None, Permission.PUSH),
            ("unknown", Permission.PUSH),
        ],
    )
    def test_preserve_policy_keeps_bot_permission(self, metrics, invitation_permission, expected):
        access = FakeAccess()
        access.add_invitation("assignment1-johndoe", "johndoe", permission=invitation_permission)
        reconciler = _make_reconciler(access, metrics, permission_policy=PermissionPolicy.PRESERVE)

        run_async(reconciler.reconcile(_make_event("assignment1-johndoe")))

        invite = [c for c in access.calls if c[0] == "add_or_invite_collaborator"][0]
        assert invite[4] == expected

    def test_default_policy_uses_configured_permission(self, metrics):
        access = FakeAccess()
        access.add_invitation("assignment1-johndoe", "johndoe", permission="admin")
        reconciler = _make_reconciler(
            access,
            metrics,
            permission_policy=PermissionPolicy.DEFAULT,
            default_permission=Permission.MAINTAIN,
        )

        run_async(reconciler.reconcile(_make_event("assignment1-johndoe")))

        invite = [c for c in access.calls if c[0] == "add_or_invite_collaborator"][0]
        assert invite[4] == Permission.MAINTAIN


# ---------------------------------------------------------------------------
# Team repositories
# ---------------------------------------------------------------------------


class TestTeamReconciliation:

    def test_team_invitations_are_each_replaced_once(self, metrics):
        access = FakeAccess()
        repo = "final-team-alice-and-bob"
        access.add_invitation(repo, "alice")
        access.add_invitation(repo, "bob")
        reconciler = _make_reconciler(access, metrics)

        report = run_async(reconciler.reconcile(_make_event(repo)))

        assert report.students == ["alice", "bob"]
        assert access.calls[0] == ("list_org_members", OWNER)
        assert [c[0] for c in access.calls].count("list_pending_invitations") == 1
        assert [step.invitee for step in report.steps] == ["alice", "bob"]
        assert report.outcomes() == [InvitationOutcome.REPLACEMENT_SENT] * 2
        assert _counts(metrics) == (1, 2, 0)

    def test_team_failed_deletes_are_attempted_once_each(self, metrics):
        access = FakeAccess()
        repo = "final-team-alice-and-bob"
        first = access.add_invitation(repo, "alice")
        second = access.add_invitation(repo, "bob")
        access.fail_delete = True
        reconciler = _make_reconciler(access, metrics)

        report = run_async(reconciler.reconcile(_make_event(repo)))

        assert [c[3] for c in access.mutations] == [first.id, second.id]
        assert report.outcomes() == [InvitationOutcome.REVOKE_FAILED] * 2
        assert _counts(metrics) == (1, 0, 2)

    def test_team_dry_run_visits_each_invitation_once(self, metrics):
        client = MagicMock(spec=GitHubClient)
        client.list_invitations = AsyncMock(
            return_value=[
                Invitation(id=1, inviter_login=BOT, invitee_login="alice", permission="write"),
                Invitation(id=2, inviter_login=BOT, invitee_login="bob", permission="write"),
            ]
        )
        client.check_collaborator = AsyncMock(side_effect=NotFoundError("Not found", status_code=404))
        client.list_org_members = AsyncMock(return_value=[])
        client.delete_invitation = AsyncMock()
        client.add_collaborator = AsyncMock()
        access = AccessService(client=client, dry_run=True, retry_delay=0)
        reconciler = _make_reconciler(access, metrics)

        report = run_async(reconciler.reconcile(_make_event("final-team-alice-and-bob")))

        assert report.outcomes() == [InvitationOutcome.REPLACEMENT_SENT] * 2
        assert client.list_invitations.await_count == 1
        assert client.check_collaborator.await_count == 2
        client.delete_invitation.assert_not_called()
        client.add_collaborator.assert_not_called()
        assert _counts(metrics) == (1, 2, 0)

    def test_duplicate_listing_entries_are_handled_once(self, metrics):
        access = FakeAccess()
        repo = "assignment1-johndoe"
        invitation = access.add_invitation(repo, "johndoe")
        access.invitations[repo].append(invitation)
        reconciler = _make_reconciler(access, metrics)

        report = run_async(reconciler.reconcile(_make_event(repo)))

        assert report.outcomes() == [InvitationOutcome.REPLACEMENT_SENT]
        assert [c[0] for c in access.mutations] == ["delete_invitation", "add_or_invite_collaborator"]

    def test_team_resolved_from_roster(self, metrics):
        access = FakeAccess(org_members=["Octocat", "someone"])
        repo = "project-team-octocat"
        access.add_invitation(repo, "Octocat")
        reconciler = _make_reconciler(access, metrics)

        report = run_async(reconciler.reconcile(_make_event(repo)))

        assert report.students == ["Octocat"]
        assert report.outcomes() == [InvitationOutcome.REPLACEMENT_SENT]

    def test_unresolvable_team_counts_as_failed(self, metrics):
        access = FakeAccess(org_members=["someone"])
        reconciler = _make_reconciler(access, metrics)

        report = run_async(reconciler.reconcile(_make_event("project-team-redsquad")))

        assert report.classroom
        assert report.students == []
        assert access.mutations == []
        assert _counts(metrics) == (1, 0, 1)

    def test_member_listing_failure_counts_as_failed(self, metrics):
        access = FakeAccess()
        access.raise_on_members = AuthenticationError("bad token", status_code=401)
        reconciler = _make_reconciler(access, metrics)

        report = run_async(reconciler.reconcile(_make_event("project-team-alice-and-bob")))

        assert report.error == "bad token"
        assert _counts(metrics) == (1, 0, 1)


# ---------------------------------------------------------------------------
# Non-classroom repositories and concurrency
# ---------------------------------------------------------------------------


class TestNonClassroomAndConcurrency:

    @pytest.mark.parametrize("name", ["docs", ".github", "assignment-main", "singleword"])
    def test_non_classroom_repository_makes_no_calls(self, metrics, name):
        access = FakeAccess()
        reconciler = _make_reconciler(access, metrics)

        report = run_async(reconciler.reconcile(_make_event(name)))

        assert not report.classroom
        assert access.calls == []
        assert _counts(metrics) == (1, 0, 0)

    def test_concurrent_reconciliations_count_every_event(self, metrics):
        access = FakeAccess()
        names = [f"assignment1-student{i}" for i in range(20)]
        for name in names:
            access.add_invitation(name, name.split("-", 1)[1])
        reconciler = _make_reconciler(access, metrics)

        async def scenario():
            return await asyncio.gather(*(reconciler.reconcile(_make_event(n)) for n in names))

        reports = run_async(scenario())

        assert all(r.outcomes() == [InvitationOutcome.REPLACEMENT_SENT] for r in reports)
        assert _counts(metrics) == (20, 20, 0)
