"""
Tests for the transition table.

The state machine is pure: these tests build snapshots by hand and check
the planned next state or the refusal.
"""
import pytest

from riskreg.models.artifact import ArtifactSnapshot
from riskreg.models.enums import ApprovalStatus, ArtifactKind, BumpKind, Transition, VersionAction
from riskreg.models.version import VersionNumber
from riskreg.services.errors import InvalidTransition, NoDiscardableRevision, ValidationFailed
from riskreg.services.state_machine import ApprovalStateMachine, TRANSITIONS, coerce_bump_kind

S = ApprovalStatus


def artifact(status, version=VersionNumber(1, 0), reason=None):
    return ArtifactSnapshot(
        kind=ArtifactKind.DOCUMENT,
        id="register-1",
        version=version,
        approval_status=status,
        last_rejection_reason=reason,
        revision=3
    )


class TestTransitionTable:

    @pytest.mark.parametrize("transition,allowed", [
        (Transition.SUBMIT_FOR_REVIEW, {S.DRAFT, S.REJECTED}),
        (Transition.FIRST_APPROVAL, {S.PENDING_FIRST_APPROVAL}),
        (Transition.SECOND_APPROVAL, {S.PENDING_SECOND_APPROVAL}),
        (Transition.REJECT, {S.PENDING_FIRST_APPROVAL, S.PENDING_SECOND_APPROVAL}),
        (Transition.START_NEW_REVISION, {S.APPROVED}),
        (Transition.DISCARD_REVISION, {S.DRAFT}),
    ])
    def test_sources(self, transition, allowed):
        sm = ApprovalStateMachine()
        for status in S:
            assert sm.allows(transition, status) == (status in allowed)

    def test_approved_is_only_left_through_a_new_revision(self):
        """INVARIANT: APPROVED is terminal for a version."""
        leaving = [t for t, rule in TRANSITIONS.items() if S.APPROVED in rule.sources and rule.target]
        assert leaving == [Transition.START_NEW_REVISION]

    def test_unknown_transition_is_refused(self):
        with pytest.raises(InvalidTransition):
            ApprovalStateMachine().plan(artifact(S.DRAFT), Transition.CREATE)


class TestSubmit:

    def test_submit_without_bump_keeps_version(self):
        plan = ApprovalStateMachine().plan(artifact(S.DRAFT), Transition.SUBMIT_FOR_REVIEW, text="first cut")
        assert plan.status == S.PENDING_FIRST_APPROVAL
        assert plan.version == VersionNumber(1, 0)
        assert plan.action == VersionAction.SUBMITTED_FOR_REVIEW
        assert plan.description == "first cut"

    @pytest.mark.parametrize("bump,expected", [
        (BumpKind.MINOR, VersionNumber(1, 1)),
        (BumpKind.MAJOR, VersionNumber(2, 0)),
        ("minor", VersionNumber(1, 1)),
    ])
    def test_submit_applies_bump(self, bump, expected):
        plan = ApprovalStateMachine().plan(
            artifact(S.DRAFT), Transition.SUBMIT_FOR_REVIEW, text="x", bump_kind=bump
        )
        assert plan.version == expected

    def test_blank_description_is_refused(self):
        with pytest.raises(InvalidTransition):
            ApprovalStateMachine().plan(artifact(S.DRAFT), Transition.SUBMIT_FOR_REVIEW, text="   ")

    def test_unknown_bump_is_validation_failure(self):
        with pytest.raises(ValidationFailed):
            ApprovalStateMachine().plan(
                artifact(S.DRAFT), Transition.SUBMIT_FOR_REVIEW, text="x", bump_kind="PATCH"
            )

    def test_resubmit_clears_rejection_reason(self):
        plan = ApprovalStateMachine().plan(
            artifact(S.REJECTED, reason="missing controls"), Transition.SUBMIT_FOR_REVIEW, text="fixed"
        )
        assert plan.rejection_reason is None

    def test_status_is_checked_before_payload(self):
        with pytest.raises(InvalidTransition):
            ApprovalStateMachine().plan(
                artifact(S.APPROVED), Transition.SUBMIT_FOR_REVIEW, text="", bump_kind="PATCH"
            )


class TestApprovals:

    def test_first_approval_has_default_description(self):
        plan = ApprovalStateMachine().plan(artifact(S.PENDING_FIRST_APPROVAL), Transition.FIRST_APPROVAL)
        assert plan.status == S.PENDING_SECOND_APPROVAL
        assert plan.description == "1st level approval granted"
        assert plan.version == VersionNumber(1, 0)

    def test_second_approval_keeps_version_by_default(self):
        plan = ApprovalStateMachine().plan(
            artifact(S.PENDING_SECOND_APPROVAL, VersionNumber(1, 3)), Transition.SECOND_APPROVAL
        )
        assert plan.status == S.APPROVED
        assert plan.version == VersionNumber(1, 3)

    def test_second_approval_forces_major_when_configured(self):
        plan = ApprovalStateMachine(final_approval_forces_major=True).plan(
            artifact(S.PENDING_SECOND_APPROVAL, VersionNumber(1, 3)), Transition.SECOND_APPROVAL
        )
        assert plan.version == VersionNumber(2, 0)

    def test_first_approval_is_never_forced_major(self):
        plan = ApprovalStateMachine(final_approval_forces_major=True).plan(
            artifact(S.PENDING_FIRST_APPROVAL, VersionNumber(1, 3)), Transition.FIRST_APPROVAL
        )
        assert plan.version == VersionNumber(1, 3)


class TestReject:

    @pytest.mark.parametrize("status", [S.PENDING_FIRST_APPROVAL, S.PENDING_SECOND_APPROVAL])
    def test_reject_records_reason(self, status):
        plan = ApprovalStateMachine().plan(artifact(status), Transition.REJECT, text="missing controls")
        assert plan.status == S.REJECTED
        assert plan.rejection_reason == "missing controls"
        assert plan.action == VersionAction.REJECTED

    def test_reject_requires_reason(self):
        with pytest.raises(InvalidTransition):
            ApprovalStateMachine().plan(artifact(S.PENDING_FIRST_APPROVAL), Transition.REJECT, text="")

    @pytest.mark.parametrize("status", [S.DRAFT, S.APPROVED, S.REJECTED])
    def test_reject_outside_review(self, status):
        with pytest.raises(InvalidTransition):
            ApprovalStateMachine().plan(artifact(status), Transition.REJECT, text="no")


class TestNewRevisionAndUpdates:

    def test_new_revision_needs_real_bump(self):
        with pytest.raises(ValidationFailed):
            ApprovalStateMachine().plan(
                artifact(S.APPROVED), Transition.START_NEW_REVISION, text="annual review", bump_kind=BumpKind.NONE
            )

    def test_new_revision_bumps_and_returns_to_draft(self):
        plan = ApprovalStateMachine().plan(
            artifact(S.APPROVED, VersionNumber(1, 1)), Transition.START_NEW_REVISION,
            text="annual review", bump_kind=BumpKind.MINOR
        )
        assert plan.status == S.DRAFT
        assert plan.version == VersionNumber(1, 2)
        assert plan.action == VersionAction.DRAFT_AND_REVIEW

    def test_record_update_keeps_status_and_reason(self):
        plan = ApprovalStateMachine().plan(
            artifact(S.REJECTED, reason="missing controls"), Transition.RECORD_UPDATE, text="added controls"
        )
        assert plan.status == S.REJECTED
        assert plan.rejection_reason == "missing controls"
        assert plan.action == VersionAction.UPDATION


class TestDiscard:

    def test_discard_returns_to_baseline(self):
        plan = ApprovalStateMachine().plan(
            artifact(S.DRAFT, VersionNumber(1, 2)), Transition.DISCARD_REVISION, baseline=VersionNumber(1, 1)
        )
        assert plan.status == S.APPROVED
        assert plan.version == VersionNumber(1, 1)
        assert plan.action is None

    def test_discard_without_baseline(self):
        with pytest.raises(NoDiscardableRevision):
            ApprovalStateMachine().plan(artifact(S.DRAFT), Transition.DISCARD_REVISION, baseline=None)

    def test_discard_from_pending(self):
        with pytest.raises(NoDiscardableRevision):
            ApprovalStateMachine().plan(
                artifact(S.PENDING_FIRST_APPROVAL, VersionNumber(1, 2)), Transition.DISCARD_REVISION,
                baseline=VersionNumber(1, 1)
            )


class TestCoerceBumpKind:

    def test_accepts_names_in_any_case(self):
        assert coerce_bump_kind(" major ") == BumpKind.MAJOR
        assert coerce_bump_kind(None) == BumpKind.NONE

    def test_rejects_unknown(self):
        with pytest.raises(ValidationFailed):
            coerce_bump_kind("huge")
