"""
State machine for the two-level approval workflow.

This is the transition table - every status change an engine makes is
computed here. It is pure: it looks at a snapshot and a payload and either
returns the planned next state or raises a refusal.
"""
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional

from riskreg.models.artifact import ArtifactSnapshot
from riskreg.models.enums import (
    ApprovalStatus,
    BumpKind,
    PENDING_STATUSES,
    Transition,
    VersionAction
)
from riskreg.models.version import VersionNumber
from riskreg.services.errors import InvalidTransition, NoDiscardableRevision, ValidationFailed


@dataclass(frozen=True)
class TransitionRule:
    """One row of the transition table."""
    sources: FrozenSet[ApprovalStatus]
    target: Optional[ApprovalStatus]  # None keeps the current status
    action: Optional[VersionAction]  # None appends no entry
    required_text: Optional[str] = None  # payload field that must be non-empty
    bump_kinds: FrozenSet[BumpKind] = frozenset({BumpKind.NONE})
    default_text: str = ""


S = ApprovalStatus

TRANSITIONS: Dict[Transition, TransitionRule] = {
    Transition.SUBMIT_FOR_REVIEW: TransitionRule(
        sources=frozenset({S.DRAFT, S.REJECTED}),
        target=S.PENDING_FIRST_APPROVAL,
        action=VersionAction.SUBMITTED_FOR_REVIEW,
        required_text="change description",
        bump_kinds=frozenset(BumpKind),
    ),
    Transition.FIRST_APPROVAL: TransitionRule(
        sources=frozenset({S.PENDING_FIRST_APPROVAL}),
        target=S.PENDING_SECOND_APPROVAL,
        action=VersionAction.FIRST_LEVEL_APPROVAL,
        default_text="1st level approval granted",
    ),
    Transition.SECOND_APPROVAL: TransitionRule(
        sources=frozenset({S.PENDING_SECOND_APPROVAL}),
        target=S.APPROVED,
        action=VersionAction.SECOND_LEVEL_APPROVAL,
        default_text="Approved version",
    ),
    Transition.REJECT: TransitionRule(
        sources=PENDING_STATUSES,
        target=S.REJECTED,
        action=VersionAction.REJECTED,
        required_text="rejection reason",
    ),
    Transition.START_NEW_REVISION: TransitionRule(
        sources=frozenset({S.APPROVED}),
        target=S.DRAFT,
        action=VersionAction.DRAFT_AND_REVIEW,
        required_text="change description",
        bump_kinds=frozenset({BumpKind.MINOR, BumpKind.MAJOR}),
    ),
    Transition.DISCARD_REVISION: TransitionRule(
        sources=frozenset({S.DRAFT}),
        target=S.APPROVED,
        action=None,
    ),
    Transition.RECORD_UPDATE: TransitionRule(
        sources=frozenset({S.DRAFT, S.REJECTED}),
        target=None,
        action=VersionAction.UPDATION,
        required_text="change description",
    ),
    Transition.ASSIGN: TransitionRule(
        sources=frozenset({S.DRAFT, S.REJECTED, S.APPROVED}),
        target=None,
        action=None,
    ),
}


@dataclass(frozen=True)
class PlannedTransition:
    """What a transition will do, computed before anything is written."""
    transition: Transition
    status: ApprovalStatus
    version: VersionNumber
    action: Optional[VersionAction]
    description: str
    rejection_reason: Optional[str]


def coerce_bump_kind(value) -> BumpKind:
    """Accept BumpKind or its name in any case ("minor", "MAJOR", ...)."""
    if isinstance(value, BumpKind):
        return value
    if value is None:
        return BumpKind.NONE
    try:
        return BumpKind(str(value).strip().upper())
    except ValueError:
        raise ValidationFailed(f"Unknown version bump {value!r}; use NONE, MINOR or MAJOR.")


class ApprovalStateMachine:
    """Computes next status and version for an artifact of any kind."""

    def __init__(self, final_approval_forces_major: bool = False):
        self.final_approval_forces_major = final_approval_forces_major

    def allows(self, transition: Transition, status: ApprovalStatus) -> bool:
        rule = TRANSITIONS.get(transition)
        return rule is not None and status in rule.sources

    def plan(
        self,
        artifact: ArtifactSnapshot,
        transition: Transition,
        text: Optional[str] = None,
        bump_kind=BumpKind.NONE,
        baseline: Optional[VersionNumber] = None
    ) -> PlannedTransition:
        """
        Plan `transition` from the artifact's current state.

        Refusals:
        - InvalidTransition when the status is not a source of the transition
          or a required description/reason is empty
        - ValidationFailed when the bump kind is not allowed for the transition
        - NoDiscardableRevision for a discard with no approved baseline
        """
        rule = TRANSITIONS.get(transition)
        if rule is None:
            raise InvalidTransition(f"Unknown transition {transition!r}")

        if transition == Transition.DISCARD_REVISION:
            return self._plan_discard(artifact, rule, baseline)

        if artifact.approval_status not in rule.sources:
            raise InvalidTransition(
                f"Cannot {transition.value.replace('_', ' ')} from "
                f"{artifact.approval_status.value} status"
            )

        bump = coerce_bump_kind(bump_kind)
        if bump not in rule.bump_kinds:
            allowed = ", ".join(sorted(k.value for k in rule.bump_kinds))
            raise ValidationFailed(f"Version bump {bump.value} not allowed here; use one of: {allowed}")

        text = (text or "").strip()
        if rule.required_text and not text:
            raise InvalidTransition(f"A {rule.required_text} is required")

        version = artifact.version.bump(bump)
        if transition == Transition.SECOND_APPROVAL and self.final_approval_forces_major:
            version = version.bump(BumpKind.MAJOR)

        rejection_reason = None
        if transition == Transition.REJECT:
            rejection_reason = text
        elif rule.target is None:
            rejection_reason = artifact.last_rejection_reason

        return PlannedTransition(
            transition=transition,
            status=rule.target or artifact.approval_status,
            version=version,
            action=rule.action,
            description=text or rule.default_text,
            rejection_reason=rejection_reason
        )

    def _plan_discard(
        self,
        artifact: ArtifactSnapshot,
        rule: TransitionRule,
        baseline: Optional[VersionNumber]
    ) -> PlannedTransition:
        if artifact.approval_status not in rule.sources or baseline is None or baseline >= artifact.version:
            raise NoDiscardableRevision(
                f"Nothing to discard: {artifact.kind.value} {artifact.id} is "
                f"{artifact.approval_status.value} at {artifact.version.display()}"
            )
        return PlannedTransition(
            transition=Transition.DISCARD_REVISION,
            status=rule.target,
            version=baseline,
            action=None,
            description="",
            rejection_reason=None
        )
