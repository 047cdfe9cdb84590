"""
Workflow engine - the only way an artifact changes approval state.

One engine is instantiated per artifact kind (the risk register document,
and the individual risks). Each operation takes a snapshot, the acting
user and a payload, and returns a TransitionResult. Business refusals come
back inside the result; nothing is written unless every guard passed.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Tuple

from riskreg.config import WorkflowPolicy
from riskreg.models.artifact import Actor, ArtifactSnapshot, AuditEntry
from riskreg.models.enums import ApprovalStatus, ArtifactKind, BumpKind, Transition, VersionAction
from riskreg.services.audit_trail import AuditTrail, TrailRegistry
from riskreg.services.authorization import AuthorizationPolicy
from riskreg.services.errors import InvalidTransition, ValidationFailed, WorkflowError
from riskreg.services.state_machine import ApprovalStateMachine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionResult:
    """
    Outcome of an engine operation.

    On success `snapshot` is the new state to persist together with `entry`
    (or the deletion of `removed` for a discard). On refusal `snapshot` is the
    caller's snapshot, unchanged, and `error` says why.
    """
    snapshot: ArtifactSnapshot
    entry: Optional[AuditEntry] = None
    removed: Tuple[AuditEntry, ...] = ()
    error: Optional[WorkflowError] = None
    previous_revision: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class WorkflowEngine:
    """Applies approval transitions to artifacts of one kind."""

    def __init__(
        self,
        kind: ArtifactKind,
        policy: Optional[WorkflowPolicy] = None,
        authorization: Optional[AuthorizationPolicy] = None,
        trails: Optional[TrailRegistry] = None,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.kind = ArtifactKind(kind)
        self.policy = policy or WorkflowPolicy()
        self.state_machine = ApprovalStateMachine(
            final_approval_forces_major=self.policy.final_approval_forces_major
        )
        self.authorization = authorization or AuthorizationPolicy(
            require_distinct_approvers=self.policy.require_distinct_approvers,
            state_machine=self.state_machine
        )
        self.trails = trails if trails is not None else TrailRegistry()
        self.clock = clock

    def trail_for(self, artifact_id: str) -> AuditTrail:
        return self.trails.get(self.kind, artifact_id)

    def can_perform(self, actor: Actor, transition: Transition, snapshot: ArtifactSnapshot) -> bool:
        return self.authorization.can_perform(actor, transition, snapshot, self.trail_for(snapshot.id))

    # Lifecycle

    def create(
        self,
        artifact_id: str,
        actor: Actor,
        change_description: Optional[str] = None,
        reviewer_ref: Optional[str] = None,
        approver_ref: Optional[str] = None,
        scope: Optional[str] = None
    ) -> TransitionResult:
        """Start a new artifact as a DRAFT at the initial version."""
        snapshot = ArtifactSnapshot(
            kind=self.kind,
            id=artifact_id,
            version=self.policy.initial_version,
            approval_status=ApprovalStatus.DRAFT,
            reviewer_ref=reviewer_ref,
            approver_ref=approver_ref,
            revision=0,
            scope=scope
        )

        def apply():
            trail = self.trail_for(artifact_id)
            if len(trail) or trail.revision:
                raise InvalidTransition(f"{self.kind.value} {artifact_id} already exists")
            self.authorization.authorize(actor, Transition.CREATE, snapshot, trail)
            self._check_assignment(reviewer_ref, approver_ref)
            created = snapshot.evolve()
            entry = self._entry(
                created, actor, VersionAction.DRAFT_AND_REVIEW,
                (change_description or "").strip() or "Initial draft"
            )
            trail.append(entry, snapshot)
            return TransitionResult(snapshot=created, entry=entry, previous_revision=None)

        return self._run(Transition.CREATE, snapshot, apply)

    def submit_for_review(
        self,
        snapshot: ArtifactSnapshot,
        actor: Actor,
        change_description: str,
        bump_kind=BumpKind.NONE
    ) -> TransitionResult:
        return self._transition(
            snapshot, actor, Transition.SUBMIT_FOR_REVIEW,
            text=change_description, bump_kind=bump_kind
        )

    def first_approval(self, snapshot: ArtifactSnapshot, actor: Actor, comments: Optional[str] = None) -> TransitionResult:
        return self._transition(snapshot, actor, Transition.FIRST_APPROVAL, text=comments)

    def second_approval(self, snapshot: ArtifactSnapshot, actor: Actor, comments: Optional[str] = None) -> TransitionResult:
        return self._transition(snapshot, actor, Transition.SECOND_APPROVAL, text=comments)

    def reject(self, snapshot: ArtifactSnapshot, actor: Actor, reason: str) -> TransitionResult:
        return self._transition(snapshot, actor, Transition.REJECT, text=reason)

    def start_new_revision(
        self,
        snapshot: ArtifactSnapshot,
        actor: Actor,
        change_description: str,
        bump_kind=BumpKind.MINOR
    ) -> TransitionResult:
        return self._transition(
            snapshot, actor, Transition.START_NEW_REVISION,
            text=change_description, bump_kind=bump_kind
        )

    def record_update(self, snapshot: ArtifactSnapshot, actor: Actor, change_description: str) -> TransitionResult:
        """Log a content edit on a draft or rejected artifact without moving it."""
        return self._transition(snapshot, actor, Transition.RECORD_UPDATE, text=change_description)

    def discard_revision(self, snapshot: ArtifactSnapshot, actor: Actor) -> TransitionResult:
        """
        Throw away an unsubmitted revision and return to the approved baseline.

        The abandoned entries are removed from the trail, not reversed.
        """
        def apply():
            trail = self._current_trail(snapshot)
            self.authorization.authorize(actor, Transition.DISCARD_REVISION, snapshot, trail)
            baseline = trail.discard_baseline()
            plan = self.state_machine.plan(snapshot, Transition.DISCARD_REVISION, baseline=baseline)
            restored = snapshot.evolve(
                approval_status=plan.status,
                version=plan.version,
                last_rejection_reason=None
            )
            removed = trail.discard_trailing_draft(baseline, snapshot, restored.revision)
            return TransitionResult(
                snapshot=restored,
                removed=tuple(removed),
                previous_revision=snapshot.revision
            )

        return self._run(Transition.DISCARD_REVISION, snapshot, apply)

    def assign(
        self,
        snapshot: ArtifactSnapshot,
        actor: Actor,
        reviewer_ref: Optional[str],
        approver_ref: Optional[str]
    ) -> TransitionResult:
        """Change reviewer/approver while no approval is in flight."""
        def apply():
            trail = self._current_trail(snapshot)
            self.authorization.authorize(actor, Transition.ASSIGN, snapshot, trail)
            if not self.state_machine.allows(Transition.ASSIGN, snapshot.approval_status):
                raise InvalidTransition(
                    f"Cannot reassign reviewers while {snapshot.approval_status.value}"
                )
            self._check_assignment(reviewer_ref, approver_ref)
            updated = snapshot.evolve(reviewer_ref=reviewer_ref, approver_ref=approver_ref)
            trail.advance(snapshot, updated.revision)
            return TransitionResult(snapshot=updated, previous_revision=snapshot.revision)

        return self._run(Transition.ASSIGN, snapshot, apply)

    def correct_description(
        self,
        snapshot: ArtifactSnapshot,
        actor: Actor,
        entry_id: str,
        change_description: str
    ) -> TransitionResult:
        """
        Fix the description of an existing entry.

        Not a workflow transition: status, version and revision stay as they are.
        """
        def apply():
            trail = self.trail_for(snapshot.id)
            entry = trail.get(entry_id)
            if entry is None:
                raise ValidationFailed(f"Entry {entry_id} is not part of {self.kind.value} {snapshot.id}")
            self.authorization.authorize(actor, Transition.CORRECT_DESCRIPTION, snapshot, trail, entry=entry)
            text = (change_description or "").strip()
            if not text:
                raise InvalidTransition("A change description is required")
            corrected = trail.replace_description(entry_id, text)
            return TransitionResult(snapshot=snapshot, entry=corrected, previous_revision=snapshot.revision)

        return self._run(Transition.CORRECT_DESCRIPTION, snapshot, apply)

    # Internals

    def _transition(
        self,
        snapshot: ArtifactSnapshot,
        actor: Actor,
        transition: Transition,
        text: Optional[str] = None,
        bump_kind=BumpKind.NONE
    ) -> TransitionResult:
        def apply():
            trail = self._current_trail(snapshot)
            self.authorization.authorize(actor, transition, snapshot, trail)
            plan = self.state_machine.plan(snapshot, transition, text=text, bump_kind=bump_kind)
            updated = snapshot.evolve(
                approval_status=plan.status,
                version=plan.version,
                last_rejection_reason=plan.rejection_reason
            )
            entry = self._entry(updated, actor, plan.action, plan.description)
            trail.append(entry, snapshot)
            return TransitionResult(snapshot=updated, entry=entry, previous_revision=snapshot.revision)

        return self._run(transition, snapshot, apply)

    def _current_trail(self, snapshot: ArtifactSnapshot) -> AuditTrail:
        if snapshot.kind != self.kind:
            raise ValidationFailed(
                f"{snapshot.kind.value} {snapshot.id} handed to the {self.kind.value} workflow"
            )
        trail = self.trail_for(snapshot.id)
        if not len(trail):
            raise InvalidTransition(
                f"{self.kind.value} {snapshot.id} does not exist; create it first"
            )
        trail.check_current(snapshot)
        return trail

    def _check_assignment(self, reviewer_ref: Optional[str], approver_ref: Optional[str]) -> None:
        if self.policy.require_distinct_approvers and reviewer_ref and reviewer_ref == approver_ref:
            raise ValidationFailed("Reviewer and approver must be different people")

    def _entry(self, snapshot: ArtifactSnapshot, actor: Actor, action: VersionAction, description: str) -> AuditEntry:
        return AuditEntry(
            artifact_kind=snapshot.kind,
            artifact_id=snapshot.id,
            sequence=snapshot.revision,
            version=snapshot.version,
            action=action,
            change_description=description,
            actor_identity=actor.identity,
            actor_role_label=actor.role_label,
            created_at=self.clock()
        )

    def _run(self, transition: Transition, snapshot: ArtifactSnapshot, apply) -> TransitionResult:
        try:
            result = apply()
        except WorkflowError as e:
            logger.info(
                "Refused %s on %s %s: %s (%s)",
                transition.value, self.kind.value, snapshot.id, e.code, e.message
            )
            return TransitionResult(snapshot=snapshot, error=e, previous_revision=snapshot.revision)

        logger.info(
            "%s %s: %s -> %s v%s",
            self.kind.value, snapshot.id, transition.value,
            result.snapshot.approval_status.value, result.snapshot.version.display()
        )
        return result
