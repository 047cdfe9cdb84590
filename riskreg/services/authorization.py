"""
Who may do what.

Each transition is bound to an ordered tuple of capability checks. An actor
is allowed when any of them grants; checks are evaluated in order, so the
assigned-role match comes first and the global-admin override last.
"""
from typing import Dict, Optional, Tuple

from riskreg.models.artifact import Actor, ArtifactSnapshot, AuditEntry
from riskreg.models.enums import Transition
from riskreg.services.audit_trail import AuditTrail
from riskreg.services.errors import Unauthorized
from riskreg.services.state_machine import ApprovalStateMachine


class Capability:
    """A single reason an actor may act on an artifact (or on one of its entries)."""
    label = "capability"

    def grants(self, actor: Actor, artifact: ArtifactSnapshot, entry: Optional[AuditEntry] = None) -> bool:
        raise NotImplementedError


class AssignedRef(Capability):
    """Actor is the identity assigned to the artifact under `attribute`."""

    def __init__(self, attribute: str, label: str):
        self.attribute = attribute
        self.label = label

    def grants(self, actor, artifact, entry=None):
        assigned = getattr(artifact, self.attribute)
        return assigned is not None and assigned == actor.identity


class EditRights(Capability):
    label = "editor"

    def grants(self, actor, artifact, entry=None):
        return actor.can_edit


class EntryAuthor(Capability):
    """Actor recorded the audit entry being acted on."""
    label = "entry author"

    def grants(self, actor, artifact, entry=None):
        return entry is not None and entry.actor_identity == actor.identity


class GlobalAdmin(Capability):
    label = "global admin"

    def grants(self, actor, artifact, entry=None):
        return actor.is_global_admin


REVIEWER = AssignedRef("reviewer_ref", "assigned reviewer")
APPROVER = AssignedRef("approver_ref", "assigned approver")
EDITOR = EditRights()
ENTRY_AUTHOR = EntryAuthor()
ADMIN = GlobalAdmin()

DEFAULT_BINDINGS: Dict[Transition, Tuple[Capability, ...]] = {
    Transition.CREATE: (EDITOR, ADMIN),
    Transition.SUBMIT_FOR_REVIEW: (EDITOR, ADMIN),
    Transition.FIRST_APPROVAL: (REVIEWER, ADMIN),
    Transition.SECOND_APPROVAL: (APPROVER, ADMIN),
    Transition.REJECT: (REVIEWER, APPROVER, ADMIN),
    Transition.START_NEW_REVISION: (EDITOR, ADMIN),
    Transition.DISCARD_REVISION: (EDITOR, ADMIN),
    Transition.RECORD_UPDATE: (EDITOR, ADMIN),
    Transition.ASSIGN: (EDITOR, ADMIN),
    Transition.CORRECT_DESCRIPTION: (ENTRY_AUTHOR, ADMIN),
}


class AuthorizationPolicy:
    """Decides whether an actor may perform a transition on an artifact."""

    def __init__(
        self,
        bindings: Optional[Dict[Transition, Tuple[Capability, ...]]] = None,
        require_distinct_approvers: bool = False,
        state_machine: Optional[ApprovalStateMachine] = None
    ):
        self.bindings = dict(DEFAULT_BINDINGS if bindings is None else bindings)
        self.require_distinct_approvers = require_distinct_approvers
        self.state_machine = state_machine or ApprovalStateMachine()

    def denial_reason(
        self,
        actor: Actor,
        transition: Transition,
        artifact: ArtifactSnapshot,
        trail: Optional[AuditTrail] = None,
        entry: Optional[AuditEntry] = None
    ) -> Optional[str]:
        """Why the actor may not perform the transition; None when the role allows it."""
        capabilities = self.bindings.get(transition, ())
        if not any(c.grants(actor, artifact, entry) for c in capabilities):
            needed = " or ".join(c.label for c in capabilities) or "nobody"
            return (
                f"{actor.identity} ({actor.role_label}) cannot "
                f"{transition.value.replace('_', ' ')} on {artifact.kind.value} {artifact.id}; "
                f"requires {needed}"
            )

        if (
            self.require_distinct_approvers
            and transition == Transition.SECOND_APPROVAL
            and trail is not None
            and trail.current_cycle_first_approver() == actor.identity
        ):
            return f"{actor.identity} gave the 1st level approval; a different person must give the 2nd"

        return None

    def authorize(
        self,
        actor: Actor,
        transition: Transition,
        artifact: ArtifactSnapshot,
        trail: Optional[AuditTrail] = None,
        entry: Optional[AuditEntry] = None
    ) -> None:
        reason = self.denial_reason(actor, transition, artifact, trail, entry)
        if reason is not None:
            raise Unauthorized(reason)

    def can_perform(
        self,
        actor: Actor,
        transition: Transition,
        artifact: ArtifactSnapshot,
        trail: Optional[AuditTrail] = None
    ) -> bool:
        """Role check plus current-status check; for discard also the trail precondition."""
        if self.denial_reason(actor, transition, artifact, trail) is not None:
            return False
        if not self.state_machine.allows(transition, artifact.approval_status):
            return False
        if transition == Transition.DISCARD_REVISION:
            return trail is not None and trail.can_discard(trail.discard_baseline())
        return True
