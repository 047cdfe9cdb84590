"""
Append-only version history for one artifact.

The trail is the authority for optimistic concurrency: every mutation checks
the caller's snapshot against the trail head before it writes anything.
Discarding an abandoned draft is the only history removal allowed.
"""
import logging
import threading
from typing import Dict, Iterable, List, Optional, Tuple

from riskreg.models.artifact import ArtifactSnapshot, AuditEntry
from riskreg.models.enums import ArtifactKind, VersionAction
from riskreg.models.version import VersionNumber
from riskreg.services.errors import AuditTrailCorrupted, ConcurrencyConflict, NoDiscardableRevision

logger = logging.getLogger(__name__)

# Entries an unsubmitted revision may consist of.
DRAFT_ACTIONS = frozenset({VersionAction.DRAFT_AND_REVIEW, VersionAction.UPDATION})


class AuditTrail:
    """
    Ordered list of AuditEntry for a single artifact.

    Invariants:
    - Entries are totally ordered; sequences strictly increase
    - Versions never decrease along the list
    - revision is the artifact revision the trail was last written at
    """

    def __init__(
        self,
        artifact_kind: ArtifactKind,
        artifact_id: str,
        entries: Iterable[AuditEntry] = (),
        revision: Optional[int] = None
    ):
        self.artifact_kind = ArtifactKind(artifact_kind)
        self.artifact_id = artifact_id
        self._entries: List[AuditEntry] = []
        self._lock = threading.Lock()

        for entry in entries:
            self._check_can_follow(entry)
            self._entries.append(entry)

        if revision is None:
            revision = self._entries[-1].sequence if self._entries else 0
        self.revision = revision

    # Queries

    @property
    def entries(self) -> Tuple[AuditEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def latest(self) -> Optional[AuditEntry]:
        return self._entries[-1] if self._entries else None

    def get(self, entry_id: str) -> Optional[AuditEntry]:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None

    def entries_for_version(self, version: VersionNumber) -> List[AuditEntry]:
        return [e for e in self._entries if e.version == version]

    def entries_newer_than(self, version: VersionNumber) -> List[AuditEntry]:
        return [e for e in self._entries if e.version > version]

    def history(self) -> List[AuditEntry]:
        """Newest first, the way version history is shown."""
        return list(reversed(self._entries))

    def latest_with_action(self, *actions: VersionAction) -> Optional[AuditEntry]:
        for entry in reversed(self._entries):
            if entry.action in actions:
                return entry
        return None

    def current_cycle_first_approver(self) -> Optional[str]:
        """Identity that recorded the first-level approval since the last submission."""
        for entry in reversed(self._entries):
            if entry.action == VersionAction.FIRST_LEVEL_APPROVAL:
                return entry.actor_identity
            if entry.action == VersionAction.SUBMITTED_FOR_REVIEW:
                return None
        return None

    # Concurrency

    def check_current(self, snapshot: ArtifactSnapshot) -> None:
        """Refuse a snapshot that was read before the latest write."""
        latest = self.latest()
        if snapshot.revision != self.revision:
            raise ConcurrencyConflict(
                f"{self.artifact_kind.value} {self.artifact_id} was modified by another user "
                f"(snapshot revision {snapshot.revision}, current {self.revision}). Re-fetch and retry.",
                expected_revision=snapshot.revision,
                actual_revision=self.revision
            )
        if latest is not None and snapshot.version != latest.version:
            raise ConcurrencyConflict(
                f"{self.artifact_kind.value} {self.artifact_id} is at version {latest.version.display()}, "
                f"snapshot has {snapshot.version.display()}. Re-fetch and retry.",
                expected_revision=snapshot.revision,
                actual_revision=self.revision
            )

    # Mutations

    def append(self, entry: AuditEntry, snapshot: ArtifactSnapshot) -> None:
        """
        Append an entry written on top of `snapshot`.

        The check and the write happen under one lock, so of two writers
        holding the same snapshot exactly one succeeds.
        """
        with self._lock:
            self.check_current(snapshot)
            self._check_can_follow(entry)
            self._entries.append(entry)
            self.revision = entry.sequence

    def advance(self, snapshot: ArtifactSnapshot, revision: int) -> None:
        """Record a snapshot-only change (no entry) such as a reassignment."""
        with self._lock:
            self.check_current(snapshot)
            self.revision = revision

    def replace_description(self, entry_id: str, change_description: str) -> AuditEntry:
        """Annotation edit. Version, action and position are untouched."""
        with self._lock:
            for index, entry in enumerate(self._entries):
                if entry.id == entry_id:
                    corrected = entry.with_description(change_description)
                    self._entries[index] = corrected
                    return corrected
        raise KeyError(entry_id)

    # Discard

    def discard_baseline(self) -> Optional[VersionNumber]:
        """Version of the last fully approved state, if there is one."""
        approval = self.latest_with_action(VersionAction.SECOND_LEVEL_APPROVAL)
        return approval.version if approval else None

    def can_discard(self, baseline: Optional[VersionNumber]) -> bool:
        """
        True when everything above `baseline` is an unsubmitted revision.

        Requires at least one entry at or below the baseline, a trailing run
        that opens with DRAFT_AND_REVIEW, and nothing but draft actions in it.
        """
        if baseline is None:
            return False
        latest = self.latest()
        if latest is None or latest.action not in DRAFT_ACTIONS:
            return False
        if not any(e.version <= baseline for e in self._entries):
            return False
        newer = self.entries_newer_than(baseline)
        if not newer or newer[0].action != VersionAction.DRAFT_AND_REVIEW:
            return False
        return all(e.action in DRAFT_ACTIONS for e in newer)

    def discard_trailing_draft(
        self,
        baseline: VersionNumber,
        snapshot: ArtifactSnapshot,
        revision: int
    ) -> List[AuditEntry]:
        """
        Remove every entry newer than `baseline` in one step.

        Raises NoDiscardableRevision without touching anything if the
        precondition does not hold.
        """
        with self._lock:
            self.check_current(snapshot)
            if not self.can_discard(baseline):
                raise NoDiscardableRevision(
                    f"{self.artifact_kind.value} {self.artifact_id} has no unsubmitted revision "
                    f"on top of an approved version to discard."
                )
            kept = [e for e in self._entries if e.version <= baseline]
            removed = [e for e in self._entries if e.version > baseline]
            self._entries = kept
            self.revision = revision

        logger.info(
            "Discarded %d entries of %s %s back to %s",
            len(removed), self.artifact_kind.value, self.artifact_id, baseline.display()
        )
        return removed

    def _check_can_follow(self, entry: AuditEntry) -> None:
        if entry.artifact_kind != self.artifact_kind or entry.artifact_id != self.artifact_id:
            raise AuditTrailCorrupted(
                f"Entry {entry.id} belongs to {entry.artifact_kind.value} {entry.artifact_id}, "
                f"not {self.artifact_kind.value} {self.artifact_id}"
            )
        latest = self.latest()
        if latest is None:
            return
        if entry.version < latest.version:
            logger.error(
                "Non-monotonic version on %s %s: %s after %s",
                self.artifact_kind.value, self.artifact_id, entry.version.display(), latest.version.display()
            )
            raise AuditTrailCorrupted(
                f"Version {entry.version.display()} cannot follow {latest.version.display()} "
                f"on {self.artifact_kind.value} {self.artifact_id}"
            )
        if entry.sequence <= latest.sequence:
            raise AuditTrailCorrupted(
                f"Sequence {entry.sequence} cannot follow {latest.sequence} "
                f"on {self.artifact_kind.value} {self.artifact_id}"
            )


class TrailRegistry:
    """In-memory trails keyed by (kind, artifact id)."""

    def __init__(self, trails: Iterable[AuditTrail] = ()):
        self._trails: Dict[Tuple[ArtifactKind, str], AuditTrail] = {}
        self._lock = threading.Lock()
        for trail in trails:
            self.put(trail)

    def put(self, trail: AuditTrail) -> AuditTrail:
        with self._lock:
            self._trails[(trail.artifact_kind, trail.artifact_id)] = trail
        return trail

    def get(self, kind: ArtifactKind, artifact_id: str) -> AuditTrail:
        """Trail for an artifact; a new empty one if it was never written."""
        key = (ArtifactKind(kind), artifact_id)
        with self._lock:
            trail = self._trails.get(key)
            if trail is None:
                trail = AuditTrail(key[0], artifact_id)
                self._trails[key] = trail
            return trail

    def __contains__(self, key) -> bool:
        return key in self._trails
