"""
Optimistic concurrency for administrative edit sessions.

An EditSession tracks, for the one subject (job or user) being edited, the
last-synced baseline and the operator's local view, and moves between three
states:

    CLEAN       local view equals the baseline
    DIRTY       local edits pending, no remote change seen since
    CONFLICTED  local edits pending and a different remote snapshot arrived

Remote snapshots produced by the session's own writes never conflict.
Resolving a conflict is `on_conflict(ConflictChoice.DISCARD | IGNORE)`.
Ignoring keeps the old baseline, so the next remote change conflicts again.

SubjectEditor wires a session to a delegation manager and the change feed.
"""
import enum
from collections.abc import Callable, Mapping
from typing import Any

from app.core.errors import PartialWriteFailure
from app.core.records.feed import ChangeEvent, ChangeFeed, ChangeType, Subscription
from app.core.records.store import RecordStore
from app.utils import get_logger


log = get_logger(__name__)


class EditState(str, enum.Enum):
    CLEAN = "clean"
    DIRTY = "dirty"
    CONFLICTED = "conflicted"


class ConflictChoice(str, enum.Enum):
    DISCARD = "discard"  # load the remote state, lose local edits
    IGNORE = "ignore"    # keep local edits and the old baseline


class EditSession:
    """Baseline/local bookkeeping for one edited subject."""

    def __init__(self, baseline: Mapping[str, Any] | None = None):
        self.baseline: dict[str, Any] = dict(baseline or {})
        self.local: dict[str, Any] = dict(self.baseline)
        self.state = EditState.CLEAN
        self.incoming: dict[str, Any] | None = None

    def __repr__(self) -> str:
        return f"<EditSession(state={self.state.value}, baseline={len(self.baseline)}, local={len(self.local)})>"

    @property
    def is_dirty(self) -> bool:
        return self.state is not EditState.CLEAN

    def _settle(self) -> None:
        if self.state is EditState.CONFLICTED:
            return
        self.state = EditState.DIRTY if self.local != self.baseline else EditState.CLEAN

    def edit(self, key: str, value: Any) -> None:
        self.local[key] = value
        self._settle()

    def remove(self, key: str) -> None:
        self.local.pop(key, None)
        self._settle()

    def on_remote_snapshot(self, snapshot: Mapping[str, Any], pending: bool = False) -> EditState:
        """
        Feed a remote snapshot of the subject's records.

        `pending` marks a snapshot caused by this session's own write. A
        clean session adopts every snapshot; otherwise pending ones are
        skipped.
        """
        snapshot = dict(snapshot)
        if self.state is EditState.CLEAN:
            self.baseline = snapshot
            self.local = dict(snapshot)
        elif pending:
            return self.state
        elif self.state is EditState.DIRTY:
            if snapshot != self.baseline:
                log.info("Remote change while editing; conflict raised")
                self.incoming = snapshot
                self.state = EditState.CONFLICTED
        else:
            self.incoming = snapshot
        return self.state

    def on_conflict(self, choice: ConflictChoice) -> EditState:
        if self.state is not EditState.CONFLICTED:
            raise RuntimeError(f"No conflict to resolve in state {self.state.value}")
        choice = ConflictChoice(choice)
        if choice is ConflictChoice.DISCARD:
            self.baseline = dict(self.incoming or {})
            self.local = dict(self.baseline)
            self.state = EditState.CLEAN
        else:
            self.state = EditState.DIRTY
        self.incoming = None
        log.info("Conflict resolved by %s", choice.value)
        return self.state

    def mark_saved(self, snapshot: Mapping[str, Any] | None = None) -> None:
        """Adopt the saved view (or the store's view of it) as the new baseline."""
        self.baseline = dict(snapshot) if snapshot is not None else dict(self.local)
        self.local = dict(self.baseline)
        self.incoming = None
        self.state = EditState.CLEAN

    def rebase(self, baseline: Mapping[str, Any], local: Mapping[str, Any] | None = None) -> EditState:
        """
        Move to a new baseline after a partly applied save, keeping local
        edits (or `local`, when given). Edits still unwritten leave it DIRTY.
        """
        self.baseline = dict(baseline)
        if local is not None:
            self.local = dict(local)
        self.incoming = None
        self.state = EditState.DIRTY if self.local != self.baseline else EditState.CLEAN
        return self.state

    def discard(self) -> None:
        self.local = dict(self.baseline)
        self.incoming = None
        self.state = EditState.CLEAN

    def diff(self) -> tuple[set[str], set[str]]:
        """(keys removed or changed, keys added or changed) relative to the baseline."""
        removed = {k for k, v in self.baseline.items() if self.local.get(k, _MISSING) != v}
        added = {k for k, v in self.local.items() if self.baseline.get(k, _MISSING) != v}
        return removed, added


_MISSING = object()


SnapshotListener = Callable[[list[dict[str, Any]], bool], None]


class SnapshotView:
    """
    Id -> record cache of one filtered collection, kept current from the
    change feed. Each applied event hands the full record list to `listener`
    together with the event's pending-local-write flag.
    """

    def __init__(
        self,
        feed: ChangeFeed,
        collection: str,
        filter: Mapping[str, Any],
        listener: SnapshotListener,
        origin: str | None = None,
    ):
        self.collection = collection
        self.filter = dict(filter)
        self._listener = listener
        self._records: dict[str, dict[str, Any]] = {}
        self._subscription: Subscription | None = feed.subscribe(collection, filter, self._on_event, origin)

    async def load(self, store: RecordStore) -> list[dict[str, Any]]:
        rows = await store.query(self.collection, self.filter)
        self._records = {row["id"]: row for row in rows}
        return self.records()

    def records(self) -> list[dict[str, Any]]:
        return list(self._records.values())

    def _on_event(self, event: ChangeEvent) -> None:
        if self._subscription is None:
            return
        if event.type is ChangeType.REMOVED:
            self._records.pop(event.id, None)
        else:
            self._records[event.id] = dict(event.data)
        self._listener(self.records(), event.is_pending_local_write)

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None


class SubjectEditor:
    """
    Edits one delegation subject at a time through a manager.

    The manager's store must carry this editor's origin so that its own
    writes come back flagged as pending local writes.

    Usage:
        editor = SubjectEditor(ResourceGrantManager(store.with_origin("admin-1"), kind), feed)
        await editor.select(Owner.job(job_id))
        editor.session.edit("ss:12", Entry(AccessScope()))
        await editor.save()
    """

    def __init__(self, manager, feed: ChangeFeed):
        self.manager = manager
        self.feed = feed
        self.owner = None
        self.session = EditSession()
        self._view: SnapshotView | None = None

    @property
    def origin(self) -> str | None:
        return getattr(self.manager.store, "origin", None)

    async def select(self, owner) -> EditSession:
        """Switch to another subject; unsaved edits of the previous one are dropped."""
        self.reset()
        self.owner = owner
        self._view = SnapshotView(
            self.feed,
            self.manager.collection,
            self.manager._owner_filter(owner),
            self._on_snapshot,
            origin=self.origin,
        )
        records = await self._view.load(self.manager.store)
        self.session = EditSession(self.manager.snapshot(records))
        return self.session

    def _on_snapshot(self, records: list[dict[str, Any]], pending: bool) -> None:
        state = self.session.on_remote_snapshot(self.manager.snapshot(records), pending)
        log.debug("Snapshot for %s (pending=%s) -> %s", self.owner, pending, state.value)

    async def save(self) -> dict[str, str]:
        """
        Write local edits. On success the session is CLEAN with the stored
        records as baseline. On a partial failure the baseline moves to the
        stored records, so a retry only repeats what failed; the session
        stays DIRTY and the error propagates.
        """
        if self.owner is None or self._view is None:
            raise RuntimeError("No subject selected")
        try:
            created = await self.manager.save_batch(self.owner, self.session.baseline, self.session.local)
        except PartialWriteFailure as e:
            self._rebase(e.created)
            raise
        self.session.mark_saved(self.manager.snapshot(self._view.records()))
        return created

    def _rebase(self, created: Mapping[str, str]) -> None:
        stored = self.manager.snapshot(self._view.records())
        local: dict[str, Any] = {}
        for key, entry in self.session.local.items():
            if key in created:
                key = self.manager.stored_key(key, created[key])
            current = stored.get(key)
            local[key] = current if current is not None and current.value == entry.value else entry
        state = self.session.rebase(stored, local)
        log.info("Partial save for %s; %d key(s) still pending -> %s", self.owner, len(self.session.diff()[1]), state.value)

    def reset(self) -> None:
        if self._view is not None:
            self._view.close()
            self._view = None
        self.owner = None
        self.session = EditSession()

    unsubscribe = reset
