"""Edit session state machine and subject editor tests."""

import pytest

from app.core.errors import PartialWriteFailure
from app.core.records.reconciliation import ConflictChoice, EditSession, EditState, SubjectEditor
from app.features.delegation.managers import Entry, Owner, ResourceGrantManager
from app.features.delegation.models import DelegationKind
from app.features.permissions.models import ExceptionState
from app.features.permissions.scopes import AccessScope


GRANTED = ExceptionState.GRANTED
DENIED = ExceptionState.DENIED


@pytest.mark.unit
class TestEditSession:

    def test_local_edit_makes_dirty(self):
        session = EditSession({"s:5": GRANTED})
        assert session.state is EditState.CLEAN
        session.edit("sss:3", GRANTED)
        assert session.state is EditState.DIRTY
        assert session.diff() == (set(), {"sss:3"})

    def test_reverting_an_edit_is_clean_again(self):
        session = EditSession({"s:5": GRANTED})
        session.edit("s:5", DENIED)
        session.edit("s:5", GRANTED)
        assert session.state is EditState.CLEAN
        session.remove("s:5")
        assert session.state is EditState.DIRTY
        assert session.diff() == ({"s:5"}, set())

    def test_clean_session_adopts_remote_snapshot(self):
        session = EditSession({"s:5": GRANTED})
        assert session.on_remote_snapshot({"s:5": DENIED}) is EditState.CLEAN
        assert session.baseline == session.local == {"s:5": DENIED}

    def test_remote_removal_while_dirty_conflicts_and_discard_reloads(self):
        session = EditSession({"sss:3": DENIED})
        session.edit("sss:3", GRANTED)

        assert session.on_remote_snapshot({}, pending=False) is EditState.CONFLICTED
        assert session.incoming == {}

        assert session.on_conflict(ConflictChoice.DISCARD) is EditState.CLEAN
        assert "sss:3" not in session.local
        assert session.baseline == {}

    def test_own_writes_never_conflict(self):
        session = EditSession({"sss:3": DENIED})
        session.edit("sss:3", GRANTED)
        assert session.on_remote_snapshot({"sss:3": GRANTED, "s:1": GRANTED}, pending=True) is EditState.DIRTY
        assert session.baseline == {"sss:3": DENIED}

    def test_clean_session_adopts_own_writes(self):
        session = EditSession({"s:5": GRANTED})
        assert session.on_remote_snapshot({"s:5": GRANTED, "ss:1": DENIED}, pending=True) is EditState.CLEAN
        assert session.baseline == session.local == {"s:5": GRANTED, "ss:1": DENIED}

    def test_rebase_keeps_unwritten_edits(self):
        session = EditSession({"s:5": GRANTED})
        session.remove("s:5")
        session.edit("ss:1", GRANTED)
        session.edit("ss:2", GRANTED)
        session.on_remote_snapshot({"s:9": GRANTED})
        assert session.state is EditState.CONFLICTED

        # s:5 removal and ss:1 went through, ss:2 did not
        assert session.rebase({"ss:1": GRANTED}) is EditState.DIRTY
        assert session.incoming is None
        assert session.diff() == (set(), {"ss:2"})

        assert session.rebase({"ss:1": GRANTED, "ss:2": GRANTED}) is EditState.CLEAN

    def test_unchanged_remote_snapshot_does_not_conflict(self):
        session = EditSession({"s:5": GRANTED})
        session.edit("ss:1", GRANTED)
        assert session.on_remote_snapshot({"s:5": GRANTED}) is EditState.DIRTY

    def test_ignore_keeps_stale_baseline(self):
        session = EditSession({"s:5": GRANTED})
        session.edit("ss:1", GRANTED)
        session.on_remote_snapshot({"s:5": DENIED})

        assert session.on_conflict("ignore") is EditState.DIRTY
        assert session.baseline == {"s:5": GRANTED}
        assert session.local == {"s:5": GRANTED, "ss:1": GRANTED}

        # the same remote state is compared against the old baseline again
        assert session.on_remote_snapshot({"s:5": DENIED}) is EditState.CONFLICTED

    def test_conflicted_session_tracks_latest_snapshot(self):
        session = EditSession({"s:5": GRANTED})
        session.edit("ss:1", GRANTED)
        session.on_remote_snapshot({"s:5": DENIED})
        session.edit("ss:2", GRANTED)
        assert session.state is EditState.CONFLICTED
        session.on_remote_snapshot({})
        assert session.incoming == {}

    def test_resolving_without_conflict(self):
        with pytest.raises(RuntimeError):
            EditSession().on_conflict(ConflictChoice.DISCARD)

    def test_mark_saved_and_discard(self):
        session = EditSession({"s:5": GRANTED})
        session.edit("ss:1", GRANTED)
        session.mark_saved()
        assert session.state is EditState.CLEAN
        assert session.baseline == {"s:5": GRANTED, "ss:1": GRANTED}

        session.edit("ss:2", DENIED)
        session.discard()
        assert session.state is EditState.CLEAN
        assert session.local == session.baseline


GUARD = Owner.job("j-guard")


@pytest.fixture
def remote(store) -> ResourceGrantManager:
    """Another administrator's manager writing to the same records."""
    return ResourceGrantManager(store.with_origin("admin-2"), DelegationKind.ACCESS)


@pytest.fixture
def editor(store, feed) -> SubjectEditor:
    return SubjectEditor(ResourceGrantManager(store.with_origin("admin-1"), DelegationKind.ACCESS), feed)


class TestSubjectEditor:

    async def test_select_loads_baseline(self, editor, remote):
        record_id = await remote.grant(GUARD, "s:1")
        session = await editor.select(GUARD)
        assert session.state is EditState.CLEAN
        assert session.baseline == {"s:1": Entry(AccessScope(), record_id)}

    async def test_save_suppresses_own_echo(self, editor, store):
        await editor.select(GUARD)
        editor.session.edit("ss:12", Entry(AccessScope("c1")))
        assert editor.session.state is EditState.DIRTY

        created = await editor.save()

        assert editor.session.state is EditState.CLEAN
        assert editor.session.baseline == {"ss:12": Entry(AccessScope("c1"), created["ss:12"])}
        assert len(await store.query("delegation_resources")) == 1

    async def test_clean_editor_follows_remote_writes(self, editor, remote):
        await editor.select(GUARD)
        record_id = await remote.grant(GUARD, "s:1")
        assert editor.session.state is EditState.CLEAN
        assert editor.session.local == {"s:1": Entry(AccessScope(), record_id)}

    async def test_remote_write_while_dirty_conflicts(self, editor, remote):
        await editor.select(GUARD)
        editor.session.edit("sss:3", Entry(AccessScope()))

        await remote.grant(GUARD, "ss:99")
        assert editor.session.state is EditState.CONFLICTED
        assert "ss:99" in editor.session.incoming

        editor.session.on_conflict(ConflictChoice.IGNORE)
        await remote.grant(GUARD, "ss:98")
        assert editor.session.state is EditState.CONFLICTED

        editor.session.on_conflict(ConflictChoice.DISCARD)
        assert set(editor.session.local) == {"ss:98", "ss:99"}

    async def test_other_subjects_do_not_touch_session(self, editor, remote):
        await editor.select(GUARD)
        editor.session.edit("sss:3", Entry(AccessScope()))
        await remote.grant(Owner.job("j-clerk"), "ss:99")
        assert editor.session.state is EditState.DIRTY

    async def test_select_switches_subscription(self, editor, remote, feed):
        await editor.select(GUARD)
        before = feed.subscription_count
        editor.session.edit("sss:3", Entry(AccessScope()))

        await editor.select(Owner.job("j-clerk"))
        assert feed.subscription_count == before
        assert editor.session.state is EditState.CLEAN

        await remote.grant(GUARD, "ss:99")
        assert editor.session.local == {}

    async def test_reset_unsubscribes(self, editor, remote, feed):
        await editor.select(GUARD)
        before = feed.subscription_count
        editor.reset()
        assert feed.subscription_count == before - 1
        await remote.grant(GUARD, "ss:99")
        assert editor.owner is None
        assert editor.session.local == {}

    async def test_failed_save_stays_dirty(self, store, feed, flaky_store):
        flaky = flaky_store(store.with_origin("admin-1"), ["ss:5"])
        editor = SubjectEditor(ResourceGrantManager(flaky, DelegationKind.ACCESS), feed)
        await editor.select(GUARD)
        editor.session.edit("ss:5", Entry(AccessScope()))

        with pytest.raises(PartialWriteFailure):
            await editor.save()
        assert editor.session.state is EditState.DIRTY

    async def test_retry_after_partial_failure_repeats_only_what_failed(self, store, feed, flaky_store):
        await ResourceGrantManager(store, DelegationKind.ACCESS).grant(GUARD, "s:1")
        flaky = flaky_store(store.with_origin("admin-1"), ["ss:2"])
        editor = SubjectEditor(ResourceGrantManager(flaky, DelegationKind.ACCESS), feed)
        await editor.select(GUARD)
        editor.session.remove("s:1")
        editor.session.edit("s:3", Entry(AccessScope()))
        editor.session.edit("ss:2", Entry(AccessScope()))

        with pytest.raises(PartialWriteFailure) as info:
            await editor.save()
        assert set(info.value.failed) == {"ss:2"}
        assert editor.session.state is EditState.DIRTY
        assert set(editor.session.baseline) == {"s:3"}
        assert editor.session.diff() == (set(), {"ss:2"})

        flaky.fail_resources.clear()
        created = await editor.save()

        assert set(created) == {"ss:2"}
        assert editor.session.state is EditState.CLEAN
        records = await store.query("delegation_resources")
        assert sorted(r["resource_id"] for r in records) == ["s:3", "ss:2"]

    async def test_save_requires_a_subject(self, editor):
        with pytest.raises(RuntimeError):
            await editor.save()
