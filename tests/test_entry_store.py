"""Tests for the optimistic entry store."""

import pendulum
import pytest

from conftest import BASE_TIME, RUNNING, Harness, make_entry

from trackmirror.exceptions import TransientError, ValidationError
from trackmirror.model.mutation import MutationKind, MutationResult, ReconcileOutcome


def make_result(kind=MutationKind.UPDATE, delta=None, entry=None, error=None):
    return MutationResult(kind=kind, delta=delta or {}, entry=entry, error=error)


class TestApplyLocalEdit:
    def test_visible_immediately(self, harness):
        key = harness.key(1)
        harness.store.apply_local_edit(key, {"description": "renamed"})
        assert harness.store.get(key)["description"] == "renamed"
        assert harness.gateway.calls == []

    def test_sequences_increase(self, harness):
        key = harness.key(1)
        first = harness.store.apply_local_edit(key, {"description": "a"})
        second = harness.store.apply_local_edit(harness.key(2), {"description": "b"})
        third = harness.store.apply_local_edit(key, {"description": "c"})
        assert first < second < third
        assert harness.store.latest_sequence(key) == third

    def test_tags_are_deduplicated(self, harness):
        key = harness.key(1)
        harness.store.apply_local_edit(key, {"tags": ["a", "b", "a"]})
        assert harness.store.get(key)["tags"] == ["a", "b"]

    def test_unknown_target_is_rejected(self, harness):
        from trackmirror.exceptions import InvalidEditError

        with pytest.raises(InvalidEditError):
            harness.store.apply_local_edit("missing", {"description": "x"})

    def test_non_editable_field_is_rejected(self, harness):
        from trackmirror.exceptions import InvalidEditError

        with pytest.raises(InvalidEditError):
            harness.store.apply_local_edit(harness.key(1), {"id": 5})  # type: ignore[typeddict-unknown-key]

    def test_stop_before_start_is_rejected(self, harness):
        from trackmirror.exceptions import InvalidEditError

        key = harness.key(1)
        with pytest.raises(InvalidEditError):
            harness.store.apply_local_edit(key, {"stop": BASE_TIME.subtract(minutes=1)})
        assert harness.store.get(key)["stop"] == BASE_TIME.add(hours=1)

    def test_clearing_stop_makes_the_entry_run(self):
        harness = Harness(
            entries=[
                make_entry(id=1, start=BASE_TIME),
                make_entry(id=2, start=BASE_TIME.add(hours=3), stop=RUNNING),
            ]
        )
        resumed = harness.key(1)
        previous = harness.key(2)

        harness.store.apply_local_edit(resumed, {"stop": None})

        assert harness.store.running_key == resumed
        assert harness.store.get(previous)["stop"] is not None
        assert [entry["stop"] is None for entry in harness.store.entries].count(True) == 0


class TestReconcile:
    def test_adopts_the_server_echo(self, harness):
        key = harness.key(1)
        sequence = harness.store.apply_local_edit(key, {"tags": ["b", "a"]})
        echo = make_entry(id=1, description="one", tags=["a", "b"])

        outcome = harness.store.reconcile(
            key, sequence, make_result(delta={"tags": ["b", "a"]}, entry=echo)
        )

        assert outcome is ReconcileOutcome.ADOPTED
        assert harness.store.get(key)["tags"] == ["a", "b"]

    def test_newer_edit_survives_an_older_response(self, harness):
        key = harness.key(1)
        first = harness.store.apply_local_edit(key, {"description": "first", "tags": ["x"]})
        harness.store.apply_local_edit(key, {"description": "second"})
        echo = make_entry(id=1, description="first", tags=["x", "server"])

        outcome = harness.store.reconcile(
            key, first, make_result(delta={"description": "first"}, entry=echo)
        )

        assert outcome is ReconcileOutcome.MERGED
        entry = harness.store.get(key)
        assert entry["description"] == "second"
        # Not touched by the newer edit, so the server's value is taken
        assert entry["tags"] == ["x", "server"]

    def test_old_sequence_is_stale(self, harness):
        key = harness.key(1)
        first = harness.store.apply_local_edit(key, {"description": "first"})
        second = harness.store.apply_local_edit(key, {"description": "second"})

        assert (
            harness.store.reconcile(
                key, second, make_result(entry=make_entry(id=1, description="second"))
            )
            is ReconcileOutcome.ADOPTED
        )
        assert (
            harness.store.reconcile(
                key, first, make_result(entry=make_entry(id=1, description="first"))
            )
            is ReconcileOutcome.STALE
        )
        assert harness.store.get(key)["description"] == "second"

    def test_sequences_before_a_snapshot_are_discarded(self, harness):
        key = harness.key(1)
        sequence = harness.store.apply_local_edit(key, {"description": "lost"})
        harness.store.load_snapshot([make_entry(id=1, description="one")], None)

        outcome = harness.store.reconcile(
            harness.key(1), sequence, make_result(entry=make_entry(id=1, description="lost"))
        )

        assert outcome is ReconcileOutcome.DISCARDED
        assert harness.store.get(harness.key(1))["description"] == "one"

    def test_validation_failure_rolls_back(self, harness):
        key = harness.key(1)
        sequence = harness.store.apply_local_edit(key, {"project_id": 99})

        outcome = harness.store.reconcile(
            key,
            sequence,
            make_result(delta={"project_id": 99}, error=ValidationError("Invalid project")),
        )

        assert outcome is ReconcileOutcome.ROLLED_BACK
        assert harness.store.get(key)["project_id"] is None
        assert len(harness.rejections) == 1
        assert harness.rejections[0].message == "Invalid project"
        assert harness.rejections[0].target == key

    def test_rollback_keeps_fields_of_newer_edits(self, harness):
        key = harness.key(1)
        failed = harness.store.apply_local_edit(key, {"description": "bad", "project_id": 5})
        harness.store.apply_local_edit(key, {"description": "good"})

        harness.store.reconcile(
            key,
            failed,
            make_result(
                delta={"description": "bad", "project_id": 5},
                error=TransientError("gave up"),
            ),
        )

        entry = harness.store.get(key)
        assert entry["description"] == "good"
        assert entry["project_id"] is None

    def test_failed_create_removes_the_entry(self, harness):
        key = harness.store.start_entry("new", start=BASE_TIME.add(days=1))
        sequence = harness.store.latest_sequence(key)

        harness.store.reconcile(
            key,
            sequence,
            make_result(kind=MutationKind.CREATE, error=ValidationError("Workspace is locked")),
        )

        assert not harness.store.contains(key)
        assert harness.store.running is None
        assert harness.scheduler.queued(key) is None

    def test_failed_delete_restores_the_entry(self, harness):
        key = harness.key(1)
        sequence = harness.store.delete_entry(key)
        assert not harness.store.contains(key)

        harness.store.reconcile(
            key, sequence, make_result(kind=MutationKind.DELETE, error=ValidationError("nope"))
        )

        assert harness.store.get(key)["description"] == "one"

    def test_failed_stop_restores_the_running_entry(self):
        harness = Harness(entries=[make_entry(id=1, start=BASE_TIME, stop=RUNNING)])
        key = harness.key(1)
        sequence = harness.store.stop_running()
        assert harness.store.running is None

        harness.store.reconcile(
            key,
            sequence,
            make_result(
                kind=MutationKind.STOP,
                delta={"stop": BASE_TIME.add(hours=1)},
                error=ValidationError("already stopped"),
            ),
        )

        assert harness.store.running_key == key
        assert harness.store.get(key)["stop"] is None

    def test_response_for_deleted_entry_does_not_resurrect_it(self, harness):
        key = harness.key(1)
        sequence = harness.store.apply_local_edit(key, {"description": "x"})
        harness.store.delete_entry(key)

        outcome = harness.store.reconcile(
            key, sequence, make_result(entry=make_entry(id=1, description="x"))
        )

        assert outcome is ReconcileOutcome.DISCARDED
        assert not harness.store.contains(key)
        assert harness.store.identity_for(key) == (1, 42)


class TestSnapshot:
    def test_single_running_entry(self):
        harness = Harness()
        running = make_entry(id=5, start=BASE_TIME, stop=RUNNING)
        stray = make_entry(id=6, start=BASE_TIME.subtract(hours=2), stop=RUNNING)

        harness.store.load_snapshot([running, stray, make_entry(id=7)], running)

        assert harness.store.running is not None
        assert harness.store.running["id"] == 5
        assert [entry["id"] for entry in harness.store.entries] == [7]

    def test_add_entries_deduplicates_by_server_id(self, harness):
        added = harness.store.add_entries(
            [
                make_entry(id=1, description="one"),
                make_entry(id=3, description="three", start=BASE_TIME.subtract(days=8)),
            ]
        )
        assert added == 1
        assert len(harness.store.entries) == 3
        assert harness.store.earliest_start == BASE_TIME.subtract(days=8)

    def test_entries_are_most_recent_first(self, harness):
        assert [entry["id"] for entry in harness.store.entries] == [2, 1]


class TestStartStop:
    def test_start_stops_the_running_entry_at_the_new_start(self):
        harness = Harness(entries=[make_entry(id=1, start=BASE_TIME, stop=RUNNING)])
        previous = harness.key(1)
        new_start = BASE_TIME.add(hours=2)

        key = harness.store.start_entry("next", start=new_start)

        assert harness.store.running_key == key
        assert harness.store.get(previous)["stop"] == new_start
        assert harness.store.get(key)["start"] == new_start
        assert sum(entry["stop"] is None for entry in harness.store.entries) == 0

    def test_new_entry_gets_the_default_project(self):
        harness = Harness(default_project_id=77)
        key = harness.store.start_entry("x", start=BASE_TIME)
        assert harness.store.get(key)["project_id"] == 77

        explicit = harness.store.start_entry("y", project_id=3, start=BASE_TIME.add(hours=1))
        assert harness.store.get(explicit)["project_id"] == 3

    def test_new_entry_is_pending_until_confirmed(self):
        harness = Harness()
        key = harness.store.start_entry("x", start=BASE_TIME)
        assert harness.store.get(key)["id"] is None

        harness.flush()

        assert harness.store.get(key)["id"] == 1001
        assert harness.store.get(key)["duration"] == -1

    def test_stop_running_frees_the_slot(self):
        harness = Harness(entries=[make_entry(id=1, start=BASE_TIME, stop=RUNNING)])
        harness.gateway.stop_time = BASE_TIME.add(minutes=45)

        harness.store.stop_running()
        assert harness.store.running is None
        harness.flush()

        assert harness.gateway.call_names() == ["stop_entry"]
        entry = harness.store.get(harness.key(1))
        assert entry["stop"] == BASE_TIME.add(minutes=45)

    def test_explicit_stop_time_survives_reconcile(self):
        harness = Harness(entries=[make_entry(id=1, start=BASE_TIME, stop=RUNNING)])
        harness.gateway.stop_time = BASE_TIME.add(minutes=30)

        harness.store.stop_running(BASE_TIME.add(hours=2))
        assert harness.store.running is None
        harness.flush()

        assert harness.gateway.call_names() == ["update_entry"]
        assert harness.gateway.calls[0][2] == {"stop": BASE_TIME.add(hours=2)}
        assert harness.store.get(harness.key(1))["stop"] == BASE_TIME.add(hours=2)
        assert harness.gateway.entries[1]["stop"] == BASE_TIME.add(hours=2)

    def test_stop_without_running_entry_is_a_no_op(self, harness):
        assert harness.store.stop_running() is None

    def test_continue_copies_the_entry(self):
        harness = Harness(
            entries=[make_entry(id=1, description="deep work", project_id=4, tags=["focus"], billable=True)]
        )
        key = harness.store.continue_entry(harness.key(1))

        entry = harness.store.get(key)
        assert entry["description"] == "deep work"
        assert entry["project_id"] == 4
        assert entry["tags"] == ["focus"]
        assert entry["billable"] is True
        assert entry["stop"] is None


class TestWeekTotal:
    def test_counts_only_the_current_week(self):
        now = pendulum.datetime(2025, 4, 17, 12, tz="local").in_tz("UTC")
        monday = pendulum.datetime(2025, 4, 14, 10, tz="local").in_tz("UTC")
        harness = Harness(
            entries=[
                make_entry(id=1, start=monday, stop=monday.add(hours=2)),
                make_entry(id=2, start=monday.subtract(days=3)),
                make_entry(id=3, start=now.subtract(minutes=30), stop=RUNNING),
            ]
        )

        total = harness.store.week_total(now=now, week_start=1)

        assert total.total_seconds() == 2.5 * 3600
