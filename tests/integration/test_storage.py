"""
Integration tests for the DuckDB metric store.

Covers the versioned replace (idempotence, atomic publish, batch failure,
cancellation), filtered reads, retention and metric-type listing against a
real DuckDB file.
"""

import threading
from datetime import datetime, timedelta

import pytest

from feedback_metrics.errors import DependencyFailure, OperationCancelled
from feedback_metrics.models import Granularity
from feedback_metrics.storage.duckdb_storage import DuckDBStorage, StorageError
from tests.conftest import DAY, ORG_ID, PRODUCT_ID, daily_points, make_point

WINDOW_END = DAY + timedelta(days=365)


class FlakyStorage(DuckDBStorage):
    """DuckDB store whose Nth insert batch fails or triggers a callback."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_on_batch = None
        self.after_batch = None
        self.batches = 0

    def _insert_batch(self, conn, rows):
        self.batches += 1
        if self.fail_on_batch == self.batches:
            raise RuntimeError("disk full")
        super()._insert_batch(conn, rows)
        if self.after_batch is not None:
            self.after_batch(self.batches)


def _find_all(store, organization_id=ORG_ID, **kwargs):
    return store.find(organization_id, DAY - timedelta(days=365), WINDOW_END, Granularity.DAILY, **kwargs)


def _dump(points):
    return [p.model_dump() for p in points]


def _row_count(store):
    with store._get_connection() as conn:
        return conn.execute("SELECT COUNT(*) FROM time_series_metrics").fetchone()[0]


class LockstepStorage(DuckDBStorage):
    """DuckDB store whose replaces all allocate their version at the same moment."""

    def __init__(self, *args, parties=2, **kwargs):
        super().__init__(*args, **kwargs)
        self.barrier = threading.Barrier(parties, timeout=10)

    def _next_version(self, conn, organization_id):
        self.barrier.wait()
        return super()._next_version(conn, organization_id)


@pytest.fixture
def flaky_store(tmp_path):
    return FlakyStorage(db_path=str(tmp_path / "flaky.duckdb"), batch_size=3)


class TestDuckDBReplaceAll:
    """Tests for the versioned replace of an organization's points."""

    def test_replace_all_then_find_round_trip(self, duckdb_store):
        point = make_point(
            "question_q-rating",
            value=4.5,
            count=7,
            question_id="q-rating",
            metadata={"question_type": "rating", "min_label": "Poor"},
        )

        written = duckdb_store.replace_all(ORG_ID, [point])
        found = _find_all(duckdb_store)

        assert written == 1
        assert _dump(found) == _dump([point])

    def test_replace_all_batches_larger_than_batch_size(self, duckdb_store):
        written = duckdb_store.replace_all(ORG_ID, daily_points([float(i) for i in range(10)]))

        assert written == 10
        assert [p.value for p in _find_all(duckdb_store)] == [float(i) for i in range(10)]

    def test_replace_all_twice_is_idempotent(self, duckdb_store):
        points = daily_points([1.0, 2.0, 3.0, 4.0])

        duckdb_store.replace_all(ORG_ID, points)
        duckdb_store.replace_all(ORG_ID, points)

        assert _dump(_find_all(duckdb_store)) == _dump(points)
        assert _row_count(duckdb_store) == 4

    def test_replace_all_drops_previous_points(self, duckdb_store):
        duckdb_store.replace_all(ORG_ID, daily_points([1.0, 2.0], "feedback_count"))
        duckdb_store.replace_all(ORG_ID, daily_points([9.0], "average_rating"))

        assert [p.metric_type for p in _find_all(duckdb_store)] == ["average_rating"]

    def test_replace_all_empty_clears_organization(self, duckdb_store):
        duckdb_store.replace_all(ORG_ID, daily_points([1.0, 2.0]))
        duckdb_store.replace_all(ORG_ID, [])

        assert _find_all(duckdb_store) == []

    def test_replace_all_leaves_other_organizations(self, duckdb_store):
        other = [make_point(organization_id="org-2")]
        duckdb_store.replace_all("org-2", other)
        duckdb_store.replace_all(ORG_ID, daily_points([1.0]))
        duckdb_store.replace_all(ORG_ID, daily_points([2.0]))

        assert _dump(_find_all(duckdb_store, "org-2")) == _dump(other)

    def test_unpublished_organization_reads_empty(self, duckdb_store):
        assert _find_all(duckdb_store, "org-never-collected") == []

    def test_batch_failure_raises_dependency_failure(self, flaky_store):
        flaky_store.fail_on_batch = 2

        with pytest.raises(StorageError) as exc_info:
            flaky_store.replace_all(ORG_ID, daily_points([float(i) for i in range(7)]))

        assert isinstance(exc_info.value, DependencyFailure)

    def test_batch_failure_keeps_previous_set_visible(self, flaky_store):
        previous = daily_points([1.0, 2.0])
        flaky_store.replace_all(ORG_ID, previous)
        flaky_store.batches = 0
        flaky_store.fail_on_batch = 2

        with pytest.raises(StorageError):
            flaky_store.replace_all(ORG_ID, daily_points([float(i) for i in range(7)], "feedback_count"))

        assert _dump(_find_all(flaky_store)) == _dump(previous)

    def test_next_replace_self_heals_after_failure(self, flaky_store):
        flaky_store.fail_on_batch = 2
        with pytest.raises(StorageError):
            flaky_store.replace_all(ORG_ID, daily_points([float(i) for i in range(7)]))

        flaky_store.fail_on_batch = None
        fresh = daily_points([5.0, 6.0])
        flaky_store.replace_all(ORG_ID, fresh)

        assert _dump(_find_all(flaky_store)) == _dump(fresh)
        assert _row_count(flaky_store) == 2

    def test_cancel_between_batches_keeps_previous_set(self, flaky_store):
        previous = daily_points([1.0])
        flaky_store.replace_all(ORG_ID, previous)
        cancel = threading.Event()
        flaky_store.after_batch = lambda n: cancel.set()

        with pytest.raises(OperationCancelled):
            flaky_store.replace_all(ORG_ID, daily_points([float(i) for i in range(7)]), cancel_event=cancel)

        assert _dump(_find_all(flaky_store)) == _dump(previous)

    def test_cancel_after_last_batch_prevents_publish(self, flaky_store):
        cancel = threading.Event()
        flaky_store.after_batch = lambda n: cancel.set()

        with pytest.raises(OperationCancelled):
            flaky_store.replace_all(ORG_ID, daily_points([1.0, 2.0]), cancel_event=cancel)

        assert _find_all(flaky_store) == []


class TestDuckDBConcurrentReplace:
    """Tests for recomputes of one organization racing each other."""

    def _race(self, store, point_sets):
        errors = []

        def run(points):
            try:
                store.replace_all(ORG_ID, points)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=run, args=(points,)) for points in point_sets]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        return errors

    def test_concurrent_replace_publishes_one_whole_set(self, tmp_path):
        store = LockstepStorage(db_path=str(tmp_path / "race.duckdb"), batch_size=3)
        first = daily_points([1.0, 2.0, 3.0, 4.0], "feedback_count")
        second = daily_points([10.0, 11.0, 12.0, 13.0], "average_rating")

        errors = self._race(store, [first, second])

        assert errors == []
        visible = _dump(_find_all(store))
        assert visible in (_dump(first), _dump(second))
        assert _row_count(store) == 4

    def test_concurrent_replace_of_same_points_never_duplicates(self, tmp_path):
        store = LockstepStorage(db_path=str(tmp_path / "race.duckdb"), batch_size=3)
        points = daily_points([1.0, 2.0, 3.0, 4.0])

        errors = self._race(store, [points, points])

        assert errors == []
        assert _dump(_find_all(store)) == _dump(points)
        assert _row_count(store) == 4

    def test_versions_are_distinct_per_replace(self, duckdb_store):
        with duckdb_store._get_connection() as conn:
            first = duckdb_store._next_version(conn, ORG_ID)
            second = duckdb_store._next_version(conn, ORG_ID)

        assert second > first

    def test_stale_publish_discards_its_own_rows(self, duckdb_store):
        current = daily_points([1.0, 2.0])
        with duckdb_store._get_connection() as conn:
            stale_version = duckdb_store._next_version(conn, ORG_ID)
        duckdb_store.replace_all(ORG_ID, current)

        with duckdb_store._get_connection() as conn:
            duckdb_store._insert_batch(
                conn, [duckdb_store._to_row(p, stale_version) for p in daily_points([9.0], "feedback_count")]
            )
            published = duckdb_store._publish(conn, ORG_ID, stale_version)

        assert published is False
        assert _dump(_find_all(duckdb_store)) == _dump(current)
        assert _row_count(duckdb_store) == 2


class TestDuckDBFind:
    """Tests for filtered reads."""

    def test_find_range_inclusive_both_ends(self, duckdb_store):
        duckdb_store.replace_all(ORG_ID, daily_points([1.0, 2.0, 3.0, 4.0]))

        found = duckdb_store.find(ORG_ID, DAY + timedelta(days=1), DAY + timedelta(days=2), Granularity.DAILY)

        assert [p.value for p in found] == [2.0, 3.0]

    def test_find_ordered_by_timestamp(self, duckdb_store):
        points = daily_points([3.0, 1.0, 2.0])
        duckdb_store.replace_all(ORG_ID, list(reversed(points)))

        assert [p.timestamp for p in _find_all(duckdb_store)] == [p.timestamp for p in points]

    def test_find_filters_metric_types(self, duckdb_store):
        duckdb_store.replace_all(
            ORG_ID,
            [make_point("average_rating"), make_point("feedback_count"), make_point("survey_responses")],
        )

        found = _find_all(duckdb_store, metric_types=["average_rating", "survey_responses"])

        assert {p.metric_type for p in found} == {"average_rating", "survey_responses"}

    def test_find_filters_product_and_question(self, duckdb_store):
        duckdb_store.replace_all(
            ORG_ID,
            [
                make_point(product_id="p-a", question_id="q-1"),
                make_point(product_id="p-a", question_id="q-2"),
                make_point(product_id="p-b", question_id="q-1"),
            ],
        )

        found = _find_all(duckdb_store, product_id="p-a", question_id="q-1")

        assert [(p.product_id, p.question_id) for p in found] == [("p-a", "q-1")]

    def test_find_filters_granularity(self, duckdb_store):
        duckdb_store.replace_all(
            ORG_ID,
            [make_point(), make_point(granularity=Granularity.HOURLY, timestamp=DAY + timedelta(hours=3))],
        )

        assert len(_find_all(duckdb_store)) == 1

    def test_find_returns_naive_timestamps(self, duckdb_store):
        duckdb_store.replace_all(ORG_ID, [make_point(product_id=PRODUCT_ID)])

        assert _find_all(duckdb_store)[0].timestamp.tzinfo is None


class TestDuckDBRetentionAndListing:
    """Tests for delete_older_than and list_metric_types."""

    def test_delete_older_than_across_organizations(self, duckdb_store):
        duckdb_store.replace_all(ORG_ID, daily_points([1.0, 2.0, 3.0]))
        duckdb_store.replace_all("org-2", [make_point(organization_id="org-2", timestamp=DAY)])

        deleted = duckdb_store.delete_older_than(DAY + timedelta(days=1))

        assert deleted == 2
        assert [p.value for p in _find_all(duckdb_store)] == [2.0, 3.0]
        assert _find_all(duckdb_store, "org-2") == []

    def test_delete_older_than_nothing_to_delete(self, duckdb_store):
        duckdb_store.replace_all(ORG_ID, daily_points([1.0]))

        assert duckdb_store.delete_older_than(DAY - timedelta(days=30)) == 0

    def test_list_metric_types_by_prefix(self, duckdb_store):
        duckdb_store.replace_all(
            ORG_ID,
            [
                make_point("question_q-1"),
                make_point("question_q-1_choice_red"),
                make_point("question_q-1_choice_blue"),
                make_point("question_q-10"),
            ],
        )

        assert duckdb_store.list_metric_types(ORG_ID, "question_q-1_choice_") == [
            "question_q-1_choice_blue",
            "question_q-1_choice_red",
        ]

    def test_clear_for_testing_empties_tables(self, duckdb_store):
        duckdb_store.replace_all(ORG_ID, daily_points([1.0]))

        duckdb_store.clear_for_testing()

        assert _row_count(duckdb_store) == 0

    def test_schema_initialization_idempotent(self, tmp_path):
        path = str(tmp_path / "twice.duckdb")
        DuckDBStorage(db_path=path).replace_all(ORG_ID, daily_points([1.0]))

        reopened = DuckDBStorage(db_path=path)

        assert len(_find_all(reopened)) == 1


def test_storage_error_is_dependency_failure():
    assert issubclass(StorageError, DependencyFailure)


def test_replace_all_accepts_aware_timestamps(duckdb_store):
    from datetime import timezone

    aware = make_point(timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc))
    duckdb_store.replace_all(ORG_ID, [aware])

    assert _find_all(duckdb_store)[0].timestamp == DAY
