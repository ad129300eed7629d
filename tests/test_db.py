"""Tests for the SQLite notification store."""

from datetime import timedelta

import pytest

from conftest import BASE_TIME, make_notification
from tidings.db import NOTIFICATIONS, Store
from tidings.models import ViewCounts


def test_replace_then_load_orders_by_updated_at_desc(store) -> None:
    records = [
        make_notification(2, updated_at=BASE_TIME - timedelta(hours=2)),
        make_notification(3, updated_at=BASE_TIME - timedelta(hours=3)),
        make_notification(1, updated_at=BASE_TIME - timedelta(hours=1)),
    ]

    assert store.replace_all(records) == 3
    assert [n.id for n in store.load_view("inbox")] == [1, 2, 3]


def test_ties_on_updated_at_break_by_id(store) -> None:
    records = [make_notification(i, updated_at=BASE_TIME) for i in (9, 4, 7)]
    store.replace_all(records)

    assert [n.id for n in store.load_view("all")] == [4, 7, 9]


def test_round_trip_keeps_fields(store) -> None:
    original = make_notification(1, author="renovate[bot]", starred=True, state="merged")
    store.replace_all([original])

    loaded = store.get(1)

    assert loaded is not None
    assert loaded.subject == original.subject
    assert loaded.repo == original.repo
    assert loaded.starred is True
    assert loaded.updated_at == original.updated_at
    assert loaded.fetched_at == BASE_TIME


def test_replace_all_drops_previous_rows(store) -> None:
    store.replace_all([make_notification(1), make_notification(2)])
    store.replace_all([make_notification(3)])

    assert [n.id for n in store.load_view("all")] == [3]


def test_replace_all_keeps_the_last_copy_of_a_repeated_id(store) -> None:
    count = store.replace_all([
        make_notification(1, title="old"),
        make_notification(2),
        make_notification(1, title="new"),
    ])

    assert count == 2
    assert sorted(n.id for n in store.load_view("all")) == [1, 2]
    assert store.get(1).subject.title == "new"


def test_archive_patch_moves_between_views(store) -> None:
    store.replace_all([make_notification(1), make_notification(2)])

    assert store.patch(1, archived=True)
    assert [n.id for n in store.load_view("inbox")] == [2]
    assert [n.id for n in store.load_view("archived")] == [1]

    assert store.patch(1, archived=False)
    assert [n.id for n in store.load_view("inbox")] == [1, 2]
    assert store.load_view("archived") == []


def test_starred_view_includes_archived(store) -> None:
    store.replace_all([
        make_notification(1, starred=True, archived=True),
        make_notification(2, starred=True),
        make_notification(3),
    ])

    assert [n.id for n in store.load_view("starred")] == [1, 2]


def test_muted_notifications_leave_the_inbox(store) -> None:
    store.replace_all([make_notification(1), make_notification(2)])
    store.patch(2, muted=True)

    assert [n.id for n in store.load_view("inbox")] == [1]
    assert store.counts() == ViewCounts(inbox=1, starred=0, archived=0)


def test_patch_missing_id_is_a_noop(store) -> None:
    store.replace_all([make_notification(1)])

    assert store.patch(42, starred=True) is False
    assert store.get(42) is None


def test_patch_rejects_other_fields(store) -> None:
    store.replace_all([make_notification(1)])

    with pytest.raises(ValueError):
        store.patch(1, reason="mention")


def test_unknown_view_is_rejected(store) -> None:
    with pytest.raises(ValueError):
        store.load_view("snoozed")


def test_counts(store) -> None:
    store.replace_all([
        make_notification(1),
        make_notification(2, starred=True),
        make_notification(3, archived=True, starred=True),
    ])

    assert store.counts() == ViewCounts(inbox=2, starred=2, archived=1)


def test_staleness_lifecycle(store, clock) -> None:
    assert store.is_stale()
    assert store.last_sync_time() is None

    store.replace_all([make_notification(1)])
    assert not store.is_stale()
    assert store.last_sync_time() == BASE_TIME

    clock.advance(minutes=4, seconds=59)
    assert not store.is_stale()

    clock.advance(seconds=2)
    assert store.is_stale()
    assert not store.is_stale(ttl=timedelta(minutes=10))


def test_sync_error_keeps_last_sync(store, clock) -> None:
    store.replace_all([make_notification(1)])
    clock.advance(minutes=10)

    store.mark_sync_error(NOTIFICATIONS, "Service busy")

    status = store.sync_status()
    assert status.error == "Service busy"
    assert status.last_sync == BASE_TIME
    assert store.is_stale()


def test_sync_error_before_any_sync(store) -> None:
    store.mark_sync_error(NOTIFICATIONS, "Unauthorized")

    assert store.last_sync_time() is None
    assert store.sync_status().error == "Unauthorized"


def test_successful_sync_clears_error(store) -> None:
    store.mark_sync_error(NOTIFICATIONS, "boom")
    store.replace_all([])

    assert store.sync_status().error is None


def test_upsert_counts_inserts_and_updates(store) -> None:
    store.replace_all([make_notification(1)])

    inserted, updated = store.upsert([make_notification(1, title="Renamed"), make_notification(2)])

    assert (inserted, updated) == (1, 1)
    assert store.get(1).subject.title == "Renamed"
    assert store.upsert([]) == (0, 0)


def test_facets_group_inbox_only(store) -> None:
    store.replace_all([
        make_notification(1, repo="acme/api", reason="mention"),
        make_notification(2, repo="acme/api", reason="subscribed", author="dependabot[bot]", unread=False),
        make_notification(3, repo="acme/web", subject_type="Issue", state="closed"),
        make_notification(4, repo="octobox/octobox"),
        make_notification(5, repo="zzz/archived", archived=True),
    ])

    facets = store.facets()

    assert facets.owners == {"acme": 3, "octobox": 1}
    assert list(facets.owners) == ["acme", "octobox"]
    assert facets.repos == {"acme/api": 2, "acme/web": 1, "octobox/octobox": 1}
    assert facets.repos_by_owner == {"acme": ["api", "web"], "octobox": ["octobox"]}
    assert facets.types == {"PullRequest": 3, "Issue": 1}
    assert facets.states == {"open": 3, "closed": 1}
    assert facets.reasons == {"mention": 3, "subscribed": 1}
    assert (facets.unread, facets.read) == (3, 1)
    assert (facets.bots, facets.humans) == (1, 3)


def test_empty_store_facets(store) -> None:
    assert store.facets().empty
    assert store.counts() == ViewCounts()


def test_store_reopens_existing_database(tmp_path, clock) -> None:
    path = tmp_path / "cache.db"
    Store(path, clock=clock).replace_all([make_notification(1)])

    assert Store(path, clock=clock).get(1) is not None
