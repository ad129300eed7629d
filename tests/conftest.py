"""Pytest fixtures for tidings."""

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from tidings.db import Store
from tidings.errors import RemoteError
from tidings.models import Notification, PinnedSearch, Repo, Subject, UserProfile
from tidings.tasks import TaskRunner

BASE_TIME = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable UTC clock for staleness tests."""

    def __init__(self, now: datetime = BASE_TIME) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeRemote:
    """In-memory stand-in for RemoteClient that records every call."""

    def __init__(self, payloads: list[dict[str, Any]] | None = None) -> None:
        self.payloads = payloads or []
        self.pinned: list[PinnedSearch] = []
        self.calls: list[tuple[str, Any]] = []
        self.failures: dict[str, Exception] = {}
        self.syncing_checks: list[bool] = []

    def _record(self, name: str, arg: Any = None) -> None:
        self.calls.append((name, arg))
        if name in self.failures:
            raise self.failures[name]

    def fetch_all(self, **kwargs: Any) -> list[dict[str, Any]]:
        self._record("fetch_all")
        return list(self.payloads)

    def pinned_searches(self) -> list[PinnedSearch]:
        self._record("pinned_searches")
        return list(self.pinned)

    def trigger_sync(self) -> None:
        self._record("trigger_sync")

    def is_syncing(self) -> bool:
        self._record("is_syncing")
        if self.syncing_checks:
            return self.syncing_checks.pop(0)
        return False

    def star(self, notification_id: int) -> None:
        self._record("star", notification_id)

    def archive(self, ids: list[int]) -> None:
        self._record("archive", ids)

    def unarchive(self, ids: list[int]) -> None:
        self._record("unarchive", ids)

    def mute(self, ids: list[int]) -> None:
        self._record("mute", ids)

    def mark_read(self, ids: list[int]) -> None:
        self._record("mark_read", ids)

    def user_profile(self) -> UserProfile:
        self._record("user_profile")
        return UserProfile(id=1, login="octocat")

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]


def make_notification(
    id: int,
    title: str = "Fix the flaky test",
    repo: str = "octobox/octobox",
    subject_type: str = "PullRequest",
    state: str | None = "open",
    reason: str = "mention",
    author: str | None = "andrew",
    unread: bool = True,
    archived: bool = False,
    starred: bool = False,
    muted: bool = False,
    updated_at: datetime | None = None,
) -> Notification:
    owner = repo.split("/")[0]
    return Notification(
        id=id,
        github_id=str(1000 + id),
        reason=reason,
        unread=unread,
        archived=archived,
        starred=starred,
        muted=muted,
        web_url=f"https://github.com/{repo}/pull/{id}",
        subject=Subject(title=title, type=subject_type, state=state, author=author),
        repo=Repo(id=1, name=repo, owner=owner),
        updated_at=updated_at or BASE_TIME - timedelta(hours=id),
    )


def make_payload(id: int, **overrides: Any) -> dict[str, Any]:
    """A remote notification payload, as the list endpoint returns it."""
    payload = {
        "id": id,
        "github_id": 1000 + id,
        "reason": "mention",
        "unread": True,
        "archived": False,
        "starred": False,
        "muted": False,
        "url": f"https://api.github.com/notifications/threads/{id}",
        "web_url": f"https://github.com/octobox/octobox/pull/{id}",
        "subject": {"title": f"Notification {id}", "type": "PullRequest", "state": "open", "author": "andrew"},
        "repo": {"id": 1, "name": "octobox/octobox", "owner": "octobox", "repo_url": "https://github.com/octobox/octobox"},
        "created_at": "2024-05-01T10:00:00Z",
        "updated_at": f"2024-05-{id % 28 + 1:02d}T10:00:00Z",
        "last_read_at": None,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(tmp_path, clock) -> Store:
    return Store(tmp_path / "cache.db", clock=clock)


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def runner() -> TaskRunner:
    return TaskRunner(inline=True)


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path, monkeypatch) -> None:
    """Keep config, token and cache lookups inside the test's tmp dir."""
    monkeypatch.setenv("TIDINGS_HOME", str(tmp_path / "home"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.delenv("TIDINGS_API_TOKEN", raising=False)
    monkeypatch.delenv("TIDINGS_URL", raising=False)


def remote_failure(message: str = "boom") -> RemoteError:
    return RemoteError(message, 500)
