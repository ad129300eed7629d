"""
Data models for Tidings.

Pydantic models for everything that crosses a boundary: remote payloads,
store rows, and the derived summaries shown in the sidebar.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from tidings.errors import PayloadError

# Known subject types and their short labels
TYPE_LABELS = {
    "PullRequest": "PR",
    "Issue": "IS",
    "Release": "RL",
    "Commit": "CM",
    "Discussion": "DS",
    "CheckSuite": "CI",
}

# Columns that may be changed locally by user actions
PATCHABLE_FIELDS = ("unread", "archived", "starred", "muted")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    """Normalize a timestamp to a UTC ISO 8601 string (naive means UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


class Subject(BaseModel):
    """The thing a notification is about (PR, issue, release...)."""

    model_config = ConfigDict(frozen=True)

    title: str | None = None
    url: str | None = None
    type: str | None = None
    state: str | None = None
    author: str | None = None


class Repo(BaseModel):
    """Repository a notification belongs to. `name` is the full owner/name."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    name: str | None = None
    owner: str | None = None
    url: str | None = None


class Notification(BaseModel):
    """A single notification as mirrored in the local store."""

    model_config = ConfigDict(frozen=True)

    id: int
    github_id: str | None = None
    reason: str | None = None
    unread: bool = True
    archived: bool = False
    starred: bool = False
    muted: bool = False
    url: str | None = None
    web_url: str | None = None
    subject: Subject = Field(default_factory=Subject)
    repo: Repo = Field(default_factory=Repo)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_read_at: datetime | None = None
    fetched_at: datetime | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Notification":
        """Build a record from a remote payload. Raises PayloadError if malformed."""
        if not isinstance(data, dict):
            raise PayloadError(f"Expected notification object, got {type(data).__name__}")

        subject = data.get("subject") or {}
        repo = data.get("repo") or {}
        github_id = data.get("github_id")

        try:
            return cls(
                id=data.get("id"),
                github_id=str(github_id) if github_id is not None else None,
                reason=data.get("reason"),
                unread=_flag(data.get("unread"), True),
                archived=_flag(data.get("archived"), False),
                starred=_flag(data.get("starred"), False),
                muted=_flag(data.get("muted"), False),
                url=data.get("url"),
                web_url=data.get("web_url"),
                subject=Subject(
                    title=subject.get("title"),
                    url=subject.get("url"),
                    type=subject.get("type"),
                    state=subject.get("state"),
                    author=subject.get("author"),
                ),
                repo=Repo(
                    id=repo.get("id"),
                    name=repo.get("name"),
                    owner=repo.get("owner"),
                    url=repo.get("repo_url"),
                ),
                created_at=data.get("created_at"),
                updated_at=data.get("updated_at"),
                last_read_at=data.get("last_read_at"),
                fetched_at=utcnow(),
            )
        except (ValidationError, AttributeError) as e:
            raise PayloadError(f"Malformed notification {data.get('id')!r}: {e}") from e

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Notification":
        """Build a record from a flat store row."""
        return cls(
            id=row["id"],
            github_id=row.get("github_id"),
            reason=row.get("reason"),
            unread=bool(row.get("unread")),
            archived=bool(row.get("archived")),
            starred=bool(row.get("starred")),
            muted=bool(row.get("muted")),
            url=row.get("url"),
            web_url=row.get("web_url"),
            subject=Subject(
                title=row.get("subject_title"),
                url=row.get("subject_url"),
                type=row.get("subject_type"),
                state=row.get("subject_state"),
                author=row.get("subject_author"),
            ),
            repo=Repo(
                id=row.get("repo_id"),
                name=row.get("repo_name"),
                owner=row.get("repo_owner"),
                url=row.get("repo_url"),
            ),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
            last_read_at=row.get("last_read_at"),
            fetched_at=row.get("fetched_at"),
        )

    def to_row(self, fetched_at: datetime | None = None) -> dict[str, Any]:
        """Flatten for storage. `fetched_at` is restamped on every write."""
        return {
            "id": self.id,
            "github_id": self.github_id,
            "reason": self.reason,
            "unread": int(self.unread),
            "archived": int(self.archived),
            "starred": int(self.starred),
            "muted": int(self.muted),
            "url": self.url,
            "web_url": self.web_url,
            "subject_title": self.subject.title,
            "subject_url": self.subject.url,
            "subject_type": self.subject.type,
            "subject_state": self.subject.state,
            "subject_author": self.subject.author,
            "repo_id": self.repo.id,
            "repo_name": self.repo.name,
            "repo_owner": self.repo.owner,
            "repo_url": self.repo.url,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
            "last_read_at": to_iso(self.last_read_at),
            "fetched_at": to_iso(fetched_at or utcnow()),
        }

    @property
    def search_text(self) -> str:
        """Haystack for free-text search: title, repo, owner, reason."""
        parts = [self.subject.title, self.repo.name, self.repo.owner, self.reason]
        return " ".join(p for p in parts if p)

    @property
    def is_bot(self) -> bool:
        """
        True when the subject author looks like a bot account.

        Only the subject author counts; a notification with no author is
        treated as human.
        """
        author = (self.subject.author or "").lower()
        if not author:
            return False
        return "[bot]" in author or author.endswith("-bot")

    @property
    def in_inbox(self) -> bool:
        return not self.archived and not self.muted

    def flags(self) -> dict[str, bool]:
        """Current values of the locally patchable fields."""
        return {name: getattr(self, name) for name in PATCHABLE_FIELDS}


def _flag(value: Any, default: bool) -> bool:
    """Remote booleans may be null; null means the default."""
    if value is None:
        return default
    return bool(value)


class SyncStatus(BaseModel):
    """Last sync outcome for one logical resource."""

    resource: str
    last_sync: datetime | None = None
    error: str | None = None


class PinnedSearch(BaseModel):
    """A saved query, resolved locally against the inbox."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    name: str
    query: str = ""
    count: int | None = None


class UserProfile(BaseModel):
    """The authenticated user."""

    id: int | None = None
    github_id: int | None = None
    login: str | None = Field(
        default=None, validation_alias=AliasChoices("login", "github_login")
    )


class ViewCounts(BaseModel):
    """Badge counts for the inbox/starred/archived tabs."""

    model_config = ConfigDict(frozen=True)

    inbox: int = 0
    starred: int = 0
    archived: int = 0


class Facets(BaseModel):
    """Grouped counts over the inbox view. Always recomputed, never stored."""

    model_config = ConfigDict(frozen=True)

    owners: dict[str, int] = Field(default_factory=dict)
    repos: dict[str, int] = Field(default_factory=dict)
    repos_by_owner: dict[str, list[str]] = Field(default_factory=dict)
    types: dict[str, int] = Field(default_factory=dict)
    reasons: dict[str, int] = Field(default_factory=dict)
    states: dict[str, int] = Field(default_factory=dict)
    unread: int = 0
    read: int = 0
    bots: int = 0
    humans: int = 0

    @property
    def empty(self) -> bool:
        return self.unread == 0 and self.read == 0
