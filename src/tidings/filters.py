"""
Filter engine for Tidings.

Narrows an ordered list of notifications by a sidebar selection and/or a
parsed search query. Runs on every keystroke and every redraw, so it is a
pure function of its inputs: no I/O, no caching of records, and the input
order is always preserved.
"""

from typing import Callable, Iterable

from pydantic import BaseModel, ConfigDict, field_validator

from tidings.models import Notification
from tidings.query import Query, parse

Predicate = Callable[[Notification], bool]

TYPE_ALIASES = {
    "pr": "PullRequest",
    "pullrequest": "PullRequest",
    "pull_request": "PullRequest",
    "issue": "Issue",
    "release": "Release",
    "commit": "Commit",
    "discussion": "Discussion",
    "checksuite": "CheckSuite",
    "check_suite": "CheckSuite",
}

# Sidebar selections that narrow by a single field value
STRUCTURAL_FIELDS: dict[str, Callable[[Notification], object]] = {
    "owner": lambda n: n.repo.owner,
    "repo": lambda n: n.repo.name,
    "reason": lambda n: n.reason,
    "subject_type": lambda n: n.subject.type,
    "subject_state": lambda n: n.subject.state,
    "unread": lambda n: n.unread,
    "bot": lambda n: n.is_bot,
}


def classify_type(value: str) -> str:
    """Map a user-typed subject type (pr, issue, check_suite...) to its canonical name."""
    return TYPE_ALIASES.get(value.lower(), value)


def normalize_reason(value: str | None) -> str | None:
    if value is None:
        return None
    return value.lower().replace(" ", "_")


def _lower(value: str | None) -> str | None:
    return value.lower() if value is not None else None


class StructuralFilter(BaseModel):
    """A sidebar selection: keep records whose `kind` field equals `value`."""

    model_config = ConfigDict(frozen=True)

    kind: str
    value: str | bool

    @field_validator("kind")
    @classmethod
    def _known_kind(cls, kind: str) -> str:
        if kind not in STRUCTURAL_FIELDS:
            raise ValueError(f"Unknown structural filter: {kind}")
        return kind

    def predicate(self) -> Predicate:
        getter = STRUCTURAL_FIELDS[self.kind]
        value = self.value
        return lambda n: getter(n) == value


def resolve_flags(query: Query) -> dict[str, bool | None]:
    """
    Resolve the boolean operators of a query.

    `is:` shortcuts win over the direct keys (`is:unread` beats
    `unread:false`). `is:read` and `is:human` are the negated forms.
    None means "don't filter on this field".
    """
    shortcuts = {v.lower() for v in query.values("is")}

    def direct(key: str) -> bool | None:
        values = query.values(key)
        if not values:
            return None
        return values[0].lower() == "true"

    if "read" in shortcuts:
        unread = False
    elif "unread" in shortcuts:
        unread = True
    else:
        unread = direct("unread")

    if "human" in shortcuts:
        bot = False
    elif "bot" in shortcuts:
        bot = True
    else:
        bot = direct("bot")

    return {
        "unread": unread,
        "starred": True if "starred" in shortcuts else direct("starred"),
        "archived": True if "archived" in shortcuts else direct("archived"),
        "muted": True if "muted" in shortcuts else direct("muted"),
        "bot": bot,
        "inbox": direct("inbox"),
    }


def _inclusion_sets(query: Query, negated: bool) -> list[tuple[Callable[[Notification], str | None], set[str]]]:
    """(field getter, normalized value set) pairs for repo/owner/type/reason/state."""
    prefix = "-" if negated else ""
    owner_keys = [f"{prefix}owner", f"{prefix}org", f"{prefix}user"]

    candidates = [
        (lambda n: _lower(n.repo.name), {v.lower() for v in query.values(f"{prefix}repo")}),
        (lambda n: _lower(n.repo.owner), {v.lower() for v in query.first_of(*owner_keys)}),
        (lambda n: _lower(n.subject.type), {classify_type(v).lower() for v in query.values(f"{prefix}type")}),
        (lambda n: normalize_reason(n.reason), {normalize_reason(v) for v in query.values(f"{prefix}reason")}),
        (lambda n: _lower(n.subject.state), {v.lower() for v in query.values(f"{prefix}state")}),
    ]
    return [(getter, values) for getter, values in candidates if values]


def compile_query(query: Query) -> list[Predicate]:
    """Turn a parsed query into a list of predicates (all must hold)."""
    predicates: list[Predicate] = []

    # Free text
    if query.free_text:
        needle = query.free_text.lower()
        predicates.append(lambda n: needle in n.search_text.lower())

    # Inclusion: field must be one of the values
    for getter, values in _inclusion_sets(query, negated=False):
        predicates.append(lambda n, g=getter, v=values: g(n) in v)

    # is:pr / is:issue narrow the subject type as well
    shortcuts = {v.lower() for v in query.values("is")}
    if shortcuts & {"pr", "pullrequest"}:
        predicates.append(lambda n: n.subject.type == "PullRequest")
    if "issue" in shortcuts:
        predicates.append(lambda n: n.subject.type == "Issue")

    # Exclusion: field must not be one of the values
    for getter, values in _inclusion_sets(query, negated=True):
        predicates.append(lambda n, g=getter, v=values: g(n) not in v)

    # Booleans
    flags = resolve_flags(query)
    for name in ("unread", "starred", "archived", "muted"):
        if (wanted := flags[name]) is not None:
            predicates.append(lambda n, f=name, w=wanted: getattr(n, f) == w)
    if (wanted_bot := flags["bot"]) is not None:
        predicates.append(lambda n: n.is_bot == wanted_bot)

    # Inbox: neither archived nor muted (or the complement)
    if (inbox := flags["inbox"]) is not None:
        predicates.append(lambda n: n.in_inbox == inbox)

    return predicates


def apply(
    records: Iterable[Notification],
    structural: StructuralFilter | None = None,
    query: Query | str | None = None,
) -> list[Notification]:
    """
    Filter records, keeping their order.

    An empty query (or none at all) with no structural filter returns the
    input unchanged.
    """
    if isinstance(query, str):
        query = parse(query)

    predicates: list[Predicate] = []
    if structural is not None:
        predicates.append(structural.predicate())
    if query is not None:
        predicates.extend(compile_query(query))

    if not predicates:
        return list(records)
    return [n for n in records if all(p(n) for p in predicates)]


def matches(record: Notification, query: Query | str) -> bool:
    """True if a single record passes the query."""
    return bool(apply([record], query=query))
