"""
Terminal formatting for Tidings.

Plain-text renderings of the notification list, sidebar facets, pinned
searches and sync status, with ANSI colors unless NO_COLOR is set.
"""

import os
from datetime import datetime, timezone

from tidings.models import TYPE_LABELS, Facets, Notification, PinnedSearch, SyncStatus, ViewCounts


# ANSI color codes
class Colors:
    """ANSI color codes for terminal output."""
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"

    BRIGHT_BLACK = "\033[90m"  # Gray
    BRIGHT_YELLOW = "\033[93m"
    BRIGHT_MAGENTA = "\033[95m"
    BRIGHT_CYAN = "\033[96m"

    @classmethod
    def enabled(cls) -> bool:
        """Check if colors should be enabled."""
        if os.environ.get("NO_COLOR"):
            return False
        return True


def c(text: str, *codes: str) -> str:
    """Apply color codes to text if colors are enabled."""
    if not Colors.enabled():
        return text
    return "".join(codes) + text + Colors.RESET


TYPE_COLORS = {
    "PullRequest": Colors.BRIGHT_MAGENTA,
    "Issue": Colors.GREEN,
    "Release": Colors.BRIGHT_CYAN,
    "Commit": Colors.BLUE,
    "Discussion": Colors.YELLOW,
    "CheckSuite": Colors.RED,
}

STATE_COLORS = {
    "open": Colors.GREEN,
    "merged": Colors.MAGENTA,
    "closed": Colors.RED,
}

REASON_ICONS = {
    "assign": "@",
    "author": "A",
    "comment": "C",
    "mention": "M",
    "team_mention": "T",
    "review_requested": "R",
    "state_change": "S",
    "subscribed": "W",
    "security_alert": "!",
    "ci_activity": "B",
    "manual": "+",
}


def type_label(subject_type: str | None) -> str:
    if not subject_type:
        return "??"
    return TYPE_LABELS.get(subject_type, subject_type[:2].upper())


def format_age(when: datetime | None, now: datetime | None = None) -> str:
    """Compact relative age: 45s, 12m, 3h, 5d, 2w, 4mo, 1y."""
    if when is None:
        return "-"
    now = now or datetime.now(timezone.utc)
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)

    seconds = max(int((now - when).total_seconds()), 0)
    for limit, size, unit in (
        (60, 1, "s"),
        (3600, 60, "m"),
        (86400, 3600, "h"),
        (86400 * 14, 86400, "d"),
        (86400 * 60, 86400 * 7, "w"),
        (86400 * 365, 86400 * 30, "mo"),
    ):
        if seconds < limit:
            return f"{seconds // size}{unit}"
    return f"{seconds // (86400 * 365)}y"


def format_notification(notification: Notification, now: datetime | None = None) -> str:
    """One list row: id, markers, type, age, repo and title."""
    subject = notification.subject
    markers = (
        (c("*", Colors.BRIGHT_YELLOW) if notification.starred else " ")
        + (c("●", Colors.BRIGHT_CYAN) if notification.unread else " ")
        + (c("m", Colors.DIM) if notification.muted else " ")
    )
    kind = c(f"{type_label(subject.type):2}", TYPE_COLORS.get(subject.type or "", ""))
    reason = c(REASON_ICONS.get(notification.reason or "", " "), Colors.DIM)
    age = c(f"{format_age(notification.updated_at, now):>4}", Colors.DIM)
    repo = c(notification.repo.name or "", Colors.BRIGHT_BLACK)
    title = (subject.title or "(no title)")[:60]
    if subject.state:
        title += " " + c(f"[{subject.state}]", STATE_COLORS.get(subject.state, Colors.DIM))

    return f"{notification.id:>8}  {markers} {kind} {reason} {age}  {repo}  {title}"


def format_notifications(
    notifications: list[Notification],
    header: str = "INBOX",
    now: datetime | None = None,
) -> str:
    if not notifications:
        return c("No notifications.", Colors.DIM)

    lines = [c(f"━━━ {header} ({len(notifications)}) ━━━", Colors.BOLD, Colors.BLUE), ""]
    lines += [format_notification(n, now) for n in notifications]
    return "\n".join(lines)


def format_counts(counts: ViewCounts) -> str:
    return "  ".join(
        f"{name.capitalize()} {c(str(getattr(counts, name)), Colors.BOLD)}"
        for name in ("inbox", "starred", "archived")
    )


def format_facets(facets: Facets) -> str:
    """Sidebar facet groups as an indented tree."""
    if facets.empty:
        return c("Inbox is empty.", Colors.DIM)

    lines = [c("━━━ INBOX FACETS ━━━", Colors.BOLD, Colors.BLUE), ""]
    lines.append(f"Unread {facets.unread}  Read {facets.read}")
    lines.append(f"Humans {facets.humans}  Bots {facets.bots}")

    groups = (
        ("Status", facets.states),
        ("Type", facets.types),
        ("Reason", facets.reasons),
    )
    for title, values in groups:
        if not values:
            continue
        lines.append("")
        lines.append(c(title, Colors.BOLD))
        for value, count in values.items():
            lines.append(f"  {value:24} {count:>5}")

    if facets.owners:
        lines.append("")
        lines.append(c("Owners", Colors.BOLD))
        for owner, count in facets.owners.items():
            lines.append(f"  {owner:24} {count:>5}")
            for short in facets.repos_by_owner.get(owner, []):
                repo_count = facets.repos.get(f"{owner}/{short}", 0)
                lines.append(c(f"    {short:22} {repo_count:>5}", Colors.DIM))

    return "\n".join(lines)


def format_pinned(pinned: list[PinnedSearch], counts: dict[str, int] | None = None) -> str:
    if not pinned:
        return c("No pinned searches.", Colors.DIM)

    counts = counts or {}
    lines = [c("━━━ PINNED SEARCHES ━━━", Colors.BOLD, Colors.BLUE), ""]
    for search in pinned:
        count = counts.get(search.name, search.count)
        badge = f"{count:>5}" if count is not None else "    -"
        lines.append(f"{badge}  {c(search.name, Colors.BOLD)}  {c(search.query, Colors.DIM)}")
    return "\n".join(lines)


def format_status(
    counts: ViewCounts,
    status: SyncStatus | None,
    stale: bool,
    now: datetime | None = None,
) -> str:
    lines = [format_counts(counts)]
    if status is None or status.last_sync is None:
        lines.append(c("Never synced", Colors.YELLOW))
    else:
        synced = f"Last sync {format_age(status.last_sync, now)} ago"
        lines.append(c(synced + (" (stale)" if stale else ""), Colors.YELLOW if stale else Colors.GREEN))
    if status is not None and status.error:
        lines.append(c(f"Last error: {status.error}", Colors.RED))
    return "\n".join(lines)
