"""
CLI for Tidings.

Minimal CLI using stdlib argument handling for fast startup.
Subcommands are imported lazily to avoid startup overhead.

Usage:
    tidings list                    # Show the cached inbox
    tidings sync                    # Full resync with the remote service
    tidings star 1234               # Toggle a star (optimistic)
    tidings --help                  # Show help
"""

import sys


def print_help() -> None:
    """Print help message."""
    print("""tidings - local-first notification triage

Usage:
    tidings list [--view V] [query]   List cached notifications (inbox, starred, archived, all)
    tidings find <query>              Search every cached notification

Commands:
    tidings pinned [name]             Show pinned searches, or the matches for one
    tidings sync                      Trigger a remote sync, wait for it, refetch
    tidings refresh                   Refetch without triggering a remote sync
    tidings star <id>                 Toggle star
    tidings archive <id>              Archive
    tidings unarchive <id>            Move back to the inbox
    tidings mute <id>                 Mute (also archives)
    tidings read <id>                 Mark as read
    tidings archive-all <query>       Archive every inbox match
    tidings unarchive-all <query>     Unarchive every archived match
    tidings facets                    Show inbox facets (owners, repos, types...)
    tidings status                    Show counts and last sync
    tidings health                    Check store, token and remote service
    tidings whoami                    Show the authenticated user
    tidings login                     Save an API token

Options:
    tidings --help, -h                Show this help
    tidings --version, -v             Show version

Query syntax:
    free text plus key:value operators, e.g.
    repo:octobox/octobox is:unread type:pr -reason:subscribed

Changes are applied to the local cache first and sent in the background.
If the remote call fails the change is rolled back.""")


def print_version() -> None:
    """Print version."""
    from tidings import __version__
    print(f"tidings {__version__}")


def _parse_id(args: list[str], command: str) -> int | None:
    if not args:
        print(f"Usage: tidings {command} <id>", file=sys.stderr)
        return None
    try:
        return int(args[0])
    except ValueError:
        print(f"Error: Not a notification id: {args[0]}", file=sys.stderr)
        return None


def _settle(app, label: str) -> int:
    """Wait for background calls and report a rollback, if any."""
    if not app.wait(timeout=120):
        print("Error: Timed out waiting for the remote service", file=sys.stderr)
        return 1
    if app.rollbacks:
        print(f"Rolled back {label}: {app.state.error}", file=sys.stderr)
        return 1
    return 0


def cmd_list(args: list[str]) -> int:
    """List cached notifications for one view, optionally filtered."""
    from tidings.db import VIEWS, Store
    from tidings.filters import apply
    from tidings.formatting import Colors, c, format_notifications

    view = "inbox"
    terms = []

    i = 0
    while i < len(args):
        arg = args[i]
        if arg in ("--view", "-V") and i + 1 < len(args):
            view = args[i + 1]
            i += 2
        else:
            terms.append(arg)
            i += 1

    if view not in VIEWS:
        print(f"Error: Unknown view '{view}' (choose from {', '.join(VIEWS)})", file=sys.stderr)
        return 1

    try:
        store = Store()
        records = apply(store.load_view(view), query=" ".join(terms))
        print(format_notifications(records, header=view.upper()))
        if store.last_sync_time() is None:
            print(c("\nCache is empty. Run 'tidings sync' first.", Colors.DIM))
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_find(args: list[str]) -> int:
    """Search every cached notification."""
    if not args:
        print("Usage: tidings find <query>", file=sys.stderr)
        return 1
    return cmd_list(["--view", "all", *args])


def cmd_pinned(args: list[str]) -> int:
    """Show pinned searches with inbox counts, or run one of them."""
    from tidings.config import load_api_token, load_config
    from tidings.db import Store
    from tidings.filters import apply
    from tidings.formatting import format_notifications, format_pinned
    from tidings.remote import RemoteClient

    config = load_config()
    token = load_api_token(config)
    if not token:
        print("Error: No API token. Run 'tidings login' first.", file=sys.stderr)
        return 1

    try:
        pinned = RemoteClient.from_config(config, token).pinned_searches()
        inbox = Store().load_view("inbox")

        if not args:
            counts = {p.name: len(apply(inbox, query=p.query)) for p in pinned}
            print(format_pinned(pinned, counts))
            return 0

        name = " ".join(args)
        for search in pinned:
            if search.name.lower() == name.lower():
                print(format_notifications(apply(inbox, query=search.query), header=search.name))
                return 0
        print(f"Error: No pinned search named '{name}'", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_sync(trigger: bool = True) -> int:
    """Resync the cache (blocking)."""
    from tidings.app import App

    try:
        app = App.from_config()
        label = "Syncing" if trigger else "Refreshing"
        print(f"{label}...")
        result = app.coordinator.resync(trigger=trigger)
        print(f"Done. {result.count} notifications cached, {len(result.pinned)} pinned searches.")
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_action(command: str, args: list[str]) -> int:
    """Run a single-notification action through the controller."""
    from tidings.app import App
    from tidings.state import MarkRead, Mute, SelectId, SwitchView, ToggleArchive, ToggleStar, selected

    notification_id = _parse_id(args, command)
    if notification_id is None:
        return 1

    app = None
    try:
        app = App.from_config()
        app.dispatch(SwitchView(view="all"))
        app.dispatch(SelectId(notification_id=notification_id))
        target = selected(app.state)
        if target is None or target.id != notification_id:
            print(f"Not cached: {notification_id} (run 'tidings sync')", file=sys.stderr)
            return 1

        if command == "star":
            event = ToggleStar()
        elif command == "archive":
            if target.archived:
                print(f"Already archived: {notification_id}")
                return 0
            event = ToggleArchive()
        elif command == "unarchive":
            if not target.archived:
                print(f"Not archived: {notification_id}")
                return 0
            event = ToggleArchive()
        elif command == "mute":
            event = Mute()
        else:
            if not target.unread:
                print(f"Already read: {notification_id}")
                return 0
            event = MarkRead()

        app.dispatch(event)
        status = _settle(app, command)
        if status == 0:
            print(f"{command.capitalize()}: {notification_id}")
        return status
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        if app is not None:
            app.close()


def cmd_bulk(command: str, args: list[str]) -> int:
    """Archive or unarchive every match of a query."""
    from tidings.app import App
    from tidings.state import ArchiveAll, SearchInput, SwitchView, UnarchiveAll, visible

    if not args:
        print(f"Usage: tidings {command} <query>", file=sys.stderr)
        return 1

    archiving = command == "archive-all"

    app = None
    try:
        app = App.from_config()
        app.dispatch(SwitchView(view="inbox" if archiving else "archived"))
        app.dispatch(SearchInput(text=" ".join(args)))
        count = len(visible(app.state))
        if not count:
            print("No matching notifications.")
            return 0

        app.dispatch(ArchiveAll() if archiving else UnarchiveAll())
        status = _settle(app, command)
        if status == 0:
            print(f"{'Archived' if archiving else 'Unarchived'} {count} notification(s)")
        return status
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        if app is not None:
            app.close()


def cmd_facets() -> int:
    """Show inbox facets."""
    from tidings.db import Store
    from tidings.formatting import format_facets

    try:
        print(format_facets(Store().facets()))
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_status() -> int:
    """Show view counts and the last sync."""
    from tidings.db import Store
    from tidings.formatting import format_status

    try:
        store = Store()
        print(format_status(store.counts(), store.sync_status(), store.is_stale()))
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_health() -> int:
    """Run health checks."""
    from tidings.health import format_health_report, run_health_check

    checks = run_health_check()
    print(format_health_report(checks))
    return 0 if all(status != "✗" for status, _ in checks.values()) else 1


def cmd_whoami() -> int:
    """Show the authenticated user."""
    from tidings.config import load_api_token, load_config
    from tidings.remote import RemoteClient

    config = load_config()
    token = load_api_token(config)
    if not token:
        print("Error: No API token. Run 'tidings login' first.", file=sys.stderr)
        return 1

    try:
        profile = RemoteClient.from_config(config, token).user_profile()
        print(f"{profile.login or 'unknown'} @ {config['remote']['base_url']}")
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_login() -> int:
    """Prompt for an API token, check it, and save it."""
    from getpass import getpass

    from tidings.config import load_config, save_token
    from tidings.remote import RemoteClient

    config = load_config()
    print(f"Get an API token from {config['remote']['base_url']}/settings")
    token = getpass("API token: ").strip()
    if not token:
        print("Error: Empty token", file=sys.stderr)
        return 1

    try:
        profile = RemoteClient.from_config(config, token).user_profile()
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    path = save_token(token)
    print(f"Logged in as {profile.login or 'unknown'}. Token saved to {path}")
    return 0


def main() -> int:
    """Main entry point."""
    args = sys.argv[1:]

    if not args:
        print_help()
        return 0

    first_arg = args[0]

    if first_arg in ("--help", "-h", "help"):
        print_help()
        return 0

    if first_arg in ("--version", "-v", "version"):
        print_version()
        return 0

    from tidings.log import setup_logging
    setup_logging()

    # Subcommands (lazy import to keep startup fast)
    if first_arg == "list":
        return cmd_list(args[1:])

    if first_arg == "find":
        return cmd_find(args[1:])

    if first_arg == "pinned":
        return cmd_pinned(args[1:])

    if first_arg == "sync":
        return cmd_sync(trigger=True)

    if first_arg == "refresh":
        return cmd_sync(trigger=False)

    if first_arg in ("star", "archive", "unarchive", "mute", "read"):
        return cmd_action(first_arg, args[1:])

    if first_arg in ("archive-all", "unarchive-all"):
        return cmd_bulk(first_arg, args[1:])

    if first_arg == "facets":
        return cmd_facets()

    if first_arg == "status":
        return cmd_status()

    if first_arg == "health":
        return cmd_health()

    if first_arg == "whoami":
        return cmd_whoami()

    if first_arg == "login":
        return cmd_login()

    print(f"Error: Unknown command '{first_arg}'. See 'tidings --help'.", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
