"""
Health check module for Tidings.

Reports status of the local cache, credentials and the remote service.
"""

from tidings.config import get_db_path, get_token_path, load_api_token, load_config


def check_store() -> tuple[str, str]:
    """Check the local cache."""
    db_path = get_db_path()
    if not db_path.exists():
        return "!", "Not created yet (run 'tidings sync')"

    try:
        from tidings.db import Store
        counts = Store(db_path).counts()
        return "✓", f"OK ({counts.inbox} in inbox, {counts.archived} archived)"
    except Exception as e:
        return "✗", f"Error: {e}"


def check_token() -> tuple[str, str]:
    """Check that an API token is available."""
    if not load_api_token():
        return "✗", "No API token"
    if get_token_path().exists():
        return "✓", "OK (token file)"
    return "✓", "OK"


def check_sync() -> tuple[str, str]:
    """Check the last sync outcome."""
    if not get_db_path().exists():
        return "-", "Never synced"

    try:
        from tidings.db import Store
        store = Store()
        status = store.sync_status()
        if status is None or status.last_sync is None:
            return "!", "Never synced"
        if status.error:
            return "!", f"Last attempt failed: {status.error}"
        if store.is_stale():
            return "!", f"Stale (last sync {status.last_sync:%Y-%m-%d %H:%M} UTC)"
        return "✓", f"OK (last sync {status.last_sync:%Y-%m-%d %H:%M} UTC)"
    except Exception as e:
        return "✗", f"Error: {e}"


def check_remote() -> tuple[str, str]:
    """Check the remote service with the configured token."""
    config = load_config()
    token = load_api_token(config)
    if not token:
        return "-", "Skipped (no token)"

    try:
        from tidings.remote import RemoteClient
        profile = RemoteClient.from_config(config, token).user_profile()
        return "✓", f"OK ({profile.login or 'unknown user'} @ {config['remote']['base_url']})"
    except Exception as e:
        return "✗", f"Error: {e}"


def run_health_check() -> dict[str, tuple[str, str]]:
    """Run all health checks."""
    return {
        "Store": check_store(),
        "Token": check_token(),
        "Sync": check_sync(),
        "Remote": check_remote(),
    }


def format_health_report(checks: dict[str, tuple[str, str]]) -> str:
    """Format health check results."""
    lines = ["Tidings Health Check", "-" * 40]

    for name, (status, message) in checks.items():
        lines.append(f"{status} {name}: {message}")

    return "\n".join(lines)
