"""
Tidings: local-first notification triage.

A terminal-side companion for a remote notification inbox that provides:
- A local SQLite mirror of the notification feed
- Instant search with a small query language
- Optimistic star/archive/mute/read with background reconciliation
"""

__version__ = "0.1.0"
