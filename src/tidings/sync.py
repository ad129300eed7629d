"""
Sync coordinator for Tidings.

Two independent protocols share the store:

Full resync
    trigger the remote sync job -> poll until it settles (bounded) ->
    fetch every page -> replace the cache in one transaction.
    Without the trigger (a "refresh") it is just fetch + replace.

Actions
    star / archive / mute / mark-read are applied to the store first and
    sent to the remote service in the background. If the remote call fails
    the store is patched back to what it was before. No retries: the next
    action or resync is the recovery path.

Background tasks are never cancelled. A refresh racing a slow archive-all
ends with whichever store write lands last.
"""

import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Callable, Iterable

from pydantic import BaseModel, Field

from tidings.db import CACHE_TTL, NOTIFICATIONS, Store
from tidings.errors import AuthenticationError, BusyError, RemoteError
from tidings.models import Facets, Notification, PinnedSearch, ViewCounts
from tidings.remote import RemoteClient
from tidings.tasks import Completion, TaskRunner

logger = logging.getLogger(__name__)

POLL_INTERVAL = 1.0
POLL_ATTEMPTS = 30

SYNC_TASK = "sync"
ACTION_TASK = "action"


class SyncPhase(str, Enum):
    IDLE = "idle"
    TRIGGERING = "triggering"
    POLLING = "polling"
    FETCHING = "fetching"
    REPLACING = "replacing"
    ERROR = "error"


class SyncResult(BaseModel):
    """What a finished resync hands back to the foreground."""

    count: int = 0
    pinned: list[PinnedSearch] = Field(default_factory=list)
    facets: Facets = Field(default_factory=Facets)
    triggered: bool = False
    attempts: int = 0


# User actions that go through optimistic reconciliation
ACTIONS = ("star", "archive", "archive_all", "unarchive_all", "mute", "mark_read")
SINGLE_ACTIONS = ("star", "archive")


@dataclass(frozen=True)
class ActionPlan:
    """
    A user action, computed before anything is written.

    `changes` is applied to the store right away; `previous` holds the
    pre-action values used for rollback.
    """

    action: str
    remote: str
    ids: tuple[int, ...]
    changes: dict[int, dict[str, bool]]
    previous: dict[int, dict[str, bool]]

    @property
    def empty(self) -> bool:
        return not self.ids


def plan_action(action: str, records: Iterable[Notification]) -> ActionPlan:
    """Work out new and old field values for an action on `records`."""
    if action not in ACTIONS:
        raise ValueError(f"Unknown action: {action}")

    records = list(records)
    if action in SINGLE_ACTIONS and len(records) > 1:
        raise ValueError(f"{action} applies to a single notification")

    remote = action
    changes: dict[int, dict[str, bool]] = {}

    for record in records:
        if action == "star":
            changes[record.id] = {"starred": not record.starred}
        elif action == "archive":
            changes[record.id] = {"archived": not record.archived}
            remote = "archive" if not record.archived else "unarchive"
        elif action == "archive_all":
            changes[record.id] = {"archived": True}
            remote = "archive"
        elif action == "unarchive_all":
            changes[record.id] = {"archived": False}
            remote = "unarchive"
        elif action == "mute":
            # The service archives muted threads too
            changes[record.id] = {"muted": True, "archived": True}
        elif action == "mark_read":
            changes[record.id] = {"unread": False}

    previous = {
        record.id: {name: getattr(record, name) for name in changes[record.id]}
        for record in records
    }
    return ActionPlan(
        action=action,
        remote=remote,
        ids=tuple(changes),
        changes=changes,
        previous=previous,
    )


class SyncCoordinator:
    """Drives full resyncs and action reconciliation against one store."""

    def __init__(
        self,
        store: Store,
        client: RemoteClient,
        runner: TaskRunner,
        sleep: Callable[[float], None] = time.sleep,
        poll_interval: float = POLL_INTERVAL,
        poll_attempts: int = POLL_ATTEMPTS,
        ttl: timedelta = CACHE_TTL,
    ):
        self.store = store
        self.client = client
        self.runner = runner
        self.sleep = sleep
        self.poll_interval = poll_interval
        self.poll_attempts = poll_attempts
        self.ttl = ttl
        self.phase = SyncPhase.IDLE
        self.last_error: str | None = None

    @classmethod
    def from_config(
        cls,
        config: dict[str, Any],
        store: Store,
        client: RemoteClient,
        runner: TaskRunner,
    ) -> "SyncCoordinator":
        sync_config = config.get("sync", {})
        return cls(
            store,
            client,
            runner,
            poll_interval=sync_config.get("poll_interval_seconds", POLL_INTERVAL),
            poll_attempts=sync_config.get("poll_attempts", POLL_ATTEMPTS),
            ttl=timedelta(seconds=sync_config.get("cache_ttl_seconds", CACHE_TTL.total_seconds())),
        )

    # Full resync

    def needs_resync(self) -> bool:
        return self.store.is_stale(NOTIFICATIONS, self.ttl)

    def start_resync(self, trigger: bool = True) -> None:
        """Run a resync in the background; the outcome arrives as a Completion."""
        logger.info(f"Starting {'full sync' if trigger else 'refresh'}")
        self.runner.submit(SYNC_TASK, self.resync, trigger)

    def resync(self, trigger: bool = True) -> SyncResult:
        """
        Run the resync protocol to completion (blocking).

        Any failure is recorded against the notifications sync status and
        re-raised; the cached notifications are left as they were.
        """
        attempts = 0
        try:
            if trigger:
                self._set_phase(SyncPhase.TRIGGERING)
                self._trigger()
                self._set_phase(SyncPhase.POLLING)
                attempts = self._wait_for_remote()

            self._set_phase(SyncPhase.FETCHING)
            payloads = self.client.fetch_all()
            pinned = self.client.pinned_searches()
            logger.info(f"Got {len(payloads)} notifications, {len(pinned)} pinned searches")

            self._set_phase(SyncPhase.REPLACING)
            records = [Notification.from_api(payload) for payload in payloads]
            count = self.store.replace_all(records)
            facets = self.store.facets()
        except Exception as e:
            self._set_phase(SyncPhase.ERROR)
            self.last_error = str(e)
            try:
                self.store.mark_sync_error(NOTIFICATIONS, str(e))
            except Exception as store_error:
                logger.warning(f"Could not record sync error: {store_error}")
            logger.error(f"Sync failed: {e}")
            raise
        finally:
            self._set_phase(SyncPhase.IDLE)

        self.last_error = None
        logger.info(f"Sync complete: {count} notifications, {len(facets.owners)} owners")
        return SyncResult(
            count=count,
            pinned=pinned,
            facets=facets,
            triggered=trigger,
            attempts=attempts,
        )

    def _set_phase(self, phase: SyncPhase) -> None:
        if phase != self.phase:
            logger.debug(f"Sync phase: {self.phase.value} -> {phase.value}")
        self.phase = phase

    def _trigger(self) -> None:
        try:
            self.client.trigger_sync()
        except BusyError:
            logger.info("Remote sync already running")
        except AuthenticationError:
            raise
        except RemoteError as e:
            logger.warning(f"Sync trigger failed (may already be syncing): {e}")

    def _wait_for_remote(self) -> int:
        """
        Poll until the remote job is done or we run out of attempts.

        Best effort only: the caller fetches either way, so a remote job
        that outlives the budget just means slightly stale data.
        """
        attempts = 0
        while attempts < self.poll_attempts:
            try:
                if not self.client.is_syncing():
                    break
            except AuthenticationError:
                raise
            except RemoteError as e:
                logger.warning(f"Sync status check failed: {e}")
                break
            logger.info(f"Waiting for remote sync (attempt {attempts + 1})")
            self.sleep(self.poll_interval)
            attempts += 1

        logger.info(f"Remote sync wait done after {attempts} attempts")
        return attempts

    # Actions

    def apply_local(self, changes: dict[int, dict[str, bool]]) -> None:
        for notification_id, fields in changes.items():
            self.store.patch(notification_id, **fields)

    def submit(self, plan: ActionPlan) -> None:
        """Send an action to the remote service in the background."""
        if plan.empty:
            return
        self.runner.submit(ACTION_TASK, self._call_remote, plan, context=plan)

    def perform(self, plan: ActionPlan) -> None:
        """Optimistically apply an action, then reconcile in the background."""
        if plan.empty:
            return
        logger.info(f"{plan.action} on {len(plan.ids)} notification(s)")
        self.apply_local(plan.changes)
        self.submit(plan)

    def _call_remote(self, plan: ActionPlan) -> None:
        method = getattr(self.client, plan.remote)
        if plan.remote == "star":
            # Star is a per-notification toggle on the remote side
            for notification_id in plan.ids:
                method(notification_id)
        else:
            method(list(plan.ids))

    def rollback(self, plan: ActionPlan) -> None:
        logger.warning(f"Rolling back {plan.action} on {len(plan.ids)} notification(s)")
        self.apply_local(plan.previous)

    def settle(self, completion: Completion) -> bool:
        """
        Handle a finished action. Returns True if the store was rolled back.
        """
        plan = completion.context
        if completion.ok or not isinstance(plan, ActionPlan):
            return False
        logger.error(f"{plan.action} failed: {completion.message}")
        self.rollback(plan)
        return True


class ChangeProbe:
    """
    Cheap idle-time check for store changes made behind our back.

    Compares view counts at most once per `interval` seconds; a difference
    means the UI should reload from the store (not resync).
    """

    def __init__(
        self,
        store: Store,
        interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.interval = interval
        self.clock = clock
        self._last_check: float | None = None

    def check(self, known: ViewCounts) -> ViewCounts | None:
        """Return fresh counts if they differ from `known`, else None."""
        now = self.clock()
        if self._last_check is not None and now - self._last_check < self.interval:
            return None
        self._last_check = now

        counts = self.store.counts()
        if counts != known:
            logger.debug(f"Store changed: {known} -> {counts}")
            return counts
        return None
