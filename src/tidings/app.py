"""
Application controller for Tidings.

Owns the state and runs the commands the reducer emits. The foreground
loop calls pump() once per frame: it drains background completions, turns
them into events, and (when idle) checks the store for outside changes.
"""

import logging
import webbrowser
from typing import Any, Callable

from tidings.config import load_api_token, load_config
from tidings.db import Store
from tidings.errors import TidingsError
from tidings.remote import RemoteClient
from tidings.state import (
    ActionFailed,
    AppState,
    CallRemote,
    Command,
    Event,
    Loaded,
    OpenUrl,
    PatchStore,
    Reload,
    Resync,
    StartSync,
    SyncFailed,
    SyncFinished,
    SyncProgress,
    reduce,
)
from tidings.sync import (
    ACTION_TASK,
    SYNC_TASK,
    ChangeProbe,
    SyncCoordinator,
    SyncPhase,
)
from tidings.tasks import Completion, TaskRunner

logger = logging.getLogger(__name__)


class App:
    """Glue between the reducer, the store and the sync coordinator."""

    def __init__(
        self,
        store: Store,
        coordinator: SyncCoordinator,
        runner: TaskRunner,
        probe: ChangeProbe | None = None,
        opener: Callable[[str], Any] = webbrowser.open,
    ):
        self.store = store
        self.coordinator = coordinator
        self.runner = runner
        self.probe = probe or ChangeProbe(store)
        self.opener = opener
        self.state = AppState()
        self.rollbacks = 0
        self._phase = SyncPhase.IDLE

    @classmethod
    def from_config(cls, config: dict[str, Any] | None = None) -> "App":
        """Wire everything up from the user's config. Raises TidingsError without a token."""
        config = config or load_config()
        token = load_api_token(config)
        if not token:
            raise TidingsError("No API token. Run 'tidings login' or set TIDINGS_API_TOKEN.")

        store = Store()
        client = RemoteClient.from_config(config, token)
        runner = TaskRunner()
        coordinator = SyncCoordinator.from_config(config, store, client, runner)
        interval = config.get("ui", {}).get("probe_interval_seconds", 1.0)
        return cls(store, coordinator, runner, probe=ChangeProbe(store, interval=interval))

    def start(self) -> None:
        """Show whatever is cached, then resync in the background if it is stale."""
        self._reload()
        if self.coordinator.needs_resync():
            logger.info("Cache is stale, resyncing")
            self.dispatch(Resync())

    def dispatch(self, event: Event) -> AppState:
        self.state, commands = reduce(self.state, event)
        for command in commands:
            self._execute(command)
        return self.state

    def _execute(self, command: Command) -> None:
        if isinstance(command, Reload):
            self._reload()
        elif isinstance(command, PatchStore):
            self.coordinator.apply_local(command.changes)
        elif isinstance(command, CallRemote):
            if command.plan is not None:
                self.coordinator.submit(command.plan)
        elif isinstance(command, StartSync):
            self.coordinator.start_resync(trigger=command.trigger)
        elif isinstance(command, OpenUrl):
            logger.info(f"Opening {command.url}")
            self.opener(command.url)
        else:
            logger.warning(f"Unhandled command: {command!r}")

    def _reload(self) -> None:
        view = self.state.view
        self.dispatch(Loaded(
            view=view,
            notifications=tuple(self.store.load_view(view)),
            counts=self.store.counts(),
            facets=self.store.facets(),
        ))

    def pump(self) -> AppState:
        """One foreground tick: handle completions, sync progress, idle probe."""
        for completion in self.runner.drain():
            self._complete(completion)

        phase = self.coordinator.phase
        if phase != self._phase:
            self._phase = phase
            if phase != SyncPhase.ERROR:
                self.dispatch(SyncProgress(phase=phase))

        if not (self.state.loading or self.state.syncing):
            if self.probe.check(self.state.counts) is not None:
                self._reload()

        return self.state

    def _complete(self, completion: Completion) -> None:
        if completion.kind == SYNC_TASK:
            # Sync state is settled by the completion, not the phase
            self._phase = self.coordinator.phase
            if completion.ok:
                self.dispatch(SyncFinished(result=completion.value))
            else:
                self.dispatch(SyncFailed(error=completion.message))
        elif completion.kind == ACTION_TASK:
            if self.coordinator.settle(completion):
                self.rollbacks += 1
                self.dispatch(ActionFailed(
                    action=completion.context.action,
                    error=completion.message,
                ))

    def wait(self, timeout: float | None = None) -> bool:
        """Block until background work is done, then pump once."""
        finished = self.runner.wait(timeout)
        self.pump()
        return finished

    def close(self) -> None:
        self.runner.shutdown()
