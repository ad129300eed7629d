"""
Application state for Tidings.

The UI is a pure reducer: reduce(state, event) returns the next state and a
list of commands (store writes, remote calls, reloads) for the controller to
run. Nothing in here touches the store, the network or the clock.
"""

from dataclasses import dataclass, field, replace
from typing import Callable, ClassVar

from tidings.filters import StructuralFilter, apply
from tidings.models import Facets, Notification, PinnedSearch, ViewCounts
from tidings.query import parse
from tidings.sync import ActionPlan, SyncPhase, SyncResult, plan_action

TABS = ("inbox", "starred", "archived")
TAB_LABELS = {"inbox": "Inbox", "starred": "Starred", "archived": "Archived"}
STATE_ORDER = ("open", "merged", "closed")


# Sidebar items


@dataclass(frozen=True)
class SidebarItem:
    kind: ClassVar[str] = ""
    selectable: ClassVar[bool] = True

    def structural(self) -> StructuralFilter | None:
        return None

    def same_as(self, other: "SidebarItem | None") -> bool:
        """Same kind and target, regardless of counts."""
        return other is not None and other.kind == self.kind and self._key() == other._key()

    def _key(self) -> object:
        return None


@dataclass(frozen=True)
class HeaderItem(SidebarItem):
    kind: ClassVar[str] = "header"
    selectable: ClassVar[bool] = False

    label: str = ""


@dataclass(frozen=True)
class SeparatorItem(SidebarItem):
    kind: ClassVar[str] = "separator"
    selectable: ClassVar[bool] = False


@dataclass(frozen=True)
class TabItem(SidebarItem):
    kind: ClassVar[str] = "tab"

    view: str = "inbox"
    count: int = 0

    @property
    def label(self) -> str:
        return TAB_LABELS.get(self.view, self.view)

    def _key(self) -> object:
        return self.view


@dataclass(frozen=True)
class PinnedItem(SidebarItem):
    kind: ClassVar[str] = "pinned"

    name: str = ""
    query: str = ""
    count: int | None = None

    @property
    def label(self) -> str:
        return self.name

    def _key(self) -> object:
        return self.query


@dataclass(frozen=True)
class FacetItem(SidebarItem):
    """A sidebar entry that narrows the list to one field value."""

    field_name: ClassVar[str] = ""

    value: str | bool = ""
    count: int = 0

    def structural(self) -> StructuralFilter:
        return StructuralFilter(kind=self.field_name, value=self.value)

    @property
    def label(self) -> str:
        return str(self.value)

    def _key(self) -> object:
        return self.value


@dataclass(frozen=True)
class OwnerItem(FacetItem):
    kind: ClassVar[str] = "owner"
    field_name: ClassVar[str] = "owner"


@dataclass(frozen=True)
class RepoItem(FacetItem):
    kind: ClassVar[str] = "repo"
    field_name: ClassVar[str] = "repo"

    @property
    def label(self) -> str:
        return str(self.value).split("/")[-1]


@dataclass(frozen=True)
class ReasonItem(FacetItem):
    kind: ClassVar[str] = "reason"
    field_name: ClassVar[str] = "reason"

    @property
    def label(self) -> str:
        return str(self.value).replace("_", " ")


@dataclass(frozen=True)
class SubjectTypeItem(FacetItem):
    kind: ClassVar[str] = "subject_type"
    field_name: ClassVar[str] = "subject_type"


@dataclass(frozen=True)
class StateItem(FacetItem):
    kind: ClassVar[str] = "state"
    field_name: ClassVar[str] = "subject_state"

    @property
    def label(self) -> str:
        return str(self.value).capitalize()


@dataclass(frozen=True)
class UnreadItem(FacetItem):
    kind: ClassVar[str] = "unread"
    field_name: ClassVar[str] = "unread"

    @property
    def label(self) -> str:
        return "Unread" if self.value else "Read"


@dataclass(frozen=True)
class BotItem(FacetItem):
    kind: ClassVar[str] = "bot"
    field_name: ClassVar[str] = "bot"

    @property
    def label(self) -> str:
        return "Bots" if self.value else "Humans"


# State


@dataclass(frozen=True)
class AppState:
    notifications: tuple[Notification, ...] = ()
    view: str = "inbox"
    selected_index: int = 0
    search_mode: bool = False
    search_query: str = ""
    loading: bool = False
    syncing: bool = False
    error: str | None = None
    show_help: bool = False
    counts: ViewCounts = field(default_factory=ViewCounts)
    facets: Facets = field(default_factory=Facets)
    pinned: tuple[PinnedSearch, ...] = ()
    selection: SidebarItem | None = None
    sidebar_focus: bool = False
    sidebar_index: int = 0

    def with_(self, **changes) -> "AppState":
        return replace(self, **changes)


def visible(state: AppState) -> list[Notification]:
    """The notifications currently on screen, in store order."""
    records: list[Notification] | tuple[Notification, ...] = state.notifications
    selection = state.selection
    if isinstance(selection, PinnedItem):
        records = apply(records, query=parse(selection.query))
    structural = selection.structural() if selection is not None else None
    return apply(records, structural=structural, query=parse(state.search_query))


def selected(state: AppState) -> Notification | None:
    records = visible(state)
    if 0 <= state.selected_index < len(records):
        return records[state.selected_index]
    return None


def clamp_selection(state: AppState) -> AppState:
    last = max(len(visible(state)) - 1, 0)
    return state.with_(selected_index=min(max(state.selected_index, 0), last))


def build_sidebar(state: AppState) -> list[SidebarItem]:
    """Sidebar entries: views, pinned searches, then facet groups."""
    counts = state.counts
    facets = state.facets
    items: list[SidebarItem] = [HeaderItem(label="Views")]
    items += [TabItem(view=view, count=getattr(counts, view)) for view in TABS]

    if state.pinned:
        items += [SeparatorItem(), HeaderItem(label="Pinned")]
        items += [PinnedItem(name=p.name, query=p.query, count=p.count) for p in state.pinned]

    if facets.unread or facets.read:
        items.append(SeparatorItem())
        if facets.unread:
            items.append(UnreadItem(value=True, count=facets.unread))
        if facets.read:
            items.append(UnreadItem(value=False, count=facets.read))

    if facets.bots:
        items.append(BotItem(value=True, count=facets.bots))
        if facets.humans:
            items.append(BotItem(value=False, count=facets.humans))

    if facets.states:
        items.append(HeaderItem(label="Status"))
        known = [s for s in STATE_ORDER if facets.states.get(s)]
        others = [s for s in facets.states if s not in STATE_ORDER]
        items += [StateItem(value=s, count=facets.states[s]) for s in known + others]

    if facets.types:
        items.append(HeaderItem(label="Type"))
        items += [SubjectTypeItem(value=name, count=n) for name, n in facets.types.items()]

    if facets.reasons:
        items.append(HeaderItem(label="Reason"))
        items += [ReasonItem(value=name, count=n) for name, n in facets.reasons.items()]

    if facets.owners:
        items.append(HeaderItem(label="Owners"))
        for owner, count in facets.owners.items():
            items.append(OwnerItem(value=owner, count=count))
            for short in facets.repos_by_owner.get(owner, []):
                full_name = f"{owner}/{short}"
                items.append(RepoItem(value=full_name, count=facets.repos.get(full_name, 0)))

    return items


# Events


@dataclass(frozen=True)
class Event:
    pass


@dataclass(frozen=True)
class Move(Event):
    delta: int = 1


@dataclass(frozen=True)
class MoveFirst(Event):
    pass


@dataclass(frozen=True)
class MoveLast(Event):
    pass


@dataclass(frozen=True)
class SelectId(Event):
    notification_id: int = 0


@dataclass(frozen=True)
class SwitchView(Event):
    view: str = "inbox"


@dataclass(frozen=True)
class NextTab(Event):
    delta: int = 1


@dataclass(frozen=True)
class EnterSearch(Event):
    pass


@dataclass(frozen=True)
class SearchInput(Event):
    text: str = ""


@dataclass(frozen=True)
class SearchBackspace(Event):
    pass


@dataclass(frozen=True)
class ExitSearch(Event):
    pass


@dataclass(frozen=True)
class ToggleHelp(Event):
    pass


@dataclass(frozen=True)
class Escape(Event):
    pass


@dataclass(frozen=True)
class FocusSidebar(Event):
    focused: bool = True


@dataclass(frozen=True)
class MoveSidebar(Event):
    delta: int = 1


@dataclass(frozen=True)
class ActivateSidebar(Event):
    pass


@dataclass(frozen=True)
class SelectSidebarItem(Event):
    item: SidebarItem = field(default_factory=SeparatorItem)


@dataclass(frozen=True)
class ToggleStar(Event):
    pass


@dataclass(frozen=True)
class ToggleArchive(Event):
    pass


@dataclass(frozen=True)
class ArchiveAll(Event):
    pass


@dataclass(frozen=True)
class UnarchiveAll(Event):
    pass


@dataclass(frozen=True)
class Mute(Event):
    pass


@dataclass(frozen=True)
class MarkRead(Event):
    pass


@dataclass(frozen=True)
class Open(Event):
    pass


@dataclass(frozen=True)
class Refresh(Event):
    pass


@dataclass(frozen=True)
class Resync(Event):
    pass


@dataclass(frozen=True)
class Loaded(Event):
    view: str = "inbox"
    notifications: tuple[Notification, ...] = ()
    counts: ViewCounts = field(default_factory=ViewCounts)
    facets: Facets = field(default_factory=Facets)


@dataclass(frozen=True)
class SyncProgress(Event):
    phase: SyncPhase = SyncPhase.IDLE


@dataclass(frozen=True)
class SyncFinished(Event):
    result: SyncResult = field(default_factory=SyncResult)


@dataclass(frozen=True)
class SyncFailed(Event):
    error: str = ""


@dataclass(frozen=True)
class ActionFailed(Event):
    action: str = ""
    error: str = ""


# Commands


@dataclass(frozen=True)
class Command:
    pass


@dataclass(frozen=True)
class Reload(Command):
    """Reload the current view, counts and facets from the store."""


@dataclass(frozen=True)
class PatchStore(Command):
    changes: dict[int, dict[str, bool]] = field(default_factory=dict)


@dataclass(frozen=True)
class CallRemote(Command):
    plan: ActionPlan | None = None


@dataclass(frozen=True)
class StartSync(Command):
    trigger: bool = True


@dataclass(frozen=True)
class OpenUrl(Command):
    url: str = ""


# Reducer

Result = tuple[AppState, list[Command]]
_HANDLERS: dict[type, Callable[[AppState, Event], Result]] = {}


def _on(event_type: type) -> Callable:
    def register(fn: Callable[[AppState, Event], Result]) -> Callable[[AppState, Event], Result]:
        _HANDLERS[event_type] = fn
        return fn
    return register


def reduce(state: AppState, event: Event) -> Result:
    """Apply an event. Unknown events leave the state untouched."""
    handler = _HANDLERS.get(type(event))
    if handler is None:
        return state, []
    return handler(state, event)


def _optimistic(state: AppState, plan: ActionPlan) -> Result:
    """Write locally, reload, then reconcile remotely."""
    if plan.empty:
        return state, []
    return state, [PatchStore(changes=plan.changes), Reload(), CallRemote(plan=plan)]


@_on(Move)
def _move(state: AppState, event: Move) -> Result:
    records = visible(state)
    if not records:
        return state, []
    index = min(max(state.selected_index + event.delta, 0), len(records) - 1)
    return state.with_(selected_index=index), []


@_on(MoveFirst)
def _move_first(state: AppState, event: MoveFirst) -> Result:
    return state.with_(selected_index=0), []


@_on(MoveLast)
def _move_last(state: AppState, event: MoveLast) -> Result:
    return state.with_(selected_index=max(len(visible(state)) - 1, 0)), []


@_on(SelectId)
def _select_id(state: AppState, event: SelectId) -> Result:
    for index, record in enumerate(visible(state)):
        if record.id == event.notification_id:
            return state.with_(selected_index=index), []
    return state, []


@_on(SwitchView)
def _switch_view(state: AppState, event: SwitchView) -> Result:
    state = state.with_(
        view=event.view,
        selection=None,
        sidebar_focus=False,
        selected_index=0,
        search_query="",
    )
    return state, [Reload()]


@_on(NextTab)
def _next_tab(state: AppState, event: NextTab) -> Result:
    current = TABS.index(state.view) if state.view in TABS else 0
    return _switch_view(state, SwitchView(view=TABS[(current + event.delta) % len(TABS)]))


@_on(EnterSearch)
def _enter_search(state: AppState, event: EnterSearch) -> Result:
    if state.search_mode:
        return state, []
    return state.with_(search_mode=True, search_query=""), []


@_on(SearchInput)
def _search_input(state: AppState, event: SearchInput) -> Result:
    return state.with_(search_query=state.search_query + event.text, selected_index=0), []


@_on(SearchBackspace)
def _search_backspace(state: AppState, event: SearchBackspace) -> Result:
    if not state.search_query:
        return state, []
    return state.with_(search_query=state.search_query[:-1], selected_index=0), []


@_on(ExitSearch)
def _exit_search(state: AppState, event: ExitSearch) -> Result:
    return state.with_(search_mode=False, search_query="", selected_index=0), []


@_on(ToggleHelp)
def _toggle_help(state: AppState, event: ToggleHelp) -> Result:
    return state.with_(show_help=not state.show_help), []


@_on(Escape)
def _escape(state: AppState, event: Escape) -> Result:
    if state.show_help:
        return state.with_(show_help=False), []
    if state.search_mode:
        return _exit_search(state, ExitSearch())
    if state.selection is not None:
        return state.with_(selection=None, selected_index=0), [Reload()]
    if state.sidebar_focus:
        return state.with_(sidebar_focus=False), []
    return state, []


@_on(FocusSidebar)
def _focus_sidebar(state: AppState, event: FocusSidebar) -> Result:
    return state.with_(sidebar_focus=event.focused), []


@_on(MoveSidebar)
def _move_sidebar(state: AppState, event: MoveSidebar) -> Result:
    items = build_sidebar(state)
    if not items or event.delta == 0:
        return state, []

    step = 1 if event.delta > 0 else -1
    index = state.sidebar_index
    remaining = abs(event.delta)
    while remaining:
        candidate = index + step
        while 0 <= candidate < len(items) and not items[candidate].selectable:
            candidate += step
        if not 0 <= candidate < len(items):
            break
        index = candidate
        remaining -= 1
    return state.with_(sidebar_index=index), []


@_on(ActivateSidebar)
def _activate_sidebar(state: AppState, event: ActivateSidebar) -> Result:
    items = build_sidebar(state)
    if not 0 <= state.sidebar_index < len(items):
        return state, []
    return _select_sidebar_item(state, SelectSidebarItem(item=items[state.sidebar_index]))


@_on(SelectSidebarItem)
def _select_sidebar_item(state: AppState, event: SelectSidebarItem) -> Result:
    item = event.item
    if not item.selectable:
        return state, []

    if isinstance(item, TabItem):
        return _switch_view(state, SwitchView(view=item.view))

    if isinstance(item, PinnedItem):
        # Pinned searches run against the inbox snapshot
        state = state.with_(view="inbox", selection=item, sidebar_focus=False, selected_index=0)
        return state, [Reload()]

    # Selecting the active filter again clears it
    selection = None if item.same_as(state.selection) else item
    return state.with_(selection=selection, sidebar_focus=False, selected_index=0), []


@_on(ToggleStar)
def _toggle_star(state: AppState, event: ToggleStar) -> Result:
    target = selected(state)
    if target is None:
        return state, []
    return _optimistic(state, plan_action("star", [target]))


@_on(ToggleArchive)
def _toggle_archive(state: AppState, event: ToggleArchive) -> Result:
    target = selected(state)
    if target is None:
        return state, []
    return _optimistic(state, plan_action("archive", [target]))


@_on(ArchiveAll)
def _archive_all(state: AppState, event: ArchiveAll) -> Result:
    return _optimistic(state, plan_action("archive_all", visible(state)))


@_on(UnarchiveAll)
def _unarchive_all(state: AppState, event: UnarchiveAll) -> Result:
    return _optimistic(state, plan_action("unarchive_all", visible(state)))


@_on(Mute)
def _mute(state: AppState, event: Mute) -> Result:
    target = selected(state)
    if target is None:
        return state, []
    return _optimistic(state, plan_action("mute", [target]))


@_on(MarkRead)
def _mark_read(state: AppState, event: MarkRead) -> Result:
    target = selected(state)
    if target is None or not target.unread:
        return state, []
    return _optimistic(state, plan_action("mark_read", [target]))


@_on(Open)
def _open(state: AppState, event: Open) -> Result:
    target = selected(state)
    if target is None or not target.web_url:
        return state, []
    _, marked = _mark_read(state, MarkRead())
    return state, [OpenUrl(url=target.web_url), *marked]


@_on(Refresh)
def _refresh(state: AppState, event: Refresh) -> Result:
    return state.with_(error=None), [StartSync(trigger=False)]


@_on(Resync)
def _resync(state: AppState, event: Resync) -> Result:
    return state.with_(error=None), [StartSync(trigger=True)]


@_on(Loaded)
def _loaded(state: AppState, event: Loaded) -> Result:
    if event.view != state.view:
        return state, []
    state = state.with_(
        notifications=tuple(event.notifications),
        counts=event.counts,
        facets=event.facets,
    )
    return clamp_selection(state), []


@_on(SyncProgress)
def _sync_progress(state: AppState, event: SyncProgress) -> Result:
    phase = event.phase
    return state.with_(
        syncing=phase in (SyncPhase.TRIGGERING, SyncPhase.POLLING),
        loading=phase in (SyncPhase.FETCHING, SyncPhase.REPLACING),
    ), []


@_on(SyncFinished)
def _sync_finished(state: AppState, event: SyncFinished) -> Result:
    state = state.with_(
        pinned=tuple(event.result.pinned),
        facets=event.result.facets,
        syncing=False,
        loading=False,
        error=None,
    )
    return state, [Reload()]


@_on(SyncFailed)
def _sync_failed(state: AppState, event: SyncFailed) -> Result:
    return state.with_(syncing=False, loading=False, error=event.error), []


@_on(ActionFailed)
def _action_failed(state: AppState, event: ActionFailed) -> Result:
    return state.with_(error=f"{event.action} failed: {event.error}"), [Reload()]
