"""Tests for the application reducer and sidebar."""

import pytest

from conftest import make_notification
from tidings.models import Facets, PinnedSearch, ViewCounts
from tidings.state import (
    ActionFailed,
    AppState,
    ArchiveAll,
    BotItem,
    CallRemote,
    Escape,
    ExitSearch,
    EnterSearch,
    HeaderItem,
    Loaded,
    MarkRead,
    Move,
    MoveFirst,
    MoveLast,
    MoveSidebar,
    NextTab,
    Open,
    OpenUrl,
    OwnerItem,
    PatchStore,
    PinnedItem,
    Refresh,
    Reload,
    RepoItem,
    Resync,
    SearchBackspace,
    SearchInput,
    SelectId,
    SelectSidebarItem,
    SeparatorItem,
    StartSync,
    StateItem,
    SwitchView,
    SyncFailed,
    SyncProgress,
    TabItem,
    ToggleArchive,
    ToggleHelp,
    ToggleStar,
    UnreadItem,
    build_sidebar,
    reduce,
    selected,
    visible,
)
from tidings.sync import SyncPhase


@pytest.fixture
def loaded() -> AppState:
    notifications = (
        make_notification(1, title="Fix flaky test", repo="acme/api"),
        make_notification(2, title="Bump deps", repo="acme/web", author="dependabot[bot]", unread=False),
        make_notification(3, title="Crash", repo="octobox/octobox", subject_type="Issue", state="closed"),
    )
    state, _ = reduce(AppState(), Loaded(view="inbox", notifications=notifications,
                                         counts=ViewCounts(inbox=3)))
    return state


def test_loaded_for_another_view_is_ignored(loaded) -> None:
    state, _ = reduce(loaded, Loaded(view="archived", notifications=()))

    assert state is loaded


def test_move_is_clamped(loaded) -> None:
    state, _ = reduce(loaded, Move(delta=5))
    assert state.selected_index == 2

    state, _ = reduce(state, Move(delta=-10))
    assert state.selected_index == 0

    state, _ = reduce(state, MoveLast())
    assert selected(state).id == 3

    state, _ = reduce(state, MoveFirst())
    assert selected(state).id == 1


def test_select_id(loaded) -> None:
    state, _ = reduce(loaded, SelectId(notification_id=2))
    assert selected(state).id == 2

    state, _ = reduce(state, SelectId(notification_id=99))
    assert selected(state).id == 2


def test_switch_view_resets_and_reloads(loaded) -> None:
    state, _ = reduce(loaded, Move(delta=2))
    state, commands = reduce(state, SwitchView(view="starred"))

    assert state.view == "starred"
    assert state.selected_index == 0
    assert commands == [Reload()]


def test_next_tab_cycles(loaded) -> None:
    state, _ = reduce(loaded, NextTab())
    assert state.view == "starred"

    state, _ = reduce(state, NextTab(delta=-2))
    assert state.view == "archived"


def test_search_narrows_visible(loaded) -> None:
    state, _ = reduce(loaded, EnterSearch())
    for text in ("is:", "unread ", "acme"):
        state, _ = reduce(state, SearchInput(text=text))

    assert state.search_query == "is:unread acme"
    assert [n.id for n in visible(state)] == [1]

    state, _ = reduce(state, SearchBackspace())
    assert state.search_query == "is:unread acm"

    state, _ = reduce(state, ExitSearch())
    assert not state.search_mode
    assert len(visible(state)) == 3


def test_loaded_clamps_selection(loaded) -> None:
    state, _ = reduce(loaded, MoveLast())
    state, _ = reduce(state, Loaded(view="inbox", notifications=loaded.notifications[:1]))

    assert state.selected_index == 0


def test_toggle_star_is_optimistic(loaded) -> None:
    state, commands = reduce(loaded, ToggleStar())

    assert state is loaded
    assert [type(c) for c in commands] == [PatchStore, Reload, CallRemote]
    assert commands[0].changes == {1: {"starred": True}}
    assert commands[2].plan.action == "star"


def test_toggle_archive_targets_selected(loaded) -> None:
    state, _ = reduce(loaded, Move())
    _, commands = reduce(state, ToggleArchive())

    assert commands[0].changes == {2: {"archived": True}}


def test_archive_all_uses_visible_records(loaded) -> None:
    state, _ = reduce(loaded, SearchInput(text="repo:acme/api,acme/web"))
    _, commands = reduce(state, ArchiveAll())

    assert commands[2].plan.ids == (1, 2)


def test_actions_on_empty_list_do_nothing() -> None:
    for event in (ToggleStar(), ToggleArchive(), ArchiveAll(), MarkRead(), Open()):
        assert reduce(AppState(), event) == (AppState(), [])


def test_open_marks_unread_as_read(loaded) -> None:
    _, commands = reduce(loaded, Open())

    assert commands[0] == OpenUrl(url="https://github.com/acme/api/pull/1")
    assert commands[1].changes == {1: {"unread": False}}

    state, _ = reduce(loaded, Move())
    _, commands = reduce(state, Open())
    assert commands == [OpenUrl(url="https://github.com/acme/web/pull/2")]


def test_refresh_and_resync(loaded) -> None:
    state, _ = reduce(loaded, SyncFailed(error="boom"))
    assert state.error == "boom"

    state, commands = reduce(state, Refresh())
    assert state.error is None
    assert commands == [StartSync(trigger=False)]

    _, commands = reduce(state, Resync())
    assert commands == [StartSync(trigger=True)]


def test_sync_progress_flags(loaded) -> None:
    state, _ = reduce(loaded, SyncProgress(phase=SyncPhase.POLLING))
    assert state.syncing and not state.loading

    state, _ = reduce(state, SyncProgress(phase=SyncPhase.REPLACING))
    assert state.loading and not state.syncing

    state, _ = reduce(state, SyncProgress(phase=SyncPhase.IDLE))
    assert not (state.loading or state.syncing)


def test_action_failed_sets_error_and_reloads(loaded) -> None:
    state, commands = reduce(loaded, ActionFailed(action="star", error="API error: 500"))

    assert state.error == "star failed: API error: 500"
    assert commands == [Reload()]


def test_help_and_escape(loaded) -> None:
    state, _ = reduce(loaded, ToggleHelp())
    assert state.show_help

    state, _ = reduce(state, Escape())
    assert not state.show_help

    state, _ = reduce(state, EnterSearch())
    state, _ = reduce(state, Escape())
    assert not state.search_mode


# Sidebar


@pytest.fixture
def with_facets(loaded) -> AppState:
    facets = Facets(
        owners={"acme": 2, "octobox": 1},
        repos={"acme/api": 1, "acme/web": 1, "octobox/octobox": 1},
        repos_by_owner={"acme": ["api", "web"], "octobox": ["octobox"]},
        types={"PullRequest": 2, "Issue": 1},
        reasons={"mention": 3},
        states={"closed": 1, "open": 2},
        unread=2,
        read=1,
        bots=1,
        humans=2,
    )
    return loaded.with_(
        facets=facets,
        pinned=(PinnedSearch(name="Acme", query="owner:acme"),),
    )


def test_sidebar_layout(with_facets) -> None:
    items = build_sidebar(with_facets)
    kinds = [item.kind for item in items]

    assert kinds[:4] == ["header", "tab", "tab", "tab"]
    assert [i.view for i in items if isinstance(i, TabItem)] == ["inbox", "starred", "archived"]
    assert [i.label for i in items if isinstance(i, PinnedItem)] == ["Acme"]
    assert [i.value for i in items if isinstance(i, StateItem)] == ["open", "closed"]
    assert [i.label for i in items if isinstance(i, RepoItem)] == ["api", "web", "octobox"]
    assert [i.value for i in items if isinstance(i, UnreadItem)] == [True, False]
    assert [i.label for i in items if isinstance(i, BotItem)] == ["Bots", "Humans"]


def test_sidebar_skips_headers_and_separators(with_facets) -> None:
    items = build_sidebar(with_facets)
    state = with_facets.with_(sidebar_index=3)

    state, _ = reduce(state, MoveSidebar(delta=1))

    assert not isinstance(items[state.sidebar_index], (HeaderItem, SeparatorItem))
    assert isinstance(items[state.sidebar_index], PinnedItem)


def test_owner_selection_filters_and_toggles(with_facets) -> None:
    state, commands = reduce(with_facets, SelectSidebarItem(item=OwnerItem(value="acme", count=2)))

    assert commands == []
    assert [n.id for n in visible(state)] == [1, 2]

    state, _ = reduce(state, SelectSidebarItem(item=OwnerItem(value="acme", count=5)))
    assert state.selection is None
    assert len(visible(state)) == 3


def test_structural_selection_combines_with_search(with_facets) -> None:
    state, _ = reduce(with_facets, SelectSidebarItem(item=UnreadItem(value=True)))
    state, _ = reduce(state, SearchInput(text="crash"))

    assert [n.id for n in visible(state)] == [3]


def test_pinned_selection_switches_to_inbox(with_facets) -> None:
    state = with_facets.with_(view="archived")
    item = PinnedItem(name="Acme", query="owner:acme is:unread")

    state, commands = reduce(state, SelectSidebarItem(item=item))

    assert state.view == "inbox"
    assert commands == [Reload()]
    assert [n.id for n in visible(state)] == [1]


def test_tab_item_switches_view(with_facets) -> None:
    state, commands = reduce(with_facets, SelectSidebarItem(item=TabItem(view="archived")))

    assert state.view == "archived"
    assert commands == [Reload()]


def test_headers_are_not_selectable(with_facets) -> None:
    assert reduce(with_facets, SelectSidebarItem(item=HeaderItem(label="Owners"))) == (with_facets, [])
