"""End-to-end engine flows against the in-memory repository."""

from branchdeck.core.events import Key, KeyPressed
from branchdeck.core.state import IDLE, PhaseStatus
from branchdeck.exceptions import ErrorKind
from branchdeck.git.models import BranchKind


async def _press(engine, key, char=""):
    await engine.handle_key(KeyPressed(key=key, char=char))
    await engine.wait_idle()


async def _type(engine, text):
    for ch in text:
        await engine.handle_key(KeyPressed.character(ch))


def _names(state):
    return [b.name for b in state.branches]


class TestStartup:
    async def test_initial_listing_selects_current(self, started_engine):
        state = started_engine.state
        assert state.mode is BranchKind.LOCAL
        assert _names(state) == ["main", "feature/x", "feature/y", "old-feature"]
        assert state.selected_branch.name == "main"
        assert state.phase == IDLE

    async def test_filter_narrows_view(self, started_engine):
        await _type(started_engine, "fx")
        state = started_engine.state
        assert [b.name for b in state.visible_branches] == ["feature/x"]


class TestTabSwitchesMode:
    async def test_tab_lists_remote_branches(self, started_engine):
        await _type(started_engine, "ma")
        await _press(started_engine, Key.TAB)
        state = started_engine.state
        assert state.mode is BranchKind.REMOTE
        assert _names(state) == ["origin/main", "origin/dev"]
        assert state.filter == ""
        assert all(b.kind is BranchKind.REMOTE for b in state.branches)

    async def test_tab_twice_returns_to_local(self, started_engine):
        await _press(started_engine, Key.TAB)
        await _press(started_engine, Key.TAB)
        state = started_engine.state
        assert state.mode is BranchKind.LOCAL
        assert _names(state) == ["main", "feature/x", "feature/y", "old-feature"]


class TestSwitch:
    async def test_switch_local_branch(self, started_engine, fake_repository):
        await _type(started_engine, "fx")
        await _press(started_engine, Key.ENTER)
        assert fake_repository.current == "feature/x"
        current = [b.name for b in started_engine.state.branches if b.is_current]
        assert current == ["feature/x"]

    async def test_switch_remote_creates_tracking_branch(self, started_engine, fake_repository):
        await _press(started_engine, Key.TAB)
        await _type(started_engine, "dev")
        assert started_engine.state.selected_branch.name == "origin/dev"

        await _press(started_engine, Key.ENTER)

        state = started_engine.state
        assert fake_repository.upstreams["dev"] == "origin/dev"
        assert state.mode is BranchKind.LOCAL
        dev = next(b for b in state.branches if b.name == "dev")
        assert dev.is_current is True
        assert state.selected_branch == dev

    async def test_switch_with_local_changes_conflicts(self, started_engine, fake_repository):
        fake_repository.dirty = True
        await _type(started_engine, "fx")
        await _press(started_engine, Key.ENTER)
        phase = started_engine.state.phase
        assert phase.status is PhaseStatus.ERROR
        assert phase.kind is ErrorKind.CONFLICT
        assert fake_repository.current == "main"

    async def test_switch_previous(self, started_engine, fake_repository):
        await _type(started_engine, "fy")
        await _press(started_engine, Key.ENTER)
        await _press(started_engine, Key.PREVIOUS)
        assert fake_repository.current == "main"


class TestCreate:
    async def test_create_from_input(self, started_engine, fake_repository):
        await _type(started_engine, "topic")
        await _press(started_engine, Key.CREATE)
        assert "topic" in fake_repository.local
        assert fake_repository.current == "topic"
        assert "topic" in _names(started_engine.state)

    async def test_create_existing_branch_fails(self, started_engine):
        await _type(started_engine, "main")
        await _press(started_engine, Key.CREATE)
        assert started_engine.state.phase.kind is ErrorKind.BRANCH_ALREADY_EXISTS

    async def test_create_invalid_name_fails(self, started_engine, fake_repository):
        await _type(started_engine, "bad..name")
        await _press(started_engine, Key.CREATE)
        assert started_engine.state.phase.kind is ErrorKind.INVALID_BRANCH_NAME
        assert "bad..name" not in fake_repository.local


class TestDelete:
    async def test_delete_current_branch_conflicts(self, started_engine, fake_repository):
        before = started_engine.state.branches
        assert started_engine.state.selected_branch.name == "main"

        await _press(started_engine, Key.DELETE)

        state = started_engine.state
        assert state.phase.kind is ErrorKind.CONFLICT
        assert state.branches == before
        assert "main" in fake_repository.local

    async def test_delete_unmerged_branch_refused(self, started_engine, fake_repository):
        await _type(started_engine, "old")
        await _press(started_engine, Key.DELETE)
        assert started_engine.state.phase.kind is ErrorKind.NOT_FULLY_MERGED
        assert "old-feature" in fake_repository.local

    async def test_force_delete_unmerged_branch(self, started_engine, fake_repository):
        await _type(started_engine, "old")
        assert started_engine.state.selected_branch.name == "old-feature"

        await _press(started_engine, Key.FORCE_DELETE)

        assert "old-feature" not in fake_repository.local
        assert "old-feature" not in _names(started_engine.state)
        assert not started_engine.state.phase.is_error

    async def test_delete_remote_never_reaches_repository(self, started_engine, fake_repository):
        await _press(started_engine, Key.TAB)
        calls_before = list(fake_repository.calls)

        await _press(started_engine, Key.DELETE)

        assert started_engine.state.phase.kind is ErrorKind.UNSUPPORTED_OPERATION
        assert fake_repository.calls == calls_before


class TestFetch:
    async def test_fetch_without_upstream_unsupported(self, started_engine):
        await _press(started_engine, Key.FETCH)
        assert started_engine.state.phase.kind is ErrorKind.UNSUPPORTED_OPERATION

    async def test_fetch_tracking_branch(self, started_engine, fake_repository):
        fake_repository.upstreams["main"] = "origin/main"
        await _press(started_engine, Key.REFRESH)
        await _press(started_engine, Key.FETCH)
        assert ("fetch", "main") in fake_repository.calls
        assert not started_engine.state.phase.is_error


class TestWorkingDirectory:
    async def test_change_to_non_repository(self, started_engine, fake_repository, tmp_path):
        elsewhere = tmp_path / "elsewhere"
        fake_repository.not_repositories.add(elsewhere)

        handled = await started_engine.handle_pipe("cwd", str(elsewhere))
        await started_engine.wait_idle()

        state = started_engine.state
        assert handled is True
        assert state.branches == ()
        assert state.phase.kind is ErrorKind.NOT_A_REPOSITORY
        assert started_engine.context.working_directory == elsewhere

    async def test_change_resets_filter_and_mode(self, started_engine, tmp_path):
        await _press(started_engine, Key.TAB)
        await _type(started_engine, "dev")

        await started_engine.handle_pipe("cwd", str(tmp_path))
        await started_engine.wait_idle()

        state = started_engine.state
        assert state.mode is BranchKind.LOCAL
        assert state.filter == ""
        assert _names(state) == ["main", "feature/x", "feature/y", "old-feature"]

    async def test_any_key_clears_error(self, started_engine):
        await _press(started_engine, Key.DELETE)
        assert started_engine.state.phase.is_error
        await _press(started_engine, Key.DOWN)
        assert started_engine.state.phase == IDLE
