"""Input controller: pure state transitions for key, pipe and result events.

``transition(state, event)`` returns the next SelectionState and the
operations to dispatch. It performs no I/O; the engine executes the returned
operations and feeds their results back in as ``CommandCompleted`` events.
"""

from __future__ import annotations

import structlog

from branchdeck.core.events import (
    CommandCompleted,
    InputEvent,
    Key,
    KeyPressed,
    WorkingDirectoryChanged,
)
from branchdeck.core.state import LOADING, Phase, SelectionState
from branchdeck.exceptions import ErrorKind
from branchdeck.git.models import (
    Branch,
    BranchKind,
    Close,
    CreateBranch,
    DeleteBranch,
    FetchBranch,
    ForceDeleteBranch,
    ListBranches,
    OpenLog,
    Operation,
    SwitchBranch,
    SwitchPrevious,
)

logger = structlog.get_logger()

Transition = tuple[SelectionState, list[Operation]]

_REMOTE_DELETE_MESSAGE = "Remote branches cannot be deleted from here."
_REMOTE_CREATE_MESSAGE = "Switch to the local tab to create a branch."
_REMOTE_PREVIOUS_MESSAGE = "Previous-branch switching is only available on the local tab."
_REMOTE_FETCH_MESSAGE = "Fetching is only available for local branches."


def transition(state: SelectionState, event: InputEvent) -> Transition:
    match event:
        case KeyPressed():
            return _on_key(state, event)
        case WorkingDirectoryChanged():
            return _on_working_directory(event)
        case CommandCompleted():
            return _on_completed(state, event)
    raise TypeError(f"unsupported event: {event!r}")


def _issue(state: SelectionState, operation: Operation) -> Transition:
    return state.evolve(outstanding=state.outstanding + 1, phase=LOADING), [operation]


def _reject(state: SelectionState, kind: ErrorKind, message: str) -> Transition:
    return state.evolve(phase=Phase.error(kind, message)), []


def _with_input(state: SelectionState, buffer: str) -> SelectionState:
    return state.evolve(input_buffer=buffer, filter=buffer)


def _on_key(state: SelectionState, event: KeyPressed) -> Transition:
    if state.phase.is_error:
        state = state.evolve(phase=state.settled_phase())

    branch = state.selected_branch
    remote = state.mode is BranchKind.REMOTE

    match event.key:
        case Key.CHAR:
            if not event.char:
                return state, []
            return _with_input(state, state.input_buffer + event.char), []
        case Key.BACKSPACE:
            return _with_input(state, state.input_buffer[:-1]), []
        case Key.UP:
            return state.evolve(selected_index=state.selected_index - 1), []
        case Key.DOWN:
            return state.evolve(selected_index=state.selected_index + 1), []
        case Key.TAB:
            mode = state.mode.toggled()
            toggled = SelectionState(
                mode=mode,
                outstanding=state.outstanding,
                working_directory=state.working_directory,
            )
            return _issue(toggled, ListBranches(mode=mode))
        case Key.ENTER:
            if branch is None:
                return state, []
            return _issue(state, SwitchBranch(branch=branch))
        case Key.CREATE:
            if remote:
                return _reject(state, ErrorKind.UNSUPPORTED_OPERATION, _REMOTE_CREATE_MESSAGE)
            if not state.input_buffer:
                return state, []
            return _issue(state, CreateBranch(name=state.input_buffer))
        case Key.REFRESH:
            return _issue(state, ListBranches(mode=state.mode))
        case Key.DELETE | Key.FORCE_DELETE:
            if branch is None:
                return state, []
            if remote or branch.kind is BranchKind.REMOTE:
                return _reject(state, ErrorKind.UNSUPPORTED_OPERATION, _REMOTE_DELETE_MESSAGE)
            if event.key is Key.FORCE_DELETE:
                return _issue(state, ForceDeleteBranch(branch=branch))
            return _issue(state, DeleteBranch(branch=branch))
        case Key.OPEN_LOG:
            if branch is None:
                return state, []
            return state, [OpenLog(branch=branch)]
        case Key.PREVIOUS:
            if remote:
                return _reject(state, ErrorKind.UNSUPPORTED_OPERATION, _REMOTE_PREVIOUS_MESSAGE)
            return _issue(state, SwitchPrevious())
        case Key.FETCH:
            if branch is None:
                return state, []
            if remote:
                return _reject(state, ErrorKind.UNSUPPORTED_OPERATION, _REMOTE_FETCH_MESSAGE)
            return _issue(state, FetchBranch(branch=branch))
        case Key.ESCAPE:
            return state, [Close()]
    return state, []


def _on_working_directory(event: WorkingDirectoryChanged) -> Transition:
    logger.debug("selection_state_reset", path=str(event.path))
    fresh = SelectionState(mode=BranchKind.LOCAL, working_directory=event.path)
    return _issue(fresh, ListBranches(mode=BranchKind.LOCAL))


def _settle(state: SelectionState) -> SelectionState:
    if state.phase.is_error:
        return state
    return state.evolve(phase=state.settled_phase())


def _on_completed(state: SelectionState, event: CommandCompleted) -> Transition:
    operation, result = event.operation, event.result
    state = state.evolve(outstanding=max(state.outstanding - 1, 0))

    if isinstance(operation, ListBranches) and operation.mode is not state.mode:
        logger.debug(
            "list_result_discarded",
            issued_mode=operation.mode.value,
            current_mode=state.mode.value,
        )
        return _settle(state), []

    if not result.success:
        kind = result.kind or ErrorKind.BACKEND_EXECUTION_FAILED
        changes: dict = {"phase": Phase.error(kind, result.message)}
        if kind is ErrorKind.NOT_A_REPOSITORY:
            changes["branches"] = ()
        return state.evolve(**changes), []

    match operation:
        case ListBranches():
            return _apply_listing(state, result.branches), []
        case SwitchBranch(branch=switched) if (
            switched.kind is BranchKind.REMOTE and state.mode is BranchKind.REMOTE
        ):
            local = SelectionState(
                mode=BranchKind.LOCAL,
                outstanding=state.outstanding,
                working_directory=state.working_directory,
            )
            return _issue(local, ListBranches(mode=BranchKind.LOCAL))
        case _:
            return _issue(state, ListBranches(mode=state.mode))


def _apply_listing(state: SelectionState, branches: tuple[Branch, ...]) -> SelectionState:
    previous = state.selected_branch
    fresh = not state.branches
    state = state.evolve(branches=branches, phase=state.settled_phase())
    visible = state.visible_branches

    if previous is not None:
        for index, branch in enumerate(visible):
            if branch.name == previous.name:
                return state.evolve(selected_index=index)
    if fresh:
        for index, branch in enumerate(visible):
            if branch.is_current:
                return state.evolve(selected_index=index)
    return state
