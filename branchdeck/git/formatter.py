"""Pure functions to format selection state for terminal display."""

from __future__ import annotations

from branchdeck.core.state import PhaseStatus, SelectionState
from branchdeck.git.models import Branch, BranchKind

_LOCAL_TAB = "Local"
_REMOTE_TAB = "Remote"
_SELECTED_MARK = ">"
_CURRENT_MARK = "*"

_LOCAL_HELP = (
    ("<Ctrl-r>", "Refresh"),
    ("<Ctrl-c>", "Create"),
    ("<Ctrl-d>", "Delete"),
    ("<Ctrl-x>", "Force delete"),
    ("<Ctrl-l>", "Open log"),
    ("<Ctrl-p>", "Previous branch"),
    ("<Ctrl-f>", "Fetch"),
)
_REMOTE_HELP = (
    ("<Ctrl-r>", "Refresh"),
    ("<Ctrl-l>", "Open log"),
)

# tab bar, blank, input, blank, header
_HEADER_ROWS = 5
# blank, status, help, cwd
_FOOTER_ROWS = 4


def format_tab_bar(mode: BranchKind) -> str:
    local = f"[{_LOCAL_TAB}]" if mode is BranchKind.LOCAL else f" {_LOCAL_TAB} "
    remote = f"[{_REMOTE_TAB}]" if mode is BranchKind.REMOTE else f" {_REMOTE_TAB} "
    return f"{local}  {remote}"


def format_input(state: SelectionState) -> str:
    return f"Branch: {state.input_buffer}|"


def format_help(mode: BranchKind) -> str:
    entries = _LOCAL_HELP if mode is BranchKind.LOCAL else _REMOTE_HELP
    return ", ".join(f"{key} - {text}" for key, text in entries)


def format_status(state: SelectionState) -> str:
    phase = state.phase
    if phase.status is PhaseStatus.ERROR:
        kind = phase.kind.value if phase.kind else "Error"
        first_line = phase.message.splitlines()[0] if phase.message else ""
        return f"ERROR ({kind}): {first_line}".rstrip()
    if phase.status is PhaseStatus.LOADING:
        return "Loading..."
    count = len(state.visible_branches)
    total = len(state.branches)
    if state.filter:
        return f"{count}/{total} branches"
    return f"{total} branches"


def format_branch_row(branch: Branch, *, selected: bool) -> str:
    marker = _SELECTED_MARK if selected else " "
    current = _CURRENT_MARK if branch.is_current else " "
    columns = [f"{marker}{current} {branch.name}"]
    if branch.kind is BranchKind.LOCAL:
        upstream = branch.upstream or ""
        if upstream and branch.upstream_track:
            upstream = f"{upstream}: {branch.upstream_track}"
        columns.append(upstream)
    columns.append(branch.commit_sha)
    columns.append(branch.commit_message)
    return "  ".join(column for column in columns if column)


def visible_window(state: SelectionState, rows: int) -> tuple[int, int]:
    """Slice bounds of the filtered view that keep the selection on screen."""
    count = len(state.visible_branches)
    rows = max(rows, 1)
    if count <= rows:
        return 0, count
    start = min(max(state.selected_index - rows + 1, 0), count - rows)
    return start, start + rows


def format_screen(
    state: SelectionState,
    *,
    width: int = 80,
    height: int = 24,
) -> list[str]:
    """Lay out the whole picker as a list of lines clipped to *width*.

    While an error is shown its full text takes the place of the branch rows.
    """
    lines = [format_tab_bar(state.mode), "", format_input(state), ""]
    rows = max(height - _HEADER_ROWS - _FOOTER_ROWS, 1)

    error = format_error(state)
    if error:
        lines.append("")
        lines.extend(error[:rows])
    else:
        header = "   Name" if state.mode is BranchKind.LOCAL else "   Name (remote)"
        lines.append(header)
        start, end = visible_window(state, rows)
        visible = state.visible_branches
        for index in range(start, end):
            selected = index == state.selected_index
            lines.append(format_branch_row(visible[index], selected=selected))
        if not visible:
            lines.append("   (no branches)")

    lines.append("")
    lines.append(format_status(state))
    lines.append(format_help(state.mode))
    if state.working_directory is not None:
        lines.append(str(state.working_directory))
    return [line[:width] for line in lines]


def format_error(state: SelectionState) -> list[str]:
    """Full error text, one entry per line."""
    if not state.phase.is_error:
        return []
    return ["ERROR", *state.phase.message.splitlines()]
