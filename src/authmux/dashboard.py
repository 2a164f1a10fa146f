"""ダッシュボードの状態機械。

UIツールキットには依存しない。ホスト（tui.py）はキー入力を handle_key に渡し、
返ってきた effect を実行して、結果を apply_load / apply_action_done で戻す。

状態:
- NORMAL: 一覧操作
- ADD_TOOL: 追加するツールを選ぶ
- ADD_NAME: プロファイル名を入力する
- CONFIRM_DELETE: 削除確認

制約:
- 読み込み（load + ステータス確認）は同時に1つだけ。読み込み中の再要求は
  完了後の1回にまとめる
- 子プロセスへの端末受け渡しは ExecRequest としてホストに依頼する（描画中には実行しない）
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from rich.markup import escape

from authmux.manager import Manager, StatusRow
from authmux.store import Profile, RegistryState
from authmux.tools import SUPPORTED_TOOLS, Tool

NAME_CHAR_LIMIT = 64

WELCOME = "Welcome to authmux. Press 'a' to add your first profile."
KEY_HELP = (
    "[Enter] Launch  [a] Add  [l] Login  [o] Logout  [u] Set default  "
    "[d] Remove  [s] Install shims  [r] Refresh  [q] Quit"
)


class Mode(Enum):
    NORMAL = "normal"
    ADD_TOOL = "add_tool"
    ADD_NAME = "add_name"
    CONFIRM_DELETE = "confirm_delete"


class ExecAction(Enum):
    LAUNCH = "launch"
    LOGIN = "login"
    LOGOUT = "logout"


@dataclass
class LoadRequest:
    pass


@dataclass
class ExecRequest:
    action: ExecAction
    profile: Profile


@dataclass
class QuitRequest:
    pass


Effect = LoadRequest | ExecRequest | QuitRequest


@dataclass
class LoadResult:
    state: RegistryState | None = None
    rows: list[StatusRow] = field(default_factory=list)
    error: Exception | None = None


@dataclass
class ActionDone:
    error: Exception | None = None


ShimInstaller = Callable[[list[Profile]], str]


class DashboardModel:
    def __init__(self, manager: Manager, *, install_shims: ShimInstaller | None = None) -> None:
        self.manager = manager
        self.install_shims = install_shims

        self.state = RegistryState()
        self.rows: list[StatusRow] = []
        self.mode = Mode.NORMAL
        self.cursor = 0
        self.tool_index = 0
        self.name_text = ""
        self.message = WELCOME

        self.loaded = False
        self.loading = False
        self._reload_pending = False

    # --- load ---

    def start(self) -> Effect | None:
        return self.request_load()

    def request_load(self) -> Effect | None:
        if self.loading:
            self._reload_pending = True
            return None
        self.loading = True
        return LoadRequest()

    def apply_load(self, result: LoadResult) -> Effect | None:
        self.loading = False
        self.loaded = True
        if result.error is not None:
            self.message = f"Error: {result.error}"
        if result.state is not None:
            self.state = result.state
            self.rows = result.rows
            self._clamp_cursor()
        if self._reload_pending:
            self._reload_pending = False
            return self.request_load()
        return None

    def apply_action_done(self, done: ActionDone) -> Effect | None:
        self.message = "Done." if done.error is None else f"Action failed: {done.error}"
        return self.request_load()

    # --- keys ---

    def handle_key(self, key: str, character: str | None = None) -> Effect | None:
        if self.mode is Mode.ADD_TOOL:
            return self._key_add_tool(key)
        if self.mode is Mode.ADD_NAME:
            return self._key_add_name(key, character)
        if self.mode is Mode.CONFIRM_DELETE:
            return self._key_confirm_delete(key)
        return self._key_normal(key)

    def _key_normal(self, key: str) -> Effect | None:
        if key in {"q", "ctrl+c"}:
            return QuitRequest()
        if key in {"up", "k"}:
            if self.cursor > 0:
                self.cursor -= 1
            return None
        if key in {"down", "j"}:
            if self.cursor < len(self.state.profiles) - 1:
                self.cursor += 1
            return None
        if key == "r":
            self.message = "Refreshing statuses..."
            return self.request_load()
        if key == "a":
            self.mode = Mode.ADD_TOOL
            self.tool_index = 0
            self.message = "Choose tool for new profile"
            return None
        if key == "d":
            if not self.state.profiles:
                self.message = "No profile selected"
                return None
            self.mode = Mode.CONFIRM_DELETE
            return None
        if key == "u":
            return self._set_default()
        if key == "s":
            self._install_shims()
            return None
        if key == "enter":
            return self._exec(ExecAction.LAUNCH, "Launching {key}...")
        if key == "l":
            return self._exec(ExecAction.LOGIN, "Login flow started for {key}")
        if key == "o":
            return self._exec(ExecAction.LOGOUT, "Logging out {key}")
        return None

    def _key_add_tool(self, key: str) -> Effect | None:
        if key in {"escape", "q", "ctrl+c"}:
            self.mode = Mode.NORMAL
            self.message = "Add cancelled"
        elif key in {"up", "k"}:
            if self.tool_index > 0:
                self.tool_index -= 1
        elif key in {"down", "j"}:
            if self.tool_index < len(SUPPORTED_TOOLS) - 1:
                self.tool_index += 1
        elif key == "enter":
            self.mode = Mode.ADD_NAME
            self.name_text = ""
            self.message = f"Enter profile name for {self.selected_tool}"
        return None

    def _key_add_name(self, key: str, character: str | None) -> Effect | None:
        if key == "escape":
            self.mode = Mode.NORMAL
            self.message = "Add cancelled"
            return None
        if key == "enter":
            return self._submit_name()
        if key == "backspace":
            self.name_text = self.name_text[:-1]
            return None
        if character and character.isprintable() and len(character) == 1:
            if len(self.name_text) < NAME_CHAR_LIMIT:
                self.name_text += character
        return None

    def _key_confirm_delete(self, key: str) -> Effect | None:
        if key == "y":
            p = self.selected_profile()
            self.mode = Mode.NORMAL
            if p is None:
                return None
            try:
                self.manager.remove_profile(p.tool, p.name, purge=False)
            except Exception as e:  # noqa: BLE001 - ステータス行に表示して継続
                self.message = f"Delete failed: {e}"
                return None
            self.message = f"Removed {p.key}"
            return self.request_load()
        if key in {"n", "escape"}:
            self.mode = Mode.NORMAL
            self.message = "Delete cancelled"
        return None

    # --- actions ---

    @property
    def selected_tool(self) -> Tool:
        return SUPPORTED_TOOLS[self.tool_index]

    def selected_profile(self) -> Profile | None:
        profiles = self.state.profiles
        if not profiles or self.cursor < 0 or self.cursor >= len(profiles):
            return None
        return profiles[self.cursor]

    def _clamp_cursor(self) -> None:
        n = len(self.state.profiles)
        if n == 0:
            self.cursor = 0
        elif self.cursor >= n:
            self.cursor = n - 1

    def _submit_name(self) -> Effect | None:
        name = self.name_text.strip()
        if not name:
            self.message = "Profile name cannot be empty"
            return None
        try:
            profile, _ = self.manager.ensure_profile(self.selected_tool, name)
        except Exception as e:  # noqa: BLE001
            self.message = f"Failed: {e}"
            return None
        self.mode = Mode.NORMAL
        self.name_text = ""
        self.message = f"Launching login for {profile.key}"
        return ExecRequest(action=ExecAction.LOGIN, profile=profile)

    def _set_default(self) -> Effect | None:
        p = self.selected_profile()
        if p is None:
            self.message = "No profile selected"
            return None
        try:
            self.manager.set_default(p.tool, p.name)
        except Exception as e:  # noqa: BLE001
            self.message = f"Failed to set default: {e}"
            return None
        self.message = f"Default set: {p.key}"
        return self.request_load()

    def _exec(self, action: ExecAction, template: str) -> Effect | None:
        p = self.selected_profile()
        if p is None:
            self.message = "No profile selected"
            return None
        self.message = template.format(key=p.key)
        return ExecRequest(action=action, profile=p)

    def _install_shims(self) -> None:
        if not self.state.profiles:
            self.message = "No profiles to shim"
            return
        if self.install_shims is None:
            self.message = "Shim installation is not available"
            return
        try:
            self.message = self.install_shims(list(self.state.profiles))
        except Exception as e:  # noqa: BLE001
            self.message = f"Failed to install shims: {e}"

    # --- render ---

    def _row_for(self, p: Profile) -> StatusRow | None:
        for r in self.rows:
            if r.profile.tool == p.tool and r.profile.name == p.name:
                return r
        return None

    def render(self) -> str:
        """rich markup の文字列を返す。"""
        if not self.loaded:
            return "Loading authmux..."

        lines = [
            "[bold magenta]authmux[/]  [dim]profile-based auth launcher for Claude + Codex[/]",
            "",
            "[bold blue]Profiles[/]",
        ]
        if not self.state.profiles:
            lines.append("  No profiles yet. Press 'a' to create one.")
        for i, p in enumerate(self.state.profiles):
            row = self._row_for(p)
            icon = "…"
            if row is not None:
                icon = "⚠" if row.error else ("●" if row.status.logged_in else "○")
            marker = "*" if self.state.defaults.get(p.tool) == p.name else " "
            line = f"{marker} {icon} {escape(p.key)}"
            if i == self.cursor:
                line = f"[reverse] {line} [/reverse]"
            lines.append(f"  {line}")

        lines += ["", "[bold]Details[/]"]
        lines += [f"  {d}" for d in self._detail_lines()]

        modal = self._modal_lines()
        if modal:
            lines += [""] + [f"  [yellow]{m}[/yellow]" for m in modal]

        lines += [
            "",
            f"[dim]{escape(KEY_HELP)}[/dim]",
            f"[cyan]{escape(self.message)}[/cyan]",
            "[dim]* = default profile · ● logged in · ○ logged out · ⚠ status check failed[/dim]",
        ]
        return "\n".join(lines)

    def _detail_lines(self) -> list[str]:
        p = self.selected_profile()
        if p is None:
            return ["Select a profile"]
        row = self._row_for(p)
        status = "unknown"
        err = ""
        if row is not None:
            if row.error:
                status, err = "error", row.error
            else:
                status = "logged in" if row.status.logged_in else "logged out"
        out = [
            f"Tool: {p.tool}",
            f"Profile: {escape(p.name)}",
            f"Default: {self.state.defaults.get(p.tool) == p.name}",
            f"Dir: {escape(str(p.dir))}",
            f"Status: {status}",
        ]
        if row is not None and row.status.method:
            out.append(f"Method: {escape(row.status.method)}")
        if err:
            out.append(f"Error: {escape(err)}")
        return out

    def _modal_lines(self) -> list[str]:
        if self.mode is Mode.ADD_TOOL:
            out = ["Choose tool:"]
            for i, t in enumerate(SUPPORTED_TOOLS):
                out.append(("> " if i == self.tool_index else "  ") + t.value)
            return out
        if self.mode is Mode.ADD_NAME:
            return ["New profile name:", f"> {escape(self.name_text)}_"]
        if self.mode is Mode.CONFIRM_DELETE:
            p = self.selected_profile()
            if p is not None:
                return [f"Delete {escape(p.key)} from registry? (y/n)"]
        return []
