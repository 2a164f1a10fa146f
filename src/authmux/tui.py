"""ダッシュボード（textual）。

狙い:
- プロファイル一覧とログイン状態を1画面で見ながら、追加/削除/default切替/起動を行う

注意:
- 状態遷移は dashboard.DashboardModel に任せ、ここは effect の実行と描画だけ
- 読み込みは thread worker で1本だけ走らせる
- launch/login/logout は App.suspend() で端末を子プロセスに渡し、終了後に再開する
"""

from __future__ import annotations

import logging
from pathlib import Path

from textual import events
from textual.app import App, ComposeResult
from textual.widgets import Static

from authmux.config import default_shim_dir
from authmux.context import RunContext
from authmux.dashboard import (
    ActionDone,
    DashboardModel,
    Effect,
    ExecAction,
    ExecRequest,
    LoadRequest,
    LoadResult,
    QuitRequest,
    ShimInstaller,
)
from authmux.manager import Manager
from authmux.shim import install_all, resolve_authmux_bin
from authmux.store import Profile

LOAD_TIMEOUT_SECONDS = 12.0

log = logging.getLogger(__name__)


def default_shim_installer(directory: Path | None = None) -> ShimInstaller:
    def _install(profiles: list[Profile]) -> str:
        d = directory if directory is not None else default_shim_dir()
        installed = install_all(d, profiles, resolve_authmux_bin())
        return f"Installed {len(installed)} shim(s) in {d}"

    return _install


class AuthmuxTui(App):
    CSS = """
    #view { padding: 1 2; }
    """

    def __init__(
        self,
        *,
        manager: Manager,
        install_shims: ShimInstaller | None = None,
        load_timeout_seconds: float = LOAD_TIMEOUT_SECONDS,
    ) -> None:
        super().__init__()
        self.manager = manager
        self.model = DashboardModel(manager, install_shims=install_shims)
        self.load_timeout_seconds = load_timeout_seconds

    def compose(self) -> ComposeResult:
        yield Static(self.model.render(), id="view")

    def on_mount(self) -> None:
        self._dispatch(self.model.start())

    def on_key(self, event: events.Key) -> None:
        event.stop()
        event.prevent_default()
        self._dispatch(self.model.handle_key(event.key, event.character))

    # --- effects ---

    def _dispatch(self, effect: Effect | None) -> None:
        if isinstance(effect, LoadRequest):
            self.run_worker(self._load, thread=True, group="load", exit_on_error=False)
        elif isinstance(effect, ExecRequest):
            # 描画を挟んでから端末を渡す
            self.call_after_refresh(self._exec, effect)
        elif isinstance(effect, QuitRequest):
            self.exit()
            return
        self._render()

    def _render(self) -> None:
        self.query_one("#view", Static).update(self.model.render())

    def _load(self) -> None:
        ctx = RunContext.with_timeout(self.load_timeout_seconds)
        try:
            state = self.manager.load()
            rows = self.manager.status_rows(ctx)
            result = LoadResult(state=state, rows=rows)
        except Exception as e:  # noqa: BLE001 - ステータス行に表示する
            log.warning("dashboard load failed: %s", e)
            result = LoadResult(error=e)
        self.call_from_thread(self._loaded, result)

    def _loaded(self, result: LoadResult) -> None:
        self._dispatch(self.model.apply_load(result))

    def _exec(self, req: ExecRequest) -> None:
        error: Exception | None = None
        try:
            with self.suspend():
                self._run_action(req.action, req.profile)
        except Exception as e:  # noqa: BLE001 - ステータス行に表示する
            log.warning("%s failed for %s: %s", req.action.value, req.profile.key, e)
            error = e
        self._dispatch(self.model.apply_action_done(ActionDone(error=error)))

    def _run_action(self, action: ExecAction, profile: Profile) -> None:
        ctx = RunContext.background()
        if action is ExecAction.LOGIN:
            self.manager.login_profile(ctx, profile)
        elif action is ExecAction.LOGOUT:
            self.manager.logout_profile(ctx, profile)
        else:
            self.manager.run_tool(ctx, profile, [])


def run_tui(*, manager: Manager, install_shims: ShimInstaller | None = None) -> None:
    if install_shims is None:
        install_shims = default_shim_installer()
    AuthmuxTui(manager=manager, install_shims=install_shims).run()
