"""DashboardModel（UI非依存の状態機械）のテスト。"""

from authmux.adapters import Status
from authmux.context import RunContext
from authmux.dashboard import (
    ActionDone,
    DashboardModel,
    ExecAction,
    ExecRequest,
    LoadRequest,
    LoadResult,
    Mode,
    QuitRequest,
)
from authmux.manager import Manager, StatusRow
from authmux.store import Profile
from authmux.tools import Tool


def _loaded(manager: Manager, **kwargs) -> DashboardModel:
    model = DashboardModel(manager, **kwargs)
    assert isinstance(model.start(), LoadRequest)
    model.apply_load(LoadResult(state=manager.load(), rows=[]))
    return model


def test_loading_view_until_first_load(manager: Manager) -> None:
    model = DashboardModel(manager)
    assert model.render() == "Loading authmux..."
    model.start()
    model.apply_load(LoadResult(state=manager.load()))
    assert "No profiles yet" in model.render()


def test_reload_requests_are_coalesced(manager: Manager) -> None:
    model = DashboardModel(manager)
    assert isinstance(model.start(), LoadRequest)
    assert model.handle_key("r") is None
    assert model.request_load() is None

    follow_up = model.apply_load(LoadResult(state=manager.load()))
    assert isinstance(follow_up, LoadRequest)
    assert model.apply_load(LoadResult(state=manager.load())) is None
    assert model.loading is False


def test_load_error_keeps_previous_rows(manager: Manager) -> None:
    manager.ensure_profile(Tool.CLAUDE, "a")
    model = _loaded(manager)
    model.request_load()
    model.apply_load(LoadResult(error=RuntimeError("disk gone")))
    assert model.message == "Error: disk gone"
    assert [p.name for p in model.state.profiles] == ["a"]


def test_cursor_moves_and_clamps(manager: Manager) -> None:
    for name in ("a", "b", "c"):
        manager.ensure_profile(Tool.CODEX, name)
    model = _loaded(manager)

    model.handle_key("up")
    assert model.cursor == 0
    model.handle_key("j")
    model.handle_key("down")
    model.handle_key("down")
    assert model.cursor == 2

    manager.remove_profile(Tool.CODEX, "c")
    model.request_load()
    model.apply_load(LoadResult(state=manager.load()))
    assert model.cursor == 1
    assert model.selected_profile().name == "b"


def test_add_flow_creates_profile_and_requests_login(manager: Manager) -> None:
    model = _loaded(manager)
    model.handle_key("a")
    assert model.mode is Mode.ADD_TOOL
    model.handle_key("down")
    assert model.selected_tool is Tool.CODEX
    model.handle_key("enter")
    assert model.mode is Mode.ADD_NAME

    for ch in "wox":
        model.handle_key(ch, ch)
    model.handle_key("backspace")
    model.handle_key("k", "k")
    effect = model.handle_key("enter")

    assert isinstance(effect, ExecRequest)
    assert effect.action is ExecAction.LOGIN
    assert effect.profile.key == "codex/wok"
    assert model.mode is Mode.NORMAL
    assert model.message == "Launching login for codex/wok"
    assert manager.load().defaults[Tool.CODEX] == "wok"


def test_add_rejects_empty_and_invalid_names(manager: Manager) -> None:
    model = _loaded(manager)
    model.handle_key("a")
    model.handle_key("enter")
    assert model.handle_key("enter") is None
    assert model.message == "Profile name cannot be empty"

    model.handle_key("-", "-")
    assert model.handle_key("enter") is None
    assert model.message.startswith("Failed: ")
    assert model.mode is Mode.ADD_NAME

    model.handle_key("escape")
    assert model.mode is Mode.NORMAL
    assert model.message == "Add cancelled"


def test_delete_confirm_and_cancel(manager: Manager) -> None:
    manager.ensure_profile(Tool.CLAUDE, "a")
    p, _ = manager.ensure_profile(Tool.CLAUDE, "b")
    model = _loaded(manager)
    model.handle_key("down")

    model.handle_key("d")
    assert model.mode is Mode.CONFIRM_DELETE
    assert "Delete claude/b from registry? (y/n)" in model.render()
    model.handle_key("n")
    assert model.message == "Delete cancelled"

    model.handle_key("d")
    assert isinstance(model.handle_key("y"), LoadRequest)
    assert model.message == "Removed claude/b"
    assert [x.name for x in manager.load().profiles] == ["a"]
    # 削除はレジストリのみ
    assert p.dir.is_dir()


def test_delete_without_profiles(manager: Manager) -> None:
    model = _loaded(manager)
    model.handle_key("d")
    assert model.mode is Mode.NORMAL
    assert model.message == "No profile selected"


def test_set_default_and_exec_actions(manager: Manager) -> None:
    manager.ensure_profile(Tool.CLAUDE, "a")
    manager.ensure_profile(Tool.CLAUDE, "b")
    model = _loaded(manager)
    model.handle_key("down")

    assert isinstance(model.handle_key("u"), LoadRequest)
    assert model.message == "Default set: claude/b"
    assert manager.load().defaults[Tool.CLAUDE] == "b"

    launch = model.handle_key("enter")
    assert isinstance(launch, ExecRequest) and launch.action is ExecAction.LAUNCH
    assert model.message == "Launching claude/b..."
    assert model.handle_key("l").action is ExecAction.LOGIN
    assert model.handle_key("o").action is ExecAction.LOGOUT
    assert model.message == "Logging out claude/b"


def test_action_done_reports_and_reloads(manager: Manager) -> None:
    model = _loaded(manager)
    assert isinstance(model.apply_action_done(ActionDone()), LoadRequest)
    assert model.message == "Done."
    model.apply_load(LoadResult(state=manager.load()))
    model.apply_action_done(ActionDone(error=RuntimeError("exit 2")))
    assert model.message == "Action failed: exit 2"


def test_install_shims(manager: Manager) -> None:
    seen: list[list[Profile]] = []

    def _install(profiles: list[Profile]) -> str:
        seen.append(profiles)
        return f"Installed {len(profiles)} shim(s)"

    model = _loaded(manager, install_shims=_install)
    model.handle_key("s")
    assert model.message == "No profiles to shim"

    manager.ensure_profile(Tool.CODEX, "x")
    model.request_load()
    model.apply_load(LoadResult(state=manager.load()))
    model.handle_key("s")
    assert model.message == "Installed 1 shim(s)"
    assert [p.key for p in seen[0]] == ["codex/x"]


def test_quit_and_render(manager: Manager, fake_adapters: dict) -> None:
    manager.ensure_profile(Tool.CLAUDE, "a")
    fake_adapters[Tool.CLAUDE].logged_in = {"a"}
    model = DashboardModel(manager)
    model.start()
    rows = manager.status_rows(RunContext.background())
    model.apply_load(LoadResult(state=manager.load(), rows=rows))

    view = model.render()
    assert "* ● claude/a" in view
    assert "Status: logged in" in view
    assert "Method: fake" in view
    assert "\\[a] Add" in view

    model.rows = [StatusRow(profile=model.state.profiles[0], status=Status(), error="boom")]
    assert "⚠ claude/a" in model.render()

    assert isinstance(model.handle_key("q"), QuitRequest)
