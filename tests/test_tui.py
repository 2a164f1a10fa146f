from __future__ import annotations

import pytest

from authmux.dashboard import Mode
from authmux.manager import Manager
from authmux.store import Profile
from authmux.tools import Tool
from authmux.tui import AuthmuxTui


@pytest.mark.asyncio()
async def test_tui_loads_statuses_in_background(manager: Manager, fake_adapters: dict) -> None:
    manager.ensure_profile(Tool.CODEX, "work")
    fake_adapters[Tool.CODEX].logged_in = {"work"}

    app = AuthmuxTui(manager=manager)
    async with app.run_test() as pilot:
        await pilot.pause(0.5)
        assert app.model.loaded
        assert not app.model.loading
        assert "● codex/work" in app.model.render()


@pytest.mark.asyncio()
async def test_tui_delete_flow(manager: Manager, fake_adapters: dict) -> None:
    manager.ensure_profile(Tool.CLAUDE, "a")
    b, _ = manager.ensure_profile(Tool.CLAUDE, "b")

    app = AuthmuxTui(manager=manager)
    async with app.run_test() as pilot:
        await pilot.pause(0.5)
        await pilot.press("j")
        await pilot.press("d")
        assert app.model.mode is Mode.CONFIRM_DELETE
        await pilot.press("y")
        await pilot.pause(0.5)

    assert [p.name for p in manager.load().profiles] == ["a"]
    assert b.dir.is_dir()


@pytest.mark.asyncio()
async def test_tui_shim_key_uses_installer(manager: Manager, fake_adapters: dict) -> None:
    manager.ensure_profile(Tool.CODEX, "x")
    seen: list[str] = []

    def _install(profiles: list[Profile]) -> str:
        seen.extend(p.key for p in profiles)
        return "Installed 1 shim(s) in /tmp/bin"

    app = AuthmuxTui(manager=manager, install_shims=_install)
    async with app.run_test() as pilot:
        await pilot.pause(0.5)
        await pilot.press("s")
        await pilot.pause()
        assert app.model.message == "Installed 1 shim(s) in /tmp/bin"

    assert seen == ["codex/x"]


@pytest.mark.asyncio()
async def test_tui_quit(manager: Manager, fake_adapters: dict) -> None:
    app = AuthmuxTui(manager=manager)
    async with app.run_test() as pilot:
        await pilot.pause(0.3)
        await pilot.press("q")
        await pilot.pause()
    assert app.return_code == 0
