from __future__ import annotations

import sys
from pathlib import Path

import pytest

from authmux.adapters import Adapter, Command, Status
from authmux.context import RunContext
from authmux.errors import DeadlineExceeded, StatusCheckError
from authmux.manager import Manager
from authmux.tools import Tool


class FakeAdapter(Adapter):
    """外部CLIの代わり。プロファイル名（ディレクトリ名）で振る舞いを変える。"""

    def __init__(
        self,
        tool: Tool,
        *,
        logged_in: set[str] | None = None,
        hang: set[str] | None = None,
        fail: set[str] | None = None,
    ) -> None:
        self.tool = tool
        self.binary = f"fake-{tool.value}-not-installed"
        self.env_var = "AUTHMUX_FAKE_HOME"
        self.logged_in = logged_in or set()
        self.hang = hang or set()
        self.fail = fail or set()

    def _py(self, profile_dir: Path, code: str) -> Command:
        return Command(argv=[sys.executable, "-c", code], env=self.environment(profile_dir))

    def run_command(self, profile_dir: Path, args: list[str]) -> Command:
        code = "import sys; sys.exit(int(sys.argv[1]) if len(sys.argv) > 1 else 0)"
        cmd = self._py(profile_dir, code)
        cmd.argv += args
        return cmd

    def login_command(self, profile_dir: Path) -> Command:
        code = (
            "import os, pathlib; "
            "pathlib.Path(os.environ['AUTHMUX_FAKE_HOME'], 'login.txt').write_text('ok')"
        )
        return self._py(profile_dir, code)

    def logout_command(self, profile_dir: Path) -> Command:
        return self._py(profile_dir, "import sys; sys.exit(4)")

    def status(self, ctx: RunContext, profile_dir: Path) -> Status:
        name = profile_dir.name
        if name in self.hang:
            # キャンセルされるまで戻らないプローブ
            ctx.wait(10)
            raise ctx.error() or DeadlineExceeded()
        if name in self.fail:
            raise StatusCheckError(f"boom: {name}")
        return Status(logged_in=name in self.logged_in, method="fake")


@pytest.fixture()
def root(tmp_path: Path) -> Path:
    return tmp_path / ".authmux"


@pytest.fixture()
def manager(root: Path) -> Manager:
    return Manager(root, status_timeout_seconds=0.3)


@pytest.fixture()
def fake_adapters(monkeypatch: pytest.MonkeyPatch) -> dict[Tool, FakeAdapter]:
    adapters = {t: FakeAdapter(t) for t in Tool}
    monkeypatch.setattr("authmux.manager.get_adapter", lambda tool: adapters[tool])
    return adapters
