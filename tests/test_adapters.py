"""adapters のテスト（実際の claude/codex は呼ばない）。"""

import os
import sys
from pathlib import Path

import pytest

from authmux.adapters import (
    ClaudeAdapter,
    CodexAdapter,
    _run_captured,
    get_adapter,
    parse_claude_status,
    parse_codex_status,
)
from authmux.context import RunContext
from authmux.errors import AdapterUnavailable
from authmux.tools import Tool


def test_get_adapter() -> None:
    assert isinstance(get_adapter(Tool.CLAUDE), ClaudeAdapter)
    assert isinstance(get_adapter(Tool.CODEX), CodexAdapter)


def test_commands_inject_profile_dir(tmp_path: Path) -> None:
    claude = get_adapter(Tool.CLAUDE)
    login = claude.login_command(tmp_path)
    assert login.argv == ["claude", "auth", "login"]
    assert login.env["CLAUDE_CONFIG_DIR"] == str(tmp_path)
    assert "PATH" in login.env

    codex = get_adapter(Tool.CODEX)
    assert codex.logout_command(tmp_path).argv == ["codex", "logout"]
    run = codex.run_command(tmp_path, ["exec", "--help"])
    assert run.argv == ["codex", "exec", "--help"]
    assert run.env["CODEX_HOME"] == str(tmp_path)


def test_parse_claude_status() -> None:
    s = parse_claude_status('{"loggedIn": true, "authMethod": "oauth"}')
    assert s.logged_in is True
    assert s.method == "oauth"

    s = parse_claude_status("not json")
    assert s.logged_in is False
    assert s.raw == "not json"


@pytest.mark.parametrize(
    ("rc", "output", "expected"),
    [
        (0, "Logged in using ChatGPT", True),
        (0, "Not logged in", False),
        (1, "error", False),
        (0, "You are logged out", False),
    ],
)
def test_parse_codex_status(rc: int, output: str, expected: bool) -> None:
    assert parse_codex_status(rc, output).logged_in is expected


def test_status_without_binary(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("PATH", str(tmp_path))
    with pytest.raises(AdapterUnavailable, match="claude not found"):
        get_adapter(Tool.CLAUDE).status(RunContext.background(), tmp_path)


def test_captured_output_survives_invalid_utf8() -> None:
    code = "import sys; sys.stdout.buffer.write(b'Logged in \\xff\\xfe ok')"
    r = _run_captured(RunContext.background(), [sys.executable, "-c", code], dict(os.environ))
    assert r.returncode == 0
    assert r.output == "Logged in �� ok"
    assert parse_codex_status(r.returncode, r.output).logged_in is True
