"""tools のテスト。"""

from pathlib import Path

import pytest

from authmux.errors import InvalidName, UnsupportedTool
from authmux.tools import Tool, parse_tool, profile_dir, tool_names, validate_profile_name


def test_parse_tool_ignores_case_and_spaces() -> None:
    assert parse_tool(" Claude ") is Tool.CLAUDE
    assert parse_tool("codex") is Tool.CODEX
    assert tool_names() == ["claude", "codex"]


def test_parse_tool_rejects_unknown() -> None:
    with pytest.raises(UnsupportedTool):
        parse_tool("gemini")


@pytest.mark.parametrize("name", ["work", "a", "my.profile_1-x", "9" * 64])
def test_valid_profile_names(name: str) -> None:
    validate_profile_name(name)


@pytest.mark.parametrize("name", ["", "-lead", ".hidden", "has space", "a/b", "x" * 65, "日本"])
def test_invalid_profile_names(name: str) -> None:
    with pytest.raises(InvalidName):
        validate_profile_name(name)


def test_profile_dir_layout(tmp_path: Path) -> None:
    assert profile_dir(tmp_path, Tool.CODEX, "work") == tmp_path / "profiles" / "codex" / "work"
