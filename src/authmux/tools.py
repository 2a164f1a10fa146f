"""対応ツールとプロファイル名のルール。

- 対応ツールは固定（claude / codex）。プラグインで増やす想定はない
- プロファイル名はディレクトリ名・shim名にそのまま使うため、文字種を制限する
"""

from __future__ import annotations

import re
from enum import Enum
from pathlib import Path

from authmux.errors import InvalidName, UnsupportedTool

PROFILE_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9._-]{0,63}$")


class Tool(str, Enum):
    CLAUDE = "claude"
    CODEX = "codex"

    def __str__(self) -> str:
        return self.value


SUPPORTED_TOOLS: tuple[Tool, ...] = (Tool.CLAUDE, Tool.CODEX)


def tool_names() -> list[str]:
    return [t.value for t in SUPPORTED_TOOLS]


def parse_tool(raw: str) -> Tool:
    """文字列をToolに変換する（大文字小文字・前後空白は無視）。"""
    value = (raw or "").strip().lower()
    for t in SUPPORTED_TOOLS:
        if t.value == value:
            return t
    raise UnsupportedTool(
        f"unsupported tool {raw!r} (supported: {', '.join(tool_names())})"
    )


def validate_profile_name(name: str) -> None:
    if not PROFILE_NAME_PATTERN.match(name or ""):
        raise InvalidName(
            f"invalid profile name {name!r} "
            "(allowed: letters, digits, ., _, - ; max 64 chars)"
        )


def profile_dir(root: Path, tool: Tool, name: str) -> Path:
    # dir は常に (root, tool, name) から導出する
    return root / "profiles" / tool.value / name
