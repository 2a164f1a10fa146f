"""プロファイルレジストリ（state.json）の永続化。

- `<root>/state.json` に profiles と tool ごとの default を保存
- 読み込み時に正規化（空コンテナ補完 / version補完 / (tool, name) でソート）
- 保存は一時ファイル + os.replace で行い、書きかけのファイルは見せない

注意:
- ロックは持たない。同じ root に対する複数プロセスの同時更新は
  「最後に保存した方が勝つ」（ファイル単位の last-writer-wins）。
- プロファイルの dir は保存値を信用せず、常に (root, tool, name) から再計算する。
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from authmux.errors import CorruptState, InvalidName, InvalidState, UnsupportedTool
from authmux.tools import Tool, parse_tool, profile_dir, validate_profile_name

STATE_FILE_NAME = "state.json"
STATE_VERSION = 1

logger = logging.getLogger(__name__)


def _format_time(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_time(raw: str) -> datetime:
    # Python 3.10 の fromisoformat は "Z" を受け付けない
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    ts = datetime.fromisoformat(raw)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


@dataclass
class Profile:
    tool: Tool
    name: str
    dir: Path
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> str:
        return f"{self.tool.value}/{self.name}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool.value,
            "name": self.name,
            "dir": str(self.dir),
            "created_at": _format_time(self.created_at),
        }


@dataclass
class RegistryState:
    version: int = STATE_VERSION
    defaults: dict[Tool, str] = field(default_factory=dict)
    profiles: list[Profile] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "defaults": {t.value: n for t, n in sorted(self.defaults.items())},
            "profiles": [p.to_dict() for p in self.profiles],
        }


def sort_profiles(profiles: list[Profile]) -> None:
    profiles.sort(key=lambda p: (p.tool.value, p.name))


def find_profile(state: RegistryState, tool: Tool, name: str) -> tuple[int, Profile | None]:
    for i, p in enumerate(state.profiles):
        if p.tool == tool and p.name == name:
            return i, p
    return -1, None


def default_profile(state: RegistryState, tool: Tool) -> str | None:
    """tool の default 名。未設定や空文字なら None。"""
    value = state.defaults.get(tool)
    if value is None or not value.strip():
        return None
    return value


class ProfileStore:
    """state.json の唯一の所有者。パスを知っているのはこのクラスだけ。"""

    def __init__(self, root: Path) -> None:
        if not str(root).strip():
            raise ValueError("store root cannot be empty")
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)

    def root(self) -> Path:
        return self._root

    @property
    def state_path(self) -> Path:
        return self._root / STATE_FILE_NAME

    def load(self) -> RegistryState:
        path = self.state_path
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            # 未初期化の root は空のレジストリとして扱う
            return RegistryState()

        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            logger.error("state file is not valid JSON: %s (%s)", path, e)
            raise CorruptState(f"cannot parse {path}: {e}") from e
        if not isinstance(raw, dict):
            raise CorruptState(f"cannot parse {path}: top-level value must be an object")

        state = self._from_raw(raw, path)
        self._normalize(state)
        return state

    def save(self, state: RegistryState | None) -> None:
        if state is None:
            raise InvalidState("state cannot be None")
        self._normalize(state)
        state.version = STATE_VERSION

        body = json.dumps(state.to_dict(), ensure_ascii=False, indent=2) + "\n"
        path = self.state_path
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{STATE_FILE_NAME}.", suffix=".tmp", dir=self._root
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(body)
            os.replace(tmp_path, path)
        except OSError:
            if tmp_path.exists():
                tmp_path.unlink()
            raise
        logger.debug("saved %d profile(s) to %s", len(state.profiles), path)

    def _from_raw(self, raw: dict[str, Any], path: Path) -> RegistryState:
        try:
            version = int(raw.get("version") or 0)

            defaults: dict[Tool, str] = {}
            for k, v in (raw.get("defaults") or {}).items():
                if v is None:
                    continue
                if not isinstance(v, str):
                    raise TypeError(f"default for {k!r} must be a string")
                # 空文字は未設定扱い（doctor で報告する）
                if v.strip():
                    validate_profile_name(v)
                defaults[parse_tool(k)] = v

            profiles: list[Profile] = []
            for item in raw.get("profiles") or []:
                name = item["name"]
                if not isinstance(name, str):
                    raise TypeError("profile name must be a string")
                # ディレクトリ名に使うので読み込み時にも検証する
                validate_profile_name(name)
                created_raw = item.get("created_at")
                profiles.append(
                    Profile(
                        tool=parse_tool(str(item["tool"])),
                        name=name,
                        dir=Path(),
                        created_at=(
                            _parse_time(str(created_raw))
                            if created_raw
                            else datetime.fromtimestamp(0, timezone.utc)
                        ),
                    )
                )
        except (UnsupportedTool, InvalidName, KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error("state file has invalid content: %s (%s)", path, e)
            raise CorruptState(f"invalid content in {path}: {e}") from e

        return RegistryState(version=version, defaults=defaults, profiles=profiles)

    def _normalize(self, state: RegistryState) -> None:
        if state.defaults is None:
            state.defaults = {}
        if state.profiles is None:
            state.profiles = []
        if not state.version or state.version <= 0:
            state.version = STATE_VERSION

        seen: set[tuple[Tool, str]] = set()
        unique: list[Profile] = []
        for p in state.profiles:
            k = (p.tool, p.name)
            if k in seen:
                logger.warning("dropping duplicate profile entry: %s", p.key)
                continue
            seen.add(k)
            p.dir = profile_dir(self._root, p.tool, p.name)
            unique.append(p)
        state.profiles = unique
        sort_profiles(state.profiles)
