"""Session Manager: プロファイルのライフサイクルとセッション操作。

方針:
- 状態は呼び出しごとに load -> 変更 -> save。Manager 自身は状態を持たない
- ディスク上のディレクトリ操作（作成/移動/削除）は必ずレジストリ保存より先に行う。
  ディレクトリ操作が失敗したらレジストリには触らない
- ステータス確認はプロファイルごとに独立したスレッドと期限で並列に行い、
  1件の失敗/ハングが他の行の表示を妨げないようにする

注意:
- 複数プロセスからの同時更新はロックしていない（last-writer-wins）。
"""

from __future__ import annotations

import logging
import shutil
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from authmux.adapters import Status, get_adapter
from authmux.config import default_root
from authmux.context import RunContext
from authmux.errors import (
    NoDefaultProfile,
    ProfileAlreadyExists,
    ProfileNotFound,
)
from authmux.interactive import run_interactive
from authmux.store import (
    Profile,
    ProfileStore,
    RegistryState,
    default_profile,
    find_profile,
    sort_profiles,
)
from authmux.tools import SUPPORTED_TOOLS, Tool, profile_dir, validate_profile_name

DEFAULT_STATUS_TIMEOUT_SECONDS = 8.0

log = logging.getLogger(__name__)


@dataclass
class StatusRow:
    profile: Profile
    status: Status = field(default_factory=Status)
    error: str = ""

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "profile": self.profile.to_dict(),
            "status": self.status.to_dict(),
        }
        if self.error:
            out["error"] = self.error
        return out


@dataclass
class DoctorReport:
    root_dir: Path
    tool_binaries: dict[Tool, bool] = field(default_factory=dict)
    profiles_total: int = 0
    missing_dirs: list[str] = field(default_factory=list)
    bad_defaults: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.missing_dirs and not self.bad_defaults

    def to_dict(self) -> dict[str, Any]:
        return {
            "root_dir": str(self.root_dir),
            "tool_binaries": {t.value: v for t, v in self.tool_binaries.items()},
            "profiles_total": self.profiles_total,
            "missing_profile_dirs": list(self.missing_dirs),
            "bad_defaults": list(self.bad_defaults),
        }


class Manager:
    def __init__(
        self,
        root: Path,
        *,
        status_timeout_seconds: float = DEFAULT_STATUS_TIMEOUT_SECONDS,
    ) -> None:
        self.store = ProfileStore(root)
        self.status_timeout_seconds = status_timeout_seconds

    @classmethod
    def default(cls) -> Manager:
        return cls(default_root())

    def root(self) -> Path:
        return self.store.root()

    def load(self) -> RegistryState:
        return self.store.load()

    def save(self, state: RegistryState) -> None:
        self.store.save(state)

    # --- lifecycle ---

    def ensure_profile(self, tool: Tool, name: str) -> tuple[Profile, bool]:
        """(tool, name) のプロファイルを用意する。既存なら created=False。"""
        validate_profile_name(name)
        st = self.load()
        _, existing = find_profile(st, tool, name)
        if existing is not None:
            return existing, False

        d = profile_dir(self.root(), tool, name)
        d.mkdir(parents=True, exist_ok=True)

        p = Profile(tool=tool, name=name, dir=d)
        st.profiles.append(p)
        sort_profiles(st.profiles)
        if default_profile(st, tool) is None:
            st.defaults[tool] = name
        self.save(st)
        log.info("created profile %s (%s)", p.key, d)
        return p, True

    def get_profile(self, state: RegistryState, tool: Tool, name: str) -> Profile:
        _, p = find_profile(state, tool, name)
        if p is None:
            raise ProfileNotFound(f"profile not found: {tool}/{name}")
        return p

    def resolve_profile(self, state: RegistryState, tool: Tool, name: str | None = None) -> Profile:
        if name:
            return self.get_profile(state, tool, name)
        default = default_profile(state, tool)
        if default is None:
            raise NoDefaultProfile(f"no default profile set for {tool}")
        return self.get_profile(state, tool, default)

    def set_default(self, tool: Tool, name: str) -> None:
        st = self.load()
        self.get_profile(st, tool, name)
        st.defaults[tool] = name
        self.save(st)
        log.info("default for %s set to %s", tool, name)

    def rename_profile(self, tool: Tool, old_name: str, new_name: str) -> None:
        validate_profile_name(new_name)
        st = self.load()
        idx, p = find_profile(st, tool, old_name)
        if p is None:
            raise ProfileNotFound(f"profile not found: {tool}/{old_name}")
        _, exists = find_profile(st, tool, new_name)
        if exists is not None:
            raise ProfileAlreadyExists(f"target profile already exists: {tool}/{new_name}")

        new_dir = profile_dir(self.root(), tool, new_name)
        new_dir.parent.mkdir(parents=True, exist_ok=True)
        # 移動に失敗したらレジストリは変更しない
        p.dir.rename(new_dir)

        st.profiles[idx].name = new_name
        st.profiles[idx].dir = new_dir
        if st.defaults.get(tool) == old_name:
            st.defaults[tool] = new_name
        sort_profiles(st.profiles)
        self.save(st)
        log.info("renamed %s/%s -> %s", tool, old_name, new_name)

    def remove_profile(self, tool: Tool, name: str, *, purge: bool = False) -> None:
        st = self.load()
        idx, p = find_profile(st, tool, name)
        if p is None:
            raise ProfileNotFound(f"profile not found: {tool}/{name}")
        if purge and p.dir.exists():
            # 削除に失敗したらレジストリは変更しない
            shutil.rmtree(p.dir)

        del st.profiles[idx]
        if st.defaults.get(tool) == name:
            del st.defaults[tool]
            # 残りの先頭（(tool, name) 順）を新しい default にする
            for other in st.profiles:
                if other.tool == tool:
                    st.defaults[tool] = other.name
                    break
        self.save(st)
        log.info("removed profile %s/%s (purge=%s)", tool, name, purge)

    # --- status ---

    def status_for_profile(self, ctx: RunContext, profile: Profile) -> Status:
        adapter = get_adapter(profile.tool)
        return adapter.status(ctx, profile.dir)

    def status_rows(self, ctx: RunContext, tool: Tool | None = None) -> list[StatusRow]:
        """全プロファイルのステータスを並列に確認する。

        各プロファイルは `status_timeout_seconds` の独立した期限（親 ctx の期限は超えない）
        で確認され、失敗/タイムアウトはその行の error に入る。全体が失敗するのは
        レジストリの読み込みに失敗した時だけ。全行が揃うまで戻らない。
        """
        st = self.load()
        profiles = [p for p in st.profiles if tool is None or p.tool == tool]
        if not profiles:
            return []

        pool = ThreadPoolExecutor(
            max_workers=len(profiles), thread_name_prefix="authmux-status"
        )
        try:
            jobs: list[tuple[Profile, RunContext, Future[Status]]] = []
            for p in profiles:
                sub = ctx.child(self.status_timeout_seconds)
                jobs.append((p, sub, pool.submit(self.status_for_profile, sub, p)))

            rows: list[StatusRow] = []
            for p, sub, fut in jobs:
                row = StatusRow(profile=p)
                try:
                    row.status = self._await_status(sub, fut)
                except Exception as e:  # noqa: BLE001 - 行ごとのエラーとして記録
                    row.error = str(e) or type(e).__name__
                    log.warning("status check failed for %s: %s", p.key, row.error)
                rows.append(row)
            return rows
        finally:
            # ハングしたプローブは待たない（ctx をキャンセル済み）
            pool.shutdown(wait=False, cancel_futures=True)

    @staticmethod
    def _await_status(sub: RunContext, fut: Future[Status]) -> Status:
        while True:
            done, _ = wait([fut], timeout=sub.poll_slice())
            if done:
                return fut.result()
            err = sub.error()
            if err is not None:
                sub.cancel()
                fut.cancel()
                raise err

    # --- interactive ---

    def run_tool(self, ctx: RunContext, profile: Profile, args: list[str]) -> None:
        adapter = get_adapter(profile.tool)
        run_interactive(ctx, adapter.run_command(profile.dir, args))

    def login_profile(self, ctx: RunContext, profile: Profile) -> None:
        adapter = get_adapter(profile.tool)
        run_interactive(ctx, adapter.login_command(profile.dir))

    def logout_profile(self, ctx: RunContext, profile: Profile) -> None:
        adapter = get_adapter(profile.tool)
        run_interactive(ctx, adapter.logout_command(profile.dir))

    # --- diagnostics ---

    def doctor(self) -> DoctorReport:
        """読み取り専用の健全性チェック。何も変更しない。"""
        st = self.load()
        rep = DoctorReport(root_dir=self.root())
        for t in SUPPORTED_TOOLS:
            rep.tool_binaries[t] = shutil.which(get_adapter(t).binary) is not None
        rep.profiles_total = len(st.profiles)

        for p in st.profiles:
            if not p.dir.exists():
                rep.missing_dirs.append(f"{p.key} -> {p.dir}")

        for t, name in st.defaults.items():
            if not name.strip():
                rep.bad_defaults.append(f"{t} has empty default")
                continue
            _, found = find_profile(st, t, name)
            if found is None:
                rep.bad_defaults.append(f"{t} default {name!r} not found")

        rep.missing_dirs.sort()
        rep.bad_defaults.sort()
        return rep
