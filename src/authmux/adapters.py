"""ツールごとのアダプタ（claude / codex）。

各アダプタが知っていること:
- バイナリ名と、プロファイルディレクトリを渡す環境変数名
- run / login / logout のコマンド組み立て
- 「このディレクトリでログイン済みか」の確認方法

組み立てたコマンドは必ず `<env_var>=<profile_dir>` を継承環境に上乗せする。
このモジュールは"ディレクトリの解決"のみ行い、認証情報の中身は扱わない。
"""

from __future__ import annotations

import json
import os
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from authmux.context import RunContext
from authmux.errors import AdapterUnavailable, StatusCheckError, UnsupportedTool
from authmux.tools import Tool


@dataclass
class Command:
    argv: list[str]
    env: dict[str, str] = field(default_factory=dict)


@dataclass
class Status:
    logged_in: bool = False
    method: str = ""
    raw: str = ""

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"logged_in": self.logged_in}
        if self.method:
            out["method"] = self.method
        if self.raw:
            out["raw"] = self.raw
        return out


@dataclass
class _Captured:
    returncode: int
    output: str


def _run_captured(ctx: RunContext, argv: list[str], env: dict[str, str]) -> _Captured:
    """stdout/stderr をまとめて取得する。ctx の期限/キャンセルで kill する。"""
    ctx.check()
    proc = subprocess.Popen(
        argv,
        env=env,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        encoding="utf-8",
        errors="replace",
    )
    while True:
        try:
            out, _ = proc.communicate(timeout=ctx.poll_slice())
            break
        except subprocess.TimeoutExpired:
            err = ctx.error()
            if err is None:
                continue
            proc.kill()
            proc.communicate()
            raise err from None
    return _Captured(returncode=proc.returncode, output=(out or "").strip())


class Adapter:
    tool: Tool
    binary: str
    env_var: str

    def environment(self, profile_dir: Path) -> dict[str, str]:
        env = dict(os.environ)
        env[self.env_var] = str(profile_dir)
        return env

    def ensure_binary(self) -> None:
        if shutil.which(self.binary) is None:
            raise AdapterUnavailable(f"{self.binary} not found in PATH")

    def command(self, profile_dir: Path, *args: str) -> Command:
        return Command(argv=[self.binary, *args], env=self.environment(profile_dir))

    def run_command(self, profile_dir: Path, args: list[str]) -> Command:
        return self.command(profile_dir, *args)

    def login_command(self, profile_dir: Path) -> Command:
        raise NotImplementedError

    def logout_command(self, profile_dir: Path) -> Command:
        raise NotImplementedError

    def status(self, ctx: RunContext, profile_dir: Path) -> Status:
        raise NotImplementedError


class ClaudeAdapter(Adapter):
    tool = Tool.CLAUDE
    binary = "claude"
    env_var = "CLAUDE_CONFIG_DIR"

    def login_command(self, profile_dir: Path) -> Command:
        return self.command(profile_dir, "auth", "login")

    def logout_command(self, profile_dir: Path) -> Command:
        return self.command(profile_dir, "auth", "logout")

    def status(self, ctx: RunContext, profile_dir: Path) -> Status:
        self.ensure_binary()
        r = _run_captured(
            ctx,
            [self.binary, "auth", "status", "--json"],
            self.environment(profile_dir),
        )
        if r.returncode != 0:
            raise StatusCheckError(
                r.output or f"{self.binary} auth status exited with code {r.returncode}"
            )
        return parse_claude_status(r.output)


class CodexAdapter(Adapter):
    tool = Tool.CODEX
    binary = "codex"
    env_var = "CODEX_HOME"

    def login_command(self, profile_dir: Path) -> Command:
        return self.command(profile_dir, "login")

    def logout_command(self, profile_dir: Path) -> Command:
        return self.command(profile_dir, "logout")

    def status(self, ctx: RunContext, profile_dir: Path) -> Status:
        self.ensure_binary()
        r = _run_captured(ctx, [self.binary, "login", "status"], self.environment(profile_dir))
        return parse_codex_status(r.returncode, r.output)


def parse_claude_status(output: str) -> Status:
    try:
        parsed = json.loads(output)
    except json.JSONDecodeError:
        return Status(raw=output)
    if not isinstance(parsed, dict):
        return Status(raw=output)
    return Status(
        logged_in=bool(parsed.get("loggedIn", False)),
        method=str(parsed.get("authMethod") or ""),
        raw=output,
    )


def parse_codex_status(returncode: int, output: str) -> Status:
    low = output.lower()
    if "not logged" in low or "logged out" in low:
        return Status(logged_in=False, raw=output)
    return Status(logged_in=returncode == 0, raw=output)


_ADAPTERS: dict[Tool, Adapter] = {
    Tool.CLAUDE: ClaudeAdapter(),
    Tool.CODEX: CodexAdapter(),
}


def get_adapter(tool: Tool) -> Adapter:
    try:
        return _ADAPTERS[tool]
    except KeyError:
        raise UnsupportedTool(f"unsupported tool: {tool}") from None
