"""shim（起動用ラッパースクリプト）の生成/削除。

`claude-work` のようなコマンドで `authmux run claude work -- ...` を呼べるようにする。
生成物にはマーカー行を入れ、remove_all はマーカー付きのファイルだけを消す。
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import stat
import sys
from pathlib import Path

from authmux.store import Profile
from authmux.tools import Tool

MARKER = "generated by authmux; do not edit"

log = logging.getLogger(__name__)


def _is_windows() -> bool:
    return os.name == "nt"


def shim_name(tool: Tool, name: str) -> str:
    return f"{tool.value}-{name}"


def shim_path(directory: Path, tool: Tool, name: str) -> Path:
    base = shim_name(tool, name)
    return directory / (f"{base}.cmd" if _is_windows() else base)


def resolve_authmux_bin() -> str:
    found = shutil.which("authmux")
    if found:
        return found
    argv0 = Path(sys.argv[0]) if sys.argv and sys.argv[0] else None
    if argv0 is not None and argv0.name.startswith("authmux") and argv0.exists():
        return str(argv0.resolve())
    return "authmux"


def _script(profile: Profile, authmux_bin: str) -> str:
    if _is_windows():
        return (
            "@echo off\r\n"
            f"REM {MARKER}\r\n"
            f'"{authmux_bin}" run {profile.tool.value} {profile.name} -- %*\r\n'
        )
    return (
        "#!/bin/sh\n"
        f"# {MARKER}\n"
        f"exec {shlex.quote(authmux_bin)} run {profile.tool.value} "
        f"{shlex.quote(profile.name)} -- \"$@\"\n"
    )


def install(directory: Path, profile: Profile, authmux_bin: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = shim_path(directory, profile.tool, profile.name)
    path.write_text(_script(profile, authmux_bin), encoding="utf-8")
    if not _is_windows():
        mode = path.stat().st_mode
        path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    log.info("installed shim %s", path)
    return path


def install_all(directory: Path, profiles: list[Profile], authmux_bin: str) -> list[Path]:
    """全プロファイルの shim を入れる。1件の失敗で止めない。"""
    installed: list[Path] = []
    for p in profiles:
        try:
            installed.append(install(directory, p, authmux_bin))
        except OSError as e:
            log.warning("could not install shim for %s: %s", p.key, e)
    return installed


def remove(directory: Path, tool: Tool, name: str) -> None:
    path = shim_path(directory, tool, name)
    try:
        path.unlink()
    except FileNotFoundError:
        return
    log.info("removed shim %s", path)


def _is_managed(path: Path) -> bool:
    if not path.is_file():
        return False
    try:
        head = path.read_text(encoding="utf-8", errors="replace")[:512]
    except OSError:
        return False
    return MARKER in head


def remove_all(directory: Path) -> list[Path]:
    """directory 内の authmux 生成 shim だけを削除する。"""
    if not directory.is_dir():
        return []
    removed: list[Path] = []
    for path in sorted(directory.iterdir()):
        if not _is_managed(path):
            continue
        path.unlink()
        removed.append(path)
        log.info("removed shim %s", path)
    return removed
