"""authmux CLI エントリポイント。

サブコマンド無しで起動するとダッシュボード（TUI）を開く。

終了コード:
- 0: 成功
- 子プロセスの終了コード: run/login/logout の子が非0で終了した場合
- 1: それ以外の失敗
"""

from __future__ import annotations

import contextlib
import json
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape

from authmux.config import AuthmuxConfig, load_config, resolve_root, shim_dir_for
from authmux.context import RunContext
from authmux.errors import AuthmuxError, ExitCodeError
from authmux.logging_setup import setup_logging
from authmux.manager import Manager, StatusRow
from authmux.shim import (
    install,
    install_all,
    remove,
    remove_all,
    resolve_authmux_bin,
    shim_name,
)
from authmux.store import Profile, RegistryState, find_profile
from authmux.tools import Tool, parse_tool, tool_names
from authmux.tui import default_shim_installer, run_tui

APP_HELP = "🔐 authmux: Claude Code / Codex CLI のログインをプロファイル単位で切り替える"

app = typer.Typer(add_completion=False, help=APP_HELP)
shim_app = typer.Typer(add_completion=False, help="shim（<tool>-<profile> コマンド）の管理")
app.add_typer(shim_app, name="shim")

console = Console()
err_console = Console(stderr=True)


@dataclass
class _Env:
    root: Path
    config: AuthmuxConfig

    def manager(self) -> Manager:
        return Manager(self.root, status_timeout_seconds=self.config.status_timeout_seconds)

    def shim_dir(self, override: Path | None = None) -> Path:
        return override if override is not None else shim_dir_for(self.config)


def _exit_code(code: int) -> int:
    # シグナル終了（負のコード）はシェルの慣習に合わせる
    return 128 - code if code < 0 else code


@contextlib.contextmanager
def _handle_errors() -> Iterator[None]:
    try:
        yield
    except ExitCodeError as e:
        raise typer.Exit(code=_exit_code(e.code)) from e
    except (AuthmuxError, OSError) as e:
        err_console.print(f"error: {e}", style="red", markup=False, highlight=False)
        raise typer.Exit(code=1) from e


def _env(ctx: typer.Context) -> _Env:
    return ctx.find_root().obj  # type: ignore[no-any-return]


def _print_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))


def _listing_payload(st: RegistryState, rows: list[StatusRow]) -> dict[str, Any]:
    return {
        "defaults": {t.value: n for t, n in sorted(st.defaults.items())},
        "profiles": [r.to_dict() for r in rows],
    }


def _print_rows(st: RegistryState, rows: list[StatusRow]) -> None:
    if not rows:
        console.print("No profiles found.")
        console.print(f"💡 Get started: [bold]authmux add {tool_names()[0]} <profile-name>[/bold]")
        return

    console.print("[bold]📋 Profiles[/bold]\n")
    current: Tool | None = None
    for r in rows:
        if r.profile.tool != current:
            if current is not None:
                console.print()
            current = r.profile.tool
            console.print(f"  [bold]{current}[/bold]")

        if r.error:
            line = f"[yellow]⚠[/yellow] {escape(r.profile.name):<20} [dim]error: {escape(r.error)}[/dim]"
        elif r.status.logged_in:
            line = f"[green]●[/green] {escape(r.profile.name):<20} [green]logged in[/green]"
        else:
            line = f"[dim]○[/dim] {escape(r.profile.name):<20} [dim]not authenticated[/dim]"
        if st.defaults.get(r.profile.tool) == r.profile.name:
            line += " [cyan](default)[/cyan]"
        console.print(f"    {line}")

    console.print()
    first = rows[0].profile
    console.print(
        f"💡 Run [bold]{escape(shim_name(first.tool, first.name))}[/bold] "
        "to launch with that profile."
    )


def _install_shim_for(env: _Env, profile: Profile) -> None:
    try:
        path = install(env.shim_dir(), profile, resolve_authmux_bin())
    except OSError as e:
        console.print(f"   [yellow]⚠[/yellow] Could not install shim: {escape(str(e))}")
        return
    console.print(f"   🔗 Shim:   [cyan]{escape(str(path))}[/cyan]")


@app.callback(invoke_without_command=True)
def _main(
    ctx: typer.Context,
    root: Path | None = typer.Option(
        None, "--root", help="状態ディレクトリ（デフォルト: $AUTHMUX_HOME または ~/.authmux）"
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="ログレベル (例: DEBUG)"),
) -> None:
    """引数なしで起動するとダッシュボードを開く。"""
    with _handle_errors():
        resolved = resolve_root(root)
        resolved.mkdir(parents=True, exist_ok=True)
        cfg = load_config(resolved)
        setup_logging(root=resolved, level=log_level or cfg.log_level)
        env = _Env(root=resolved, config=cfg)
        ctx.obj = env

        if ctx.invoked_subcommand is None:
            run_tui(
                manager=env.manager(),
                install_shims=default_shim_installer(env.shim_dir()),
            )


@app.command()
def add(
    ctx: typer.Context,
    tool: str = typer.Argument(..., help="claude / codex"),
    profile: str = typer.Argument(..., help="プロファイル名"),
    no_login: bool = typer.Option(False, "--no-login", help="作成だけしてログインしない"),
) -> None:
    """プロファイルを作成し、ログインフローを開始する。"""
    env = _env(ctx)
    with _handle_errors():
        t = parse_tool(tool)
        mgr = env.manager()
        p, created = mgr.ensure_profile(t, profile)
        if created:
            console.print(f"[green]✓[/green] Created profile [bold]{escape(p.key)}[/bold]")
            console.print(f"   📁 Config: [dim]{escape(str(p.dir))}[/dim]")
        else:
            console.print(f"[yellow]![/yellow] Profile [bold]{escape(p.key)}[/bold] already exists")
        _install_shim_for(env, p)

        if no_login:
            return
        console.print(f"Starting login for {escape(p.key)}...")
        mgr.login_profile(RunContext.background(), p)

        try:
            status = mgr.status_for_profile(
                RunContext.with_timeout(env.config.status_timeout_seconds), p
            )
        except AuthmuxError as e:
            console.print(f"Login completed. Status check error: {escape(str(e))}")
            return
        console.print(f"Login completed. Logged in: {status.logged_in}")


@app.command("list")
def list_(
    ctx: typer.Context,
    tool: str | None = typer.Option(None, "--tool", help="ツールで絞り込む"),
    json_out: bool = typer.Option(False, "--json", help="JSONで出力"),
) -> None:
    """プロファイル一覧とログイン状態を表示する。"""
    env = _env(ctx)
    with _handle_errors():
        flt = parse_tool(tool) if tool else None
        mgr = env.manager()
        st = mgr.load()
        rows = mgr.status_rows(RunContext.with_timeout(env.config.list_timeout_seconds), flt)
        if json_out:
            _print_json(_listing_payload(st, rows))
            return
        _print_rows(st, rows)


@app.command()
def status(
    ctx: typer.Context,
    tool: str | None = typer.Argument(None, help="claude / codex"),
    profile: str | None = typer.Argument(None, help="プロファイル名"),
    json_out: bool = typer.Option(False, "--json", help="JSONで出力"),
) -> None:
    """ログイン状態を表示する（全体 / ツール単位 / プロファイル単位）。"""
    env = _env(ctx)
    with _handle_errors():
        mgr = env.manager()
        st = mgr.load()
        if tool is None:
            rows = mgr.status_rows(RunContext.with_timeout(env.config.list_timeout_seconds))
            if json_out:
                _print_json(_listing_payload(st, rows))
            else:
                _print_rows(st, rows)
            return

        t = parse_tool(tool)
        if profile is None:
            rows = mgr.status_rows(RunContext.with_timeout(env.config.list_timeout_seconds), t)
            if json_out:
                _print_json([r.to_dict() for r in rows])
            else:
                _print_rows(st, rows)
            return

        p = mgr.get_profile(st, t, profile)
        s = mgr.status_for_profile(RunContext.with_timeout(env.config.status_timeout_seconds), p)
        if json_out:
            _print_json({"profile": p.to_dict(), "status": s.to_dict()})
            return
        console.print(f"[bold]{escape(p.key)}[/bold]")
        console.print(f"  dir: {escape(str(p.dir))}")
        console.print(f"  logged in: {s.logged_in}")
        if s.method:
            console.print(f"  method: {escape(s.method)}")


@app.command()
def use(
    ctx: typer.Context,
    tool: str = typer.Argument(..., help="claude / codex"),
    profile: str = typer.Argument(..., help="プロファイル名"),
) -> None:
    """ツールのデフォルトプロファイルを設定する。"""
    env = _env(ctx)
    with _handle_errors():
        t = parse_tool(tool)
        env.manager().set_default(t, profile)
        console.print(
            f"[green]✓[/green] Default for [bold]{t}[/bold] set to [bold]{escape(profile)}[/bold]"
        )


@app.command(
    context_settings={"allow_interspersed_args": False, "ignore_unknown_options": True},
)
def run(
    ctx: typer.Context,
    tool: str = typer.Argument(..., help="claude / codex"),
    args: list[str] | None = typer.Argument(None, help="[profile] -- [tool args...]"),
) -> None:
    """プロファイルを指定（省略時はデフォルト）してツールを起動する。"""
    env = _env(ctx)
    with _handle_errors():
        rest = list(args or [])
        if "--" in rest:
            i = rest.index("--")
            pre, tool_args = rest[:i], rest[i + 1 :]
        else:
            pre, tool_args = rest, []
        if len(pre) > 1:
            err_console.print("usage: authmux run <tool> [profile] -- [tool args...]")
            raise typer.Exit(code=1)

        t = parse_tool(tool)
        mgr = env.manager()
        p = mgr.resolve_profile(mgr.load(), t, pre[0] if pre else None)
        mgr.run_tool(RunContext.background(), p, tool_args)


@app.command()
def login(
    ctx: typer.Context,
    tool: str = typer.Argument(..., help="claude / codex"),
    profile: str | None = typer.Argument(None, help="プロファイル名（省略時はデフォルト）"),
) -> None:
    """既存プロファイルでログインし直す。"""
    env = _env(ctx)
    with _handle_errors():
        t = parse_tool(tool)
        mgr = env.manager()
        p = mgr.resolve_profile(mgr.load(), t, profile)
        mgr.login_profile(RunContext.background(), p)


@app.command()
def logout(
    ctx: typer.Context,
    tool: str = typer.Argument(..., help="claude / codex"),
    profile: str = typer.Argument(..., help="プロファイル名"),
) -> None:
    """プロファイルからログアウトする。"""
    env = _env(ctx)
    with _handle_errors():
        t = parse_tool(tool)
        mgr = env.manager()
        p = mgr.get_profile(mgr.load(), t, profile)
        mgr.logout_profile(RunContext.background(), p)


@app.command()
def rename(
    ctx: typer.Context,
    tool: str = typer.Argument(..., help="claude / codex"),
    old: str = typer.Argument(..., help="現在の名前"),
    new: str = typer.Argument(..., help="新しい名前"),
) -> None:
    """プロファイル名を変更する（ディレクトリとshimも移動）。"""
    env = _env(ctx)
    with _handle_errors():
        t = parse_tool(tool)
        mgr = env.manager()
        mgr.rename_profile(t, old, new)

        try:
            remove(env.shim_dir(), t, old)
        except OSError as e:
            console.print(f"   [yellow]⚠[/yellow] Could not remove old shim: {escape(str(e))}")
        _, p = find_profile(mgr.load(), t, new)
        if p is not None:
            _install_shim_for(env, p)
        console.print(
            f"[green]✓[/green] Renamed [bold]{t}/{escape(old)}[/bold] to [bold]{t}/{escape(new)}[/bold]"
        )


@app.command("remove")
def remove_(
    ctx: typer.Context,
    tool: str = typer.Argument(..., help="claude / codex"),
    profile: str = typer.Argument(..., help="プロファイル名"),
    purge: bool = typer.Option(False, "--purge", help="プロファイルディレクトリも削除する"),
) -> None:
    """プロファイルをレジストリから削除する（shimも削除）。"""
    env = _env(ctx)
    with _handle_errors():
        t = parse_tool(tool)
        env.manager().remove_profile(t, profile, purge=purge)
        try:
            remove(env.shim_dir(), t, profile)
        except OSError as e:
            console.print(f"   [yellow]⚠[/yellow] Could not remove shim: {escape(str(e))}")
        console.print(f"[green]✓[/green] Removed profile [bold]{t}/{escape(profile)}[/bold]")
        if purge:
            console.print("   Profile directory purged from disk.")


@shim_app.command("install")
def shim_install(
    ctx: typer.Context,
    directory: Path | None = typer.Option(None, "--dir", help="shimを置くディレクトリ"),
) -> None:
    """全プロファイルの shim を生成する。"""
    env = _env(ctx)
    with _handle_errors():
        d = env.shim_dir(directory)
        st = env.manager().load()
        installed = install_all(d, st.profiles, resolve_authmux_bin())
        for path in installed:
            console.print(f"   🔗 [cyan]{escape(str(path))}[/cyan]")
        console.print(
            f"\n[green]✓[/green] Installed {len(installed)} shim(s) in [dim]{escape(str(d))}[/dim]"
        )


@shim_app.command("uninstall")
def shim_uninstall(
    ctx: typer.Context,
    tool: str | None = typer.Argument(None, help="claude / codex"),
    profile: str | None = typer.Argument(None, help="プロファイル名"),
    directory: Path | None = typer.Option(None, "--dir", help="shimのあるディレクトリ"),
    all_: bool = typer.Option(False, "--all", help="authmuxが生成したshimを全て削除"),
) -> None:
    """shim を削除する。"""
    env = _env(ctx)
    with _handle_errors():
        d = env.shim_dir(directory)
        if all_:
            removed = remove_all(d)
            for path in removed:
                console.print(f"   removed: {escape(str(path))}")
            console.print(f"[green]✓[/green] Removed {len(removed)} shim(s)")
            return

        if tool is None or profile is None:
            err_console.print("error: provide <tool> <profile> or use --all", style="red")
            raise typer.Exit(code=1)
        t = parse_tool(tool)
        remove(d, t, profile)
        console.print(f"[green]✓[/green] Removed shim [cyan]{escape(shim_name(t, profile))}[/cyan]")


@app.command()
def doctor(
    ctx: typer.Context,
    json_out: bool = typer.Option(False, "--json", help="JSONで出力"),
) -> None:
    """ツールのバイナリ、プロファイルディレクトリ、デフォルト設定を点検する。"""
    env = _env(ctx)
    with _handle_errors():
        rep = env.manager().doctor()
        if json_out:
            _print_json(rep.to_dict())
            return

        console.print(f"Root: {escape(str(rep.root_dir))}")
        console.print(f"Profiles: {rep.profiles_total}")
        for t, found in rep.tool_binaries.items():
            state = "[green]ok[/green]" if found else "[red]missing[/red]"
            console.print(f"Binary {t.value:<6} : {state}")
        if rep.missing_dirs:
            console.print("Missing profile directories:")
            for v in rep.missing_dirs:
                console.print(f"  - {escape(v)}")
        if rep.bad_defaults:
            console.print("Default profile issues:")
            for v in rep.bad_defaults:
                console.print(f"  - {escape(v)}")
        if rep.ok:
            console.print("[green]No structural issues found.[/green]")


def main() -> None:
    app()
