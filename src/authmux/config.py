"""設定: state root の解決と `<root>/config.toml`。

root の優先順位:
1. 明示指定（`--root`）
2. 環境変数 `AUTHMUX_HOME`
3. `~/.authmux`

config.toml（任意。無ければ全部デフォルト）:

```toml
[status]
timeout_seconds = 8        # プロファイル1件あたりのステータス確認上限
list_timeout_seconds = 20  # list/status 全体の上限

[shim]
dir = "~/.local/bin"

[log]
level = "INFO"
```
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

try:
    import tomllib
except ModuleNotFoundError:  # Python < 3.11
    import tomli as tomllib  # type: ignore[no-redef]

from authmux.errors import ConfigError

APP_NAME = "authmux"
ROOT_ENV_VAR = "AUTHMUX_HOME"
SHIM_DIR_ENV_VAR = "AUTHMUX_SHIM_DIR"
CONFIG_FILE_NAME = "config.toml"


@dataclass
class AuthmuxConfig:
    status_timeout_seconds: float = 8.0
    list_timeout_seconds: float = 20.0
    shim_dir: Path | None = None
    log_level: str = "INFO"


def default_root() -> Path:
    custom = os.environ.get(ROOT_ENV_VAR, "").strip()
    if custom:
        return Path(custom).expanduser()
    return Path.home() / f".{APP_NAME}"


def resolve_root(override: Path | str | None = None) -> Path:
    if override is None or not str(override).strip():
        return default_root()
    p = Path(override).expanduser()
    if not p.is_absolute():
        p = Path.cwd() / p
    return p


def default_shim_dir() -> Path:
    custom = os.environ.get(SHIM_DIR_ENV_VAR, "").strip()
    if custom:
        return Path(custom).expanduser()
    return Path.home() / ".local" / "bin"


def load_config(root: Path) -> AuthmuxConfig:
    path = root / CONFIG_FILE_NAME
    if not path.exists():
        return AuthmuxConfig()

    try:
        raw = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"cannot parse {path}: {e}") from e

    status = raw.get("status", {})
    shim = raw.get("shim", {})
    log = raw.get("log", {})

    shim_dir = str(shim.get("dir", "") or "").strip()
    try:
        return AuthmuxConfig(
            status_timeout_seconds=float(status.get("timeout_seconds", 8.0)),
            list_timeout_seconds=float(status.get("list_timeout_seconds", 20.0)),
            shim_dir=Path(shim_dir).expanduser() if shim_dir else None,
            log_level=str(log.get("level", "INFO")),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid value in {path}: {e}") from e


def shim_dir_for(cfg: AuthmuxConfig) -> Path:
    return cfg.shim_dir if cfg.shim_dir is not None else default_shim_dir()
