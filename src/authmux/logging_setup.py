"""logging の初期化。

- 詳細ログ: `<root>/logs/authmux.log`（2MB x 3 世代でローテート）
- 端末への表示（CLI/TUI）は logging を通さず rich / textual で行う

対話実行やステータス確認の失敗を後から追うためのもの。
"""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FILE_NAME = "authmux.log"
MAX_BYTES = 2_000_000
BACKUP_COUNT = 3

_handler: RotatingFileHandler | None = None


def log_path(root: Path) -> Path:
    return root / "logs" / LOG_FILE_NAME


def setup_logging(*, root: Path, level: str = "INFO") -> Path:
    """`authmux.*` のログを root 配下のファイルへ流す。

    同じ root で呼ばれた場合はレベルだけ更新する。別の root なら
    ハンドラを付け替える。
    """
    global _handler

    path = log_path(root)
    pkg_logger = logging.getLogger("authmux")
    pkg_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if _handler is not None:
        if _handler.baseFilename == os.path.abspath(path):
            return path
        pkg_logger.removeHandler(_handler)
        _handler.close()
        _handler = None

    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        path,
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    pkg_logger.addHandler(handler)
    _handler = handler
    return path
