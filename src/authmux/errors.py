"""authmux のドメイン例外。"""

from __future__ import annotations


class AuthmuxError(RuntimeError):
    """authmux の操作で発生する例外の基底。"""


class InvalidName(AuthmuxError):
    """プロファイル名が許可パターンに一致しない。"""


class UnsupportedTool(AuthmuxError):
    """対応ツール以外が指定された。"""


class ProfileNotFound(AuthmuxError):
    pass


class ProfileAlreadyExists(AuthmuxError):
    """rename 先が既に存在する。"""


class NoDefaultProfile(AuthmuxError):
    pass


class CorruptState(AuthmuxError):
    """state.json が読めない（自動修復はしない）。"""


class InvalidState(AuthmuxError):
    pass


class AdapterUnavailable(AuthmuxError):
    """ツールのバイナリが PATH 上に無い。"""


class StatusCheckError(AuthmuxError):
    """ステータス確認コマンドが想定外の失敗をした。"""


class ConfigError(AuthmuxError):
    pass


class Cancelled(AuthmuxError):
    def __init__(self, message: str = "operation cancelled") -> None:
        super().__init__(message)


class DeadlineExceeded(AuthmuxError):
    def __init__(self, message: str = "deadline exceeded") -> None:
        super().__init__(message)


class ExitCodeError(AuthmuxError):
    """子プロセスが非0で終了した。CLIはこのコードをそのまま返す。"""

    def __init__(self, code: int) -> None:
        super().__init__(f"process exited with code {code}")
        self.code = code
