"""キャンセル/期限の伝搬。

外部プロセスを待つ処理（ステータス確認・対話実行）はすべて RunContext を受け取り、
期限切れかキャンセルされたら必ず戻る。

- child(timeout) の期限は親の期限を超えない
- 親をキャンセルすると子もキャンセル扱いになる
"""

from __future__ import annotations

import threading
import time

from authmux.errors import Cancelled, DeadlineExceeded

POLL_INTERVAL_SECONDS = 0.1


class RunContext:
    def __init__(self, *, deadline: float | None = None, parent: RunContext | None = None) -> None:
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self.deadline = deadline  # time.monotonic() 基準
        self._parent = parent
        self._cancel = threading.Event()

    @classmethod
    def background(cls) -> RunContext:
        return cls()

    @classmethod
    def with_timeout(cls, seconds: float) -> RunContext:
        return cls(deadline=time.monotonic() + seconds)

    def child(self, timeout: float | None = None) -> RunContext:
        deadline = None if timeout is None else time.monotonic() + timeout
        return RunContext(deadline=deadline, parent=self)

    def cancel(self) -> None:
        self._cancel.set()

    def cancelled(self) -> bool:
        if self._cancel.is_set():
            return True
        return self._parent is not None and self._parent.cancelled()

    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining(self) -> float | None:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def error(self) -> Exception | None:
        if self.cancelled():
            return Cancelled()
        if self.expired():
            return DeadlineExceeded()
        return None

    def check(self) -> None:
        err = self.error()
        if err is not None:
            raise err

    def poll_slice(self, interval: float = POLL_INTERVAL_SECONDS) -> float:
        """ポーリング1回分の待ち時間（期限を越えない）。"""
        left = self.remaining()
        if left is None:
            return interval
        return max(0.0, min(interval, left))

    def wait(self, timeout: float | None = None) -> bool:
        """キャンセルされるか timeout まで待つ。キャンセルされたら True。"""
        end = None if timeout is None else time.monotonic() + timeout
        while not self.cancelled():
            if self.expired():
                return False
            step = self.poll_slice()
            if end is not None:
                left = end - time.monotonic()
                if left <= 0:
                    return False
                step = min(step, left)
            self._cancel.wait(step)
        return True
