"""対話実行: 子プロセスに端末（stdin/stdout/stderr）をそのまま渡す。

- 子プロセスの終了待ちは専用スレッドで行い、結果は1件だけのキューで受け取る
- 終了とキャンセル/期限を競わせ、キャンセルが先なら kill してエラーを返す
- 非0終了は ExitCodeError(code)。起動失敗（バイナリ無し等）はそのまま送出
"""

from __future__ import annotations

import contextlib
import logging
import queue
import signal
import subprocess
import threading
from collections.abc import Iterator

from authmux.adapters import Command
from authmux.context import RunContext
from authmux.errors import ExitCodeError

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def _sigint_to_child() -> Iterator[None]:
    """実行中の Ctrl+C は子プロセス側に任せる（親は落ちない）。"""
    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous = signal.signal(signal.SIGINT, signal.SIG_IGN)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def run_interactive(ctx: RunContext, command: Command) -> None:
    ctx.check()
    proc = subprocess.Popen(command.argv, env=command.env or None)
    logger.info("started %s (pid=%s)", command.argv[0], proc.pid)

    done: queue.Queue[int | Exception] = queue.Queue(maxsize=1)

    def _wait() -> None:
        try:
            done.put(proc.wait())
        except Exception as e:  # noqa: BLE001 - 呼び出し側へそのまま返す
            done.put(e)

    threading.Thread(target=_wait, name="authmux-wait", daemon=True).start()

    with _sigint_to_child():
        while True:
            try:
                result = done.get(timeout=ctx.poll_slice())
                break
            except queue.Empty:
                err = ctx.error()
                if err is None:
                    continue
                logger.warning("killing %s (pid=%s): %s", command.argv[0], proc.pid, err)
                proc.kill()
                raise err from None

    if isinstance(result, Exception):
        raise result
    logger.info("%s exited with code %d", command.argv[0], result)
    if result != 0:
        raise ExitCodeError(result)
