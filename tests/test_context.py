"""RunContext のテスト。"""

import threading
import time

from authmux.context import RunContext
from authmux.errors import Cancelled, DeadlineExceeded


def test_background_never_expires() -> None:
    ctx = RunContext.background()
    assert ctx.remaining() is None
    assert ctx.error() is None
    assert ctx.poll_slice() == 0.1


def test_timeout_expires() -> None:
    ctx = RunContext.with_timeout(0.05)
    time.sleep(0.1)
    assert isinstance(ctx.error(), DeadlineExceeded)
    assert ctx.poll_slice() == 0.0


def test_child_deadline_is_capped_by_parent() -> None:
    parent = RunContext.with_timeout(0.5)
    child = parent.child(60)
    assert child.deadline == parent.deadline

    short = parent.child(0.01)
    assert short.deadline is not None and parent.deadline is not None
    assert short.deadline < parent.deadline


def test_cancel_propagates_to_children_only() -> None:
    parent = RunContext.background()
    child = parent.child(5)
    child.cancel()
    assert child.cancelled()
    assert not parent.cancelled()

    other = parent.child(5)
    parent.cancel()
    assert isinstance(other.error(), Cancelled)


def test_wait_returns_on_cancel() -> None:
    ctx = RunContext.background()
    threading.Timer(0.05, ctx.cancel).start()
    started = time.monotonic()
    assert ctx.wait(5) is True
    assert time.monotonic() - started < 2


def test_wait_timeout() -> None:
    assert RunContext.background().wait(0.05) is False
