import threading
import time

import pytest

from benchdiff.errors import OperationCancelled, TeardownError
from benchdiff.scope import CancelToken, ResourceScope


class TestResourceScope:
    def test_actions_run_in_reverse_order(self) -> None:
        calls: list[str] = []
        scope = ResourceScope()
        scope.add(lambda: calls.append("worktree"))
        scope.add(lambda: calls.append("binary-a"))
        scope.add(lambda: calls.append("binary-b"))

        scope.close()

        assert calls == ["binary-b", "binary-a", "worktree"]

    def test_close_is_idempotent(self) -> None:
        calls: list[int] = []
        scope = ResourceScope()
        scope.add(lambda: calls.append(1))

        scope.close()
        scope.close()

        assert calls == [1]
        assert len(scope) == 0

    def test_add_after_close_raises(self) -> None:
        scope = ResourceScope()
        scope.close()
        with pytest.raises(RuntimeError, match="already closed"):
            scope.add(lambda: None)

    def test_failures_do_not_stop_remaining_actions(self) -> None:
        calls: list[str] = []

        def boom() -> None:
            raise OSError("busy")

        scope = ResourceScope()
        scope.add(lambda: calls.append("first"))
        scope.add(boom, "remove worktree")
        scope.add(lambda: calls.append("last"))

        with pytest.raises(TeardownError) as exc_info:
            scope.close()

        assert calls == ["last", "first"]
        assert len(exc_info.value.errors) == 1
        assert "busy" in str(exc_info.value)

    def test_concurrent_registration(self) -> None:
        """Actions registered from many threads all run exactly once."""
        scope = ResourceScope()
        counter: list[int] = []
        lock = threading.Lock()

        def register(n: int) -> None:
            for _ in range(n):

                def action() -> None:
                    with lock:
                        counter.append(1)

                scope.add(action)

        threads = [threading.Thread(target=register, args=(50,)) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(scope) == 400
        scope.close()
        assert len(counter) == 400

    def test_context_manager_keeps_primary_error(self) -> None:
        def boom() -> None:
            raise OSError("cleanup failed")

        with pytest.raises(ValueError, match="primary"):
            with ResourceScope() as scope:
                scope.add(boom)
                raise ValueError("primary")

    def test_context_manager_raises_teardown_error_without_primary(self) -> None:
        def boom() -> None:
            raise OSError("cleanup failed")

        with pytest.raises(TeardownError):
            with ResourceScope() as scope:
                scope.add(boom)


class TestCancelToken:
    def test_not_cancelled_by_default(self) -> None:
        token = CancelToken()
        assert not token.cancelled
        assert token.remaining() is None
        token.raise_if_cancelled()

    def test_cancel_sets_reason(self) -> None:
        token = CancelToken()
        token.cancel("stop")
        assert token.cancelled
        with pytest.raises(OperationCancelled, match="stop"):
            token.raise_if_cancelled()

    def test_first_reason_wins(self) -> None:
        token = CancelToken()
        token.cancel("first")
        token.cancel("second")
        assert token.reason == "first"

    def test_deadline_expires(self) -> None:
        token = CancelToken(timeout=0.01)
        time.sleep(0.05)
        assert token.cancelled
        assert token.reason == "deadline exceeded"
        assert token.remaining() == 0.0

    def test_child_follows_parent(self) -> None:
        parent = CancelToken()
        child = parent.child()
        parent.cancel("parent stopped")
        assert child.cancelled
        assert child.reason == "parent stopped"

    def test_child_cancel_does_not_affect_parent(self) -> None:
        parent = CancelToken()
        child = parent.child()
        child.cancel("phase failed")
        assert child.cancelled
        assert not parent.cancelled

    def test_child_inherits_deadline(self) -> None:
        parent = CancelToken(timeout=60)
        child = parent.child()
        assert child.deadline == parent.deadline
