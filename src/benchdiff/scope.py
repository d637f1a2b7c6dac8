import logging
import threading
import time
from collections.abc import Callable
from types import TracebackType

from .errors import OperationCancelled, TeardownError

logger = logging.getLogger(__name__)

TeardownAction = Callable[[], None]


class ResourceScope:
    """Registry of teardown actions owned by one comparison run.

    Thread-safe: phase 1 workers register binary removal concurrently.
    Actions run last-registered-first, exactly once, on every exit path.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._actions: list[tuple[str, TeardownAction]] = []
        self._closed = False

    def add(self, action: TeardownAction, description: str = "") -> None:
        with self._lock:
            if self._closed:
                raise RuntimeError("resource scope is already closed")
            self._actions.append((description or getattr(action, "__name__", "action"), action))

    def __len__(self) -> int:
        with self._lock:
            return len(self._actions)

    def close(self) -> None:
        """Run every registered action in reverse registration order.

        Raises:
            TeardownError: If any action failed; raised after all actions ran.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            actions = list(reversed(self._actions))
            self._actions.clear()

        errors: list[BaseException] = []
        for description, action in actions:
            try:
                action()
            except Exception as exc:
                logger.debug("Teardown action %s failed: %s", description, exc)
                errors.append(exc)
        if errors:
            raise TeardownError(errors)

    def __enter__(self) -> "ResourceScope":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            self.close()
        except TeardownError as teardown_exc:
            if exc is None:
                raise
            # keep the primary error
            logger.error("Error cleaning up: %s", teardown_exc)


class CancelToken:
    """Cancellation signal with an optional deadline.

    A child token is cancelled when it, or any of its ancestors, is cancelled.
    """

    def __init__(self, timeout: float | None = None, parent: "CancelToken | None" = None):
        self._event = threading.Event()
        self._parent = parent
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self._reason = ""

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def deadline(self) -> float | None:
        deadlines = [d for d in (self._deadline, self._parent_deadline()) if d is not None]
        return min(deadlines) if deadlines else None

    def _parent_deadline(self) -> float | None:
        return self._parent.deadline if self._parent is not None else None

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._parent is not None and self._parent.cancelled:
            return True
        deadline = self.deadline
        return deadline is not None and time.monotonic() >= deadline

    @property
    def reason(self) -> str:
        if self._event.is_set():
            return self._reason
        if self._parent is not None and self._parent.cancelled:
            return self._parent.reason
        if self.cancelled:
            return "deadline exceeded"
        return ""

    def remaining(self) -> float | None:
        deadline = self.deadline
        if deadline is None:
            return None
        return max(0.0, deadline - time.monotonic())

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelled(self.reason)

    def child(self) -> "CancelToken":
        return CancelToken(parent=self)
