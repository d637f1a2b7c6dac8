import uuid
from contextvars import ContextVar

run_id: ContextVar[str] = ContextVar("run_id", default="")


def new_run_id() -> str:
    value = uuid.uuid4().hex[:12]
    run_id.set(value)
    return value


def get_run_id() -> str:
    return run_id.get()
