from .context import get_run_id, new_run_id, run_id
from .events import (
    log_event,
    log_measurement,
    log_measurement_error,
    log_plan_built,
    log_run_complete,
    log_run_start,
)

__all__ = [
    "get_run_id",
    "log_event",
    "log_measurement",
    "log_measurement_error",
    "log_plan_built",
    "log_run_complete",
    "log_run_start",
    "new_run_id",
    "run_id",
]
