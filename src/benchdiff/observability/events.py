import glob
import json
import logging
import threading
from datetime import UTC, datetime
from typing import Any

from ..config import settings
from ..config.compat import env_bool
from .context import get_run_id

logger = logging.getLogger(__name__)

MAX_ROTATED_LOGS = 5
MAX_OUTPUT_CHARS = 2000
_LOG_LOCK = threading.Lock()


def rotate_log_if_needed() -> None:
    try:
        log_path = settings.LOG_PATH
        if log_path.exists() and log_path.stat().st_size > settings.MAX_LOG_SIZE_BYTES:
            ts = datetime.now(UTC).strftime("%Y%m%d_%H%M%S")
            stem = log_path.stem
            suffix = log_path.suffix
            rotated_path = log_path.with_name(f"{stem}.{ts}{suffix}")
            log_path.rename(rotated_path)
            logger.debug("Rotated log file to %s", rotated_path)

            pattern = f"{glob.escape(stem)}.*{glob.escape(suffix)}"
            rotated_logs = sorted(log_path.parent.glob(pattern), reverse=True)
            for old_log in rotated_logs[MAX_ROTATED_LOGS:]:
                old_log.unlink(missing_ok=True)
                logger.debug("Cleaned up old log file: %s", old_log)
    except Exception as exc:
        logger.warning("Failed to rotate log file: %s", exc)


def log_event(event: dict[str, Any]) -> None:
    """Append a single JSON event to the local event log.

    Args:
        event: Event data. Enriched with timestamp, run_id and level.
    """
    if not env_bool("BENCHDIFF_EVENT_LOG", default=settings.EVENT_LOG_ENABLED):
        return

    event = dict(event)
    try:
        event.setdefault("timestamp", datetime.now(UTC).isoformat())
        event.setdefault("run_id", get_run_id())
        if "level" not in event:
            kind = str(event.get("kind", "")).lower()
            event["level"] = "error" if kind.endswith("error") else "info"

        with _LOG_LOCK:
            if settings.LOG_PATH.is_dir():
                logger.warning("Log path is a directory, skipping log write")
                return
            settings.LOG_PATH.parent.mkdir(parents=True, exist_ok=True)
            rotate_log_if_needed()
            with open(settings.LOG_PATH, "a", encoding="utf-8") as f:
                f.write(json.dumps(event, ensure_ascii=False, default=str) + "\n")
    except Exception as exc:
        logger.warning("Failed to write event log: %s", exc)


def log_run_start(base_ref: str, head_ref: str, base_commit: str, head_commit: str) -> None:
    log_event(
        {
            "kind": "run_start",
            "base_ref": base_ref,
            "head_ref": head_ref,
            "base_commit": base_commit,
            "head_commit": head_commit,
        }
    )


def log_plan_built(planned: int, base_packages: int, head_packages: int) -> None:
    log_event(
        {
            "kind": "plan_built",
            "planned": planned,
            "base_packages": base_packages,
            "head_packages": head_packages,
        }
    )


def log_measurement(
    benchmark: str,
    side: str,
    latency_ms: float,
    totals: dict[str, int] | None = None,
    *,
    output: str = "",
    urls: list[str] | None = None,
) -> None:
    log_event(
        {
            "kind": "measurement_complete",
            "benchmark": benchmark,
            "side": side,
            "latency_ms": int(latency_ms),
            "totals": totals or {},
            # tail of the go test output; the summary lines are at the end
            "output": output[-MAX_OUTPUT_CHARS:],
            "urls": urls or [],
        }
    )


def log_measurement_error(benchmark: str, side: str, error: str, error_type: str) -> None:
    log_event(
        {
            "kind": "measurement_error",
            "benchmark": benchmark,
            "side": side,
            "error": error[:2000],
            "error_type": error_type,
        }
    )


def log_run_complete(planned: int, failed: int, latency_ms: float) -> None:
    log_event(
        {
            "kind": "run_complete",
            "planned": planned,
            "failed": failed,
            "latency_ms": int(latency_ms),
        }
    )
