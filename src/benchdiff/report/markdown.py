import math

from ..config.settings import SHARE_BASE_URL
from .models import BenchmarkReport, BenchmarkResult, BenchmarkRun, BenchmarkValue

NOT_AVAILABLE = "n/a"

_TABLE_HEADER = "| Resource | Base | Head | Diff % |\n|----------|-----:|-----:|-------:|"
_IEC_UNITS = ("B", "KiB", "MiB", "GiB", "TiB", "PiB")
_DURATION_UNITS = ((1_000_000_000, "s"), (1_000_000, "ms"), (1_000, "µs"))


def _trim(number: float, digits: int = 2) -> str:
    text = f"{number:,.{digits}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_duration_ns(value: int) -> str:
    for scale, suffix in _DURATION_UNITS:
        if abs(value) >= scale:
            return f"{_trim(value / scale)} {suffix}"
    return f"{value} ns"


def format_bytes(value: int) -> str:
    if abs(value) < 1024:
        return f"{value} B"
    amount = float(value)
    idx = 0
    while abs(amount) >= 1024 and idx < len(_IEC_UNITS) - 1:
        amount /= 1024
        idx += 1
    if abs(amount) < 10:
        return f"{amount:.1f} {_IEC_UNITS[idx]}"
    return f"{amount:.0f} {_IEC_UNITS[idx]}"


def format_quantity(value: int, unit: str) -> str:
    if unit == "ns":
        return format_duration_ns(value)
    if unit == "bytes":
        return format_bytes(value)
    return f"{value:,}"


def format_percent(diff: float) -> str:
    """Signed percentage truncated (not rounded) to two decimals: ``+100``, ``-0.04``."""
    truncated = math.trunc(round(diff * 100, 6)) / 100
    if truncated == 0:
        return "0"
    text = _trim(truncated)
    return f"+{text}" if truncated > 0 else text


def _share_link(share_url: str, *keys: str) -> str:
    return f"{share_url}/share/{'/'.join(keys)}"


def value_markdown(value: BenchmarkValue, unit: str, share_url: str = SHARE_BASE_URL) -> str:
    if not value.available:
        return NOT_AVAILABLE
    quantity = format_quantity(value.profile_value, unit)
    return f"[{quantity}]({_share_link(share_url, value.flamegraph_key)})"


def diff_markdown(
    result: BenchmarkResult,
    share_url: str = SHARE_BASE_URL,
    threshold: float | None = None,
) -> str:
    diff = result.diff_percent()
    if diff is None:
        return NOT_AVAILABLE
    link = _share_link(
        share_url, result.base_value.flamegraph_key, result.head_value.flamegraph_key
    )
    cell = f"[{format_percent(diff)} %]({link})"
    if threshold and abs(diff) >= threshold:
        cell = f":warning: {cell}"
    return cell


def _render_run(run: BenchmarkRun, share_url: str, threshold: float | None) -> list[str]:
    lines = [
        "<details>",
        f"<summary><tt>{run.name}</tt></summary>",
        "",
        _TABLE_HEADER,
    ]
    for result in run.results:
        lines.append(
            f"| {result.name} "
            f"| {value_markdown(result.base_value, result.unit, share_url)} "
            f"| {value_markdown(result.head_value, result.unit, share_url)} "
            f"| {diff_markdown(result, share_url, threshold)} |"
        )
    lines.append("</details>")
    return lines


def render(
    report: BenchmarkReport,
    *,
    share_url: str = SHARE_BASE_URL,
    repository_url: str | None = None,
    threshold: float | None = None,
) -> str:
    """Render a report as a markdown comment body.

    Pure function of its arguments; the same report always renders identically.
    """
    share_url = share_url.rstrip("/")
    refs = f"{report.base_ref} -> {report.head_ref}"
    if repository_url:
        refs += f" ([compare]({repository_url}/compare/{report.base_ref}...{report.head_ref}))"

    lines = [
        "### Benchmark Report",
        "",
        "__Finished__" if report.finished else "__In progress__",
        "",
        refs,
    ]
    for run in report.runs:
        lines.extend(_render_run(run, share_url, threshold))
    return "\n".join(lines) + "\n"
