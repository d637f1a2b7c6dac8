from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from benchdiff.bench.packages import PackageRecord
from benchdiff.profiles.collector import Measurement, ProfileMeasurement
from benchdiff.profiles.kinds import ResourceKind
from benchdiff.scope import CancelToken


def _varint(value: int) -> bytes:
    value &= (1 << 64) - 1
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _len_field(number: int, payload: bytes) -> bytes:
    return _varint(number << 3 | 2) + _varint(len(payload)) + payload


def _varint_field(number: int, value: int) -> bytes:
    return _varint(number << 3) + _varint(value)


def encode_profile(
    sample_types: list[tuple[str, str]], samples: list[list[int]], *, packed: bool = True
) -> bytes:
    """Hand-encode a pprof Profile message with sample types, samples and strings."""
    strings = [""]

    def intern(text: str) -> int:
        if text not in strings:
            strings.append(text)
        return strings.index(text)

    body = b""
    for type_name, unit in sample_types:
        value_type = _varint_field(1, intern(type_name)) + _varint_field(2, intern(unit))
        body += _len_field(1, value_type)
    for values in samples:
        # location_id (field 1) is irrelevant for totals but present in real profiles
        sample = _len_field(1, _varint(1))
        if packed:
            sample += _len_field(2, b"".join(_varint(v) for v in values))
        else:
            sample += b"".join(_varint_field(2, v) for v in values)
        body += _len_field(2, sample)
    for text in strings:
        body += _len_field(6, text.encode("utf-8"))
    return body


@pytest.fixture
def profile_bytes() -> Callable[..., bytes]:
    return encode_profile


@pytest.fixture(autouse=True)
def mock_log_path(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[Path, None, None]:
    """Route the structured event log into tmp_path for every test."""
    monkeypatch.delenv("BENCHDIFF_EVENT_LOG", raising=False)
    log_file = tmp_path / "events" / "benchdiff.log"
    with (
        patch("benchdiff.config.settings.EVENT_LOG_ENABLED", True),
        patch("benchdiff.config.settings.LOG_PATH", log_file),
    ):
        yield log_file


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in [
        "BENCHDIFF_GIT_BASE",
        "BENCHDIFF_BENCH_TIME",
        "BENCHDIFF_BENCH_COUNT",
        "BENCHDIFF_CONCURRENCY",
        "BENCHDIFF_TIMEOUT_SECONDS",
        "BENCHDIFF_UPLOAD",
        "BENCHDIFF_SHARE_URL",
        "BENCHDIFF_SHARE_TIMEOUT_SECONDS",
        "BENCHDIFF_PERCENTAGE_THRESHOLD",
        "BENCHDIFF_LOG_LEVEL",
        "BENCHDIFF_EVENT_LOG",
        "BENCHDIFF_DOTENV_PATH",
        "GITHUB_TOKEN",
        "GITHUB_REPOSITORY",
        "GITHUB_REF",
        "GITHUB_CONTEXT",
        "GITHUB_API_URL",
        "GITHUB_SERVER_URL",
    ]:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def token() -> CancelToken:
    return CancelToken()


@pytest.fixture
def make_package(tmp_path: Path) -> Callable[..., PackageRecord]:
    def _make(
        import_path: str,
        benchmarks: list[str] | None = None,
        *,
        binary_hash: bytes = b"h",
        tests: bool = True,
    ) -> PackageRecord:
        directory = tmp_path / "mod" / import_path.rsplit("/", 1)[-1]
        return PackageRecord(
            import_path=import_path,
            directory=directory,
            module_root=tmp_path / "mod",
            test_files=["x_test.go"] if tests else [],
            binary_path=tmp_path / "bin",
            binary_hash=binary_hash,
            benchmark_names=list(benchmarks or []),
        )

    return _make


@pytest.fixture
def make_measurement() -> Callable[..., Measurement]:
    def _make(cpu: int = 0, space: int = 0, objects: int = 0, key: str = "k") -> Measurement:
        values = {
            ResourceKind.CPU: ProfileMeasurement(ResourceKind.CPU, cpu, f"{key}-cpu"),
            ResourceKind.ALLOC_SPACE: ProfileMeasurement(
                ResourceKind.ALLOC_SPACE, space, f"{key}-space"
            ),
            ResourceKind.ALLOC_OBJECTS: ProfileMeasurement(
                ResourceKind.ALLOC_OBJECTS, objects, f"{key}-objects"
            ),
        }
        return Measurement(values=values)

    return _make


def mock_http_response(status_code: int = 200, payload: Any = None, text: str = "") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    resp.is_success = 200 <= status_code < 300
    resp.is_server_error = status_code >= 500
    resp.json.return_value = payload
    resp.text = text
    return resp


@pytest.fixture
def http_response() -> Callable[..., MagicMock]:
    return mock_http_response
