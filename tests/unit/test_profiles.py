import gzip
from unittest.mock import MagicMock, patch

import httpx
import pytest

from benchdiff.bench.runner import BenchmarkExecution
from benchdiff.errors import ProfileDecodeError, ShareError
from benchdiff.profiles import (
    ProfileCollector,
    ProfileShareClient,
    ResourceKind,
    parse_profile,
    resolve_kind,
    totals_by_kind,
)
from benchdiff.profiles.sharing import ShareResult, SubProfile, parse_share_response

CPU_TYPES = [("samples", "count"), ("cpu", "nanoseconds")]
MEM_TYPES = [
    ("alloc_objects", "count"),
    ("alloc_space", "bytes"),
    ("inuse_objects", "count"),
    ("inuse_space", "bytes"),
]


class TestParseProfile:
    def test_totals_packed_samples(self, profile_bytes) -> None:
        data = profile_bytes(CPU_TYPES, [[1, 10_000_000], [2, 5_000_000]])
        profile = parse_profile(data)

        assert [t.type for t in profile.sample_types] == ["samples", "cpu"]
        assert profile.sample_types[1].unit == "nanoseconds"
        assert profile.totals() == {"samples": 3, "cpu": 15_000_000}

    def test_unpacked_samples(self, profile_bytes) -> None:
        data = profile_bytes(MEM_TYPES, [[3, 2048, 1, 1024], [1, 1024, 0, 0]], packed=False)
        totals = parse_profile(data).totals()
        assert totals["alloc_objects"] == 4
        assert totals["alloc_space"] == 3072

    def test_gzip_payload(self, profile_bytes) -> None:
        data = gzip.compress(profile_bytes(CPU_TYPES, [[1, 42]]))
        assert parse_profile(data).totals()["cpu"] == 42

    def test_negative_values(self, profile_bytes) -> None:
        data = profile_bytes([("delta", "count")], [[-5], [2]])
        assert parse_profile(data).total(0) == -3

    def test_empty_payload(self) -> None:
        with pytest.raises(ProfileDecodeError):
            parse_profile(b"")

    def test_truncated_payload(self, profile_bytes) -> None:
        data = profile_bytes(CPU_TYPES, [[1, 10]])
        with pytest.raises(ProfileDecodeError):
            parse_profile(data[:-3])

    def test_bad_gzip(self) -> None:
        with pytest.raises(ProfileDecodeError, match="gzip"):
            parse_profile(b"\x1f\x8b\x08garbage")


class TestResourceKinds:
    @pytest.mark.parametrize(
        "name,kind",
        [
            ("cpu", ResourceKind.CPU),
            ("process_cpu:cpu:nanoseconds", ResourceKind.CPU),
            ("alloc_space", ResourceKind.ALLOC_SPACE),
            ("memory:alloc_space:bytes", ResourceKind.ALLOC_SPACE),
            ("memory:alloc_objects:count", ResourceKind.ALLOC_OBJECTS),
            ("inuse_space", None),
            ("samples", None),
        ],
    )
    def test_aliases(self, name: str, kind: ResourceKind | None) -> None:
        assert resolve_kind(name) is kind

    def test_units(self) -> None:
        assert ResourceKind.CPU.unit == "ns"
        assert ResourceKind.ALLOC_SPACE.unit == "bytes"
        assert ResourceKind.ALLOC_OBJECTS.unit == "objects"

    def test_totals_by_kind_keeps_tracked_kinds(self, profile_bytes) -> None:
        data = profile_bytes(MEM_TYPES, [[2, 100, 1, 50]])
        assert totals_by_kind(data) == {
            ResourceKind.ALLOC_OBJECTS: 2,
            ResourceKind.ALLOC_SPACE: 100,
        }


class TestProfileShareClient:
    def _client_mock(self, response: MagicMock) -> MagicMock:
        client = MagicMock()
        client.__enter__.return_value = client
        client.__exit__.return_value = None
        client.post.return_value = response
        return client

    def test_upload_success(self, http_response) -> None:
        payload = {
            "url": "https://flamegraph.com/share/abc",
            "key": "abc",
            "subProfiles": [{"name": "cpu", "key": "abc-cpu"}],
        }
        client = self._client_mock(http_response(200, payload))
        with patch("benchdiff.profiles.sharing.httpx.Client", return_value=client):
            result = ProfileShareClient("https://flamegraph.com/", 5).upload(b"pprof", "x/cpu")

        assert result == ShareResult(
            url="https://flamegraph.com/share/abc",
            key="abc",
            sub_profiles=[SubProfile("cpu", "abc-cpu")],
        )
        call = client.post.call_args
        assert call.args[0] == "https://flamegraph.com/api/upload/v1"
        assert call.kwargs["content"] == b"pprof"
        assert call.kwargs["params"] == {"format": "pprof", "name": "x/cpu"}
        assert call.kwargs["headers"]["Content-Type"] == "application/octet-stream"

    def test_client_error_fails_fast(self, http_response) -> None:
        client = self._client_mock(http_response(413, text="too large"))
        with patch("benchdiff.profiles.sharing.httpx.Client", return_value=client):
            with pytest.raises(ShareError) as exc_info:
                ProfileShareClient("https://flamegraph.com", 5).upload(b"pprof")
        assert exc_info.value.status_code == 413
        assert client.post.call_count == 1

    def test_server_error_is_retried(self, http_response) -> None:
        client = self._client_mock(http_response(502, text="bad gateway"))
        with (
            patch("benchdiff.profiles.sharing.httpx.Client", return_value=client),
            patch("benchdiff.profiles.sharing.time.sleep"),
        ):
            with pytest.raises(ShareError, match="502"):
                ProfileShareClient("https://flamegraph.com", 5).upload(b"pprof")
        assert client.post.call_count == 3

    def test_network_error(self) -> None:
        client = MagicMock()
        client.__enter__.return_value = client
        client.post.side_effect = httpx.ConnectError("refused")
        with (
            patch("benchdiff.profiles.sharing.httpx.Client", return_value=client),
            patch("benchdiff.profiles.sharing.time.sleep"),
        ):
            with pytest.raises(ShareError, match="failed to reach"):
                ProfileShareClient("https://flamegraph.com", 5).upload(b"pprof")

    def test_parse_skips_incomplete_sub_profiles(self) -> None:
        result = parse_share_response({"url": "u", "subProfiles": [{"name": "cpu"}, "junk"]})
        assert result.sub_profiles == []
        with pytest.raises(ShareError):
            parse_share_response(["not", "a", "dict"])

    def test_malformed_sub_profiles(self, http_response) -> None:
        client = self._client_mock(http_response(200, {"url": "u", "key": "k", "subProfiles": 5}))
        with patch("benchdiff.profiles.sharing.httpx.Client", return_value=client):
            with pytest.raises(ShareError, match="malformed subProfiles"):
                ProfileShareClient("https://flamegraph.com", 5).upload(b"pprof")

    def test_invalid_url_is_a_share_error(self) -> None:
        client = MagicMock()
        client.__enter__.return_value = client
        client.post.side_effect = httpx.InvalidURL("bad url")
        with patch("benchdiff.profiles.sharing.httpx.Client", return_value=client):
            with pytest.raises(ShareError, match="bad url"):
                ProfileShareClient("not a url", 5).upload(b"pprof")
        assert client.post.call_count == 1


class TestProfileCollector:
    def _execution(self, profile_bytes) -> BenchmarkExecution:
        return BenchmarkExecution(
            output="BenchmarkA-8  100  10 ns/op",
            profiles={
                "cpu.pprof": profile_bytes(CPU_TYPES, [[1, 10_000_000]]),
                "mem.pprof": profile_bytes(MEM_TYPES, [[3, 2048, 0, 0]]),
            },
        )

    def test_without_sharing_keys_are_empty(self, profile_bytes) -> None:
        measurement = ProfileCollector().collect(self._execution(profile_bytes))

        assert measurement.get(ResourceKind.CPU).total == 10_000_000
        assert measurement.get(ResourceKind.ALLOC_SPACE).total == 2048
        assert measurement.get(ResourceKind.ALLOC_OBJECTS).total == 3
        assert all(v.key == "" for v in measurement.values.values())

    def test_sub_profile_keys_and_fallback(self, profile_bytes) -> None:
        share = MagicMock()
        share.upload.side_effect = [
            ShareResult(url="u1", key="cpu-top", sub_profiles=[]),
            ShareResult(
                url="u2",
                key="mem-top",
                sub_profiles=[SubProfile("memory:alloc_space:bytes", "mem-space")],
            ),
        ]

        measurement = ProfileCollector(share).collect(self._execution(profile_bytes), "p.BenchA")

        assert measurement.get(ResourceKind.CPU).key == "cpu-top"
        assert measurement.get(ResourceKind.ALLOC_SPACE).key == "mem-space"
        assert measurement.get(ResourceKind.ALLOC_OBJECTS).key == "mem-top"
        assert measurement.urls == ["u1", "u2"]
        assert share.upload.call_args_list[0].kwargs["name"] == "p.BenchA/cpu.pprof"

    def test_share_failure_degrades_to_empty_key(self, profile_bytes) -> None:
        share = MagicMock()
        share.upload.side_effect = ShareError("service down", status_code=503)

        measurement = ProfileCollector(share).collect(self._execution(profile_bytes))

        cpu = measurement.get(ResourceKind.CPU)
        assert cpu.total == 10_000_000
        assert cpu.key == ""

    def test_decode_failure_propagates(self) -> None:
        execution = BenchmarkExecution(output="", profiles={"cpu.pprof": b"\x07"})
        with pytest.raises(ProfileDecodeError):
            ProfileCollector().collect(execution)
