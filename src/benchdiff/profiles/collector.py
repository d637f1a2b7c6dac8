import logging
from dataclasses import dataclass, field

from ..bench.runner import BenchmarkExecution
from ..errors import ShareError
from .kinds import ResourceKind, resolve_kind
from .pprof import parse_profile
from .sharing import ProfileShareClient

logger = logging.getLogger(__name__)


@dataclass
class ProfileMeasurement:
    kind: ResourceKind
    total: int = 0
    key: str = ""  # empty when the profile could not be shared


@dataclass
class Measurement:
    """All resource totals measured for one side of one benchmark."""

    values: dict[ResourceKind, ProfileMeasurement] = field(default_factory=dict)
    output: str = ""
    urls: list[str] = field(default_factory=list)

    def get(self, kind: ResourceKind) -> ProfileMeasurement | None:
        return self.values.get(kind)


def totals_by_kind(data: bytes) -> dict[ResourceKind, int]:
    """Sum sample values of a pprof artifact for every tracked resource kind."""
    profile = parse_profile(data)
    totals: dict[ResourceKind, int] = {}
    for sample_type, total in profile.totals().items():
        kind = resolve_kind(sample_type)
        if kind is not None:
            totals[kind] = total
    return totals


class ProfileCollector:
    def __init__(self, share_client: ProfileShareClient | None = None) -> None:
        self._share_client = share_client

    def _share(
        self, data: bytes, name: str, kinds: list[ResourceKind]
    ) -> tuple[dict[ResourceKind, str], str]:
        if self._share_client is None:
            return {}, ""
        try:
            result = self._share_client.upload(data, name=name)
        except ShareError as exc:
            logger.warning("Failed to share profile %s: %s", name, exc)
            return {}, ""

        keys: dict[ResourceKind, str] = {}
        for sub in result.sub_profiles:
            kind = resolve_kind(sub.name)
            if kind is not None and kind not in keys:
                keys[kind] = sub.key
        if result.key:
            for kind in kinds:
                keys.setdefault(kind, result.key)
        return keys, result.url

    def collect(self, execution: BenchmarkExecution, name: str = "") -> Measurement:
        """Turn raw profiling artifacts into one measurement.

        Raises:
            ProfileDecodeError: If an artifact is not a valid profile.
        """
        measurement = Measurement(output=execution.output)
        for artifact, data in execution.profiles.items():
            totals = totals_by_kind(data)
            upload_name = f"{name}/{artifact}" if name else artifact
            keys, url = self._share(data, upload_name, list(totals))
            if url:
                measurement.urls.append(url)
            for kind, total in totals.items():
                measurement.values[kind] = ProfileMeasurement(
                    kind=kind, total=total, key=keys.get(kind, "")
                )
        return measurement
