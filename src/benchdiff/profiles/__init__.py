from .collector import Measurement, ProfileCollector, ProfileMeasurement, totals_by_kind
from .kinds import RESOURCE_ALIASES, RESOURCE_UNITS, ResourceKind, resolve_kind
from .pprof import Profile, SampleType, parse_profile
from .sharing import ProfileShareClient, ShareResult, SubProfile

__all__ = [
    "RESOURCE_ALIASES",
    "RESOURCE_UNITS",
    "Measurement",
    "Profile",
    "ProfileCollector",
    "ProfileMeasurement",
    "ProfileShareClient",
    "ResourceKind",
    "SampleType",
    "ShareResult",
    "SubProfile",
    "parse_profile",
    "resolve_kind",
    "totals_by_kind",
]
