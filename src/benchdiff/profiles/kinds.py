from enum import Enum


class ResourceKind(str, Enum):
    CPU = "cpu"
    ALLOC_SPACE = "alloc_space"
    ALLOC_OBJECTS = "alloc_objects"

    @property
    def unit(self) -> str:
        return RESOURCE_UNITS[self]


RESOURCE_UNITS: dict[ResourceKind, str] = {
    ResourceKind.CPU: "ns",
    ResourceKind.ALLOC_SPACE: "bytes",
    ResourceKind.ALLOC_OBJECTS: "objects",
}

# Names used for the same measurement by pprof sample types and by the sharing
# service's sub-profiles across versions. Add new aliases here.
RESOURCE_ALIASES: dict[str, ResourceKind] = {
    "cpu": ResourceKind.CPU,
    "cpu:nanoseconds": ResourceKind.CPU,
    "process_cpu:cpu:nanoseconds": ResourceKind.CPU,
    "alloc_space": ResourceKind.ALLOC_SPACE,
    "alloc_space:bytes": ResourceKind.ALLOC_SPACE,
    "memory:alloc_space:bytes": ResourceKind.ALLOC_SPACE,
    "alloc_objects": ResourceKind.ALLOC_OBJECTS,
    "alloc_objects:count": ResourceKind.ALLOC_OBJECTS,
    "memory:alloc_objects:count": ResourceKind.ALLOC_OBJECTS,
}


def resolve_kind(name: str) -> ResourceKind | None:
    return RESOURCE_ALIASES.get(name.strip().lower())
