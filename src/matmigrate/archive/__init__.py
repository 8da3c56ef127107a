from .bundle import (
    ArchiveEntry,
    BundleAccessor,
    BundleIndex,
    extract,
    find_by_name,
)

__all__ = [
    "ArchiveEntry",
    "BundleAccessor",
    "BundleIndex",
    "extract",
    "find_by_name",
]
