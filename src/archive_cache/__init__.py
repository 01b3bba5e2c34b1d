"""Local disk cache for downloaded package archives.

Archives are named by package identity, published atomically through a
staging file and rename, and kept bounded by a one-time sweep that keeps the
newest version of each package and the most recently modified packages up to
a capacity.

Key Components:
- ArchiveCache: fetch_or_download() and delete(), gated on the startup sweep
- CacheConfig: Cache directory, capacity, and rename retry window
- AtomicPublisher: Staging, rename, and retry of transient rename failures
- CacheJanitor: Version collapse and capacity eviction
- LocalFileAccess: Default FileAccess for the local disk
- HttpArchiveDownloader: Optional httpx-based downloader

Example:
    >>> from archive_cache import ArchiveCache, HttpArchiveDownloader, PackageIdentity
    >>>
    >>> download = HttpArchiveDownloader.from_template(
    ...     "https://packages.example.com/{name}/{version}/archive"
    ... )
    >>> async with ArchiveCache() as cache:
    ...     result = await cache.fetch_or_download(
    ...         PackageIdentity(name="acme.tool", version="1.2.0"), download
    ...     )
"""

from __future__ import annotations

__version__ = "0.1.0"

from archive_cache.cache import ArchiveCache, Downloader
from archive_cache.download import HttpArchiveDownloader
from archive_cache.errors import (
    ArchiveCacheError,
    ArchiveDownloadError,
    RenameError,
    RenameErrorKind,
    RenameRetryExhaustedError,
)
from archive_cache.filesystem import FileAccess, LocalFileAccess
from archive_cache.janitor import CacheJanitor, EvictionPlan, SweepReport, plan_eviction
from archive_cache.naming import (
    SIGNATURE_ARCHIVE_SUFFIX,
    archive_name,
    archive_name_from_signature,
    cache_key,
    is_signature_archive,
    parse_cache_key,
    signature_archive_name,
)
from archive_cache.publisher import AtomicPublisher, Producer, PublishOutcome
from archive_cache.schemas import (
    CacheConfig,
    CachedArchive,
    CacheEntry,
    DirectoryEntry,
    PackageIdentity,
)
from archive_cache.versions import compare_versions, is_valid_version, version_key

__all__ = [
    "__version__",
    # Cache
    "ArchiveCache",
    "Downloader",
    "HttpArchiveDownloader",
    # Configuration and models
    "CacheConfig",
    "CachedArchive",
    "CacheEntry",
    "DirectoryEntry",
    "PackageIdentity",
    # Components
    "AtomicPublisher",
    "CacheJanitor",
    "EvictionPlan",
    "FileAccess",
    "LocalFileAccess",
    "Producer",
    "PublishOutcome",
    "SweepReport",
    "plan_eviction",
    # Naming
    "SIGNATURE_ARCHIVE_SUFFIX",
    "archive_name",
    "archive_name_from_signature",
    "cache_key",
    "is_signature_archive",
    "parse_cache_key",
    "signature_archive_name",
    # Versions
    "compare_versions",
    "is_valid_version",
    "version_key",
    # Errors
    "ArchiveCacheError",
    "ArchiveDownloadError",
    "RenameError",
    "RenameErrorKind",
    "RenameRetryExhaustedError",
]
