"""HTTP downloader for package archives.

HttpArchiveDownloader satisfies the Downloader capability expected by
ArchiveCache.fetch_or_download(): it streams an archive body from a URL
straight into the staging path. It performs no retries; wrap it if you need
network retry policy.

Example:
    >>> archives = HttpArchiveDownloader.from_template(
    ...     "https://packages.example.com/{name}/{version}/archive"
    ... )
    >>> signatures = HttpArchiveDownloader.from_template(
    ...     "https://packages.example.com/{name}/{version}/signature"
    ... )
    >>> await cache.fetch_or_download(identity, archives, signatures)
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import httpx
import structlog

from archive_cache.errors import ArchiveDownloadError
from archive_cache.schemas import PackageIdentity

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60.0
CHUNK_SIZE = 64 * 1024


class HttpArchiveDownloader:
    """Streams archives over HTTP into staging files.

    Attributes:
        timeout_seconds: Per-request timeout used when the downloader owns
            its client.
    """

    def __init__(
        self,
        url_for: Callable[[PackageIdentity], str],
        *,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize HttpArchiveDownloader.

        Args:
            url_for: Resolves the download URL for an identity.
            client: Shared client. If None, a client is created per download.
            timeout_seconds: Request timeout for owned clients.
        """
        self._url_for = url_for
        self._client = client
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_template(
        cls,
        template: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> HttpArchiveDownloader:
        """Create a downloader from a URL template.

        The template is formatted with ``name``, ``version`` and
        ``target_platform`` (empty string when unset).
        """

        def url_for(identity: PackageIdentity) -> str:
            return template.format(
                name=identity.name,
                version=identity.version,
                target_platform=identity.target_platform or "",
            )

        return cls(url_for, client=client, timeout_seconds=timeout_seconds)

    async def __call__(self, identity: PackageIdentity, staging_path: Path) -> None:
        """Download the archive for identity to staging_path.

        Raises:
            ArchiveDownloadError: On an HTTP error status or transport failure.
        """
        url = self._url_for(identity)
        client = self._client or httpx.AsyncClient(timeout=self.timeout_seconds)

        try:
            async with client.stream("GET", url, follow_redirects=True) as response:
                if response.is_error:
                    raise ArchiveDownloadError(
                        str(identity),
                        f"HTTP {response.status_code} from {url}",
                        status_code=response.status_code,
                    )

                size = 0
                with open(staging_path, "wb") as f:
                    async for chunk in response.aiter_bytes(CHUNK_SIZE):
                        f.write(chunk)
                        size += len(chunk)
        except httpx.HTTPError as e:
            raise ArchiveDownloadError(str(identity), f"{type(e).__name__}: {e}") from e
        finally:
            if self._client is None:
                await client.aclose()

        logger.debug("archive_downloaded", package=str(identity), url=url, size=size)
