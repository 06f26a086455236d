"""Per-run asset bookkeeping: the dedup map, the archive and downloads."""

import asyncio
import contextvars
import hashlib
import io
import logging
import zipfile
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterator, List, Optional, Tuple, Union

from site_snapshot.exceptions import ArchiveError
from site_snapshot.fetcher import AssetFetcher
from site_snapshot.urls import extract_extension, is_inline_uri

logger = logging.getLogger(__name__)

# Fixed entry timestamp so identical inputs produce identical archives
ZIP_TIMESTAMP = (1980, 1, 1, 0, 0, 0)

Content = Union[bytes, str]
Producer = Callable[[], Awaitable[Optional[Tuple[str, Content]]]]

# URL whose producer the current task is running for
_producing: "contextvars.ContextVar[Optional[str]]" = contextvars.ContextVar("producing", default=None)


def content_addressed_name(url: str, ext: str) -> str:
    """Get the archive file name for a source URL."""
    return f"{hashlib.md5(url.encode('utf-8')).hexdigest()}.{ext}"


class AssetStatus(Enum):
    STORED = "stored"
    INLINE = "inline"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class AssetResolution:
    """Outcome of resolving one asset URL to a local archive path."""

    status: AssetStatus
    local_path: str = ""

    @property
    def stored(self) -> bool:
        return self.status is AssetStatus.STORED

    @classmethod
    def stored_at(cls, local_path: str) -> "AssetResolution":
        return cls(AssetStatus.STORED, local_path)

    @classmethod
    def inline(cls) -> "AssetResolution":
        return cls(AssetStatus.INLINE)

    @classmethod
    def unavailable(cls) -> "AssetResolution":
        return cls(AssetStatus.UNAVAILABLE)


class ArchiveBuilder:
    """Write-once, in-memory mapping of archive path to file content."""

    def __init__(self):
        self._entries: Dict[str, bytes] = {}

    def write(self, path: str, content: Content) -> None:
        """Add a file to the archive. Each path may be written only once."""
        if path in self._entries:
            raise ArchiveError(f"Archive path written twice: {path}")
        if isinstance(content, str):
            content = content.encode("utf-8")
        self._entries[path] = content

    def read(self, path: str) -> bytes:
        return self._entries[path]

    def paths(self) -> List[str]:
        return list(self._entries)

    def __contains__(self, path: str) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def to_zip(self) -> bytes:
        """Serialize all entries into a deflated ZIP archive."""
        buffer = io.BytesIO()
        try:
            with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
                for path, content in sorted(self._entries.items()):
                    info = zipfile.ZipInfo(path, date_time=ZIP_TIMESTAMP)
                    info.compress_type = zipfile.ZIP_DEFLATED
                    archive.writestr(info, content)
        except (OSError, ValueError, zipfile.LargeZipFile) as e:
            raise ArchiveError(f"Could not assemble archive: {e}") from e
        return buffer.getvalue()


class AssetStore:
    """Maps absolute source URLs to the archive path assigned to them.

    Lookups and the start of a download happen without yielding to the event
    loop, and concurrent callers for the same URL share one in-flight task, so
    a URL is produced at most once per run. A producer that would wait on a
    task already waiting on it (a stylesheet importing one that imports it
    back) gets an unavailable result for that URL instead.
    """

    def __init__(self):
        self._paths: Dict[str, str] = {}
        self._pending: Dict[str, "asyncio.Future[AssetResolution]"] = {}
        self._waits: Dict[str, List[str]] = {}

    def get(self, url: str) -> Optional[str]:
        return self._paths.get(url)

    def record(self, url: str, local_path: str) -> None:
        self._paths[url] = local_path

    def items(self) -> Iterator[Tuple[str, str]]:
        return iter(list(self._paths.items()))

    def __contains__(self, url: str) -> bool:
        return url in self._paths

    def __len__(self) -> int:
        return len(self._paths)

    def _waits_on(self, url: str, target: str) -> bool:
        """Check whether ``url``'s producer is waiting, directly or not, on ``target``."""
        seen = set()
        stack = [url]
        while stack:
            current = stack.pop()
            if current == target:
                return True
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self._waits.get(current, ()))
        return False

    async def _produce(
        self, url: str, produce: Callable[[], Awaitable[AssetResolution]]
    ) -> AssetResolution:
        _producing.set(url)
        try:
            return await produce()
        finally:
            self._waits.pop(url, None)

    async def claim(
        self, url: str, produce: Callable[[], Awaitable[AssetResolution]]
    ) -> AssetResolution:
        """Return the recorded path for ``url`` or join/start its single producer."""
        local_path = self._paths.get(url)
        if local_path is not None:
            return AssetResolution.stored_at(local_path)

        task = self._pending.get(url)
        if task is None:
            task = asyncio.ensure_future(self._produce(url, produce))
            self._pending[url] = task
            task.add_done_callback(lambda _: self._pending.pop(url, None))

        waiter = _producing.get()
        if waiter is None:
            return await asyncio.shield(task)
        if self._waits_on(url, waiter):
            logger.debug("Not waiting on %s from %s, it would wait back", url, waiter)
            return AssetResolution.unavailable()
        self._waits.setdefault(waiter, []).append(url)
        try:
            return await asyncio.shield(task)
        finally:
            waits = self._waits.get(waiter)
            if waits and url in waits:
                waits.remove(url)


class SnapshotRun:
    """State owned by a single clone or export invocation.

    Holds the dedup map and the archive it feeds; never shared between
    invocations.
    """

    def __init__(self, fetcher: AssetFetcher):
        self.fetcher = fetcher
        self.store = AssetStore()
        self.archive = ArchiveBuilder()

    async def store_asset(self, url: str, producer: Producer) -> AssetResolution:
        """Produce ``url``'s archive entry once and record where it went.

        ``producer`` returns ``(local_path, content)`` or ``None`` when the
        asset is unavailable. Unavailable URLs are not recorded.
        """

        async def produce_and_record() -> AssetResolution:
            produced = await producer()
            if produced is None:
                return AssetResolution.unavailable()
            local_path, content = produced
            self.archive.write(local_path, content)
            self.store.record(url, local_path)
            return AssetResolution.stored_at(local_path)

        return await self.store.claim(url, produce_and_record)

    async def ensure_downloaded(
        self,
        abs_url: str,
        folder: str,
        fallback_ext: str,
        transform: Optional[Callable[[bytes], bytes]] = None,
    ) -> AssetResolution:
        """Download an asset into ``folder`` unless this run already has it."""
        if not abs_url:
            return AssetResolution.unavailable()
        local_path = self.store.get(abs_url)
        if local_path is not None:
            return AssetResolution.stored_at(local_path)
        if is_inline_uri(abs_url):
            return AssetResolution.inline()

        async def download() -> Optional[Tuple[str, Content]]:
            data = await self.fetcher.fetch(abs_url)
            if data is None:
                logger.debug("Asset unavailable: %s", abs_url)
                return None
            if transform is not None:
                data = transform(data)
            ext = extract_extension(abs_url, fallback_ext or "bin")
            return f"{folder}/{content_addressed_name(abs_url, ext)}", data

        return await self.store_asset(abs_url, download)
