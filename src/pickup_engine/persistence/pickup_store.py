"""Durable per-product pickup cache with staleness driven background refresh."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Awaitable, Callable, Iterator, Optional, Sequence

from ..clock import Clock, ensure_utc, utc_now
from ..config import settings
from ..errors import ResolutionError, StorageWriteError, UpstreamError
from ..models.domain import Freshness, PickupRecord, PickupSource, ProductPickupFile
from .documents import PickupDocument
from .filesystem import FileStorage

logger = logging.getLogger(__name__)

PickupFetcher = Callable[[str], Awaitable[Sequence[PickupRecord]]]
RefreshListener = Callable[[str], None]

_SAFE_CODE = re.compile(r"^[A-Za-z0-9_-]+$")
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def file_name_for(product_code: str) -> str:
    """Map a product code to a file stem.

    Codes made only of letters, digits, ``-`` and ``_`` are used as is. Any
    other code gets its unsafe characters replaced and a digest of the raw
    code appended, so ``A.B`` and ``A_B`` land in different files.
    """
    if not product_code:
        raise ValueError("Product code must not be empty.")
    if _SAFE_CODE.match(product_code):
        return product_code
    digest = hashlib.sha1(product_code.encode("utf-8")).hexdigest()[:10]
    return f"{_UNSAFE_CHARS.sub('_', product_code)}__{digest}"


@dataclass(slots=True)
class StoredFileInfo:
    product_code: str
    file_name: str
    file_size: int
    fetched_at: datetime
    last_accessed: Optional[datetime]
    access_count: int
    pickup_count: int
    freshness: Freshness


@dataclass(slots=True)
class StorageStats:
    total_files: int = 0
    total_bytes: int = 0
    oldest_file: Optional[str] = None
    newest_file: Optional[str] = None
    files: list[StoredFileInfo] = field(default_factory=list)


@dataclass(slots=True)
class CacheStats:
    total_products: int = 0
    fresh: int = 0
    stale: int = 0
    expired: int = 0
    invalid_files: int = 0
    total_bytes: int = 0
    pending_refreshes: int = 0
    oldest_fetched_at: Optional[datetime] = None
    newest_fetched_at: Optional[datetime] = None


@dataclass(slots=True)
class CleanupResult:
    deleted: list[str] = field(default_factory=list)
    reclaimed_bytes: int = 0
    errors: list[str] = field(default_factory=list)


class PickupStore:
    """One JSON document per product, plus the refresh policy around it.

    A missing document means "unknown, fetch it"; a document with an empty
    ``pickups`` list means "confirmed no pickup service". Corrupt documents
    are deleted on read and reported as missing.
    """

    def __init__(
        self,
        root: Path | None = None,
        *,
        clock: Clock | None = None,
        refresh_after: timedelta | None = None,
        expire_after: timedelta | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
        fetch_timeout: float | None = None,
    ) -> None:
        self.storage = FileStorage(root)
        self.clock = clock or utc_now
        self.refresh_after = refresh_after or timedelta(hours=settings.refresh_after_hours)
        self.expire_after = expire_after or timedelta(hours=settings.expire_after_hours)
        if self.expire_after < self.refresh_after:
            raise ValueError("expire_after must not be shorter than refresh_after.")
        self.max_retries = max_retries if max_retries is not None else settings.save_max_retries
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1.")
        self.retry_delay = retry_delay if retry_delay is not None else settings.save_retry_delay_seconds
        self.fetch_timeout = fetch_timeout if fetch_timeout is not None else settings.upstream_timeout_seconds
        self._refresh_tasks: dict[str, asyncio.Task] = {}
        self._listeners: list[RefreshListener] = []

    @property
    def root(self) -> Path:
        return self.storage.root

    def path_for(self, product_code: str) -> Path:
        return self.storage.path_for(file_name_for(product_code))

    def add_listener(self, listener: RefreshListener) -> None:
        """Register a callback invoked with the product code after every successful save."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Basic document operations
    # ------------------------------------------------------------------

    def has(self, product_code: str) -> bool:
        return self.storage.exists(self.path_for(product_code))

    def load(self, product_code: str) -> ProductPickupFile | None:
        """Read a product's document and record the access.

        Anything other than a missing file that prevents a valid read is
        treated as corruption: the file is removed and ``None`` returned.
        """
        path = self.path_for(product_code)
        document = self._read(product_code, path, discard_invalid=True)
        if document is None:
            return None

        document.last_accessed = self.clock()
        document.access_count = (document.access_count or 0) + 1
        try:
            self.storage.write_json(path, document.to_json_dict())
        except OSError as exc:
            logger.warning(f"Failed to update access stats for {product_code}: {exc}")
        return document.to_domain()

    def peek(self, product_code: str) -> ProductPickupFile | None:
        """Read a product's document without recording access or deleting anything."""
        document = self._read(product_code, self.path_for(product_code), discard_invalid=False)
        return document.to_domain() if document is not None else None

    def save(
        self,
        product_code: str,
        pickups: Sequence[PickupRecord],
        source: PickupSource | str = PickupSource.REZDY_API,
    ) -> ProductPickupFile:
        """Write a document, sleeping between retries. Use ``save_async`` on the event loop."""
        stored = self._new_document(product_code, pickups, source)
        last_error: OSError | None = None
        for attempt in range(1, self.max_retries + 1):
            last_error = self._try_write(stored, attempt)
            if last_error is None:
                return self._saved(stored)
            if attempt < self.max_retries:
                time.sleep(self.retry_delay * attempt)
        raise StorageWriteError(product_code, self.max_retries, last_error)

    async def save_async(
        self,
        product_code: str,
        pickups: Sequence[PickupRecord],
        source: PickupSource | str = PickupSource.REZDY_API,
    ) -> ProductPickupFile:
        stored = self._new_document(product_code, pickups, source)
        last_error: OSError | None = None
        for attempt in range(1, self.max_retries + 1):
            last_error = self._try_write(stored, attempt)
            if last_error is None:
                return self._saved(stored)
            if attempt < self.max_retries:
                await asyncio.sleep(self.retry_delay * attempt)
        raise StorageWriteError(product_code, self.max_retries, last_error)

    def delete(self, product_code: str) -> None:
        if self.storage.delete(self.path_for(product_code)):
            logger.info(f"Deleted pickup data for {product_code}")
            self._notify(product_code)

    def freshness(self, document: ProductPickupFile, now: datetime | None = None) -> Freshness:
        age = ensure_utc(now or self.clock()) - ensure_utc(document.fetched_at)
        if age < self.refresh_after:
            return Freshness.FRESH
        if age <= self.expire_after:
            return Freshness.STALE
        return Freshness.EXPIRED

    # ------------------------------------------------------------------
    # Fetching policies
    # ------------------------------------------------------------------

    async def get_or_fetch(self, product_code: str, fetcher: PickupFetcher) -> list[PickupRecord]:
        cached = self.load(product_code)
        if cached is not None:
            return list(cached.pickups)
        return await self._fetch_missing(product_code, fetcher)

    async def get_with_background_refresh(self, product_code: str, fetcher: PickupFetcher) -> list[PickupRecord]:
        existing = self.load(product_code)
        if existing is None:
            logger.info(f"No cached pickup data for {product_code}, fetching")
            return await self._fetch_missing(product_code, fetcher)

        state = self.freshness(existing)
        if state is Freshness.FRESH:
            return list(existing.pickups)
        if state is Freshness.STALE:
            logger.debug(f"Pickup data for {product_code} is stale, refreshing in background")
            self.schedule_refresh(product_code, fetcher)
            return list(existing.pickups)

        logger.info(f"Pickup data for {product_code} expired, refreshing")
        refreshed = await asyncio.shield(self.schedule_refresh(product_code, fetcher))
        return refreshed if refreshed is not None else list(existing.pickups)

    async def refresh(self, product_code: str, fetcher: PickupFetcher) -> list[PickupRecord]:
        """Force a refresh, falling back to whatever is cached when the fetch fails."""
        refreshed = await asyncio.shield(self.schedule_refresh(product_code, fetcher))
        if refreshed is not None:
            return refreshed
        cached = self.peek(product_code)
        return list(cached.pickups) if cached is not None else []

    def schedule_refresh(self, product_code: str, fetcher: PickupFetcher) -> asyncio.Task:
        """Start a refresh for ``product_code`` unless one is already running.

        The returned task resolves to the new pickups, or ``None`` when the
        upstream fetch failed and the existing document was left untouched.
        """
        task = self._refresh_tasks.get(product_code)
        if task is not None and not task.done():
            logger.debug(f"Refresh already in flight for {product_code}")
            return task
        task = asyncio.get_running_loop().create_task(
            self._run_refresh(product_code, fetcher),
            name=f"pickup-refresh-{product_code}",
        )
        self._refresh_tasks[product_code] = task
        task.add_done_callback(self._log_refresh_failure)
        return task

    @property
    def pending_refreshes(self) -> list[str]:
        return sorted(code for code, task in self._refresh_tasks.items() if not task.done())

    async def wait_for_refreshes(self) -> None:
        tasks = list(self._refresh_tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _fetch_missing(self, product_code: str, fetcher: PickupFetcher) -> list[PickupRecord]:
        # Shares the per-code refresh task so concurrent cold reads hit upstream once.
        pickups = await asyncio.shield(self.schedule_refresh(product_code, fetcher))
        if pickups is None:
            raise UpstreamError(product_code, "pickup fetch failed and nothing is cached")
        return pickups

    async def _run_refresh(self, product_code: str, fetcher: PickupFetcher) -> list[PickupRecord] | None:
        try:
            pickups = await self._fetch(product_code, fetcher)
            await self.save_async(product_code, pickups)
            logger.info(f"Refreshed pickup data for {product_code}")
            return pickups
        except ResolutionError as exc:
            logger.warning(f"Pickup fetch failed for {product_code}, leaving stored data untouched: {exc}")
            return None
        finally:
            if self._refresh_tasks.get(product_code) is asyncio.current_task():
                del self._refresh_tasks[product_code]

    async def _fetch(self, product_code: str, fetcher: PickupFetcher) -> list[PickupRecord]:
        try:
            pickups = await asyncio.wait_for(fetcher(product_code), timeout=self.fetch_timeout)
        except asyncio.TimeoutError as exc:
            raise UpstreamError(product_code, f"fetch timed out after {self.fetch_timeout}s") from exc
        except ResolutionError:
            raise
        except Exception as exc:
            raise UpstreamError(product_code, str(exc)) from exc
        return list(pickups)

    # ------------------------------------------------------------------
    # Maintenance and statistics
    # ------------------------------------------------------------------

    def scan(self) -> Iterator[tuple[Path, ProductPickupFile]]:
        """Yield every valid document; invalid files are logged and skipped."""
        for path in self.storage.iter_json_files():
            try:
                document = PickupDocument.model_validate(self.storage.read_json(path))
            except (OSError, ValueError) as exc:
                logger.warning(f"Skipping unreadable pickup file {path.name}: {exc}")
                continue
            yield path, document.to_domain()

    def cache_stats(self) -> CacheStats:
        stats = CacheStats(pending_refreshes=len(self.pending_refreshes))
        now = self.clock()
        for path in self.storage.iter_json_files():
            try:
                stats.total_bytes += self.storage.size(path)
                document = PickupDocument.model_validate(self.storage.read_json(path)).to_domain()
            except (OSError, ValueError):
                stats.invalid_files += 1
                continue
            stats.total_products += 1
            state = self.freshness(document, now)
            if state is Freshness.FRESH:
                stats.fresh += 1
            elif state is Freshness.STALE:
                stats.stale += 1
            else:
                stats.expired += 1
            if stats.oldest_fetched_at is None or document.fetched_at < stats.oldest_fetched_at:
                stats.oldest_fetched_at = document.fetched_at
            if stats.newest_fetched_at is None or document.fetched_at > stats.newest_fetched_at:
                stats.newest_fetched_at = document.fetched_at
        return stats

    def storage_stats(self) -> StorageStats:
        stats = StorageStats()
        now = self.clock()
        oldest: datetime | None = None
        newest: datetime | None = None
        for path, document in self.scan():
            try:
                size = self.storage.size(path)
            except OSError:
                continue
            stats.total_files += 1
            stats.total_bytes += size
            if oldest is None or document.fetched_at < oldest:
                oldest = document.fetched_at
                stats.oldest_file = path.name
            if newest is None or document.fetched_at > newest:
                newest = document.fetched_at
                stats.newest_file = path.name
            stats.files.append(
                StoredFileInfo(
                    product_code=document.product_code,
                    file_name=path.name,
                    file_size=size,
                    fetched_at=document.fetched_at,
                    last_accessed=document.last_accessed,
                    access_count=document.access_count,
                    pickup_count=len(document.pickups),
                    freshness=self.freshness(document, now),
                )
            )
        return stats

    def cleanup(
        self,
        *,
        max_age: timedelta | None = None,
        min_access_count: int = 0,
        dry_run: bool = False,
    ) -> CleanupResult:
        """Evict documents older than ``max_age`` or read fewer than ``min_access_count`` times."""
        result = CleanupResult()
        now = self.clock()
        for info in self.storage_stats().files:
            too_old = max_age is not None and now - info.fetched_at > max_age
            rarely_used = min_access_count > 0 and info.access_count < min_access_count
            if not (too_old or rarely_used):
                continue
            if not dry_run:
                try:
                    self.storage.delete(self.path_for(info.product_code))
                except OSError as exc:
                    result.errors.append(f"Failed to delete {info.product_code}: {exc}")
                    continue
                self._notify(info.product_code)
            result.deleted.append(info.product_code)
            result.reclaimed_bytes += info.file_size
        if result.deleted:
            logger.info(
                f"Pickup cleanup {'would remove' if dry_run else 'removed'} {len(result.deleted)} files "
                f"({result.reclaimed_bytes} bytes)"
            )
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _new_document(
        self,
        product_code: str,
        pickups: Sequence[PickupRecord],
        source: PickupSource | str,
    ) -> ProductPickupFile:
        now = self.clock()
        return ProductPickupFile(
            product_code=product_code,
            pickups=tuple(pickups),
            fetched_at=now,
            source=PickupSource(source),
            last_accessed=now,
            access_count=1,
        )

    def _try_write(self, stored: ProductPickupFile, attempt: int) -> OSError | None:
        payload = PickupDocument.from_domain(stored).to_json_dict()
        try:
            self.storage.write_json(self.path_for(stored.product_code), payload)
        except OSError as exc:
            logger.warning(f"Attempt {attempt} failed to save pickup data for {stored.product_code}: {exc}")
            return exc
        return None

    def _saved(self, stored: ProductPickupFile) -> ProductPickupFile:
        logger.info(f"Saved pickup data for {stored.product_code} ({len(stored.pickups)} locations)")
        self._notify(stored.product_code)
        return stored

    def _read(self, product_code: str, path: Path, *, discard_invalid: bool) -> PickupDocument | None:
        try:
            payload = self.storage.read_json(path)
            document = PickupDocument.model_validate(payload)
            if document.product_code != product_code:
                raise ValueError(f"document belongs to '{document.product_code}'")
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            logger.warning(f"Invalid pickup data for {product_code}: {exc}")
            if discard_invalid:
                self._discard(product_code, path)
            return None
        return document

    def _discard(self, product_code: str, path: Path) -> None:
        try:
            self.storage.delete(path)
        except OSError as exc:
            logger.warning(f"Failed to remove corrupt pickup file for {product_code}: {exc}")
            return
        logger.info(f"Removed corrupt pickup file for {product_code}")
        self._notify(product_code)

    def _notify(self, product_code: str) -> None:
        for listener in self._listeners:
            try:
                listener(product_code)
            except Exception as exc:
                logger.warning(f"Pickup listener failed for {product_code}: {exc}")

    def _log_refresh_failure(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"{task.get_name()} failed: {error}")
