"""
Graph Cache

Owns the published graph snapshot and keeps it fresh. Readers always get
the current snapshot immediately; expired snapshots are rebuilt in the
background and swapped in atomically once fully built.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..errors import ErrorKind, SourceError, source_unreachable
from ..ingestion.adapter import I3XSourceAdapter, SourceFetchResult
from .graph_index import GraphSnapshot, build_snapshot

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 30 * 60


class GraphCache:
    """
    Time-bounded holder of the current GraphSnapshot.

    The rebuild is the only writer. It fetches every source concurrently,
    builds a new snapshot without touching the published one, and swaps the
    reference under a lock. Readers never take that lock.
    """

    def __init__(
        self,
        adapters: Sequence[I3XSourceAdapter],
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        fetch_timeout: float = 10.0,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the cache. Nothing is fetched until the first get().

        Args:
            adapters: Source adapters, in merge order
            ttl_seconds: Snapshot time-to-live before a rebuild is scheduled
            fetch_timeout: Upper bound on how long a rebuild waits for sources
            clock: Monotonic clock, injectable for tests
        """
        self.adapters = list(adapters)
        self.ttl_seconds = ttl_seconds
        self.fetch_timeout = fetch_timeout
        self._clock = clock

        self._snapshot = GraphSnapshot.empty()
        self._built_at: Optional[float] = None
        self._attempted_at: Optional[float] = None
        self._invalidated = False
        self._invalidation_generation = 0
        self._publish_lock = threading.Lock()
        self._schedule_lock = threading.Lock()
        self._refresh_lock = threading.Lock()
        self._rebuild_thread: Optional[threading.Thread] = None

        self.rebuild_count = 0
        self.last_errors: List[SourceError] = []
        self.last_failure: Optional[SourceError] = None
        logger.info(f"GraphCache initialized with {len(self.adapters)} sources, "
                    f"ttl={ttl_seconds}s")

    @property
    def version(self) -> int:
        return self._snapshot.version

    def is_stale(self) -> bool:
        """True when the published snapshot is older than the TTL or was invalidated."""
        if self._built_at is None or self._invalidated:
            return True
        return self._clock() - self._built_at > self.ttl_seconds

    def _rebuild_due(self) -> bool:
        # Retries after a failed rebuild wait a full TTL from the attempt.
        if self._attempted_at is None or self._invalidated:
            return True
        return self._clock() - self._attempted_at > self.ttl_seconds

    def get(self) -> GraphSnapshot:
        """
        Return the current snapshot without waiting for a rebuild.

        The very first call builds synchronously, since there is nothing to
        serve yet. Later calls on a stale snapshot schedule one background
        rebuild and return the stale snapshot.
        """
        if self._attempted_at is None and not self.rebuilding:
            self._cold_start()
        elif self._rebuild_due():
            self._schedule_rebuild()
        else:
            logger.debug(f"Returning cached graph snapshot v{self._snapshot.version}")
        return self._snapshot

    def _cold_start(self) -> None:
        with self._refresh_lock:
            if self._attempted_at is None:
                self._rebuild()

    def invalidate(self) -> None:
        """Force a rebuild on the next access."""
        logger.info("Graph cache invalidated")
        with self._publish_lock:
            self._invalidation_generation += 1
            self._invalidated = True

    @property
    def rebuilding(self) -> bool:
        thread = self._rebuild_thread
        return thread is not None and thread.is_alive()

    def _schedule_rebuild(self) -> None:
        with self._schedule_lock:
            if self.rebuilding:
                return
            logger.info(f"Graph snapshot v{self._snapshot.version} is stale, scheduling rebuild")
            self._rebuild_thread = threading.Thread(
                target=self.refresh, name="graph-rebuild", daemon=True
            )
            self._rebuild_thread.start()

    def wait_for_rebuild(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for an in-flight background rebuild.

        Returns:
            True if no rebuild is running when this returns
        """
        thread = self._rebuild_thread
        if thread is not None:
            thread.join(timeout)
        return not self.rebuilding

    def _fetch_all(self) -> List[SourceFetchResult]:
        results: List[SourceFetchResult] = []
        if not self.adapters:
            return results

        executor = ThreadPoolExecutor(max_workers=len(self.adapters), thread_name_prefix="source-fetch")
        try:
            futures = [executor.submit(adapter.fetch) for adapter in self.adapters]
            wait(futures, timeout=self.fetch_timeout)

            for adapter, future in zip(self.adapters, futures):
                if not future.done():
                    future.cancel()
                    logger.error(f"[{adapter.name}] Fetch exceeded {self.fetch_timeout}s, skipping source")
                    results.append(SourceFetchResult(
                        source=adapter.name,
                        errors=[source_unreachable(adapter.name, f"fetch timed out after {self.fetch_timeout}s")]
                    ))
                    continue

                error = future.exception()
                if error is not None:
                    logger.error(f"[{adapter.name}] Fetch failed unexpectedly: {error}")
                    results.append(SourceFetchResult(
                        source=adapter.name,
                        errors=[source_unreachable(adapter.name, f"fetch failed: {error}")]
                    ))
                    continue

                results.append(future.result())
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return results

    def refresh(self) -> bool:
        """
        Rebuild the snapshot synchronously and publish it.

        Returns:
            True if a new snapshot was published, False if every source
            failed and the previous snapshot is still being served
        """
        with self._refresh_lock:
            return self._rebuild()

    def _rebuild(self) -> bool:
        started = self._clock()
        generation = self._invalidation_generation
        logger.info("Discovering manufacturing graph structure")

        results = self._fetch_all()
        errors = [error for result in results for error in result.errors]
        self.last_errors = errors

        if not results or all(result.unreachable for result in results):
            self.last_failure = SourceError(
                kind=ErrorKind.REBUILD_FAILED,
                message=f"all {len(self.adapters)} sources failed; "
                        f"serving snapshot v{self._snapshot.version}"
            )
            logger.error(f"Graph rebuild failed: {self.last_failure.message}")
            # Retry on the next TTL expiry or manual trigger.
            with self._publish_lock:
                self._attempted_at = self._clock()
                self._clear_invalidation(generation)
            return False

        for error in errors:
            logger.warning(f"Degraded source during rebuild: {error}")

        snapshot = build_snapshot(
            (instance for result in results for instance in result.instances),
            version=self._snapshot.version + 1,
            namespaces=[ns for result in results for ns in result.namespaces],
            object_types=[t for result in results for t in result.object_types],
            errors=errors
        )

        with self._publish_lock:
            self._snapshot = snapshot
            self._built_at = self._attempted_at = self._clock()
            self._clear_invalidation(generation)
            self.rebuild_count += 1
            self.last_failure = None

        logger.info(f"Graph discovery complete in {self._clock() - started:.2f}s. "
                    f"Published snapshot v{snapshot.version}: "
                    f"{len(snapshot)} nodes, {len(snapshot.edges())} edges")
        return True

    def _clear_invalidation(self, generation: int) -> None:
        # An invalidate() that arrived mid-rebuild still applies to the next get().
        if self._invalidation_generation == generation:
            self._invalidated = False

    def _age(self, since: Optional[float]) -> Optional[float]:
        return None if since is None else round(self._clock() - since, 3)

    def status(self) -> Dict[str, Any]:
        """
        Freshness and rebuild health for observability.

        age_seconds and stale describe the published snapshot; a failed
        rebuild only moves last_attempt_age_seconds.
        """
        published = self._built_at is not None
        return {
            'version': self._snapshot.version,
            'built_at': datetime.fromtimestamp(self._snapshot.built_at).isoformat() if published else None,
            'age_seconds': self._age(self._built_at),
            'last_attempt_age_seconds': self._age(self._attempted_at),
            'ttl_seconds': self.ttl_seconds,
            'stale': self.is_stale(),
            'rebuilding': self.rebuilding,
            'rebuild_count': self.rebuild_count,
            'node_count': len(self._snapshot),
            'last_errors': [error.model_dump(mode='json') for error in self.last_errors],
            'last_failure': self.last_failure.model_dump(mode='json') if self.last_failure else None
        }
