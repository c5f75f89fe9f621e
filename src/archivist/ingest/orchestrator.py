"""Embedding orchestrator: keeps object vectors and chunk sets current.

One logical worker owns an ordered, de-duplicated FIFO of object ids.
Each background cycle (every ``worker.poll_interval`` seconds):
  1. enqueue every object flagged ``needs_embedding``;
  2. drain the queue one object at a time, sleeping ``worker.item_delay``
     between items to bound the provider request rate.

Processing one object:
  - skip if it already has an embedding and is not flagged;
  - delete all of its chunks (and their vectors);
  - embed ``name + aliases + date + content``; failure here aborts the pass
    and leaves the object flagged for retry;
  - unless chunking is disabled, chunk the content and embed every chunk
    independently; a failed chunk is marked ``failed`` and the rest go on,
    while a failed chunk write fails the whole pass;
  - store the object vector and clear ``needs_embedding``, unless the object
    was edited in the meantime, in which case it stays flagged and is
    re-queued.

``trigger_immediate()`` runs the same routine inline for latency-sensitive
callers. A single lock, held per object pass, guarantees that at most one
pass runs at any instant.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field

from archivist.config import ArchivistConfig, ConfigStore, snapshot
from archivist.db.models import Chunk, KnowledgeObject, ObjectType
from archivist.db.repository import ObjectNotFoundError, Repository
from archivist.db.vectors import VecTables, model_to_slug, vec_table_names
from archivist.ingest.base import ChunkSpan
from archivist.ingest.chunker import chunk_content
from archivist.ingest.mentions import normalize_mentions
from archivist.log import get_logger
from archivist.rag import llm_client

logger = get_logger(__name__)

EmbedFn = Callable[[str], list[float]]

STATUS_SKIPPED = "skipped"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_MISSING = "missing"
STATUS_STALE = "stale"


@dataclass
class ProcessResult:
    """Outcome of one processing pass for one object."""

    object_id: str
    status: str
    chunks_created: int = 0
    chunks_failed: int = 0


@dataclass
class RechunkSummary:
    processed: int = 0
    errors: int = 0
    total: int = 0
    results: list[ProcessResult] = field(default_factory=list)


def embedding_text(obj: KnowledgeObject) -> str:
    """Return the object-level embedding input: name, aliases, date and content."""
    parts = [obj.name, *obj.aliases, obj.date or "", normalize_mentions(obj.content)]
    return " ".join(p.strip() for p in parts if p and p.strip())


class EmbeddingOrchestrator:
    """Background worker that (re-)embeds objects and rebuilds their chunks.

    Args:
        repo: Shared repository.
        config: A ``ConfigStore`` (re-read at the start of each pass) or a
            fixed ``ArchivistConfig``. Defaults are used when omitted or when
            reading fails.
        embed_fn: ``text -> vector``. Defaults to LiteLLM with the configured
            ``embedding.model``.
    """

    def __init__(
        self,
        repo: Repository,
        config: ConfigStore | ArchivistConfig | None = None,
        embed_fn: EmbedFn | None = None,
    ) -> None:
        self._repo = repo
        self._config = config
        self._embed_fn = embed_fn
        self._queue: OrderedDict[str, None] = OrderedDict()
        self._queue_lock = threading.Lock()
        self._process_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._ensured: set[str] = set()

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    def enqueue(self, object_id: str) -> bool:
        """Add *object_id* to the queue. Already-queued ids are a no-op.

        Returns:
            False if the queue is full (the object keeps its
            ``needs_embedding`` flag and is picked up by a later poll).
        """
        limit = self._snapshot().worker.max_queue_size
        with self._queue_lock:
            if object_id in self._queue:
                return True
            if len(self._queue) >= limit:
                logger.warning("Embedding queue full (%d); deferring %s", limit, object_id)
                return False
            self._queue[object_id] = None
        logger.debug("Queued object %s for embedding", object_id)
        return True

    def queued_ids(self) -> list[str]:
        """Return a snapshot of the queue in FIFO order."""
        with self._queue_lock:
            return list(self._queue)

    def _pop(self) -> str | None:
        with self._queue_lock:
            if not self._queue:
                return None
            object_id, _ = self._queue.popitem(last=False)
            return object_id

    def _discard(self, object_id: str) -> None:
        with self._queue_lock:
            self._queue.pop(object_id, None)

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    def run_cycle(self) -> list[ProcessResult]:
        """Poll for flagged objects, then drain the queue in FIFO order."""
        cfg = self._snapshot()
        try:
            for obj in self._repo.get_objects_needing_embedding():
                self.enqueue(obj.id)
        except Exception:
            logger.exception("Failed to poll objects needing embedding")

        results: list[ProcessResult] = []
        while not self._stop.is_set():
            object_id = self._pop()
            if object_id is None:
                break
            with self._process_lock:
                results.append(self._process_safely(object_id, cfg))
            if cfg.worker.item_delay > 0 and self.queued_ids():
                self._stop.wait(cfg.worker.item_delay)
            cfg = self._snapshot()

        if results:
            done = sum(1 for r in results if r.status == STATUS_COMPLETED)
            logger.info("Embedding cycle processed %d objects (%d embedded)", len(results), done)
        return results

    def rechunk_all(self, type: ObjectType | str | None = None) -> RechunkSummary:
        """Flag every object (or every object of *type*) and run one cycle."""
        flagged = self._repo.mark_all_for_embedding(type)
        logger.info("Rechunking %d objects", flagged)
        results = self.run_cycle()
        return RechunkSummary(
            processed=sum(1 for r in results if r.status == STATUS_COMPLETED),
            errors=sum(1 for r in results if r.status in (STATUS_FAILED, STATUS_MISSING)),
            total=len(results),
            results=results,
        )

    def process_object(self, object_id: str) -> ProcessResult:
        """Process one object now, under the processing lock."""
        with self._process_lock:
            return self._process_safely(object_id, self._snapshot())

    def trigger_immediate(self, object_id: str) -> bool:
        """Embed *object_id* now, bypassing the background cadence.

        Waits for at most one in-flight pass, removes the id from the queue
        and processes it inline.

        Returns:
            True if the object is current afterwards (embedded or skipped).
            An object edited during the pass is re-queued and reports False.
        """
        with self._process_lock:
            self._discard(object_id)
            result = self._process_safely(object_id, self._snapshot())
        return result.status in (STATUS_COMPLETED, STATUS_SKIPPED)

    # ------------------------------------------------------------------
    # Background thread
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the background worker thread (no-op if already running)."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run_loop, name="archivist-embedding-worker", daemon=True
        )
        self._thread.start()
        logger.info("Embedding worker started")

    def stop(self, timeout: float | None = 10.0) -> None:
        """Signal the worker to stop and wait for it to finish its current object."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Embedding worker stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run_loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_cycle()
            except Exception:
                logger.exception("Error in background embedding cycle")
            self._stop.wait(self._snapshot().worker.poll_interval)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def _process_safely(self, object_id: str, cfg: ArchivistConfig) -> ProcessResult:
        try:
            return self._process(object_id, cfg)
        except Exception:
            logger.exception("Unexpected error processing object %s", object_id)
            return ProcessResult(object_id=object_id, status=STATUS_FAILED)

    def _process(self, object_id: str, cfg: ArchivistConfig) -> ProcessResult:
        obj = self._repo.get_object(object_id)
        if obj is None:
            logger.warning("Object %s not found; dropping from queue", object_id)
            return ProcessResult(object_id=object_id, status=STATUS_MISSING)

        if obj.has_embedding and not obj.needs_embedding:
            logger.debug("Object %s is current, skipping", object_id)
            return ProcessResult(object_id=object_id, status=STATUS_SKIPPED)

        logger.info("Processing object '%s' (%s)", obj.name, object_id)
        self._repo.delete_chunks_by_object_id(object_id)

        try:
            vector = self._embed(embedding_text(obj), cfg)
            tables = self._tables(cfg, len(vector))
        except Exception:
            logger.exception("Object-level embedding failed for %s; will retry", object_id)
            self._repo.mark_object_embedding_failed(object_id)
            return ProcessResult(object_id=object_id, status=STATUS_FAILED)

        spans: list[ChunkSpan] = []
        failed = 0
        if cfg.chunking.enabled:
            spans = chunk_content(obj.content, cfg.chunking.chunk_size, cfg.chunking.overlap)
            try:
                failed = self._embed_chunks(obj, spans, tables, cfg)
            except Exception:
                logger.exception("Storing chunks failed for %s; will retry", object_id)
                self._repo.delete_chunks_by_object_id(object_id)
                self._repo.mark_object_embedding_failed(object_id)
                return ProcessResult(object_id=object_id, status=STATUS_FAILED)

        try:
            current = self._repo.set_object_embedding(
                tables, object_id, vector, embedded_from=obj
            )
        except ObjectNotFoundError:
            logger.warning("Object %s was deleted while embedding", object_id)
            self._repo.delete_chunks_by_object_id(object_id)
            return ProcessResult(object_id=object_id, status=STATUS_MISSING)

        if not current:
            logger.info("Object %s changed while embedding; re-queueing", object_id)
            self.enqueue(object_id)
            return ProcessResult(
                object_id=object_id,
                status=STATUS_STALE,
                chunks_created=len(spans),
                chunks_failed=failed,
            )

        logger.info(
            "Embedded '%s': %d chunks (%d failed)", obj.name, len(spans), failed
        )
        return ProcessResult(
            object_id=object_id,
            status=STATUS_COMPLETED,
            chunks_created=len(spans),
            chunks_failed=failed,
        )

    def _embed_chunks(
        self, obj: KnowledgeObject, spans: list[ChunkSpan], tables: VecTables, cfg: ArchivistConfig
    ) -> int:
        """Store and embed every chunk. Returns the number of failed chunk embeddings.

        Store errors propagate; a provider error only marks that chunk failed.
        """
        failed = 0
        for span in spans:
            rowid = self._repo.add_chunk(
                Chunk(
                    object_id=obj.id,
                    chunk_index=span.chunk_index,
                    content=span.content,
                    start_position=span.start_position,
                    end_position=span.end_position,
                )
            )
            try:
                chunk_vector = self._embed(span.content, cfg)
            except Exception as exc:
                failed += 1
                logger.warning(
                    "Embedding failed for chunk %d of %s: %s", span.chunk_index, obj.id, exc
                )
                self._repo.mark_chunk_embedding_failed(rowid)
                continue
            self._repo.set_chunk_embedding(tables, rowid, chunk_vector)
        return failed

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _embed(self, text: str, cfg: ArchivistConfig) -> list[float]:
        if self._embed_fn is not None:
            return self._embed_fn(text)
        return llm_client.embed(cfg.embedding.model, text)

    def _tables(self, cfg: ArchivistConfig, dimensions: int) -> VecTables:
        slug = model_to_slug(cfg.embedding.model)
        if slug not in self._ensured:
            if dimensions != cfg.embedding.dimensions:
                logger.warning(
                    "%s returned %d-dim vectors; embedding.dimensions is %d",
                    cfg.embedding.model,
                    dimensions,
                    cfg.embedding.dimensions,
                )
            self._repo.ensure_vec_tables(slug, dimensions)
            self._ensured.add(slug)
        return vec_table_names(slug)

    def _snapshot(self) -> ArchivistConfig:
        return snapshot(self._config)
