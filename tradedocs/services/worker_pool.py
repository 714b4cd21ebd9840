"""
Bounded background execution of pipeline runs.

Uploads are handed to a fixed number of worker tasks through a bounded
queue. A full queue is reported to the caller instead of growing without
limit, and every document leaves the pool in a terminal status: processed,
flagged as failed, or flagged as cancelled at shutdown.
"""

import asyncio
from typing import Optional

from loguru import logger

from ..core.config import Settings, settings as default_settings
from ..core.errors import PipelineFailure
from ..models.document import Document, DocumentStatus, IN_FLIGHT_STATUSES
from .file_store import FileStore
from .pipeline import DocumentPipeline, describe_error
from .storage.base import StorageBase

CANCELLED_BEFORE_START = "Processing cancelled before start"
QUEUE_FULL = "Processing queue is full, document was not scheduled"


class PipelineWorkerPool:
    """
    Usage:
        pool = PipelineWorkerPool(pipeline, storage, file_store, workers=4)
        await pool.start()
        await pool.submit(document)
        ...
        await pool.stop()
    """

    def __init__(
        self,
        pipeline: DocumentPipeline,
        storage: StorageBase,
        file_store: FileStore,
        workers: int = 4,
        queue_size: int = 100,
    ):
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.pipeline = pipeline
        self.storage = storage
        self.file_store = file_store
        self.workers = workers
        self.queue_size = queue_size
        self._queue: Optional[asyncio.Queue] = None
        self._tasks: list[asyncio.Task] = []

    @classmethod
    def from_settings(
        cls,
        pipeline: DocumentPipeline,
        storage: StorageBase,
        file_store: FileStore,
        config: Settings | None = None,
    ) -> "PipelineWorkerPool":
        config = config or default_settings
        return cls(
            pipeline,
            storage,
            file_store,
            workers=config.pipeline_workers,
            queue_size=config.pipeline_queue_size,
        )

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue else 0

    async def start(self) -> None:
        if self.running:
            return
        self._queue = asyncio.Queue(maxsize=self.queue_size)
        self._tasks = [
            asyncio.create_task(self._worker(n), name=f"pipeline-worker-{n}")
            for n in range(self.workers)
        ]
        logger.info("Pipeline worker pool started", workers=self.workers, queue_size=self.queue_size)

    async def submit(self, document: Document) -> None:
        """
        Schedule a document for processing without waiting for it.

        Raises:
            PipelineFailure: the pool is not running or its queue is full;
                the document has already been flagged with the reason
        """
        if self._queue is None or not self.running:
            await self.pipeline.record_failure(document, "Processing pool is not running")
            raise PipelineFailure(f"Worker pool not running, cannot schedule {document.id}")

        try:
            self._queue.put_nowait(document)
        except asyncio.QueueFull:
            logger.warning("Pipeline queue full", document_id=document.id, queue_size=self.queue_size)
            await self.pipeline.record_failure(document, QUEUE_FULL)
            raise PipelineFailure(f"Queue full, cannot schedule {document.id}") from None

        logger.debug("Document queued", document_id=document.id, pending=self._queue.qsize())

    async def join(self) -> None:
        """Wait until every queued document has been handled."""
        if self._queue is not None:
            await self._queue.join()

    async def run_job(self, document: Document) -> Document:
        try:
            content = await asyncio.to_thread(self.file_store.read_text, document.filename)
        except asyncio.CancelledError:
            await self.pipeline.record_failure(document, CANCELLED_BEFORE_START)
            raise
        except OSError as e:
            failure = PipelineFailure(f"Could not read {document.filename}: {e}")
            logger.error("Pipeline job could not start", document_id=document.id, error=str(e))
            return await self.pipeline.record_failure(document, describe_error(failure))

        return await self.pipeline.process(document, content)

    async def _worker(self, number: int) -> None:
        queue = self._queue
        while True:
            document = await queue.get()
            try:
                await self.run_job(document)
            except asyncio.CancelledError:
                raise
            except Exception:
                # process() traps its own failures; this only catches storage errors while recording them
                logger.exception("Pipeline worker job crashed", worker=number, document_id=document.id)
            finally:
                queue.task_done()

    async def stop(self) -> None:
        """Cancel workers, then flag whatever never started."""
        if not self.running:
            return

        for task in self._tasks:
            task.cancel()
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Pipeline worker ended with error: {result}")
        self._tasks = []

        cancelled = 0
        while self._queue is not None and not self._queue.empty():
            document = self._queue.get_nowait()
            self._queue.task_done()
            await self.pipeline.record_failure(document, CANCELLED_BEFORE_START)
            cancelled += 1

        logger.info("Pipeline worker pool stopped", cancelled_before_start=cancelled)


def recover_interrupted(storage: StorageBase) -> list[Document]:
    """
    Flag documents a previous process left mid-run.

    Runs at startup, before any worker is started, so nothing found here can
    still be in flight.
    """
    recovered = []
    for document in storage.list_documents_by_status(IN_FLIGHT_STATUSES):
        recovered.append(storage.update_document(
            document.id,
            status=DocumentStatus.FLAGGED,
            processing_error=f"Processing interrupted while {document.status.value}; restart the upload to retry",
        ))
    if recovered:
        logger.warning("Recovered interrupted pipeline runs", count=len(recovered))
    return recovered


def pending_uploads(storage: StorageBase) -> list[Document]:
    """Documents stored but never scheduled (e.g. the process exited right after upload)."""
    return storage.list_documents_by_status([DocumentStatus.UPLOADED])
