"""
status_poller.py
~~~~~~~~~~~~~~~~
Timer + realtime driven refresh loops over backend processing state.

Each poller owns exactly one asyncio task. The task refreshes, then sleeps on
a wake event for ``interval`` seconds; realtime pushes set the event so the
next refresh happens immediately. Because every fetch runs inside that one
task, at most one request is in flight and bursts of notifications collapse
into a single extra refresh.

Pollers are async context managers: leaving the block stops the timer,
unsubscribes the realtime listener, and no further backend calls are made.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from fastapi.concurrency import run_in_threadpool

from docutrain_admin.core.config import settings
from docutrain_admin.core.errors import user_message
from docutrain_admin.core.session import Session
from docutrain_admin.services.backend_client import DocuTrainClient
from docutrain_admin.services.processing_jobs import DocumentStatus, ProcessingJob, ProcessingStatus
from docutrain_admin.services.progress import ProgressTracker, ProgressView
from docutrain_admin.services.realtime import RealtimeListener, changed_record_id, channel_for_user

logger = logging.getLogger(__name__)


class _StatusPoller:
    def __init__(self, client: DocuTrainClient, session: Session, interval: float,
                 listener: Optional[RealtimeListener] = None, realtime: bool = True):
        self.client = client
        self.session = session
        self.interval = interval
        if listener is None and realtime and session.user_id:
            listener = RealtimeListener(channel_for_user(session.user_id))
        self.listener = listener
        if self.listener is not None:
            self.listener.on_event = self.notify

        self.active = False
        self.fetch_count = 0
        self._wake: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    # ─── Lifecycle ───────────────────────────────────────────────────────────

    async def start(self) -> None:
        if self._task is not None:
            return
        self.active = True
        self._wake = asyncio.Event()
        if self.listener is not None:
            await self.listener.start()
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        self.active = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self.listener is not None:
            await self.listener.close()

    async def wait(self) -> None:
        """Block until the loop ends on its own (terminal state)."""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    # ─── Triggers ────────────────────────────────────────────────────────────

    def notify(self, payload: Optional[Dict[str, Any]] = None) -> None:
        """Realtime push: refresh now instead of waiting for the next tick."""
        if self.active and self._wake is not None and self._accepts(payload):
            self._wake.set()

    def _accepts(self, payload: Optional[Dict[str, Any]]) -> bool:
        return True

    def _should_poll(self) -> bool:
        return True

    def _emit(self, callback: Optional[Callable[..., None]], *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"{type(self).__name__} callback {getattr(callback, '__name__', callback)!r} failed: {e}")

    async def _refresh(self) -> None:
        raise NotImplementedError

    async def _run(self) -> None:
        forced = True
        try:
            while self.active:
                if forced or self._should_poll():
                    self.fetch_count += 1
                    await self._refresh()
                if not self.active:
                    break
                try:
                    await asyncio.wait_for(self._wake.wait(), timeout=self.interval)
                    forced = True
                except asyncio.TimeoutError:
                    forced = False
                self._wake.clear()
        finally:
            self.active = False
            # Terminal state or teardown: the subscription is released either way.
            if self.listener is not None:
                await self.listener.close()


class RetrainingStatusPoller(_StatusPoller):
    """Follows one retraining/processing job until it is ``ready`` or ``error``."""

    def __init__(
        self,
        client: DocuTrainClient,
        session: Session,
        user_document_id: str,
        interval: Optional[float] = None,
        on_update: Optional[Callable[[ProgressView], None]] = None,
        on_success: Optional[Callable[[str], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
        listener: Optional[RealtimeListener] = None,
        realtime: bool = True,
    ):
        super().__init__(
            client,
            session,
            interval if interval is not None else settings.RETRAIN_POLL_INTERVAL_SECONDS,
            listener=listener,
            realtime=realtime,
        )
        self.user_document_id = user_document_id
        self.on_update = on_update
        self.on_success = on_success
        self.on_error = on_error
        self.tracker = ProgressTracker(user_document_id)
        self.view: Optional[ProgressView] = None
        self.status: Optional[ProcessingStatus] = None

    def _accepts(self, payload: Optional[Dict[str, Any]]) -> bool:
        if not payload:
            return True
        record_id = changed_record_id(payload)
        return record_id is None or record_id == self.user_document_id

    async def _refresh(self) -> None:
        try:
            status = await run_in_threadpool(
                self.client.get_processing_status, self.session, self.user_document_id
            )
        except Exception as e:
            # Transient: keep polling.
            logger.error(f"Error polling status for {self.user_document_id}: {e}")
            return

        self.status = status
        self.view = self.tracker.update(status)
        self._emit(self.on_update, self.view)

        document = status.document
        if document.status == DocumentStatus.READY:
            logger.info(f"Processing complete for {self.user_document_id}")
            self.active = False
            self._emit(self.on_success, self.user_document_id)
        elif document.status == DocumentStatus.ERROR:
            message = document.error_message or "Processing failed"
            logger.warning(f"Processing failed for {self.user_document_id}: {message}")
            self.active = False
            self._emit(self.on_error, message)


class UserDocumentsPoller(_StatusPoller):
    """
    Keeps the caller's document list fresh.

    Every successful fetch replaces the whole list, so the order in which a
    timer tick and a realtime push land does not matter.
    """

    def __init__(
        self,
        client: DocuTrainClient,
        session: Session,
        interval: Optional[float] = None,
        on_change: Optional[Callable[[List[ProcessingJob]], None]] = None,
        listener: Optional[RealtimeListener] = None,
        realtime: bool = True,
    ):
        super().__init__(
            client,
            session,
            interval if interval is not None else settings.DOCUMENTS_POLL_INTERVAL_SECONDS,
            listener=listener,
            realtime=realtime,
        )
        self.on_change = on_change
        self.documents: List[ProcessingJob] = []
        self.error: Optional[str] = None
        self.loaded = False

    @property
    def has_active_jobs(self) -> bool:
        return any(doc.is_active for doc in self.documents)

    def _should_poll(self) -> bool:
        return not self.loaded or self.has_active_jobs

    async def _refresh(self) -> None:
        try:
            documents = await run_in_threadpool(self.client.list_user_documents, self.session)
        except Exception as e:
            self.error = user_message(e, "Failed to load documents")
            logger.error(f"Failed to load user documents: {e}")
            return
        self.apply(documents)

    def apply(self, documents: List[ProcessingJob]) -> None:
        self.documents = list(documents)
        self.error = None
        self.loaded = True
        self._emit(self.on_change, self.documents)
