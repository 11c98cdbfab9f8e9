"""
retrainer.py
~~~~~~~~~~~~
Starts retraining jobs and (re)triggers document processing.

Retraining replaces (or extends) a document's indexed content while keeping
its public slug. The job itself runs on the backend; this module validates
input locally, submits it, and hands the returned user_document_id to a
status poller.
"""
import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, BinaryIO, Callable, Dict, Optional

from fastapi.concurrency import run_in_threadpool

from docutrain_admin.core.config import settings
from docutrain_admin.core.errors import (
    BackendUnavailableError,
    JobNotRetryableError,
    RetrainValidationError,
    user_message,
)
from docutrain_admin.core.file_validation import validate_pdf_stream
from docutrain_admin.core.session import Session
from docutrain_admin.services.backend_client import DocuTrainClient
from docutrain_admin.services.processing_jobs import DocumentStatus, ProcessingJob
from docutrain_admin.services.status_poller import RetrainingStatusPoller

logger = logging.getLogger(__name__)

RETRAIN_MODES = ("replace", "add")

SleepFn = Callable[[float], Awaitable[Any]]


def validate_text_content(text: str) -> str:
    """Apply the retrain text rules and return the stripped content."""
    stripped = (text or "").strip()
    if len(stripped) < settings.TEXT_MIN_CHARS:
        raise RetrainValidationError(f"Text content must be at least {settings.TEXT_MIN_CHARS} characters long")
    if len(text) > settings.TEXT_MAX_CHARS:
        raise RetrainValidationError(
            f"Text content exceeds maximum length of {settings.TEXT_MAX_CHARS:,} characters"
        )
    if len(stripped.split()) < settings.TEXT_MIN_WORDS:
        raise RetrainValidationError(f"Text content must contain at least {settings.TEXT_MIN_WORDS} words")
    return stripped


def validate_retrain_mode(retrain_mode: str) -> str:
    if retrain_mode not in RETRAIN_MODES:
        raise RetrainValidationError(f"Invalid retrain mode '{retrain_mode}'. Use 'replace' or 'add'.")
    return retrain_mode


async def start_processing(client: DocuTrainClient, session: Session, user_document_id: str,
                           sleep: SleepFn = asyncio.sleep) -> Dict[str, Any]:
    """
    Trigger processing. On 503 backpressure wait the server-specified delay
    and try exactly once more; a second 503 propagates.
    """
    try:
        return await run_in_threadpool(client.process_document, session, user_document_id)
    except BackendUnavailableError as e:
        logger.warning(
            f"Processing for {user_document_id} deferred by backend; retrying once in {e.retry_after}s"
        )
        await sleep(e.retry_after)
    return await run_in_threadpool(client.process_document, session, user_document_id)


def is_retryable(job: ProcessingJob, now: Optional[datetime] = None) -> bool:
    return job.status in (DocumentStatus.ERROR, DocumentStatus.PENDING) or job.is_stuck(now)


async def force_retry(client: DocuTrainClient, session: Session, job: ProcessingJob,
                      now: Optional[datetime] = None, sleep: SleepFn = asyncio.sleep) -> Dict[str, Any]:
    """Manual "Force Retry": re-invoke processing for a stuck, failed or never-started job."""
    if not is_retryable(job, now):
        raise JobNotRetryableError(
            "Document is currently being processed. Please wait or try again in a few minutes."
            if job.status == DocumentStatus.PROCESSING
            else "Document has already been processed"
        )
    logger.info(f"Force retry requested for {job.id} (status={job.status.value})")
    return await start_processing(client, session, job.id, sleep=sleep)


class DocumentRetrainer:
    """
    Job initiator for one document.

    Callbacks mirror the lifecycle: on_retrain_start before submission,
    on_retraining_start(user_document_id) once the backend accepts,
    on_retrain_error(message) on any failure, on_retrain_success(user_document_id)
    when the attached poller observes ``ready``.
    """

    def __init__(
        self,
        client: DocuTrainClient,
        session: Session,
        document_id: str,
        on_retrain_start: Optional[Callable[[], None]] = None,
        on_retraining_start: Optional[Callable[[str], None]] = None,
        on_retrain_success: Optional[Callable[[str], None]] = None,
        on_retrain_error: Optional[Callable[[str], None]] = None,
    ):
        self.client = client
        self.session = session
        self.document_id = document_id
        self.on_retrain_start = on_retrain_start
        self.on_retraining_start = on_retraining_start
        self.on_retrain_success = on_retrain_success
        self.on_retrain_error = on_retrain_error

        self.user_document_id: Optional[str] = None
        self.retraining = False
        self.error: Optional[str] = None

    async def retrain_text(self, content: str, retrain_mode: str = "replace") -> str:
        def prepare():
            return validate_text_content(content), validate_retrain_mode(retrain_mode)

        async def submit(prepared):
            text, mode = prepared
            logger.info(f"Starting text retraining for document {self.document_id} ({len(text)} chars, mode={mode})")
            return await run_in_threadpool(
                self.client.retrain_document_text, self.session, self.document_id, text, mode
            )

        return await self._run(prepare, submit)

    async def retrain_file(self, filename: str, fileobj: BinaryIO, retrain_mode: str = "replace") -> str:
        def prepare():
            size = validate_pdf_stream(filename, fileobj)
            return size, validate_retrain_mode(retrain_mode)

        async def submit(prepared):
            size, mode = prepared
            logger.info(f"Starting PDF retraining for document {self.document_id} ({filename}, {size} bytes, mode={mode})")
            return await run_in_threadpool(
                self.client.retrain_document_file, self.session, self.document_id, filename, fileobj, mode
            )

        return await self._run(prepare, submit)

    async def _run(self, prepare, submit) -> str:
        self.error = None
        try:
            prepared = prepare()
        except RetrainValidationError as e:
            self._fail(e)
            raise

        self.retraining = True
        if self.on_retrain_start:
            self.on_retrain_start()

        try:
            user_document_id = await submit(prepared)
        except Exception as e:
            logger.error(f"Retraining submission for {self.document_id} failed: {e}")
            self._fail(e)
            raise

        self.user_document_id = user_document_id
        if self.on_retraining_start:
            self.on_retraining_start(user_document_id)
        return user_document_id

    def _fail(self, exc: BaseException) -> None:
        self.retraining = False
        self.error = user_message(exc, "Failed to start retraining")
        if self.on_retrain_error:
            self.on_retrain_error(self.error)

    # ─── Poller wiring ───────────────────────────────────────────────────────

    def handle_success(self, user_document_id: str) -> None:
        self.retraining = False
        if self.on_retrain_success:
            self.on_retrain_success(user_document_id)

    def handle_error(self, message: str) -> None:
        self.retraining = False
        self.error = message
        if self.on_retrain_error:
            self.on_retrain_error(message)

    def watch(self, interval: Optional[float] = None, on_update=None):
        """Build a status poller for the submitted job, wired to this retrainer's callbacks."""
        if not self.user_document_id:
            raise RuntimeError("No retraining job has been submitted yet")
        return RetrainingStatusPoller(
            self.client,
            self.session,
            self.user_document_id,
            interval=interval,
            on_update=on_update,
            on_success=self.handle_success,
            on_error=self.handle_error,
        )
