"""
progress.py
~~~~~~~~~~~
Folds the processing log of a document into a single progress view.

The whole log is rescanned on every poll. Percentages come from fixed stage
weights: embedding dominates wall-clock time, so it owns the 30 -> 95 span
and is refined by batch counters when the backend reports them.
"""
import logging
import math
from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Optional

from docutrain_admin.services.processing_jobs import (
    PIPELINE_STAGES,
    DocumentStatus,
    ProcessingLogEntry,
    ProcessingStatus,
)

logger = logging.getLogger(__name__)

STAGE_BASE_PERCENT: Dict[str, int] = {
    "download": 0,
    "extract": 10,
    "chunk": 20,
    "embed": 30,
    "store": 95,
}
EMBED_SPAN_PERCENT = 65
PROGRESS_EVENT_BONUS = 10
MAX_PERCENT_UNTIL_READY = 95

STAGE_LABELS: Dict[str, str] = {
    "download": "Downloading file",
    "extract": "Extracting text",
    "chunk": "Chunking text",
    "embed": "Generating embeddings",
    "store": "Storing chunks",
}


@dataclass
class ProgressView:
    stage_label: str
    progress_percent: int
    message: str
    status: str = DocumentStatus.PROCESSING.value
    batch_info: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def embed_batch_progress(entry: ProcessingLogEntry) -> Optional[tuple]:
    """Return (batch, total_batches) for an embed progress entry, else None."""
    if entry.stage != "embed" or entry.status != "progress":
        return None
    try:
        batch = int(entry.metadata.get("batch"))
        total = int(entry.metadata.get("total_batches"))
    except (TypeError, ValueError):
        return None
    if total <= 0 or batch < 0:
        return None
    return batch, total


def parse_processing_progress(
    logs: Iterable[ProcessingLogEntry],
    status: str = DocumentStatus.PROCESSING.value,
    error_message: Optional[str] = None,
) -> ProgressView:
    logs = list(logs)
    status = DocumentStatus(status)
    latest = logs[-1] if logs else None

    if status == DocumentStatus.READY:
        return ProgressView(stage_label="Complete", progress_percent=100, message="Complete!", status=status.value)

    if status == DocumentStatus.ERROR:
        return ProgressView(
            stage_label="Failed",
            progress_percent=0,
            message=error_message or "Processing failed",
            status=status.value,
        )

    message = (latest.message if latest else "") or "Processing..."

    best: Optional[tuple] = None
    for entry in logs:
        batch_progress = embed_batch_progress(entry)
        if batch_progress and (best is None or batch_progress[0] > best[0]):
            best = batch_progress

    if best is not None:
        batch, total = best
        raw = STAGE_BASE_PERCENT["embed"] + min(batch / total, 1.0) * EMBED_SPAN_PERCENT
        return ProgressView(
            stage_label=STAGE_LABELS["embed"],
            progress_percent=clamp(round_half_up(raw), 0, MAX_PERCENT_UNTIL_READY),
            message=message,
            status=status.value,
            batch_info=f"Batch {batch}/{total}",
        )

    completed = {entry.stage for entry in logs if entry.status == "completed" and entry.is_pipeline_stage}
    raw = len(completed) / len(PIPELINE_STAGES) * 100

    current_stage = latest.stage if latest else None
    if current_stage and any(e.stage == current_stage and e.status == "progress" for e in logs):
        raw += PROGRESS_EVENT_BONUS

    if status == DocumentStatus.PENDING and not logs:
        label = "Queued"
    else:
        label = STAGE_LABELS.get(current_stage, "Processing")

    return ProgressView(
        stage_label=label,
        progress_percent=clamp(round_half_up(raw), 0, MAX_PERCENT_UNTIL_READY),
        message=message,
        status=status.value,
    )


class ProgressTracker:
    """
    Keeps the reported percent of one job from moving backwards.

    A later poll can observe an older embed batch than an earlier one did
    (log rows are written concurrently by the pipeline); the tracker holds the
    high-water mark until the job reaches a terminal state.
    """

    def __init__(self, user_document_id: Optional[str] = None):
        self.user_document_id = user_document_id
        self._high_water = 0
        self.history: List[ProgressView] = []

    def reset(self, user_document_id: Optional[str] = None) -> None:
        self.user_document_id = user_document_id
        self._high_water = 0
        self.history.clear()

    def update(self, processing_status: ProcessingStatus) -> ProgressView:
        document = processing_status.document
        if self.user_document_id and document.id != self.user_document_id:
            self.reset(document.id)

        view = parse_processing_progress(processing_status.logs, document.status.value, document.error_message)

        # Failed jobs report their own view; nothing to hold.
        if document.status != DocumentStatus.ERROR:
            if view.progress_percent < self._high_water:
                logger.debug(
                    f"Progress for {document.id} regressed {self._high_water}% -> {view.progress_percent}%; holding."
                )
                view.progress_percent = self._high_water
            else:
                self._high_water = view.progress_percent

        self.history.append(view)
        return view
