"""
batch.py — Sequential multi-file analysis with per-file status tracking.

Each queued file moves pending → analyzing → complete | error and never leaves
a terminal state. Files are processed one at a time with a fixed pause between
them to stay under the scoring endpoint's rate limit; one file failing never
stops the others. The sleeper, extractor and requester are injected so the
sequencing can be driven without a clock or network.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, List, Optional, Tuple

from analyzer import AnalysisRequester
from config import ALLOWED_CONTENT_TYPES, BATCH_DELAY_SECONDS, MAX_UPLOAD_BYTES
from errors import AnalysisError, InsufficientContent, PersistenceFailure, QuotaExceeded
from extractor import UNEXTRACTABLE_TEXT, ResumeFile, extract_text
from gateway import PersistenceGateway
from models import AnalysisResult, User
from notifications import NotificationDispatcher
from utils import logger


class FileState(str, Enum):
    PENDING = "pending"
    ANALYZING = "analyzing"
    COMPLETE = "complete"
    ERROR = "error"


TERMINAL_STATES = {FileState.COMPLETE, FileState.ERROR}

ALLOWED_TRANSITIONS = {
    FileState.PENDING: {FileState.ANALYZING},
    FileState.ANALYZING: {FileState.COMPLETE, FileState.ERROR},
    FileState.COMPLETE: set(),
    FileState.ERROR: set(),
}


class InvalidTransition(Exception):
    pass


@dataclass
class FileStatus:
    file: ResumeFile
    state: FileState = FileState.PENDING
    result: Optional[AnalysisResult] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def _move(self, target: FileState) -> None:
        if target not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.file.file_name}: {self.state.value} -> {target.value}")
        self.state = target

    def start(self) -> None:
        self._move(FileState.ANALYZING)

    def complete(self, result: AnalysisResult) -> None:
        self._move(FileState.COMPLETE)
        self.result = result

    def fail(self, message: str) -> None:
        self._move(FileState.ERROR)
        self.error = message


@dataclass
class BatchSummary:
    total: int
    pending: int
    analyzing: int
    complete: int
    error: int

    @property
    def progress_percent(self) -> float:
        if not self.total:
            return 0.0
        return (self.complete + self.error) / self.total * 100

    @property
    def finished(self) -> bool:
        return self.pending == 0 and self.analyzing == 0


def summarize(statuses: Iterable[FileStatus]) -> BatchSummary:
    """Counts derived from the current state of every file."""
    statuses = list(statuses)
    counts = {state: 0 for state in FileState}
    for status in statuses:
        counts[status.state] += 1
    return BatchSummary(
        total=len(statuses),
        pending=counts[FileState.PENDING],
        analyzing=counts[FileState.ANALYZING],
        complete=counts[FileState.COMPLETE],
        error=counts[FileState.ERROR],
    )


# ── Queue building ────────────────────────────────────

@dataclass
class QueueBuild:
    statuses: List[FileStatus] = field(default_factory=list)
    skipped: List[Tuple[str, str]] = field(default_factory=list)


def build_queue(files: Iterable[ResumeFile], existing: Iterable[FileStatus] = ()) -> QueueBuild:
    """Keep PDF/DOCX/TXT files up to 10 MB, dropping duplicates by name and size."""
    build = QueueBuild()
    seen = {(status.file.file_name, status.file.size) for status in existing}
    for file in files:
        if file.content_type not in ALLOWED_CONTENT_TYPES:
            build.skipped.append((file.file_name, "Only PDF, DOCX, and TXT files are supported."))
            continue
        if file.size > MAX_UPLOAD_BYTES:
            build.skipped.append((file.file_name, "File exceeds 10MB limit."))
            continue
        key = (file.file_name, file.size)
        if key in seen:
            build.skipped.append((file.file_name, "File already added."))
            continue
        seen.add(key)
        build.statuses.append(FileStatus(file=file))
    if build.skipped:
        logger.warning("%d file(s) skipped while building batch", len(build.skipped))
    return build


# ── Pipeline ──────────────────────────────────────────

class AnalysisPipeline:
    """Extract → check → score → persist → notify, for one file."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        requester: AnalysisRequester,
        dispatcher: Optional[NotificationDispatcher] = None,
        extractor: Callable[[ResumeFile], str] = extract_text,
    ):
        self.gateway = gateway
        self.requester = requester
        self.dispatcher = dispatcher
        self.extractor = extractor

    @property
    def user(self) -> User:
        return self.gateway.user

    def process(self, file: ResumeFile) -> AnalysisResult:
        text = self.extractor(file)
        if text == UNEXTRACTABLE_TEXT:
            raise InsufficientContent()

        payload = self.requester.analyze(text, file.file_name)

        resume = self.gateway.save_resume(file.file_name, text, file.size)
        result = self.gateway.save_analysis(resume, payload)
        try:
            self.gateway.log_usage(
                "resume_analysis", {"resume_id": resume.id, "file_name": file.file_name}
            )
        except PersistenceFailure:
            logger.warning("Usage log not written for %s; analysis %d kept", file.file_name, result.id)

        if result.risk_level == "high":
            self._notify(file.file_name, result)
        return result

    def _notify(self, file_name: str, result: AnalysisResult) -> None:
        if self.dispatcher is None or not self.user.high_risk_alerts:
            return
        try:
            self.dispatcher.notify_high_risk(self.user, file_name, result)
        except Exception:
            logger.exception("Failed to send notification email for %s", file_name)


# ── Orchestrator ──────────────────────────────────────

class BatchOrchestrator:
    def __init__(
        self,
        pipeline: AnalysisPipeline,
        delay: float = BATCH_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        on_update: Optional[Callable[[FileStatus], None]] = None,
        on_complete: Optional[Callable[[BatchSummary], None]] = None,
    ):
        self.pipeline = pipeline
        self.delay = delay
        self.sleep = sleep
        self.on_update = on_update
        self.on_complete = on_complete

    def _emit(self, status: FileStatus) -> None:
        if self.on_update is not None:
            self.on_update(status)

    def run_batch(self, statuses: List[FileStatus], remaining_quota: Optional[int]) -> BatchSummary:
        """Analyze every pending file in order. remaining_quota None means unlimited."""
        pending = [status for status in statuses if status.state == FileState.PENDING]
        if not pending:
            return summarize(statuses)

        if remaining_quota is not None and len(pending) > remaining_quota:
            logger.warning(
                "Batch rejected: %d files selected, %d analyses remaining",
                len(pending),
                remaining_quota,
            )
            raise QuotaExceeded(remaining_quota, len(pending))

        logger.info("Starting batch of %d file(s)", len(pending))
        for index, status in enumerate(pending):
            status.start()
            self._emit(status)
            try:
                result = self.pipeline.process(status.file)
            except AnalysisError as e:
                logger.error("Error analyzing %s: %s", status.file.file_name, e.message)
                status.fail(e.message)
            except Exception:
                logger.exception("Unexpected error analyzing %s", status.file.file_name)
                status.fail("Failed to analyze resume")
            else:
                status.complete(result)
            self._emit(status)

            if index < len(pending) - 1:
                self.sleep(self.delay)

        summary = summarize(statuses)
        logger.info(
            "Batch finished — %d complete, %d failed", summary.complete, summary.error
        )
        if self.on_complete is not None:
            self.on_complete(summary)
        return summary
