"""Run ledger for the intake analysis pipeline.

This module provides the RunLedger dataclass that records how a single run
progresses through the pipeline: per-stage status, attempts, retries,
timings and errors, the stage outputs later stages read from, warnings, and
the retry log. The orchestrator uses the ledger to build result metadata and
to decide where a fallback pass resumes.

A RunLedgerStore owns the ledgers of in-flight runs, keyed by processing id.

Typical usage example:
    store = RunLedgerStore()
    ledger = store.open("RUN-001")
    ledger.start_stage(StageName.VALIDATION)
    ledger.complete_stage(StageName.VALIDATION, validated_images)
    ledger.last_completed_stage()  # StageName.VALIDATION
    store.discard("RUN-001")
"""

import copy
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..models.data_structures import (
    STAGE_SEQUENCE,
    RetryEvent,
    StageName,
    StageStatus,
)
from ..utils.error_handlers import describe_error


@dataclass
class StageRecord:
    """Execution record of one stage.

    Attributes:
        status: Current StageStatus.
        attempts: Number of times the stage was entered.
        retries: Number of analyzer retries performed inside the stage.
        started_at: UTC time the stage was last entered.
        completed_at: UTC time the stage last settled.
        last_error: Description of the last error raised in the stage.
        duration: Wall-clock seconds of the last execution.
    """

    status: StageStatus = StageStatus.PENDING
    attempts: int = 0
    retries: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_error: Optional[str] = None
    duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "attempts": self.attempts,
            "retries": self.retries,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "lastError": self.last_error,
            "duration": round(self.duration, 3),
        }


@dataclass
class RunLedger:
    """Per-run record of stage progress, outputs, retries and warnings.

    A ledger is owned by exactly one run. It survives the primary pass so
    the fallback pass of the same run can resume from it.

    Attributes:
        processing_id: Identifier of the run.
        stages: StageRecord for every stage in STAGE_SEQUENCE.
        warnings: Non-fatal problems worth reporting to the caller.
        errors: Descriptions of errors raised by stages.
        retry_events: Retry log appended by the retry executor.
        deadline: Event-loop time by which the current pass must finish.
        created_at: UTC creation time.
    """

    processing_id: str
    stages: Dict[StageName, StageRecord] = field(
        default_factory=lambda: {stage: StageRecord() for stage in STAGE_SEQUENCE}
    )
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    retry_events: List[RetryEvent] = field(default_factory=list)
    deadline: Optional[float] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _outputs: Dict[StageName, Any] = field(default_factory=dict, repr=False)
    _stage_clock: Dict[StageName, float] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        if not self.processing_id or not self.processing_id.strip():
            raise ValueError("processing_id cannot be empty.")

    def __repr__(self) -> str:
        return (
            f"RunLedger(processing_id='{self.processing_id}', "
            f"completed={[s.value for s in self.completed_stages()]})"
        )

    # ------------------------------------------------------------------
    # Stage lifecycle
    # ------------------------------------------------------------------

    def start_stage(self, stage: StageName) -> None:
        """Mark a stage as running and count the attempt."""
        record = self.stages[stage]
        record.status = StageStatus.RUNNING
        record.attempts += 1
        record.started_at = datetime.now(timezone.utc)
        record.completed_at = None
        self._stage_clock[stage] = time.perf_counter()

    def complete_stage(
        self, stage: StageName, output: Any, degraded: bool = False
    ) -> None:
        """Store a stage output and settle the stage.

        Args:
            stage: Stage that finished.
            output: Stage output; later stages read copies of it.
            degraded: True when the output is a substitute. Degraded stages
                are not counted as completed.
        """
        record = self.stages[stage]
        record.status = StageStatus.DEGRADED if degraded else StageStatus.COMPLETED
        self._settle(stage, record)
        self._outputs[stage] = output

    def fail_stage(self, stage: StageName, error: BaseException) -> None:
        """Mark a stage as failed and remember the error."""
        record = self.stages[stage]
        record.status = StageStatus.FAILED
        record.last_error = describe_error(error)
        self._settle(stage, record)
        self.errors.append(f"{stage.value}: {record.last_error}")

    def _settle(self, stage: StageName, record: StageRecord) -> None:
        record.completed_at = datetime.now(timezone.utc)
        started = self._stage_clock.pop(stage, None)
        record.duration = time.perf_counter() - started if started is not None else 0.0

    def fail_running_stages(self, error: BaseException) -> None:
        """Fail any stage left running, e.g. after the pass was cancelled."""
        for stage, record in self.stages.items():
            if record.status == StageStatus.RUNNING:
                self.fail_stage(stage, error)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def output(self, stage: StageName) -> Any:
        """Return a copy of a stored stage output.

        Raises:
            KeyError: If the stage has produced no output in this run.
        """
        if stage not in self._outputs:
            raise KeyError(f"No output recorded for stage {stage.value}")
        return copy.deepcopy(self._outputs[stage])

    def has_output(self, stage: StageName) -> bool:
        return stage in self._outputs

    def status(self, stage: StageName) -> StageStatus:
        return self.stages[stage].status

    def completed_stages(self) -> List[StageName]:
        """Stages with status COMPLETED, in pipeline order."""
        return [
            stage
            for stage in STAGE_SEQUENCE
            if self.stages[stage].status == StageStatus.COMPLETED
        ]

    def is_complete(self) -> bool:
        """True when every stage in STAGE_SEQUENCE completed."""
        return len(self.completed_stages()) == len(STAGE_SEQUENCE)

    def last_completed_stage(self) -> Optional[StageName]:
        """Last stage of the unbroken completed prefix of STAGE_SEQUENCE."""
        last: Optional[StageName] = None
        for stage in STAGE_SEQUENCE:
            if self.stages[stage].status != StageStatus.COMPLETED:
                break
            last = stage
        return last

    def stage_timings(self) -> Dict[str, float]:
        return {
            stage.value: round(record.duration, 3)
            for stage, record in self.stages.items()
            if record.completed_at is not None
        }

    # ------------------------------------------------------------------
    # Retry log and warnings
    # ------------------------------------------------------------------

    def record_retry_event(self, event: RetryEvent) -> None:
        """Append a retry-log entry and update per-stage retry counts."""
        self.retry_events.append(event)
        if event.outcome == "retry":
            self.stages[event.stage].retries += 1

    def retry_count(self) -> int:
        return sum(1 for e in self.retry_events if e.outcome == "retry")

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the ledger for logging or debugging."""
        return {
            "processingId": self.processing_id,
            "createdAt": self.created_at.isoformat(),
            "stages": {
                stage.value: record.to_dict() for stage, record in self.stages.items()
            },
            "warnings": list(self.warnings),
            "errors": list(self.errors),
            "retryEvents": [event.to_dict() for event in self.retry_events],
        }


class RunLedgerStore:
    """Thread-safe owner of the ledgers of in-flight runs."""

    def __init__(self) -> None:
        self._ledgers: Dict[str, RunLedger] = {}
        self._lock = threading.Lock()

    def open(self, processing_id: str) -> RunLedger:
        """Return the ledger for ``processing_id``, creating it if needed."""
        with self._lock:
            ledger = self._ledgers.get(processing_id)
            if ledger is None:
                ledger = RunLedger(processing_id=processing_id)
                self._ledgers[processing_id] = ledger
            return ledger

    def get(self, processing_id: str) -> Optional[RunLedger]:
        with self._lock:
            return self._ledgers.get(processing_id)

    def discard(self, processing_id: str) -> None:
        with self._lock:
            self._ledgers.pop(processing_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._ledgers)
