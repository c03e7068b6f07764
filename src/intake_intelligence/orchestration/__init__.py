"""
Orchestration module for the intake analysis pipeline.
"""

from .pipeline_orchestrator import PipelineOrchestrator
from .retry_executor import RetryExecutor
from .run_ledger import RunLedger, RunLedgerStore, StageRecord

__all__ = [
    "PipelineOrchestrator",
    "RetryExecutor",
    "RunLedger",
    "RunLedgerStore",
    "StageRecord",
]
