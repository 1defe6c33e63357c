"""Sync engine: HTTP transport, result reconciliation and the orchestrator."""

from .client import SyncClient, SyncTransport
from .orchestrator import SyncOrchestrator, calculate_backoff
from .reconcile import Outcome, ResultApplier

__all__ = [
    "Outcome",
    "ResultApplier",
    "SyncClient",
    "SyncOrchestrator",
    "SyncTransport",
    "calculate_backoff",
]
