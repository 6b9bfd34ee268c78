"""Application services for orchestrating domain logic."""

from .pause_gate import PAUSE_GATE, PauseGate, pause_all_bootstraps, resume_all_bootstraps
from .replication_orchestrator import ReplicationOrchestrator

__all__ = [
    "PAUSE_GATE",
    "PauseGate",
    "ReplicationOrchestrator",
    "pause_all_bootstraps",
    "resume_all_bootstraps",
]
