"""
Holder Distribution

Claims protocol fees every cycle, picks one asset holder weighted by holding
size using external verifiable randomness, pays them, and records the
outcome in an append-only ledger.
"""

from .cycles import CycleClock, CycleInfo
from .ledger import WinnerLedger, InsertResult
from .models import RecordStatus, WinnerRecord, Holder
from .orchestrator import (
    DistributionOrchestrator,
    CycleOutcome,
    AlreadyProcessedOutcome,
    NoFundsOutcome,
    RandomnessFailedOutcome,
    DistributedOutcome,
)

__all__ = [
    'CycleClock',
    'CycleInfo',
    'WinnerLedger',
    'InsertResult',
    'RecordStatus',
    'WinnerRecord',
    'Holder',
    'DistributionOrchestrator',
    'CycleOutcome',
    'AlreadyProcessedOutcome',
    'NoFundsOutcome',
    'RandomnessFailedOutcome',
    'DistributedOutcome',
]
