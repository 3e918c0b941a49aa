"""台帳 (Ledger): 追記専用イベントログと投影モデル"""

from .projections import (
    Amendment,
    ChallengeProjection,
    ChallengeStatus,
    DefinitionProjection,
    NodeProjection,
    NodeStatus,
    PendingDefProjection,
    PendingDefStatus,
    ProofState,
    SkippedRecord,
)
from .storage import Ledger, ScanControl, ScanResult

__all__ = [
    "Ledger",
    "ScanControl",
    "ScanResult",
    "NodeStatus",
    "ChallengeStatus",
    "PendingDefStatus",
    "Amendment",
    "NodeProjection",
    "ChallengeProjection",
    "DefinitionProjection",
    "PendingDefProjection",
    "SkippedRecord",
    "ProofState",
]
