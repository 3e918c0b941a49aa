"""ProofForge Core モジュール

証明のバックエンドロジックを提供:
- Ledger: 追記専用イベントログと投影モデル
- State: 状態機械と投影器
- Config: 設定管理
- Events: イベントモデル
"""

from .config import ProofForgeSettings, get_settings, reload_settings
from .errors import (
    InvalidInputError,
    NotFoundError,
    ProofForgeError,
    StateConflictError,
    StorageError,
)
from .events import (
    BaseEvent,
    EventType,
    generate_event_id,
    parse_event,
)
from .ledger import Ledger, ProofState
from .state import (
    ChallengeStateMachine,
    NodeStateMachine,
    PendingDefStateMachine,
    ProofProjector,
    build_proof_state,
    project,
)
from .types import NodeID

__all__ = [
    # Config
    "get_settings",
    "reload_settings",
    "ProofForgeSettings",
    # Errors
    "ProofForgeError",
    "InvalidInputError",
    "NotFoundError",
    "StateConflictError",
    "StorageError",
    # Events
    "BaseEvent",
    "EventType",
    "generate_event_id",
    "parse_event",
    # Ledger
    "Ledger",
    "ProofState",
    # State
    "NodeStateMachine",
    "ChallengeStateMachine",
    "PendingDefStateMachine",
    "ProofProjector",
    "build_proof_state",
    "project",
    # Types
    "NodeID",
]
