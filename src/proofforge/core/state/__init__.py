"""状態機械と投影"""

from .machines import (
    ChallengeStateMachine,
    NodeStateMachine,
    PendingDefStateMachine,
    StateMachine,
    Transition,
    TransitionError,
    ensure_claimable,
    ensure_lease_holder,
)
from .projector import ProofProjector, build_proof_state, project

__all__ = [
    "StateMachine",
    "Transition",
    "TransitionError",
    "NodeStateMachine",
    "ChallengeStateMachine",
    "PendingDefStateMachine",
    "ensure_claimable",
    "ensure_lease_holder",
    "ProofProjector",
    "build_proof_state",
    "project",
]
