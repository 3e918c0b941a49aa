"""ProofForge イベントモデル

イミュータブルなイベントの定義とシリアライズ。
全てのイベントは台帳 (Ledger) に永続化される。
"""

from .types import EventType

from .base import (
    BaseEvent,
    EventPayload,
    UnknownEvent,
    UtcDatetime,
    compute_hash,
    generate_event_id,
    serialize_value,
    utc_now,
)

from .proof import ProofInitializedEvent, ProofInitializedPayload

from .node import (
    NodeAcceptedEvent,
    NodeAmendedEvent,
    NodeAmendedPayload,
    NodeArchivedEvent,
    NodeArchivedPayload,
    NodeClaimedEvent,
    NodeClaimPayload,
    NodeClaimRefreshedEvent,
    NodeCreatedEvent,
    NodeCreatedPayload,
    NodeOwnerPayload,
    NodeRefinedEvent,
    NodeReleasedEvent,
)

from .challenge import (
    ChallengeCreatedEvent,
    ChallengeCreatedPayload,
    ChallengeResolvedEvent,
    ChallengeResolvedPayload,
    ChallengeWithdrawnEvent,
    ChallengeWithdrawnPayload,
)

from .definition import (
    DefAddedEvent,
    DefAddedPayload,
    PendingDefCancelledEvent,
    PendingDefCancelledPayload,
    PendingDefCreatedEvent,
    PendingDefCreatedPayload,
    PendingDefResolvedEvent,
    PendingDefResolvedPayload,
)

from .registry import EVENT_TYPE_MAP, parse_event

__all__ = [
    "EventType",
    "BaseEvent",
    "EventPayload",
    "UnknownEvent",
    "UtcDatetime",
    "compute_hash",
    "generate_event_id",
    "serialize_value",
    "utc_now",
    "ProofInitializedEvent",
    "ProofInitializedPayload",
    "NodeCreatedEvent",
    "NodeCreatedPayload",
    "NodeClaimedEvent",
    "NodeClaimRefreshedEvent",
    "NodeClaimPayload",
    "NodeReleasedEvent",
    "NodeRefinedEvent",
    "NodeAcceptedEvent",
    "NodeOwnerPayload",
    "NodeAmendedEvent",
    "NodeAmendedPayload",
    "NodeArchivedEvent",
    "NodeArchivedPayload",
    "ChallengeCreatedEvent",
    "ChallengeCreatedPayload",
    "ChallengeResolvedEvent",
    "ChallengeResolvedPayload",
    "ChallengeWithdrawnEvent",
    "ChallengeWithdrawnPayload",
    "DefAddedEvent",
    "DefAddedPayload",
    "PendingDefCreatedEvent",
    "PendingDefCreatedPayload",
    "PendingDefResolvedEvent",
    "PendingDefResolvedPayload",
    "PendingDefCancelledEvent",
    "PendingDefCancelledPayload",
    "EVENT_TYPE_MAP",
    "parse_event",
]
